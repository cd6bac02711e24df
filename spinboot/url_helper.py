# This file is part of spinboot. See LICENSE file for license information.

import logging
import time
from itertools import count
from typing import Any, Optional
from urllib.parse import quote, urlparse, urlunparse

import requests
from requests import exceptions

from spinboot import version

LOG = logging.getLogger(__name__)


def _cleanurl(url):
    parsed_url = list(urlparse(url, scheme="http"))
    if not parsed_url[1] and parsed_url[2]:
        # Swap these since this seems to be a common
        # occurrence when given urls like 'www.google.com'
        parsed_url[1] = parsed_url[2]
        parsed_url[2] = ""
    return urlunparse(parsed_url)


def combine_url(base, *add_ons):
    def combine_single(url, add_on):
        url_parsed = list(urlparse(url))
        path = url_parsed[2]
        if path and not path.endswith("/"):
            path += "/"
        path += quote(str(add_on), safe="/:")
        url_parsed[2] = path
        return urlunparse(url_parsed)

    url = base
    for add_on in add_ons:
        url = combine_single(url, add_on)
    return url


class UrlResponse:
    def __init__(self, response: requests.Response):
        self._response = response

    @property
    def contents(self) -> bytes:
        if self._response.content is None:
            return b""
        return self._response.content

    def ok(self) -> bool:
        return 200 <= self.code < 300

    @property
    def code(self) -> int:
        return self._response.status_code


class UrlError(IOError):
    def __init__(
        self,
        cause: Any,
        code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        IOError.__init__(self, str(cause))
        self.cause = cause
        self.code = code
        self.url = url


def readurl(
    url,
    *,
    timeout=None,
    retries=0,
    sec_between=1,
    headers=None,
    session=None,
) -> UrlResponse:
    """Wrapper around requests.Session to read the url and retry if necessary

    :param url: Mandatory url to request.
    :param timeout: Timeout in seconds to wait for a response. May be a tuple
        if specifying (connection timeout, read timeout).
    :param retries: Number of times to retry on exception. Default is to
        fail with 0 retries on exception.
    :param sec_between: Default 1: amount of seconds passed to time.sleep
        between retries. None or -1 means don't sleep.
    :param headers: Optional dict of headers to send during request
    :param session: Optional existing requests.Session instance to reuse.
    """
    url = _cleanurl(url)
    req_args = {
        "url": url,
        "method": "GET",
    }
    if timeout is not None:
        if isinstance(timeout, tuple):
            req_args["timeout"] = timeout
        else:
            req_args["timeout"] = max(float(timeout), 0)
    manual_tries = 1
    if retries:
        manual_tries = max(int(retries) + 1, 1)

    headers = headers.copy() if headers is not None else {}
    if "User-Agent" not in headers:
        headers["User-Agent"] = "spinboot/%s" % version.version_string()
    req_args["headers"] = headers

    if sec_between is None:
        sec_between = -1

    if session is None:
        session = requests.Session()

    # Handle retrying ourselves since the built-in support
    # doesn't handle sleeping between tries...
    for i in count():
        raised_exception: Exception
        try:
            LOG.debug(
                "[%s/%s] open '%s' with %s configuration",
                i,
                manual_tries,
                url,
                req_args,
            )

            response = session.request(**req_args)

            response.raise_for_status()
            LOG.debug(
                "Read from %s (%s, %sb) after %s attempts",
                url,
                response.status_code,
                len(response.content),
                (i + 1),
            )
            return UrlResponse(response)
        except exceptions.HTTPError as e:
            url_error = UrlError(
                e,
                code=e.response.status_code,
                url=url,
            )
            raised_exception = e
        except exceptions.RequestException as e:
            url_error = UrlError(e, url=url)
            raised_exception = e

        if i + 1 >= manual_tries:
            raise url_error from raised_exception

        if sec_between > 0:
            LOG.debug(
                "Please wait %s seconds while we wait to try again",
                sec_between,
            )
            time.sleep(sec_between)

    raise RuntimeError("This path should be unreachable...")
