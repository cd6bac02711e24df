# This file is part of spinboot. See LICENSE file for license information.
"""Access to the GCE instance metadata service.

Reads go straight to the metadata HTTP endpoint. Mutations (clearing and
adding attributes) go through the gcloud CLI, which needs the instance name
and zone held by the BootContext.
"""

import enum
import logging
import os
import socket
from typing import Mapping, NamedTuple, Optional

import requests

from spinboot import settings, subp, url_helper, util
from spinboot.errors import (
    MetadataClearError,
    MetadataWriteError,
    NotOnGCEError,
)

LOG = logging.getLogger(__name__)


class Presence(enum.Enum):
    PRESENT = "present"
    # set, but only whitespace (or only sentinel lines)
    BLANK = "blank"
    # unset, empty, or the fetch failed
    ABSENT = "absent"


class MetadataValue(NamedTuple):
    presence: Presence
    value: str = ""

    @classmethod
    def from_text(cls, text: Optional[str]) -> "MetadataValue":
        if not text:
            return cls(Presence.ABSENT)
        if not text.strip():
            return cls(Presence.BLANK, text)
        return cls(Presence.PRESENT, text)

    @property
    def present(self) -> bool:
        return self.presence is Presence.PRESENT

    @property
    def absent(self) -> bool:
        return self.presence is Presence.ABSENT

    def stripped(self) -> str:
        return self.value.strip() if self.present else ""

    def without_sentinel(self) -> "MetadataValue":
        """Drop lines that are exactly the sentinel value.

        A value made only of sentinel lines was still set by someone, so it
        becomes BLANK rather than ABSENT and is cleared like any other blank
        value.
        """
        if not self.present:
            return self
        lines = [
            line
            for line in self.value.split("\n")
            if line != settings.SENTINEL_VALUE
        ]
        remaining = "\n".join(lines)
        if not remaining.strip():
            return MetadataValue(Presence.BLANK, self.value)
        return MetadataValue(Presence.PRESENT, remaining)


ABSENT = MetadataValue(Presence.ABSENT)


class BootContext(NamedTuple):
    instance: str
    zone: str
    project: str
    project_number: Optional[str] = None
    status_prefix: str = "*"

    @property
    def region(self) -> str:
        return self.zone.rsplit("-", 1)[0]

    @property
    def storage_bucket(self) -> str:
        return "spinnaker-%s" % self.project


class GoogleMetadataFetcher:
    def __init__(self, metadata_address=settings.METADATA_URL, timeout=5):
        self.metadata_address = metadata_address
        self.timeout = timeout
        # one connection serves every read of a boot
        self.session = requests.Session()

    def get_value(self, path) -> Optional[str]:
        """Return the text at path.

        Any HTTP or network error, or content that is not utf-8, gives None.
        """
        url = url_helper.combine_url(self.metadata_address, path)
        try:
            resp = url_helper.readurl(
                url=url,
                headers=settings.METADATA_HEADERS,
                timeout=self.timeout,
                retries=0,
                session=self.session,
            )
        except url_helper.UrlError as exc:
            LOG.debug("url %s raised exception %s", path, exc)
            return None
        if not resp.ok():
            LOG.debug("url %s returned code %s", path, resp.code)
            return None
        try:
            return util.decode_binary(resp.contents)
        except UnicodeDecodeError as exc:
            LOG.debug("url %s returned undecodable content: %s", path, exc)
            return None


def read_context(fetcher: GoogleMetadataFetcher, status_prefix="*"):
    """Build the BootContext for this instance.

    @raises NotOnGCEError: when the zone endpoint cannot be read.
    """
    full_zone = fetcher.get_value("instance/zone")
    if not full_zone:
        raise NotOnGCEError("instance/zone could not be read")
    # projects/<number>/zones/<zone>
    zone = os.path.basename(full_zone.strip())
    project = (fetcher.get_value("project/project-id") or "").strip()
    project_number = fetcher.get_value("project/numeric-project-id")
    instance = fetcher.get_value("instance/name")
    if not instance:
        instance = socket.gethostname().split(".")[0]
    ctx = BootContext(
        instance=instance.strip(),
        zone=zone,
        project=project,
        project_number=project_number.strip() if project_number else None,
        status_prefix=status_prefix,
    )
    LOG.debug("Running with %s", ctx)
    return ctx


def _metadata_arg(pairs: Mapping[str, str]) -> str:
    entries = ["%s=%s" % (k, v) for k, v in pairs.items()]
    if not any("," in entry for entry in entries):
        return ",".join(entries)
    # gcloud accepts ^DELIM^ to replace the default ',' list delimiter
    delim = ";"
    while any(delim in entry for entry in entries):
        delim += ";"
    return "^%s^%s" % (delim, delim.join(entries))


class MetadataStore:
    def __init__(self, fetcher: GoogleMetadataFetcher, ctx: BootContext):
        self.fetcher = fetcher
        self.ctx = ctx

    def get(self, key) -> MetadataValue:
        return MetadataValue.from_text(
            self.fetcher.get_value("instance/attributes/%s" % key)
        )

    def has(self, key) -> bool:
        return not self.get(key).absent

    def read_path(self, path) -> Optional[str]:
        """Read a metadata path outside instance attributes, stripped."""
        text = self.fetcher.get_value(path)
        return text.strip() if text else None

    def service_account_email(self) -> Optional[str]:
        return self.read_path("instance/service-accounts/default/email")

    def _instance_cmd(self, action):
        return [
            "gcloud",
            "compute",
            "instances",
            action,
            self.ctx.instance,
            "--zone",
            self.ctx.zone,
        ]

    def clear(self, key):
        """Remove key from this instance's metadata.

        @raises MetadataClearError: provisioning must not continue while a
            consumed value is still attached to the instance.
        """
        LOG.debug("Clearing instance metadata %s", key)
        try:
            subp.subp(self._instance_cmd("remove-metadata") + ["--keys", key])
        except subp.ProcessExecutionError as e:
            raise MetadataClearError(key, e) from e

    def set_many(self, pairs: Mapping[str, str]):
        if not pairs:
            return
        args = self._instance_cmd("add-metadata") + [
            "--metadata",
            _metadata_arg(pairs),
        ]
        logstring = self._instance_cmd("add-metadata") + [
            "--metadata",
            ",".join("%s=<redacted>" % k for k in pairs),
        ]
        try:
            subp.subp(args, logstring=logstring)
        except subp.ProcessExecutionError as e:
            raise MetadataWriteError(pairs.keys(), e) from e
