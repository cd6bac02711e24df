# This file is part of spinboot. See LICENSE file for license information.
"""Common utility functions for interacting with subprocess."""

import collections
import logging
import os
import subprocess
import time
from errno import ENOEXEC
from typing import List, Union

LOG = logging.getLogger(__name__)

SubpResult = collections.namedtuple("SubpResult", ["stdout", "stderr"])


class ProcessExecutionError(IOError):
    MESSAGE_TMPL = (
        "%(description)s\n"
        "Command: %(cmd)s\n"
        "Exit code: %(exit_code)s\n"
        "Reason: %(reason)s\n"
        "Stdout: %(stdout)s\n"
        "Stderr: %(stderr)s"
    )
    empty_attr = "-"

    def __init__(
        self,
        stdout=None,
        stderr=None,
        exit_code=None,
        cmd=None,
        description=None,
        reason=None,
        errno=None,
    ):
        self.cmd = cmd or self.empty_attr

        if description:
            self.description = description
        elif not exit_code and errno == ENOEXEC:
            self.description = "Exec format error. Missing #! in script?"
        else:
            self.description = "Unexpected error while running command."

        self.exit_code = (
            exit_code if isinstance(exit_code, int) else self.empty_attr
        )
        self.stderr = self._or_empty(stderr)
        self.stdout = self._or_empty(stdout)
        self.reason = reason or self.empty_attr

        if errno:
            self.errno = errno
        message = self.MESSAGE_TMPL % {
            "description": self.description,
            "cmd": self.cmd,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "reason": self.reason,
        }
        IOError.__init__(self, message)

    def _or_empty(self, text):
        if not text:
            return self.empty_attr if text is None else text
        if isinstance(text, bytes):
            text = text.decode("utf-8", "replace")
        # indent all but the first line so the message stays readable
        return text.rstrip("\n").replace("\n", "\n" + " " * 8)


def raise_on_invalid_command(args: List[str]):
    """check argument types to ensure that subp() can run the argument

    raises: ProcessExecutionError with information explaining the issue
    """
    for component in args:
        if not isinstance(component, (str, bytes)):
            LOG.warning("Running invalid command: %s", args)
            raise ProcessExecutionError(
                cmd=args, reason=f"Running invalid command: {args}"
            )


def subp(
    args: Union[str, List[str]],
    *,
    data=None,
    rcs=None,
    capture=True,
    shell=False,
    logstring=False,
    update_env=None,
    cwd=None,
    timeout=None,
) -> SubpResult:
    """Run a subprocess.

    :param args: command to run in a list. [cmd, arg1, arg2...]
    :param data: input to the command, made available on its stdin.
    :param rcs:
        a list of allowed return codes.  If subprocess exits with a value not
        in this list, a ProcessExecutionError will be raised.
    :param capture:
        boolean indicating if output should be captured.  If True, then stderr
        and stdout will be returned as strings.  If False, they will not be
        redirected and (None, None) is returned.
    :param shell: boolean indicating if this should be run with a shell.
    :param logstring:
        the command will be logged to DEBUG.  If it contains info that should
        not be logged, then logstring will be logged instead.
    :param update_env:
        update the environment for this command with this dictionary.
        this will not affect the current processes os.environ.
    :param cwd:
        change the working directory to cwd before executing the command.
    :param timeout: maximum time for the subprocess to run, passed directly to
        Popen.communicate()
    """

    if rcs is None:
        rcs = [0]

    env = os.environ.copy()
    if update_env:
        env.update(update_env)

    LOG.debug(
        "Running command %s with allowed return codes %s"
        " (shell=%s, capture=%s)",
        logstring if logstring else args,
        rcs,
        shell,
        capture,
    )

    stdout = None
    stderr = None
    if capture:
        stdout = subprocess.PIPE
        stderr = subprocess.PIPE
    if data is None:
        # using devnull assures any reads get null, rather
        # than possibly waiting on input.
        stdin = subprocess.DEVNULL
    else:
        stdin = subprocess.PIPE
        if not isinstance(data, bytes):
            data = data.encode()

    if not isinstance(args, str):
        raise_on_invalid_command(args)
    try:
        before = time.monotonic()
        sp = subprocess.Popen(
            args,
            stdout=stdout,
            stderr=stderr,
            stdin=stdin,
            env=env,
            shell=shell,
            cwd=cwd,
        )
        out, err = sp.communicate(data, timeout=timeout)
        total = time.monotonic() - before
        if total > 0.1:
            LOG.debug(
                "%s took %.3ss to run",
                logstring if logstring else args,
                total,
            )
    except OSError as e:
        raise ProcessExecutionError(
            cmd=logstring if logstring else args,
            reason=e,
            errno=e.errno,
            stdout="-",
            stderr="-",
        ) from e

    if out is not None:
        out = out.decode("utf-8", "replace")
    if err is not None:
        err = err.decode("utf-8", "replace")

    rc = sp.returncode
    if rc not in rcs:
        raise ProcessExecutionError(
            stdout=out,
            stderr=err,
            exit_code=rc,
            cmd=logstring if logstring else args,
        )
    return SubpResult(out, err)


def succeeds(args, **kwargs) -> bool:
    """Run args and report whether it exited zero, never raising."""
    try:
        subp(args, **kwargs)
    except ProcessExecutionError as e:
        LOG.debug("Command %s failed: %s", args, e.exit_code)
        return False
    return True

