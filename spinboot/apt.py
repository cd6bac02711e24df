# This file is part of spinboot. See LICENSE file for license information.
"""Apply pending OS updates without moving the pinned packages."""

import fcntl
import logging
import os
import time
from typing import Iterable

from spinboot import subp, util

LOG = logging.getLogger(__name__)

APT_GET_COMMAND = (
    "apt-get",
    "-o",
    "Dpkg::Options::=--force-confdef",
    "-o",
    "Dpkg::Options::=--force-confold",
    "-y",
)
# The frontend lock needs to be acquired first followed by the order that
# apt uses. /var/lib/apt/lists is only locked during update.
APT_LOCK_FILES = [
    "/var/lib/dpkg/lock-frontend",
    "/var/lib/dpkg/lock",
    "/var/cache/apt/archives/lock",
    "/var/lib/apt/lists/lock",
]


class AptUpgrader:
    def __init__(self, pinned: Iterable[str], naplen=1, lock_files=None):
        self.pinned = list(pinned)
        self.naplen = naplen
        self.lock_files = APT_LOCK_FILES if lock_files is None else lock_files
        self.environment = {"DEBIAN_FRONTEND": "noninteractive"}

    def mark(self, action):
        if not self.pinned:
            return
        subp.subp(["apt-mark", action] + self.pinned)

    def dist_upgrade(self):
        """Update and dist-upgrade with the pinned packages held."""
        self.mark("hold")
        try:
            self.run_apt_command("update")
            self.run_apt_command("dist-upgrade")
        finally:
            self.mark("unhold")

    def run_apt_command(self, command):
        args = list(APT_GET_COMMAND) + [command]
        self._wait_for_apt_command(
            command,
            {"args": args, "update_env": self.environment, "capture": False},
        )

    def _apt_lock_available(self):
        """Determines if another process holds any apt locks.

        If all locks are clear, return True else False.
        """
        for lock in self.lock_files:
            if not os.path.exists(lock):
                # Only wait for lock files that already exist
                continue
            with open(lock, "w") as handle:
                try:
                    fcntl.lockf(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except OSError:
                    return False
        return True

    def _wait_for_apt_command(self, short_cmd, subp_kwargs):
        """Run an apt command once no other process holds the apt locks.

        Unlike most waits this one has no timeout; unattended upgrades on a
        fresh image can hold the lock for minutes.
        """
        LOG.debug("Waiting for APT lock")
        while True:
            if not self._apt_lock_available():
                time.sleep(self.naplen)
                continue
            LOG.debug("APT lock available")
            try:
                return util.log_time(
                    logfunc=LOG.debug,
                    msg=f'apt-{short_cmd} [{" ".join(subp_kwargs["args"])}]',
                    func=subp.subp,
                    kwargs=subp_kwargs,
                )
            except subp.ProcessExecutionError:
                # Someone may have grabbed the lock between the check and
                # the command. If the lock is free now, the failure was ours.
                if self._apt_lock_available():
                    raise
                LOG.debug("Another process holds APT lock. Waiting...")
                time.sleep(self.naplen)
