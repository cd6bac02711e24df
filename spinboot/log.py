# This file is part of spinboot. See LICENSE file for license information.

import collections.abc
import io
import logging
import logging.config
import os
import sys
from contextlib import suppress

DEFAULT_LOG_FORMAT = "%(asctime)s - %(filename)s[%(levelname)s]: %(message)s"


def setup_basic_logging(level=logging.DEBUG, formatter=None):
    formatter = formatter or logging.Formatter(DEFAULT_LOG_FORMAT)
    root = logging.getLogger()
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(level)
    root.addHandler(console)
    root.setLevel(level)


def setup_logging(cfg=None):
    """Configure logging from the 'log_cfgs' entry of cfg.

    Each entry is either a path to a logging fileConfig file or the
    contents of one. The first entry that loads wins; if none do, a basic
    stderr logger is installed.
    """
    if not cfg:
        cfg = {}

    log_cfgs = []
    for a_cfg in cfg.get("log_cfgs") or []:
        if isinstance(a_cfg, str):
            log_cfgs.append(a_cfg)
        elif isinstance(a_cfg, (collections.abc.Iterable)):
            log_cfgs.append("\n".join([str(c) for c in a_cfg]))
        else:
            log_cfgs.append(str(a_cfg))

    am_tried = 0
    for log_cfg in log_cfgs:
        # A handler pointing at a file in a directory that does not exist
        # yet is expected very early in boot.
        with suppress(FileNotFoundError):
            am_tried += 1

            # If the value is not a filename, assume that it is a config.
            if not (log_cfg.startswith("/") and os.path.isfile(log_cfg)):
                log_cfg = io.StringIO(log_cfg)

            logging.config.fileConfig(log_cfg, disable_existing_loggers=False)
            return

    if am_tried:
        sys.stderr.write(
            "WARN: no logging configured! (tried %s configs)\n" % (am_tried)
        )
    setup_basic_logging(level=logging.INFO)
