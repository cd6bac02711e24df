#!/usr/bin/env python3

# This file is part of spinboot. See LICENSE file for license information.

"""Commandline utility that provisions a Spinnaker instance on first boot."""

import argparse
import logging
import sys

from spinboot import config, log, subp, util
from spinboot.boot import BootOrchestrator
from spinboot.errors import FatalBootError, UnknownOptionError
from spinboot.metadata import GoogleMetadataFetcher, MetadataStore, read_context

NAME = "spinboot"

LOG = logging.getLogger(__name__)


def get_parser(parser=None):
    """Build or extend an arg parser for the spinboot utility.

    @param parser: Optional existing ArgumentParser instance which will be
        extended to support the args of this utility.

    @returns: ArgumentParser with proper argument configuration.
    """
    if not parser:
        parser = argparse.ArgumentParser(
            prog=NAME,
            description="Configure Spinnaker from GCE instance metadata",
            allow_abbrev=False,
        )
    parser.add_argument(
        "--status_prefix",
        type=str,
        default="*",
        help="Prefix for the progress lines written to stdout.",
    )
    return parser


def parse_args(parser, sysv_args=None):
    args, unknown = parser.parse_known_args(sysv_args)
    if unknown:
        raise UnknownOptionError(unknown[0])
    return args


def setup(args):
    """Load config, set up logging and resolve the instance context."""
    cfg = config.load_config()
    log.setup_logging(cfg)
    fetcher = GoogleMetadataFetcher(cfg["metadata_url"])
    ctx = read_context(fetcher, status_prefix=args.status_prefix)
    return cfg, ctx, MetadataStore(fetcher, ctx)


def handle_args(name, args):
    """Handle calls to the 'spinboot' cli.

    @return: 0 on success, the failing command's exit code otherwise.
    """
    cfg, ctx, store = setup(args)
    BootOrchestrator(ctx, cfg, store).run()
    return 0


def run(name, get_parser, handle_args, sysv_args=None):
    try:
        args = parse_args(get_parser(), sysv_args)
        return handle_args(name, args)
    except FatalBootError as e:
        LOG.debug("%s aborted: %s", name, e)
        return util.error(str(e), rc=e.exit_code, fmt="{}")
    except subp.ProcessExecutionError as e:
        util.logexc(LOG, "%s aborted", name, log_level=logging.ERROR)
        rc = e.exit_code if isinstance(e.exit_code, int) else 1
        return util.error(str(e), rc=rc or 1)


def main(sysv_args=None):
    """Tool to run the first boot of a metadata configured instance."""
    return run(NAME, get_parser, handle_args, sysv_args)


if __name__ == "__main__":
    sys.exit(main())
