#!/usr/bin/env python3

# This file is part of spinboot. See LICENSE file for license information.

"""Commandline utility that deploys Spinnaker through Halyard on first boot."""

import sys

from spinboot.cmd import main as spinboot_main
from spinboot.halyard import HalyardBoot

NAME = "spinboot-halyard"


def get_parser(parser=None):
    parser = spinboot_main.get_parser(parser)
    parser.prog = NAME
    parser.description = "Configure Spinnaker with Halyard from GCE metadata"
    return parser


def handle_args(name, args):
    cfg, ctx, store = spinboot_main.setup(args)
    HalyardBoot(ctx, cfg, store).run()
    return 0


def main(sysv_args=None):
    return spinboot_main.run(NAME, get_parser, handle_args, sysv_args)


if __name__ == "__main__":
    sys.exit(main())
