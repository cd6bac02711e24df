# This file is part of spinboot. See LICENSE file for license information.
"""Writers for the service defaults file and the local YAML config."""

import logging
import os
import re
from typing import Dict, Optional

from spinboot import util

LOG = logging.getLogger(__name__)

DEFAULTS_MODE = 0o644


class DefaultsFile:
    """A flat KEY=value file read by the service at startup.

    Values are inserted literally, with no quoting or escaping.
    """

    def __init__(self, path):
        self.path = path

    def _lines(self):
        try:
            return util.load_text_file(self.path).splitlines()
        except FileNotFoundError:
            return []

    def set_default(self, name, value):
        """Set name=value, replacing an existing line for name in place."""
        if value is None:
            value = ""
        entry = "%s=%s" % (name, value)
        prefix = "%s=" % name
        lines = []
        replaced = False
        for line in self._lines():
            if line.startswith(prefix):
                if replaced:
                    # a second line for the same key would shadow this one
                    continue
                lines.append(entry)
                replaced = True
            else:
                lines.append(line)
        if not replaced:
            lines.append(entry)
        LOG.debug("Setting %s in %s", name, self.path)
        util.write_file(
            self.path, "\n".join(lines) + "\n", mode=self._mode(), omode="w"
        )

    def _mode(self):
        try:
            return util.get_permissions(self.path)
        except OSError:
            return DEFAULTS_MODE

    def get(self, name) -> Optional[str]:
        return self.as_dict().get(name)

    def as_dict(self) -> Dict[str, str]:
        values = {}
        for line in self._lines():
            name, sep, value = line.partition("=")
            if sep:
                values.setdefault(name, value)
        return values


def escape_replacement(value):
    """Escape value for use as literal text in a re.sub replacement."""
    return value.replace("\\", "\\\\")


def patch_yaml_field(path, field, new_value) -> bool:
    """Rewrite the value of every indented '<field>:' line in path.

    Indentation is kept, the rest of the line after the key is replaced
    with new_value verbatim. Returns False without touching anything when
    path does not exist.
    """
    if not os.path.isfile(path):
        LOG.debug("Not patching %s in missing %s", field, path)
        return False
    matcher = re.compile(r"^( +%s:).+$" % re.escape(field), re.MULTILINE)
    content = util.load_text_file(path)
    patched, count = matcher.subn(
        r"\g<1> " + escape_replacement(str(new_value)), content
    )
    if not count:
        LOG.debug("No %s field found in %s", field, path)
        return False
    util.write_file(
        path, patched, mode=util.get_permissions(path), omode="w"
    )
    if util.load_yaml(patched, default=None) is None:
        LOG.warning("%s no longer parses as yaml after patching", path)
    LOG.debug("Patched %s in %s", field, path)
    return True


def replace_in_file(path, old, new) -> bool:
    """Replace every occurrence of old with new, keeping the file mode."""
    content = util.load_text_file(path)
    if old not in content:
        return False
    util.write_file(
        path,
        content.replace(old, new),
        mode=util.get_permissions(path),
        omode="w",
    )
    return True
