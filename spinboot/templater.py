# This file is part of spinboot. See LICENSE file for license information.

import logging
import os
import re

from jinja2 import StrictUndefined
from jinja2 import Template as JTemplate

from spinboot import util

LOG = logging.getLogger(__name__)
TYPE_MATCHER = re.compile(r"##\s*template:(.*)", re.I)
TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "templates")


def jinja_render(content, params):
    # jinja drops the trailing newline unless told otherwise
    add = "\n" if content.endswith("\n") else ""
    return (
        JTemplate(
            content,
            undefined=StrictUndefined,
            trim_blocks=True,
        ).render(**params)
        + add
    )


def strip_template_header(text):
    """Drop a leading '## template: jinja' line, if present."""
    if text.find("\n") != -1:
        ident, rest = text.split("\n", 1)
    else:
        ident = text
        rest = ""
    type_match = TYPE_MATCHER.match(ident)
    if not type_match:
        return text
    template_type = type_match.group(1).lower().strip()
    if template_type != "jinja":
        raise ValueError(
            "Unknown template rendering type '%s' requested" % template_type
        )
    return rest


def render_string(content, params):
    if not params:
        params = {}
    return jinja_render(strip_template_header(content), params)


def render_from_file(fn, params):
    LOG.debug("Rendering content of '%s'", fn)
    return render_string(util.load_text_file(fn), params)


def render_template(name, params):
    """Render one of the templates shipped with spinboot."""
    return render_from_file(os.path.join(TEMPLATES_DIR, name), params)
