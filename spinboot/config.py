# This file is part of spinboot. See LICENSE file for license information.
"""Loading and validation of the spinboot configuration file."""

import logging
import os
from typing import List, NamedTuple, Optional

from jsonschema import Draft4Validator

from spinboot import settings, util
from spinboot.errors import ConfigError

LOG = logging.getLogger(__name__)

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

SCHEMA = {
    "$schema": "http://json-schema.org/draft-04/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "metadata_url": {"type": "string", "format": "uri"},
        "service_user": {"type": "string", "minLength": 1},
        "defaults_file": {"type": "string", "minLength": 1},
        "install_dir": {"type": "string", "minLength": 1},
        "home_dir": {"type": "string", "minLength": 1},
        "monitoring_dir": {"type": "string", "minLength": 1},
        "restart_before_upgrade": {"type": "boolean"},
        "replace_startup_script": {"type": "boolean"},
        "subsystems": _STRING_LIST,
        "dependencies": _STRING_LIST,
        "poll_interval": {"type": "number", "minimum": 0},
        "log_cfgs": {
            "type": "array",
            "items": {"oneOf": [{"type": "string"}, _STRING_LIST]},
        },
        "halyard": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "deploy_type": {"type": "string"},
                "storage_type": {"type": "string"},
            },
        },
    },
}


class SchemaProblem(NamedTuple):
    path: str
    message: str

    def format(self) -> str:
        return f"{self.path}: {self.message}"


class SchemaValidationError(ConfigError):
    """Raised when the configuration file does not match SCHEMA."""

    def __init__(self, schema_errors: List[SchemaProblem]):
        self.schema_errors = schema_errors
        super().__init__(
            "Invalid configuration: "
            + ", ".join(problem.format() for problem in schema_errors)
        )


def validate_config(config: dict, schema: Optional[dict] = None):
    """Validate provided config meets the schema definition.

    @raises: SchemaValidationError listing every problem found.
    """
    if schema is None:
        schema = SCHEMA
    validator = Draft4Validator(schema)
    errors = []
    for schema_error in sorted(
        validator.iter_errors(config), key=lambda e: list(e.path)
    ):
        path = ".".join([str(p) for p in schema_error.path])
        errors.append(SchemaProblem(path or "<root>", schema_error.message))
    if errors:
        raise SchemaValidationError(errors)


def config_path():
    return os.environ.get(settings.CFG_ENV_NAME, settings.SPINBOOT_CONFIG)


def load_config(fname=None) -> dict:
    """Return the user config merged over the builtin defaults."""
    if fname is None:
        fname = config_path()
    cfg = util.read_conf(fname)
    if cfg:
        LOG.debug("Loaded configuration from %s", fname)
        validate_config(cfg)
    return util.mergemanydict([cfg, settings.CFG_BUILTIN])
