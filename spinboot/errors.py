# This file is part of spinboot. See LICENSE file for license information.

"""Errors raised while provisioning.

Anything deriving from FatalBootError aborts the whole first boot. The
process exits with ``exit_code`` and no cleanup beyond what already ran.
Recoverable conditions are never raised; they are logged and reported as
an absent credential instead.
"""


class SpinbootError(Exception):
    pass


class FatalBootError(SpinbootError):
    exit_code = 255


class NotOnGCEError(FatalBootError):
    def __init__(self, reason=None):
        self.reason = reason
        super().__init__("Not running on Google Cloud Platform.")


class UnknownOptionError(FatalBootError):
    def __init__(self, option):
        self.option = option
        super().__init__("ERROR: unknown option '%s'." % option)


class MetadataClearError(FatalBootError):
    def __init__(self, key, cause=None):
        self.key = key
        self.cause = cause
        super().__init__("Could not clear metadata from %s" % key)


class MetadataWriteError(FatalBootError):
    def __init__(self, keys, cause=None):
        self.keys = list(keys)
        self.cause = cause
        super().__init__(
            "Could not write metadata for %s" % ", ".join(self.keys)
        )


class ConfigError(FatalBootError):
    pass


class KubernetesConfigError(FatalBootError):
    exit_code = 1

    def __init__(self):
        super().__init__(
            "No kubernetes cluster specified, but kubernetes was enabled."
            " Aborting."
        )
