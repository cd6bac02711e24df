# This file is part of spinboot. See LICENSE file for license information.

import contextlib
import copy
import grp
import logging
import os
import os.path
import pwd
import socket
import stat
import sys
import time
from typing import Callable, Dict, Mapping, Sequence, TypeVar, Union

import yaml

LOG = logging.getLogger(__name__)

T = TypeVar("T")

TRUE_STRINGS = ("true", "1", "on", "yes")
FALSE_STRINGS = ("off", "0", "no", "false")


def decode_binary(blob: Union[str, bytes], encoding="utf-8") -> str:
    # Converts a binary type into a text type using given encoding.
    return blob if isinstance(blob, str) else blob.decode(encoding=encoding)


def encode_text(text: Union[str, bytes], encoding="utf-8") -> bytes:
    # Converts a text string into a binary type using given encoding.
    return text if isinstance(text, bytes) else text.encode(encoding=encoding)


def is_true(val, addons=None):
    if isinstance(val, (bool)):
        return val is True
    check_set = TRUE_STRINGS
    if addons:
        check_set = list(check_set) + addons
    if str(val).lower().strip() in check_set:
        return True
    return False


def get_cfg_option_bool(yobj, key, default=False):
    if key not in yobj:
        return default
    return is_true(yobj[key])


def get_cfg_option_str(yobj, key, default=None):
    if key not in yobj:
        return default
    val = yobj[key]
    if not isinstance(val, str):
        val = str(val)
    return val


def get_cfg_option_list(yobj, key, default=None):
    """
    Gets the C{key} config option from C{yobj} as a list of strings. If the
    key is present as a single string it will be returned as a list with one
    string arg.
    """
    if key not in yobj:
        return default
    if yobj[key] is None:
        return []
    val = yobj[key]
    if isinstance(val, (list)):
        return [v if isinstance(v, str) else str(v) for v in val]
    return [str(val)]


def mergemanydict(sources: Sequence[Mapping]) -> dict:
    """Merge multiple dicts, highest priority first.

    Entries are recursively added but never replaced once present, so

        mergemanydict([{"a": 1, "d": {"a": 1}}, {"a": 10, "d": {"f": 2}}])

    results in {"a": 1, "d": {"a": 1, "f": 2}}.
    """
    merged_cfg: dict = {}
    for cfg in sources:
        if cfg:
            merged_cfg = _merge_missing(merged_cfg, cfg)
    return merged_cfg


def _merge_missing(target: dict, source: Mapping) -> dict:
    result = copy.deepcopy(target)
    for key, value in source.items():
        if key not in result:
            result[key] = copy.deepcopy(value)
        elif isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _merge_missing(result[key], value)
    return result


def load_yaml(blob, default=None, allowed=(dict,)):
    loaded = default
    blob = decode_binary(blob)
    try:
        LOG.debug(
            "Attempting to load yaml from string "
            "of length %s with allowed root types %s",
            len(blob),
            allowed,
        )
        converted = yaml.safe_load(blob)
        if converted is None:
            LOG.debug("loaded blob returned None, returning default.")
            converted = default
        elif not isinstance(converted, allowed):
            # Yes this will just be caught, but thats ok for now...
            raise TypeError(
                "Yaml load allows %s root types, but got %s instead"
                % (allowed, type(converted).__name__)
            )
        loaded = converted
    except (yaml.YAMLError, TypeError, ValueError) as e:
        msg = "Failed loading yaml blob"
        mark = getattr(e, "problem_mark", None)
        if mark:
            msg += (
                '. Invalid format at line {line} column {col}: "{err}"'.format(
                    line=mark.line + 1, col=mark.column + 1, err=e
                )
            )
        else:
            msg += ". {err}".format(err=e)
        LOG.warning(msg)
    return loaded


def read_conf(fname) -> Dict:
    """Read a yaml config, and convert to dict"""
    try:
        config_file = load_text_file(fname)
    except FileNotFoundError:
        return {}
    return load_yaml(config_file, default={})


@contextlib.contextmanager
def umask(n_msk):
    old = os.umask(n_msk)
    try:
        yield old
    finally:
        os.umask(old)


def load_binary_file(fname: Union[str, os.PathLike]) -> bytes:
    LOG.debug("Reading from %s", fname)
    with open(fname, "rb") as ifh:
        contents = ifh.read()
    LOG.debug("Read %s bytes from %s", len(contents), fname)
    return contents


def load_text_file(fname: Union[str, os.PathLike]) -> str:
    return decode_binary(load_binary_file(fname))


def is_nonempty_file(path) -> bool:
    try:
        return os.path.getsize(path) > 0
    except OSError:
        return False


def chownbyid(fname, uid=None, gid=None):
    if uid in [None, -1] and gid in [None, -1]:
        # Nothing to do
        return
    LOG.debug("Changing the ownership of %s to %s:%s", fname, uid, gid)
    os.chown(fname, uid, gid)


def chownbyname(fname, user=None, group=None):
    uid = -1
    gid = -1
    try:
        if user:
            uid = pwd.getpwnam(user).pw_uid
        if group:
            gid = grp.getgrnam(group).gr_gid
    except KeyError as e:
        raise OSError("Unknown user or group: %s" % (e)) from e
    chownbyid(fname, uid, gid)


def chownbyname_recursive(path, user=None, group=None):
    chownbyname(path, user, group)
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            chownbyname(os.path.join(root, name), user, group)


def safe_int(possible_int):
    try:
        return int(possible_int)
    except (ValueError, TypeError):
        return None


def chmod(path, mode):
    real_mode = safe_int(mode)
    if path and real_mode:
        os.chmod(path, real_mode)


def get_permissions(path: str) -> int:
    """
    Returns the octal permissions of the file/folder pointed by the path,
    encoded as an int.

    @param path: The full path of the file/folder.
    """

    return stat.S_IMODE(os.stat(path).st_mode)


def ensure_dir(path, mode=None, user=None, group=None):
    if not os.path.isdir(path):
        os.makedirs(path)
    chmod(path, mode)
    if user or group:
        chownbyname(path, user, group)


def write_file(
    filename,
    content,
    mode=0o644,
    omode="wb",
    *,
    ensure_dir_exists=True,
):
    """
    Writes a file with the given content and sets the file mode as specified.

    The file is created under a 0077 umask so its contents are never readable
    by group or other, not even before the final mode is applied.

    @param filename: The full path of the file to write.
    @param content: The content to write to the file.
    @param mode: The filesystem mode to set on the file.
    @param omode: The open mode used when opening the file (w, wb, a, etc.)
    @param ensure_dir_exists: If True (the default), ensure that the directory
                              containing `filename` exists before writing to
                              the file.
    """
    if ensure_dir_exists:
        ensure_dir(os.path.dirname(filename))
    if "b" in omode.lower():
        content = encode_text(content)
        write_type = "bytes"
    else:
        content = decode_binary(content)
        write_type = "characters"
    try:
        mode_r = "%o" % mode
    except TypeError:
        mode_r = "%r" % mode
    LOG.debug(
        "Writing to %s - %s: [%s] %s %s",
        filename,
        omode,
        mode_r,
        len(content),
        write_type,
    )
    with umask(0o077):
        with open(filename, omode) as fh:
            fh.write(content)
            fh.flush()
    chmod(filename, mode)


def del_file(path):
    LOG.debug("Attempting to remove %s", path)
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def rename(src, dest):
    LOG.debug("Renaming %s to %s", src, dest)
    os.rename(src, dest)


def is_port_open(host, port, timeout=1.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def poll_until(predicate: Callable[[], bool], naplen=1, log_pre=""):
    """Call predicate every naplen seconds until it returns True.

    There is deliberately no timeout: first boot is expected to finish
    eventually and any overall deadline belongs to whatever launched us.
    Returns the number of attempts it took.
    """
    attempts = 1
    while not predicate():
        if attempts == 1:
            LOG.debug("%sWaiting, polling every %s seconds", log_pre, naplen)
        time.sleep(naplen)
        attempts += 1
    LOG.debug("%sCondition met after %s attempts", log_pre, attempts)
    return attempts


def log_time(logfunc, msg, func: Callable[..., T], args=None, kwargs=None) -> T:
    if args is None:
        args = []
    if kwargs is None:
        kwargs = {}

    start = time.monotonic()
    try:
        ret = func(*args, **kwargs)
    finally:
        delta = time.monotonic() - start
        logfunc(msg + " took %0.3f seconds" % delta)
    return ret


def logexc(log, msg, *args, log_level: int = logging.WARNING) -> None:
    log.log(log_level, msg, *args)
    log.debug(msg, exc_info=True, *args)


def error(msg, rc=1, fmt="Error:\n{}", sys_exit=False):
    r"""Print error to stderr and return or exit

    @param msg: message to print
    @param rc: return code (default: 1)
    @param fmt: format string for putting message in (default: 'Error:\n {}')
    @param sys_exit: exit when called (default: false)
    """
    print(fmt.format(msg), file=sys.stderr)
    if sys_exit:
        sys.exit(rc)
    return rc
