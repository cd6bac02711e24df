import os
import re
from typing import List

TOPDIR = os.path.dirname(os.path.realpath(__file__))


def version_to_pep440(version: str) -> str:
    # git describe can spit out something like 1.2.0-15-g7f97aee24
    # which is invalid under PEP 440. If we replace the first - with a +
    # that should give us a valid version.
    return version.replace("-", "+", 1)


def get_version() -> str:
    with open(os.path.join(TOPDIR, "spinboot", "version.py")) as stream:
        match = re.search(
            r'^__VERSION__ = "([^"]+)"', stream.read(), re.MULTILINE
        )
    if not match:
        raise RuntimeError("Unable to find __VERSION__ in spinboot/version.py")
    return version_to_pep440(match.group(1))


def read_requires(fname="requirements.txt") -> List[str]:
    deps = []
    with open(os.path.join(TOPDIR, fname)) as stream:
        for line in stream:
            line = line.split("#", 1)[0].strip()
            if line:
                deps.append(line)
    return deps
