"""Resolve requested CockroachDB version to an installed binary.

Versioned binaries are expected on `PATH` as `<binary>-<major>.<minor>`, e.g. `cockroach-22.1`.
The binary name is embedded as the first argument of every node command line and it is what
later identifies the version of a running node.
"""

import dataclasses
import functools
import logging
import pathlib as pl
import re
import shutil

from packaging import version

from roachdev.utils import configuration
from roachdev.utils import exceptions
from roachdev.utils import helpers

LOGGER = logging.getLogger(__name__)

VERSION_RE = re.compile(r"^\d{1,2}\.\d$")


@dataclasses.dataclass(frozen=True, order=True)
class ResolvedBinary:
    name: str
    path: pl.Path
    version: str


def validate_version(version_str: str) -> str:
    """Check that version has the `<major>.<minor>` format, e.g. `22.1`."""
    if not VERSION_RE.match(version_str):
        msg = f"Invalid version '{version_str}': expected format is e.g. '22.1'"
        raise exceptions.ValidationError(msg)
    return version_str


def _parse_build_tag(build_tag: str) -> str:
    """Return `<major>.<minor>` from a build tag like `v22.1.8`."""
    parsed = version.parse(build_tag.strip().lstrip("v"))
    return f"{parsed.major}.{parsed.minor}"


@functools.cache
def get_binary_version(binary: str) -> str:
    """Return `<major>.<minor>` version reported by the binary, empty string if unknown."""
    try:
        out = helpers.run_command([binary, "version", "--build-tag"]).decode()
        return _parse_build_tag(out)
    except (RuntimeError, OSError, version.InvalidVersion) as excp:
        LOGGER.debug(f"Failed to get version of `{binary}`: {excp}")
        return ""


def get_default_binary(default_binary: str = configuration.COCKROACH_BIN) -> ResolvedBinary:
    """Return the unsuffixed binary found on `PATH`."""
    bin_path = shutil.which(default_binary)
    if not bin_path:
        msg = f"The `{default_binary}` binary was not found on PATH."
        raise exceptions.ConfigError(msg)

    return ResolvedBinary(
        name=default_binary,
        path=pl.Path(bin_path),
        version=get_binary_version(default_binary),
    )


def _is_default_version(version_str: str, default_binary: str) -> bool:
    if not shutil.which(default_binary):
        return False
    return get_binary_version(default_binary) == version_str


def resolve_binary(
    version_str: str = "", *, default_binary: str = configuration.COCKROACH_BIN
) -> ResolvedBinary:
    """Return the installed binary that provides the requested version.

    Without version, the default binary is used. When the default binary reports the requested
    version, it is preferred over the suffixed one, so the same version is never started under
    two different names.
    """
    if not version_str:
        return get_default_binary(default_binary=default_binary)

    validate_version(version_str)

    if _is_default_version(version_str=version_str, default_binary=default_binary):
        return get_default_binary(default_binary=default_binary)

    bin_name = f"{default_binary}-{version_str}"
    bin_path = shutil.which(bin_name)
    if not bin_path:
        msg = f"Version {version_str} is not installed: `{bin_name}` was not found on PATH."
        raise exceptions.ResolutionError(msg)

    return ResolvedBinary(name=bin_name, path=pl.Path(bin_path), version=version_str)


def get_binary_name(
    version_str: str = "", *, default_binary: str = configuration.COCKROACH_BIN
) -> str:
    """Return the binary name that running nodes of the requested version carry.

    Unlike `resolve_binary`, the versioned binary doesn't need to be installed anymore.
    """
    if not version_str:
        return default_binary

    validate_version(version_str)

    if _is_default_version(version_str=version_str, default_binary=default_binary):
        return default_binary
    return f"{default_binary}-{version_str}"
