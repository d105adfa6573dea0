from __future__ import annotations

import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)

DEFAULT_QUALIFIER = "Ref"
DEFAULT_PREFIX = f"{DEFAULT_QUALIFIER}:"


def normalize_prefix(value: str | None) -> str:
    """Turn a user supplied disk directory selector into a name prefix.

    XVA archives store the blocks of every disk in a directory named after its reference, e.g. ``Ref:1234``.
    A selector without a ``:`` is taken to be the part after the qualifier.
    """
    if not value:
        return DEFAULT_PREFIX

    if ":" not in value:
        return f"{DEFAULT_PREFIX}{value}"

    return value


def find_disk_dirs(base: Path, prefix: str) -> list[Path]:
    """Find all immediate subdirectories of ``base`` whose name starts with ``prefix``.

    The directories are returned in the order the filesystem lists them.
    """
    with os.scandir(base) as it:
        return [Path(entry.path) for entry in it if entry.is_dir() and entry.name.startswith(prefix)]


def find_disk_dir(base: Path, prefix: str) -> Path | None:
    """Find the first immediate subdirectory of ``base`` whose name starts with ``prefix``."""
    with os.scandir(base) as it:
        for entry in it:
            if entry.is_dir() and entry.name.startswith(prefix):
                return Path(entry.path)

    return None


def locate_disks(base: Path, prefix: str, fallback: bool = True, first_only: bool = False) -> list[Path]:
    """Locate the disk directories to convert.

    Args:
        base: The extraction root to search.
        prefix: The name prefix of the disk directories.
        fallback: Use ``base`` itself as the only disk directory if nothing matches.
        first_only: Only return the first matching directory.

    Returns:
        The disk directories in enumeration order, possibly empty if ``fallback`` is ``False``.
    """
    if first_only:
        found = find_disk_dir(base, prefix)
        disks = [found] if found else []
    else:
        disks = find_disk_dirs(base, prefix)

    if not disks and fallback:
        log.info("No directory starting with %r found in %s, using it as disk directory", prefix, base)
        return [base]

    for disk in disks:
        log.debug("Found disk directory %s", disk)

    return disks
