from __future__ import annotations

import logging
import shutil
import tarfile
from pathlib import Path

from dissect.xva.exceptions import ArchiveError

log = logging.getLogger(__name__)

DEFAULT_DIR_MODE = 0o755


def prepare_root(path: Path) -> Path:
    """Create a fresh, empty extraction root at ``path``.

    Anything that already exists at ``path`` is removed first.
    """
    if path.is_dir() and not path.is_symlink():
        log.debug("Removing existing extraction root %s", path)
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()

    path.mkdir(mode=DEFAULT_DIR_MODE, parents=True)
    return path


def _member_path(dest: Path, member: tarfile.TarInfo) -> Path:
    target_path = dest.joinpath(member.name).resolve()
    if target_path != dest and dest not in target_path.parents:
        raise ArchiveError(f"Refusing to extract {member.name!r} outside of {dest}")
    return target_path


def extract(path: Path, dest: Path) -> int:
    """Extract the (optionally compressed) tar archive at ``path`` into ``dest``.

    Members are read sequentially. Directories are created with the permission bits of their entry,
    the parents of regular files are created with default permissions. Other member types are skipped.

    Args:
        path: The archive to extract.
        dest: The directory to extract into.

    Returns:
        The number of regular files that were extracted.

    Raises:
        ArchiveError: If the archive can't be read or a member would be written outside of ``dest``.
    """
    dest = dest.resolve()
    count = 0

    try:
        with tarfile.open(path, "r|*") as tar:
            for member in tar:
                if member.name in (".", "./"):
                    continue

                target_path = _member_path(dest, member)

                if member.isdir():
                    log.debug("Creating directory %s", target_path)
                    # The owner always needs access to extract the directory contents
                    target_path.mkdir(mode=(member.mode & 0o7777) | 0o700, parents=True, exist_ok=True)

                elif member.isreg():
                    target_path.parent.mkdir(mode=DEFAULT_DIR_MODE, parents=True, exist_ok=True)

                    fh = tar.extractfile(member)
                    with target_path.open("wb") as fhout:
                        shutil.copyfileobj(fh, fhout)

                    count += 1

                else:
                    log.debug("Skipping unsupported member %s (type %r)", member.name, member.type)
    except tarfile.TarError as e:
        raise ArchiveError(f"Failed to read archive {path}: {e}", cause=e)

    log.info("Extracted %d files from %s to %s", count, path, dest)
    return count
