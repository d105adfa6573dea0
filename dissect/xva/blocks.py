"""Reassembly of the raw disk image from the numbered block files of an XVA disk directory.

XenServer exports every virtual disk as a directory of files named after the index of the 1 MiB block they
hold, e.g. ``Ref:1234/00000000``, ``Ref:1234/00000001``. Blocks that were never allocated are not exported at
all, so the directory can contain gaps. These gaps are reproduced as holes in the raw image.
"""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING, BinaryIO, Callable

from dissect.xva.exceptions import EmptyDiskError
from dissect.xva.helpers.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

log = get_logger(__name__)

BLOCK_SIZE = 1024 * 1024
BLOCK_NAME_WIDTH = 8
# Report progress every 1 GiB
PROGRESS_INTERVAL = 1024

RE_BLOCK_NAME = re.compile(r"[0-9]+")

_ZERO_BLOCK = bytes(BLOCK_SIZE)

ProgressCallback = Callable[[int, int], None]


def block_name(index: int) -> str:
    """Return the file name of the block with the given index."""
    return f"{index:0{BLOCK_NAME_WIDTH}d}"


def parse_block_index(name: str) -> int | None:
    """Parse the block index from a file name, or return ``None`` if it isn't a block file."""
    if not RE_BLOCK_NAME.fullmatch(name):
        return None
    return int(name)


def scan_blocks(path: Path) -> int:
    """Return the highest block index found in the disk directory at ``path``.

    Raises:
        EmptyDiskError: If the directory contains no block files.
    """
    max_index = -1

    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir():
                continue

            index = parse_block_index(entry.name)
            if index is None:
                log.trace("Ignoring non-block entry %s", entry.name)
                continue

            max_index = max(max_index, index)

    if max_index < 0:
        raise EmptyDiskError(f"No block files found in {path}")

    return max_index


def _copy_block(fh: BinaryIO, fhout: BinaryIO) -> int:
    remaining = BLOCK_SIZE

    while remaining:
        buf = fh.read(remaining)
        if not buf:
            break

        fhout.write(buf)
        remaining -= len(buf)

    return BLOCK_SIZE - remaining


def write_blocks(
    path: Path,
    fhout: BinaryIO,
    total: int,
    sparse: bool = True,
    progress: ProgressCallback | None = None,
) -> None:
    """Write ``total`` blocks from the disk directory at ``path`` to ``fhout``.

    Every block is written at its own offset, ``index * BLOCK_SIZE``. Missing blocks are skipped over when
    ``sparse`` is set, leaving a hole, otherwise they are filled with zeroes.
    """
    for index in range(total):
        offset = index * BLOCK_SIZE
        block_path = path.joinpath(block_name(index))

        if block_path.is_file():
            fhout.seek(offset)
            with block_path.open("rb") as fh:
                written = _copy_block(fh, fhout)
                if written == BLOCK_SIZE and fh.read(1):
                    log.warning("Block %d is larger than %d bytes, ignoring the remainder", index, BLOCK_SIZE)

            if written < BLOCK_SIZE:
                log.trace("Block %d is short (%d bytes)", index, written)
        elif sparse:
            log.trace("Block %d is missing, leaving a hole", index)
        else:
            fhout.seek(offset)
            fhout.write(_ZERO_BLOCK)

        if (index + 1) % PROGRESS_INTERVAL == 0:
            log.info("Processed %d GiB", (index + 1) // PROGRESS_INTERVAL)
            if progress:
                progress(index + 1, total)

    # Sets the exact size, also for a short last block
    fhout.truncate(total * BLOCK_SIZE)


def reassemble(path: Path, output: Path, sparse: bool = True, progress: ProgressCallback | None = None) -> int:
    """Reassemble the raw disk image from the disk directory at ``path`` into ``output``.

    The size of the disk is determined by the highest block index present. The resulting image is exactly
    ``(highest index + 1) * BLOCK_SIZE`` bytes, with every present block at its offset and zeroes for every
    missing block.

    Args:
        path: The disk directory containing the block files.
        output: The raw image to write. It is created or truncated.
        sparse: Seek over missing blocks instead of writing zeroes. This relies on the filesystem to read
                back unwritten ranges as zeroes.
        progress: Called with the number of processed blocks and the total block count, once with ``0``
                  before writing starts and then every ``PROGRESS_INTERVAL`` blocks.

    Returns:
        The total number of blocks in the image.

    Raises:
        EmptyDiskError: If ``path`` contains no block files. No output is created in that case.
    """
    total = scan_blocks(path) + 1

    log.info("Disk %s has %d blocks (%.2f GiB)", path, total, total / PROGRESS_INTERVAL)
    if progress:
        progress(0, total)

    with output.open("wb") as fhout:
        write_blocks(path, fhout, total, sparse=sparse, progress=progress)

    log.info("Raw image %s created", output)
    return total
