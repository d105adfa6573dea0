"""Conversion of XVA archives to disk images.

A conversion run extracts the archive into a fresh extraction root, locates the disk directories in it and
then, one disk at a time, reassembles the raw image from its blocks and converts it with ``qemu-img``.
The first failure aborts the run. Temporary raw images and the extraction root are always removed.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from dissect.xva import archive, blocks, locator
from dissect.xva.exceptions import (
    ConversionError,
    DiskNotFoundError,
    EmptyDiskError,
    ExternalToolError,
)
from dissect.xva.helpers.logging import DiskLogAdapter
from dissect.xva.qemu import DEFAULT_FORMAT, QEMU_IMG, QemuImg, format_extension

if TYPE_CHECKING:
    import argparse

log = logging.getLogger(__name__)

EXTRACTED_SUFFIX = "_extracted"


@dataclass(frozen=True)
class ConvertConfig:
    """The configuration of a single conversion run.

    Attributes:
        archive: The XVA archive to convert.
        output: The output path or prefix. Its extension, if any, is replaced by the one of ``fmt``.
        prefix: The name prefix of the disk directories in the archive.
        explicit_prefix: Whether ``prefix`` was chosen by the user. If so, the extraction root is not used
                         as a fallback disk directory.
        fmt: The ``qemu-img`` output format.
        work_dir: Where to extract the archive and write the raw images, defaults to the archive directory.
        qemu_img: The ``qemu-img`` executable.
        sparse: Leave holes for missing blocks instead of writing zeroes.
        first_only: Only convert the first disk directory found.
    """

    archive: Path
    output: Path
    prefix: str = locator.DEFAULT_PREFIX
    explicit_prefix: bool = False
    fmt: str = DEFAULT_FORMAT
    work_dir: Path | None = None
    qemu_img: str = QEMU_IMG
    sparse: bool = True
    first_only: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace, settings: dict[str, Any] | None = None) -> ConvertConfig:
        """Build the configuration from parsed command line arguments.

        Values given on the command line take precedence over the ``settings`` from a config file.
        """
        settings = settings or {}

        work_dir = args.work_dir or settings.get("WORK_DIR")
        sparse = settings.get("SPARSE", True) and not args.no_sparse

        return cls(
            archive=Path(args.archive),
            output=Path(args.output),
            prefix=locator.normalize_prefix(args.ref),
            explicit_prefix=bool(args.ref),
            fmt=args.format or settings.get("FORMAT", DEFAULT_FORMAT),
            work_dir=Path(work_dir) if work_dir else None,
            qemu_img=args.qemu_img or settings.get("QEMU_IMG", QEMU_IMG),
            sparse=sparse,
            first_only=args.first,
        )

    @property
    def base_dir(self) -> Path:
        return (self.work_dir or self.archive.absolute().parent).absolute()

    @property
    def extraction_root(self) -> Path:
        return self.base_dir.joinpath(self.archive.name + EXTRACTED_SUFFIX)


def output_base(path: Path) -> Path:
    """Strip the extension from the output path, if it has one."""
    return path.with_suffix("") if path.suffix else path


def output_path(base: Path, fmt: str, index: int, count: int) -> Path:
    """Return the path of the converted image of disk ``index`` out of ``count`` disks.

    The disk index is only added to the name if there is more than one disk.
    """
    ext = format_extension(fmt)
    if count == 1:
        return base.with_name(base.name + ext)
    return base.with_name(f"{base.name}_{index}{ext}")


def raw_image_path(base_dir: Path, name: str, index: int) -> Path:
    """Return the path of the temporary raw image of disk ``index``."""
    return base_dir.joinpath(f"{name}.{index}.raw")


def _remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log.warning("Could not remove temporary raw image %s: %s", path, e)


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning("Could not remove extraction directory %s: %s", path, e)


class Converter:
    """Converts the disks of an XVA archive according to a :class:`ConvertConfig`.

    Args:
        config: The run configuration.
        qemu_img: The image converter to use, by default a :class:`QemuImg` for ``config.qemu_img``.
        echo: Called with human readable status messages.
    """

    def __init__(
        self,
        config: ConvertConfig,
        qemu_img: QemuImg | None = None,
        echo: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.qemu_img = qemu_img or QemuImg(config.qemu_img)
        self.echo = echo or log.info

    def run(self) -> list[Path]:
        """Convert all disks, returning the paths of the images that were written."""
        try:
            format_extension(self.config.fmt)
        except ValueError as e:
            raise ConversionError(str(e), stage="convert", cause=e)

        root = self.config.extraction_root
        try:
            self.extract(root)
            disks = self.locate(root)

            outputs = []
            base = output_base(self.config.output)
            for index, disk in enumerate(disks):
                dest = output_path(base, self.config.fmt, index, len(disks))
                self.convert_disk(index, disk, dest)
                outputs.append(dest)
        finally:
            _remove_tree(root)

        return outputs

    def extract(self, root: Path) -> None:
        self.echo(f"Extracting {self.config.archive} to {root}")
        try:
            archive.prepare_root(root)
            archive.extract(self.config.archive, root)
        except OSError as e:
            raise ConversionError(f"Failed to extract {self.config.archive}: {e}", stage="extract", cause=e)

    def locate(self, root: Path) -> list[Path]:
        try:
            disks = locator.locate_disks(
                root,
                self.config.prefix,
                fallback=not self.config.explicit_prefix,
                first_only=self.config.first_only,
            )
        except OSError as e:
            raise ConversionError(f"Failed to list {root}: {e}", stage="locate", cause=e)

        if not disks:
            raise DiskNotFoundError(
                f"No disk directory starting with {self.config.prefix!r} found in {self.config.archive}",
                stage="locate",
            )

        return disks

    def convert_disk(self, index: int, disk: Path, dest: Path) -> None:
        """Reassemble and convert a single disk directory to ``dest``."""
        disk_log = DiskLogAdapter(log, {"disk": index})
        raw = raw_image_path(self.config.base_dir, self.config.archive.name, index)

        try:
            self.echo(f"Joining blocks of disk {index} from {disk}")
            try:
                blocks.reassemble(disk, raw, sparse=self.config.sparse, progress=self._report_blocks)
            except (EmptyDiskError, OSError) as e:
                raise ConversionError(
                    f"Failed to reassemble disk {index} from {disk}: {e}", stage="reassemble", disk=index, cause=e
                )
            self.echo("Raw image created successfully")

            self.echo(f"Converting disk {index} to {self.config.fmt} using {self.qemu_img.binary}")
            disk_log.debug("Converting %s to %s", raw, dest)
            try:
                self.qemu_img.convert(raw, dest, self.config.fmt)
            except ExternalToolError as e:
                raise ConversionError(f"Failed to convert disk {index}: {e}", stage="convert", disk=index, cause=e)
        finally:
            _remove_file(raw)

        disk_log.info("Written to %s", dest)

    def _report_blocks(self, done: int, total: int) -> None:
        if done == 0:
            self.echo(f"Last block: {total - 1:0{blocks.BLOCK_NAME_WIDTH}d}, {total} blocks")
            self.echo(f"Disk image size: {total / blocks.PROGRESS_INTERVAL:.2f} GiB")
        else:
            self.echo(f"Processed {done // blocks.PROGRESS_INTERVAL} GiB...")


def convert(
    config: ConvertConfig,
    qemu_img: QemuImg | None = None,
    echo: Callable[[str], None] | None = None,
) -> list[Path]:
    """Convert the archive described by ``config``. See :class:`Converter`."""
    return Converter(config, qemu_img=qemu_img, echo=echo).run()
