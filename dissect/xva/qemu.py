from __future__ import annotations

import logging
import shutil
import subprocess
from typing import TYPE_CHECKING

from dissect.xva.exceptions import ExternalToolError

if TYPE_CHECKING:
    from pathlib import Path

log = logging.getLogger(__name__)

QEMU_IMG = "qemu-img"
DEFAULT_FORMAT = "qcow2"

# qemu-img output format names and the extension their images conventionally use
FORMAT_EXTENSIONS = {
    "qcow2": ".qcow2",
    "raw": ".raw",
    "vmdk": ".vmdk",
    "vdi": ".vdi",
    "vpc": ".vhd",
    "vhdx": ".vhdx",
}


def format_extension(fmt: str) -> str:
    """Return the file extension for images of the given ``qemu-img`` format."""
    try:
        return FORMAT_EXTENSIONS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported output format: {fmt}")


class QemuImg:
    """Converts raw disk images by running ``qemu-img convert``.

    Args:
        binary: The name or path of the ``qemu-img`` executable.
    """

    def __init__(self, binary: str = QEMU_IMG):
        self.binary = binary

    def __repr__(self) -> str:
        return f"<QemuImg binary={self.binary}>"

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def command(self, source: Path, dest: Path, fmt: str, progress: bool = True) -> list[str]:
        cmd = [self.binary, "convert"]
        if progress:
            cmd.append("-p")
        cmd.extend(["-O", fmt, str(source), str(dest)])
        return cmd

    def convert(self, source: Path, dest: Path, fmt: str = DEFAULT_FORMAT, progress: bool = True) -> None:
        """Convert the raw image ``source`` to an image of format ``fmt`` at ``dest``.

        The output of ``qemu-img`` is not captured, so its progress indicator is shown to the user directly.

        Raises:
            ExternalToolError: If ``qemu-img`` can't be started or exits with a non-zero status.
        """
        cmd = self.command(source, dest, fmt, progress=progress)
        log.debug("Running %s", " ".join(cmd))

        try:
            result = subprocess.run(cmd, check=False)
        except OSError as e:
            raise ExternalToolError(f"Failed to run {self.binary}: {e}", cause=e)

        if result.returncode != 0:
            raise ExternalToolError(
                f"{self.binary} exited with status {result.returncode}",
                returncode=result.returncode,
            )
