from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from dissect.xva.exceptions import ExternalToolError
from dissect.xva.qemu import QemuImg, format_extension


@pytest.mark.parametrize(
    ("fmt", "ext"),
    [
        ("qcow2", ".qcow2"),
        ("raw", ".raw"),
        ("vpc", ".vhd"),
        ("vhdx", ".vhdx"),
    ],
)
def test_format_extension(fmt: str, ext: str) -> None:
    assert format_extension(fmt) == ext


def test_format_extension_unknown() -> None:
    with pytest.raises(ValueError, match="Unsupported output format"):
        format_extension("qed2")


def test_command() -> None:
    qemu_img = QemuImg("/opt/qemu/bin/qemu-img")

    assert qemu_img.command(Path("disk.raw"), Path("disk.qcow2"), "qcow2") == [
        "/opt/qemu/bin/qemu-img",
        "convert",
        "-p",
        "-O",
        "qcow2",
        "disk.raw",
        "disk.qcow2",
    ]
    assert "-p" not in qemu_img.command(Path("disk.raw"), Path("disk.vmdk"), "vmdk", progress=False)


def test_convert() -> None:
    with patch("subprocess.run", return_value=subprocess.CompletedProcess([], 0)) as mock_run:
        QemuImg().convert(Path("disk.raw"), Path("disk.qcow2"))

    mock_run.assert_called_once_with(
        ["qemu-img", "convert", "-p", "-O", "qcow2", "disk.raw", "disk.qcow2"],
        check=False,
    )


def test_convert_failure() -> None:
    with (
        patch("subprocess.run", return_value=subprocess.CompletedProcess([], 1)),
        pytest.raises(ExternalToolError, match="exited with status 1") as exc_info,
    ):
        QemuImg().convert(Path("disk.raw"), Path("disk.qcow2"))

    assert exc_info.value.returncode == 1


def test_convert_missing_binary(tmp_path: Path) -> None:
    qemu_img = QemuImg(str(tmp_path / "no-such-qemu-img"))

    assert not qemu_img.available()

    with pytest.raises(ExternalToolError, match="Failed to run") as exc_info:
        qemu_img.convert(tmp_path / "disk.raw", tmp_path / "disk.qcow2")

    assert isinstance(exc_info.value.__cause__, FileNotFoundError)
    assert exc_info.value.returncode is None


def test_convert_real_tool(tmp_path: Path) -> None:
    qemu_img = QemuImg()
    if not qemu_img.available():
        pytest.skip("qemu-img is not installed")

    source = tmp_path / "disk.raw"
    source.write_bytes(b"\x01" * 65536)
    qemu_img.convert(source, tmp_path / "disk.qcow2", progress=False)

    assert tmp_path.joinpath("disk.qcow2").read_bytes()[:4] == b"QFI\xfb"
