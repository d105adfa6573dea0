from __future__ import annotations

import traceback


class Error(Exception):
    """Generic dissect.xva error"""

    def __init__(self, message: str | None = None, cause: Exception | None = None, extra: list | None = None):
        if extra:
            exceptions = "\n\n".join(["".join(traceback.format_exception_only(type(e), e)) for e in extra])
            message = f"{message}\n\nAdditionally, the following exceptions occurred:\n\n{exceptions}"

        super().__init__(message)
        self.__cause__ = cause
        self.__extra__ = extra


class ArchiveError(Error, OSError):
    """The archive could not be read or contains an entry that can't be extracted safely."""


class EmptyDiskError(Error):
    """A disk directory contains no block files."""


class ExternalToolError(Error):
    """An external tool failed to launch or exited with a non-zero status."""

    def __init__(self, message: str | None = None, returncode: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.returncode = returncode


class ConversionError(Error):
    """A stage of the conversion failed.

    Args:
        message: Description of the failure.
        stage: The stage that failed, one of ``extract``, ``locate``, ``reassemble`` or ``convert``.
        disk: The index of the disk that was being processed, if any.
    """

    def __init__(self, message: str | None = None, stage: str | None = None, disk: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.stage = stage
        self.disk = disk


class DiskNotFoundError(ConversionError):
    """No disk directory could be found in the extracted archive."""
