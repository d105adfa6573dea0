#!/usr/bin/env python
from __future__ import annotations

import argparse
import functools
import logging

from dissect.xva.convert import ConvertConfig, convert
from dissect.xva.exceptions import ConversionError
from dissect.xva.helpers import config
from dissect.xva.locator import DEFAULT_PREFIX
from dissect.xva.qemu import FORMAT_EXTENSIONS
from dissect.xva.tools.utils import (
    catch_sigpipe,
    configure_generic_arguments,
    process_generic_arguments,
)

log = logging.getLogger(__name__)
logging.lastResort = None
logging.raiseExceptions = False

echo = functools.partial(print, flush=True)


@catch_sigpipe
def main() -> int:
    help_formatter = argparse.ArgumentDefaultsHelpFormatter
    parser = argparse.ArgumentParser(
        description="Convert the disks of a XenServer/XCP-ng XVA export to qcow2 or another disk image format",
        fromfile_prefix_chars="@",
        formatter_class=help_formatter,
    )
    parser.add_argument("archive", metavar="ARCHIVE", help="XVA archive to convert")
    parser.add_argument(
        "-o",
        "--output",
        required=True,
        help="output image path, the extension is replaced by the one of the output format",
    )
    parser.add_argument(
        "-r",
        "--ref",
        help=f"name (prefix) of the block directory, a name without ':' is prefixed with {DEFAULT_PREFIX!r} "
        f"(default: auto-detect directories starting with {DEFAULT_PREFIX!r})",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=list(FORMAT_EXTENSIONS),
        help="output image format (default: qcow2)",
    )
    parser.add_argument("-w", "--work-dir", help="directory for temporary files (default: next to the archive)")
    parser.add_argument("--qemu-img", help="qemu-img executable to use (default: qemu-img)")
    parser.add_argument(
        "--no-sparse",
        action="store_true",
        help="write zeroes for missing blocks instead of leaving holes in the raw image",
    )
    parser.add_argument("--first", action="store_true", help="only convert the first matching block directory")
    configure_generic_arguments(parser)

    args = parser.parse_args()
    process_generic_arguments(args)

    settings = config.settings(config.load(args.archive))
    convert_config = ConvertConfig.from_args(args, settings)

    try:
        outputs = convert(convert_config, echo=echo)
    except ConversionError as e:
        if e.disk is not None:
            log.error("Error during %s of disk %d: %s", e.stage, e.disk, e)  # noqa: TRY400
        else:
            log.error("Error during %s: %s", e.stage, e)  # noqa: TRY400
        log.debug("", exc_info=e)
        return 1

    for output in outputs:
        echo(f"Image written successfully: {output}")

    return 0


if __name__ == "__main__":
    main()
