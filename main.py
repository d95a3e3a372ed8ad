#!/usr/bin/env python3
"""
bgdump — Block group layout reporter for ext2/3/4 volumes.

Usage:
    python main.py /dev/sdb1                 # full report
    python main.py -h disk.img               # superblock + journal only
    python main.py -g disk.img               # one line per group
    python main.py -j disk.img               # JSON-shaped document
    python main.py -o superblock=32768 -o blocksize=4096 disk.img
    python main.py --offset 1048576 whole-disk.img
"""

import os
import sys
import logging
import argparse

from bgdump import APP_VERSION

FS_CSUM_BANNER = "\n*** Checksum errors detected in filesystem!  Run e2fsck now!\n\n"

EXTENDED_HELP = (
    "Extended options are separated by commas, and may take an argument which\n"
    "\tis set off by an equals ('=') sign.\n\n"
    "Valid extended options are:\n"
    "\tsuperblock=<superblock number>\n"
    "\tblocksize=<blocksize>\n"
)


class _Parser(argparse.ArgumentParser):
    """Usage errors exit with status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="bgdump",
        description="List the block group layout of an ext2/3/4 volume.",
        add_help=False,
    )
    parser.add_argument("device", nargs="?", help="Device or image file")
    parser.add_argument("-b", dest="bad_blocks", action="store_true",
                        help="Print the bad blocks list only")
    parser.add_argument("-f", dest="force", action="store_true",
                        help="Open even with unsupported feature flags")
    parser.add_argument("-g", dest="group_only", action="store_true",
                        help="One colon-separated line per group")
    parser.add_argument("-h", dest="header_only", action="store_true",
                        help="Superblock, journal and bad blocks only")
    parser.add_argument("-x", dest="hex_format", action="store_true",
                        help="Print block numbers in hexadecimal")
    parser.add_argument("-j", dest="json", action="store_true",
                        help="Structured (JSON-shaped) output")
    parser.add_argument("-o", dest="extended", action="append", default=[],
                        metavar="OPTS", help="superblock=<num>, blocksize=<num>")
    parser.add_argument("--offset", type=lambda s: int(s, 0), default=0,
                        metavar="BYTES", help="Filesystem offset inside the image")
    parser.add_argument("-v", dest="verbose", action="count", default=0,
                        help="Log progress (-vv for debug)")
    parser.add_argument("-V", dest="version", action="store_true",
                        help="Print version and exit")
    parser.add_argument("--help", action="help", help="Show this help and exit")
    return parser


def parse_extended_opts(values: list[str]) -> tuple[int, int]:
    """
    Parse -o values into (superblock, blocksize).

    Raises ValueError naming the first bad option.
    """
    superblock = blocksize = 0
    for value in values:
        for token in value.split(","):
            if not token:
                continue
            name, _, arg = token.partition("=")
            if name in ("superblock", "sb"):
                key = "superblock"
            elif name in ("blocksize", "bs"):
                key = "blocksize"
            else:
                raise ValueError(f"Unknown extended option: {token}")
            if not arg:
                raise ValueError(f"Missing argument for {name}")
            try:
                number = int(arg, 0)
            except ValueError:
                raise ValueError(f"Invalid {key}: {arg}") from None
            if number <= 0:
                raise ValueError(f"Invalid {key}: {arg}")
            if key == "superblock":
                superblock = number
            else:
                blocksize = number
    return superblock, blocksize


def setup_logging(verbose: int):
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def open_volume(device: str, offset: int, superblock: int, blocksize: int, force: bool):
    """
    Open `device`, retrying once with checksum verification disabled.

    Returns (volume, checksum_errors).
    """
    from bgdump.image import open_image
    from bgdump.volume import ExtVolume, VolumeError

    img = open_image(device, offset)
    try:
        try:
            return ExtVolume(img, superblock, blocksize, force=force), False
        except VolumeError as e:
            logging.getLogger(__name__).info("Open failed (%s), retrying without checksums", e)
            return ExtVolume(img, superblock, blocksize, force=force, ignore_csum=True), True
    except Exception:
        img.close()
        raise


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    print(f"bgdump {APP_VERSION}", file=sys.stderr)
    if args.version:
        import pytsk3
        print(f"\tUsing pytsk3 {getattr(pytsk3, 'TSK_VERSION_STR', 'unknown')}",
              file=sys.stderr)
        return 0
    if not args.device:
        parser.print_usage(sys.stderr)
        return 1

    try:
        superblock, blocksize = parse_extended_opts(args.extended)
    except ValueError as e:
        print(f"\nBad extended option(s) specified: {e}\n\n{EXTENDED_HELP}",
              file=sys.stderr)
        return 1

    from bgdump.report import ReportOptions, run_report
    from bgdump.volume import VolumeError

    try:
        volume, csum_errors = open_volume(
            args.device, args.offset, superblock, blocksize, args.force)
    except (VolumeError, OSError) as e:
        print(f"bgdump: {e} while trying to open {args.device}", file=sys.stderr)
        print("Couldn't find valid filesystem superblock.")
        return 1

    opts = ReportOptions(
        device=args.device,
        hex_format=args.hex_format,
        header_only=args.header_only,
        group_only=args.group_only,
        bad_blocks_only=args.bad_blocks,
        json=args.json,
        ignore_80col=bool(os.environ.get("BGDUMP_IGNORE_80COL")),
    )
    try:
        if csum_errors:
            print(FS_CSUM_BANNER, end="", file=sys.stderr if opts.json else sys.stdout)
        return run_report(volume, opts)
    finally:
        volume.close()


if __name__ == "__main__":
    sys.exit(main())
