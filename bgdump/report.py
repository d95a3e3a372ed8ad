"""
Report driver — sequences one run over an open ExtVolume.

Order of sections (text and structured alike):

    -b          bad block list only, one per line, then stop
    -g          group table only (no header, journal, bad blocks or bitmaps)
    default     header
                → journal device summary, then stop   (journal_dev volumes)
                → inline journal summary              (has_journal + inode)
                → bad blocks
                → stop here with -h
                → load bitmaps (retry ignoring checksums)
                → every group, ascending
                → "error reading bitmaps" when loading failed

Section-local failures (journal, bad blocks, one group's bitmap) print a
single diagnostic on `err` and the run continues.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import Optional, TextIO

from .builder import bad_block_fields, group_fields, header_fields, journal_fields
from .ondisk import JournalSuperblock
from .render import GroupTableRenderer, NumberFormat, StructuredRenderer, TextRenderer
from .volume import BitmapReadError, ExtVolume, JournalError, VolumeError

logger = logging.getLogger(__name__)

PROGRAM_NAME = "bgdump"

BITMAP_CSUM_BANNER = "\n*** Checksum errors detected in bitmaps!  Run e2fsck now!\n\n"


@dataclass
class ReportOptions:
    device: str = ""
    hex_format: bool = False
    header_only: bool = False
    group_only: bool = False
    bad_blocks_only: bool = False
    json: bool = False
    ignore_80col: bool = False


@dataclass
class ReportSession:
    """Per-run display mode, renderer and diagnostic bookkeeping."""
    fmt: NumberFormat
    renderer: object
    err: TextIO
    program: str = PROGRAM_NAME
    _seen: set = field(default_factory=set)

    def diagnostic(self, message: str):
        """Print `message` on stderr once per run."""
        if message in self._seen:
            return
        self._seen.add(message)
        logger.debug("diagnostic: %s", message)
        self.err.write(f"{self.program}: {message}\n")


def make_renderer(opts: ReportOptions, fmt: NumberFormat, out: TextIO, err: TextIO):
    if opts.json:
        return StructuredRenderer(out, fmt, err)
    if opts.group_only:
        return GroupTableRenderer(out, fmt)
    return TextRenderer(out, fmt, ignore_80col=opts.ignore_80col)


def _bad_blocks(volume: ExtVolume, session: ReportSession) -> Optional[list[int]]:
    try:
        return volume.bad_blocks()
    except VolumeError as e:
        session.diagnostic(f"{e} while reading bad block inode")
        return None


def _journal(volume: ExtVolume, session: ReportSession, inline: bool) -> bool:
    try:
        jsb = JournalSuperblock.parse(volume.journal_superblock(inline=inline))
    except JournalError as e:
        session.diagnostic(str(e))
        return False
    session.renderer.section(
        "journal", journal_fields(jsb, volume.geometry.block_size))
    return True


def _load_bitmaps(volume: ExtVolume, session: ReportSession) -> list[VolumeError]:
    errors = volume.read_bitmaps(ignore_csum=False)
    if errors:
        logger.info("Bitmap load reported %d errors, retrying without checksums", len(errors))
        errors = volume.read_bitmaps(ignore_csum=True)
        if not errors:
            session.renderer.note(BITMAP_CSUM_BANNER)
    return errors


def _list_groups(volume: ExtVolume, session: ReportSession, with_bitmaps: bool):
    geo = volume.geometry
    renderer = session.renderer
    renderer.begin_groups()

    block_itr = geo.first_data_block // geo.cluster_ratio
    inode_itr = 1
    for g in range(geo.group_count):
        desc = volume.group_descriptor(g)
        block_bitmap = inode_bitmap = None
        if with_bitmaps and volume.block_bitmap_loaded:
            try:
                block_bitmap = volume.block_bitmap_range(block_itr, geo.clusters_per_group)
            except BitmapReadError as e:
                session.diagnostic(f"{e} while reading block bitmap")
        if with_bitmaps and volume.inode_bitmap_loaded:
            try:
                inode_bitmap = volume.inode_bitmap_range(inode_itr, geo.inodes_per_group)
            except BitmapReadError as e:
                session.diagnostic(f"{e} while reading inode bitmap")
        block_itr += geo.clusters_per_group
        inode_itr += geo.inodes_per_group

        logger.debug("Group %d: blocks %d-%d, flags 0x%x",
                     g, desc.first_block, desc.last_block, desc.flags)
        renderer.group(group_fields(geo, desc, block_bitmap, inode_bitmap))

    renderer.end_groups()


def run_report(
    volume: ExtVolume,
    opts: ReportOptions,
    out: TextIO = None,
    err: TextIO = None,
) -> int:
    """Write the report for `volume`; returns the process exit status."""
    out = out if out is not None else sys.stdout
    err = err if err is not None else sys.stderr
    geo = volume.geometry
    fmt = NumberFormat(hex_format=opts.hex_format, blocks64=geo.is_64bit)
    session = ReportSession(fmt, make_renderer(opts, fmt, out, err), err)
    renderer = session.renderer

    if opts.bad_blocks_only:
        blocks = _bad_blocks(volume, session)
        if opts.json:
            if blocks is not None:
                renderer.section("bad-blocks", bad_block_fields(blocks))
            renderer.finish()
        elif blocks:
            out.write("".join(f"{b}\n" for b in blocks))
        return 0

    if opts.group_only:
        _list_groups(volume, session, with_bitmaps=False)
        renderer.finish()
        return 0

    renderer.section("super", header_fields(volume.superblock, geo))

    if volume.is_journal_dev:
        ok = _journal(volume, session, inline=False)
        renderer.finish()
        return 0 if ok else 1

    if volume.has_inline_journal:
        _journal(volume, session, inline=True)

    blocks = _bad_blocks(volume, session)
    if blocks is not None:
        renderer.section("bad-blocks", bad_block_fields(blocks))

    if opts.header_only:
        renderer.finish()
        return 0

    errors = _load_bitmaps(volume, session)
    _list_groups(volume, session, with_bitmaps=True)
    if errors:
        renderer.note(f"\n{session.program}: {opts.device}: error reading bitmaps: {errors[0]}\n")
    renderer.finish()
    return 0
