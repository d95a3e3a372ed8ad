"""
Report builder — turns volume facts into an ordered stream of Fields.

Every report section is a generator of Field(key, type, value).  Renderers
subscribe to these streams; none of them decides what to show, only how:

  Section        Generator            Structured key
  ───────────    ──────────────────   ──────────────
  header         header_fields()      "super"
  journal        journal_fields()     "journal"
  bad blocks     bad_block_fields()   "bad-blocks"
  groups         group_fields()       "desc" (one object per group)

Values are raw (ints, tuples, Extent lists); formatting such as hex vs
decimal is applied later by the renderer's NumberFormat.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

from .extents import free_extents
from .ondisk import (
    COMPAT_HAS_JOURNAL,
    INCOMPAT_CSUM_SEED,
    INCOMPAT_FLEX_BG,
    JBD2_FEATURE_COMPAT_CHECKSUM,
    RO_COMPAT_BIGALLOC,
    RO_COMPAT_METADATA_CSUM,
    JournalSuperblock,
    Superblock,
    uuid_str,
)
from .volume import Geometry, GroupDescriptor

logger = logging.getLogger(__name__)


class FieldType(Enum):
    NUMBER = "number"       # block address, session formatted
    RANGE = "range"         # (first, last) addresses
    COUNT = "count"         # plain decimal
    TEXT = "text"
    CSUM16 = "csum16"       # 0x%04x
    CSUM32 = "csum32"       # 0x%08x
    RELATIVE = "relative"   # (owning group or None, offset)
    QUANTITY = "quantity"   # (count, units)
    EXTENTS = "extents"     # list[Extent]
    NAMES = "names"         # list[str]
    NUMBERS = "numbers"     # list[int]


@dataclass(frozen=True)
class Field:
    key: str
    type: FieldType
    value: Any


# ─────────────────────────────────────────────────────────────
#  Groups
# ─────────────────────────────────────────────────────────────

def relative_offset(
    geo: Geometry,
    block: int,
    first_block: int,
    last_block: int,
    itable: bool = False,
) -> Optional[tuple[Optional[int], int]]:
    """
    Where `block` sits relative to its group.

    Returns (None, offset) inside the group, (owning_group, offset) for a
    flex_bg layout that places it in another group, or None when nothing
    should be shown.  An inode table at the very start of its own group is
    not annotated.
    """
    if first_block <= block <= last_block:
        if itable and block == first_block:
            return None
        return None, block - first_block
    if geo.flex_bg:
        owner = geo.group_of_block(block)
        return owner, block - geo.group_first_block(owner)
    return None


def group_fields(
    geo: Geometry,
    desc: GroupDescriptor,
    block_bitmap: Optional[bytes] = None,
    inode_bitmap: Optional[bytes] = None,
) -> Iterator[Field]:
    """
    Fields of one group record.

    A None bitmap means the free-space section is not reported at all; a
    bitmap with nothing free still produces an (empty) extent list.
    """
    yield Field("num", FieldType.COUNT, desc.group)
    yield Field("blocks", FieldType.RANGE, (desc.first_block, desc.last_block))

    if geo.group_desc_csum and desc.checksum is not None:
        yield Field("group-desc-csum", FieldType.CSUM16, desc.checksum)
        if desc.expected_checksum is not None and desc.expected_checksum != desc.checksum:
            yield Field("group-desc-csum-exp", FieldType.CSUM16, desc.expected_checksum)

    yield Field("bg-opts", FieldType.NAMES,
                desc.flag_names if geo.group_desc_csum else [])

    if desc.has_super:
        yield Field("superblock-type", FieldType.TEXT,
                    "Primary" if desc.group == 0 else "Backup")
        yield Field("superblock-at", FieldType.NUMBER, desc.super_blk)

    if desc.old_desc_blk:
        gdt_end = desc.old_desc_blk + desc.old_desc_blocks
        yield Field("group-descriptors-at", FieldType.RANGE,
                    (desc.old_desc_blk, gdt_end - 1))
        if desc.reserved_gdt:
            yield Field("reserved-gdt-blocks-at", FieldType.RANGE,
                        (gdt_end, gdt_end + desc.reserved_gdt - 1))
    elif desc.new_desc_blk:
        yield Field("group-desc-at", FieldType.NUMBER, desc.new_desc_blk)

    first, last = desc.first_block, desc.last_block

    yield Field("block-bitmap-at", FieldType.NUMBER, desc.block_bitmap)
    rel = relative_offset(geo, desc.block_bitmap, first, last)
    if rel is not None:
        yield Field("block-bitmap-rel-offset", FieldType.RELATIVE, rel)
    if geo.metadata_csum and desc.block_bitmap_csum is not None:
        yield Field("block-bitmap-csum", FieldType.CSUM32, desc.block_bitmap_csum)

    yield Field("inode-bitmap-at", FieldType.NUMBER, desc.inode_bitmap)
    rel = relative_offset(geo, desc.inode_bitmap, first, last)
    if rel is not None:
        yield Field("inode-bitmap-rel-offset", FieldType.RELATIVE, rel)
    if geo.metadata_csum and desc.inode_bitmap_csum is not None:
        yield Field("inode-bitmap-csum", FieldType.CSUM32, desc.inode_bitmap_csum)

    yield Field("inode-table-at", FieldType.RANGE,
                (desc.inode_table, desc.inode_table + desc.inode_table_blocks - 1))
    rel = relative_offset(geo, desc.inode_table, first, last, itable=True)
    if rel is not None:
        yield Field("inode-table-rel-offset", FieldType.RELATIVE, rel)

    units = "clusters" if geo.bigalloc else "blocks"
    yield Field("free-blocks-count", FieldType.QUANTITY, (desc.free_blocks, units))
    yield Field("free-inodes-count", FieldType.COUNT, desc.free_inodes)
    yield Field("used-dirs-count", FieldType.COUNT, desc.used_dirs)
    yield Field("unused-inodes", FieldType.COUNT, desc.itable_unused)

    # A fully allocated bitmap still yields the field with no extents.
    # Only a bitmap that failed to load drops the field.
    if block_bitmap is not None:
        yield Field("free-blocks", FieldType.EXTENTS, free_extents(
            block_bitmap, geo.clusters_per_group, desc.group,
            geo.first_data_block, geo.cluster_ratio))
    if inode_bitmap is not None:
        yield Field("free-inodes", FieldType.EXTENTS, free_extents(
            inode_bitmap, geo.inodes_per_group, desc.group, 1, 1))


# ─────────────────────────────────────────────────────────────
#  Header (superblock summary)
# ─────────────────────────────────────────────────────────────

_REVISIONS = {0: "(original)", 1: "(dynamic)"}
_ERRORS = {1: "Continue", 2: "Remount read-only", 3: "Panic"}
_OS_TYPES = {0: "Linux", 1: "Hurd", 2: "Masix", 3: "FreeBSD", 4: "Lites"}
_FS_FLAGS = (
    (0x0001, "signed_directory_hash"),
    (0x0002, "unsigned_directory_hash"),
    (0x0004, "test_filesystem"),
)
_CSUM_TYPES = {1: "crc32c"}


def _timestamp(t: int) -> str:
    return time.ctime(t)


def _state(state: int) -> str:
    text = "clean" if state & 0x0001 else "not clean"
    if state & 0x0002:
        text += " with errors"
    return text


def header_fields(sb: Superblock, geo: Geometry) -> Iterator[Field]:
    """Volume summary in the order dumpe2fs prints it."""
    yield Field("filesystem-volume-name", FieldType.TEXT, sb.volume_name or "<none>")
    yield Field("last-mounted-on", FieldType.TEXT, sb.last_mounted or "<not available>")
    yield Field("filesystem-uuid", FieldType.TEXT, uuid_str(sb.uuid))
    yield Field("filesystem-magic-number", FieldType.TEXT, f"0x{sb.magic:04X}")
    yield Field("filesystem-revision", FieldType.TEXT,
                f"{sb.rev_level} {_REVISIONS.get(sb.rev_level, '(unknown)')}")
    yield Field("filesystem-features", FieldType.NAMES, sb.feature_names)
    flags = [name for mask, name in _FS_FLAGS if sb.flags & mask]
    if flags:
        yield Field("filesystem-flags", FieldType.NAMES, flags)
    yield Field("filesystem-state", FieldType.TEXT, _state(sb.state))
    yield Field("errors-behavior", FieldType.TEXT,
                _ERRORS.get(sb.errors, "Unknown (continue)"))
    yield Field("filesystem-os-type", FieldType.TEXT,
                _OS_TYPES.get(sb.creator_os, "(unknown os)"))
    yield Field("inode-count", FieldType.COUNT, sb.inodes_count)
    yield Field("block-count", FieldType.COUNT, sb.blocks_count)
    yield Field("reserved-block-count", FieldType.COUNT, sb.r_blocks_count)
    yield Field("free-blocks", FieldType.COUNT, sb.free_blocks_count)
    yield Field("free-inodes", FieldType.COUNT, sb.free_inodes_count)
    yield Field("first-block", FieldType.COUNT, sb.first_data_block)
    yield Field("block-size", FieldType.COUNT, geo.block_size)
    if sb.has_ro_compat(RO_COMPAT_BIGALLOC):
        yield Field("cluster-size", FieldType.COUNT, geo.block_size * geo.cluster_ratio)
    else:
        yield Field("fragment-size", FieldType.COUNT, geo.block_size)
    if geo.is_64bit:
        yield Field("group-descriptor-size", FieldType.COUNT, geo.desc_size)
    if sb.reserved_gdt_blocks:
        yield Field("reserved-gdt-blocks", FieldType.COUNT, sb.reserved_gdt_blocks)
    yield Field("blocks-per-group", FieldType.COUNT, sb.blocks_per_group)
    if sb.has_ro_compat(RO_COMPAT_BIGALLOC):
        yield Field("clusters-per-group", FieldType.COUNT, sb.clusters_per_group)
    else:
        yield Field("fragments-per-group", FieldType.COUNT, sb.blocks_per_group)
    yield Field("inodes-per-group", FieldType.COUNT, sb.inodes_per_group)
    yield Field("inode-blocks-per-group", FieldType.COUNT, geo.inode_blocks_per_group)
    if sb.has_incompat(INCOMPAT_FLEX_BG):
        yield Field("flex-block-group-size", FieldType.COUNT, 1 << sb.log_groups_per_flex)
    if sb.mkfs_time:
        yield Field("filesystem-created", FieldType.TEXT, _timestamp(sb.mkfs_time))
    yield Field("last-mount-time", FieldType.TEXT,
                _timestamp(sb.mtime) if sb.mtime else "n/a")
    yield Field("last-write-time", FieldType.TEXT, _timestamp(sb.wtime))
    yield Field("mount-count", FieldType.COUNT, sb.mnt_count)
    yield Field("maximum-mount-count", FieldType.COUNT, sb.max_mnt_count)
    yield Field("last-checked", FieldType.TEXT, _timestamp(sb.lastcheck))
    yield Field("inode-size", FieldType.COUNT, sb.inode_size)
    if sb.has_compat(COMPAT_HAS_JOURNAL) and sb.journal_inum:
        yield Field("journal-inode", FieldType.COUNT, sb.journal_inum)
    if any(sb.journal_uuid):
        yield Field("journal-uuid", FieldType.TEXT, uuid_str(sb.journal_uuid))
    if sb.has_ro_compat(RO_COMPAT_METADATA_CSUM):
        yield Field("checksum-type", FieldType.TEXT,
                    _CSUM_TYPES.get(sb.checksum_type, "unknown"))
        yield Field("checksum", FieldType.CSUM32, sb.checksum)
    if sb.has_incompat(INCOMPAT_CSUM_SEED):
        yield Field("checksum-seed", FieldType.CSUM32, sb.checksum_seed)


# ─────────────────────────────────────────────────────────────
#  Journal superblock
# ─────────────────────────────────────────────────────────────

def journal_fields(jsb: JournalSuperblock, block_size: int) -> Iterator[Field]:
    """
    Journal superblock summary.

    `block_size` is the volume block size; the journal block size is only
    shown when it differs.
    """
    yield Field("journal-features", FieldType.NAMES, jsb.feature_names)

    size_kb = (jsb.blocksize // 1024) * jsb.maxlen
    if size_kb < 8192:
        yield Field("journal-size", FieldType.TEXT, f"{size_kb}k")
    else:
        yield Field("journal-size", FieldType.TEXT, f"{size_kb >> 10}M")

    if jsb.blocksize != block_size:
        yield Field("journal-block-size", FieldType.COUNT, jsb.blocksize)
    yield Field("journal-length", FieldType.COUNT, jsb.maxlen)
    if jsb.first != 1:
        yield Field("journal-first-block", FieldType.COUNT, jsb.first)
    yield Field("journal-sequence", FieldType.CSUM32, jsb.sequence)
    yield Field("journal-start", FieldType.COUNT, jsb.start)
    if jsb.nr_users != 1:
        yield Field("journal-number-of-users", FieldType.COUNT, jsb.nr_users)

    if jsb.has_csum_v2v3:
        yield Field("journal-checksum-type", FieldType.TEXT, jsb.checksum_type_name)
        yield Field("journal-checksum", FieldType.CSUM32, jsb.checksum)
    elif jsb.feature_compat & JBD2_FEATURE_COMPAT_CHECKSUM:
        yield Field("journal-checksum-type", FieldType.TEXT, "crc32")

    if jsb.nr_users > 1 or (jsb.users and any(jsb.users[0])):
        yield Field("journal-users", FieldType.NAMES, [uuid_str(u) for u in jsb.users])
    if jsb.errno:
        yield Field("journal-errno", FieldType.COUNT, jsb.errno)


def bad_block_fields(blocks: list[int]) -> Iterator[Field]:
    yield Field("bad-blocks", FieldType.NUMBERS, list(blocks))

