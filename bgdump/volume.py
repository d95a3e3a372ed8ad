"""
Volume accessor — everything the report needs from an ext2/3/4 volume.

Opens the superblock, derives the group geometry, reads the group
descriptor table, loads allocation bitmaps and resolves the bad-block list
and journal superblock.  Nothing here formats output; the report builder
consumes the Geometry / GroupDescriptor records produced here.

Placement rules (which groups hold superblock and descriptor copies):
  • group 0 always has the primary superblock
  • sparse_super  — only groups 0, 1 and powers of 3, 5, 7
  • sparse_super2 — only group 0 and the two s_backup_bgs groups
  • meta_bg       — descriptor blocks live in groups 0, 1 and the last
                    group of each meta group instead of after every
                    superblock copy
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from . import checksum
from .extents import count_free
from .ondisk import (
    BG_FLAG_NAMES,
    COMPAT_HAS_JOURNAL,
    COMPAT_SPARSE_SUPER2,
    EXT2_BAD_INO,
    EXT2_BG_BLOCK_UNINIT,
    EXT2_BG_INODE_UNINIT,
    EXT2_MAX_BLOCK_LOG_SIZE,
    EXT2_MIN_BLOCK_LOG_SIZE,
    EXT2_MIN_DESC_SIZE,
    EXT2_MIN_DESC_SIZE_64BIT,
    EXT2_NDIR_BLOCKS,
    EXT2_SUPER_MAGIC,
    INCOMPAT_64BIT,
    INCOMPAT_CSUM_SEED,
    INCOMPAT_FLEX_BG,
    INCOMPAT_JOURNAL_DEV,
    INCOMPAT_META_BG,
    JBD2_MAGIC_NUMBER,
    JBD2_SUPERBLOCK_V2,
    RO_COMPAT_BIGALLOC,
    RO_COMPAT_GDT_CSUM,
    RO_COMPAT_METADATA_CSUM,
    RO_COMPAT_SPARSE_SUPER,
    SUPERBLOCK_OFFSET,
    SUPERBLOCK_SIZE,
    Inode,
    RawGroupDesc,
    Superblock,
    parse_extent_node,
)

logger = logging.getLogger(__name__)

JOURNAL_SB_SIZE = 1024


class VolumeError(Exception):
    """The volume (or a structure on it) could not be read."""


class ChecksumError(VolumeError):
    """A stored metadata checksum does not match its contents."""


class BitmapReadError(VolumeError):
    """A requested bitmap range was not loaded."""


class JournalError(VolumeError):
    """The journal superblock could not be located or is invalid."""


# ─────────────────────────────────────────────────────────────
#  Geometry
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Geometry:
    """Group layout parameters and pre-resolved feature flags."""
    block_size: int
    cluster_ratio: int
    blocks_per_group: int
    clusters_per_group: int
    inodes_per_group: int
    group_count: int
    blocks_count: int
    first_data_block: int
    inode_size: int = 128
    desc_size: int = EXT2_MIN_DESC_SIZE
    reserved_gdt_blocks: int = 0
    first_meta_bg: int = 0
    backup_bgs: tuple[int, int] = (0, 0)
    flex_bg: bool = False
    is_64bit: bool = False
    bigalloc: bool = False
    meta_bg: bool = False
    sparse_super: bool = True
    sparse_super2: bool = False
    group_desc_csum: bool = False
    metadata_csum: bool = False

    @property
    def desc_per_block(self) -> int:
        return self.block_size // self.desc_size

    @property
    def desc_blocks(self) -> int:
        return -(-self.group_count // self.desc_per_block)

    @property
    def old_desc_blocks(self) -> int:
        """Length of the contiguous descriptor table shown for each copy."""
        return self.first_meta_bg if self.meta_bg else self.desc_blocks

    @property
    def inode_blocks_per_group(self) -> int:
        return -(-(self.inodes_per_group * self.inode_size) // self.block_size)

    def group_first_block(self, group: int) -> int:
        return self.first_data_block + group * self.blocks_per_group

    def group_last_block(self, group: int) -> int:
        if group == self.group_count - 1:
            return self.blocks_count - 1
        return self.group_first_block(group) + self.blocks_per_group - 1

    def group_of_block(self, block: int) -> int:
        return (block - self.first_data_block) // self.blocks_per_group

    def has_super(self, group: int) -> bool:
        if group == 0:
            return True
        if self.sparse_super2:
            return group in self.backup_bgs
        if group <= 1 or not self.sparse_super:
            return True
        if not group & 1:
            return False
        return _is_power_of(group, 3) or _is_power_of(group, 5) or _is_power_of(group, 7)

    def super_and_bgd_loc(self, group: int) -> tuple[int, int, int]:
        """
        Locate the superblock and descriptor copies carried by `group`.

        Returns (super_blk, old_desc_blk, new_desc_blk); 0 means "none".
        """
        group_block = self.group_first_block(group)
        if group_block == 0 and self.block_size == 1024:
            group_block = 1     # 1 KiB blocks with bigalloc

        super_blk = old_desc_blk = new_desc_blk = 0
        has_super = self.has_super(group)
        if has_super:
            super_blk = group_block

        meta_bg_size = self.desc_per_block
        meta_bg = group // meta_bg_size
        if not self.meta_bg or meta_bg < self.first_meta_bg:
            if has_super:
                old_desc_blk = group_block + 1
        elif group % meta_bg_size in (0, 1, meta_bg_size - 1):
            new_desc_blk = group_block + (1 if has_super else 0)
        return super_blk, old_desc_blk, new_desc_blk

    def descriptor_block_loc(self, group_block: int, i: int) -> int:
        """Block holding the i-th descriptor block when reading from `group_block`."""
        if not self.meta_bg or i < self.first_meta_bg:
            return group_block + i + 1
        bg = self.desc_per_block * i
        has_super = 1 if self.has_super(bg) else 0
        ret_blk = self.group_first_block(bg)
        # A backup superblock reads the backup descriptor copy in the next group
        if (group_block != self.first_data_block
                and ret_blk + has_super + self.blocks_per_group < self.blocks_count):
            ret_blk += self.blocks_per_group
            has_super = 1 if self.has_super(bg + 1) else 0
        adjust = 1 if (i == 0 and self.block_size == 1024 and self.cluster_ratio > 1) else 0
        return ret_blk + has_super + adjust

    @classmethod
    def from_superblock(cls, sb: Superblock) -> "Geometry":
        block_size = 1024 << sb.log_block_size
        bigalloc = sb.has_ro_compat(RO_COMPAT_BIGALLOC)
        is_64bit = sb.has_incompat(INCOMPAT_64BIT)
        if bigalloc:
            cluster_ratio = 1 << (sb.log_cluster_size - sb.log_block_size)
            clusters_per_group = sb.clusters_per_group
        else:
            cluster_ratio = 1
            clusters_per_group = sb.blocks_per_group
        desc_size = EXT2_MIN_DESC_SIZE
        if is_64bit:
            desc_size = max(sb.desc_size, EXT2_MIN_DESC_SIZE)
        group_count = 0
        if sb.blocks_per_group:
            group_count = -(-(sb.blocks_count - sb.first_data_block) // sb.blocks_per_group)
        metadata_csum = sb.has_ro_compat(RO_COMPAT_METADATA_CSUM)
        return cls(
            block_size=block_size,
            cluster_ratio=cluster_ratio,
            blocks_per_group=sb.blocks_per_group,
            clusters_per_group=clusters_per_group,
            inodes_per_group=sb.inodes_per_group,
            group_count=group_count,
            blocks_count=sb.blocks_count,
            first_data_block=sb.first_data_block,
            inode_size=sb.inode_size,
            desc_size=desc_size,
            reserved_gdt_blocks=sb.reserved_gdt_blocks,
            first_meta_bg=sb.first_meta_bg,
            backup_bgs=sb.backup_bgs,
            flex_bg=sb.has_incompat(INCOMPAT_FLEX_BG),
            is_64bit=is_64bit,
            bigalloc=bigalloc,
            meta_bg=sb.has_incompat(INCOMPAT_META_BG),
            sparse_super=sb.has_ro_compat(RO_COMPAT_SPARSE_SUPER),
            sparse_super2=sb.has_compat(COMPAT_SPARSE_SUPER2),
            group_desc_csum=metadata_csum or sb.has_ro_compat(RO_COMPAT_GDT_CSUM),
            metadata_csum=metadata_csum,
        )


def _is_power_of(a: int, b: int) -> bool:
    while True:
        if a < b:
            return False
        if a == b:
            return True
        if a % b:
            return False
        a //= b


# ─────────────────────────────────────────────────────────────
#  Group descriptor record
# ─────────────────────────────────────────────────────────────

@dataclass
class GroupDescriptor:
    """Everything the report says about one group, with placement resolved."""
    group: int
    first_block: int
    last_block: int
    super_blk: int
    old_desc_blk: int
    old_desc_blocks: int
    reserved_gdt: int
    new_desc_blk: int
    block_bitmap: int
    inode_bitmap: int
    inode_table: int
    inode_table_blocks: int
    free_blocks: int
    free_inodes: int
    used_dirs: int
    itable_unused: int
    flags: int = 0
    block_bitmap_csum: Optional[int] = None
    inode_bitmap_csum: Optional[int] = None
    checksum: Optional[int] = None
    expected_checksum: Optional[int] = None

    @property
    def has_super(self) -> bool:
        return self.group == 0 or self.super_blk != 0

    @property
    def flag_names(self) -> list[str]:
        return [name for mask, name in BG_FLAG_NAMES if self.flags & mask]


# ─────────────────────────────────────────────────────────────
#  Volume
# ─────────────────────────────────────────────────────────────

class ExtVolume:
    """
    Read-only view of an ext2/3/4 volume.

    Usage:
        vol = ExtVolume(img)              # img: pytsk3.Img_Info-like
        geo = vol.geometry
        for i in range(geo.group_count):
            desc = vol.group_descriptor(i)

    Pass `superblock` (and optionally `blocksize`) to open through a backup
    superblock copy.
    """

    def __init__(
        self,
        img,
        superblock: int = 0,
        blocksize: int = 0,
        force: bool = False,
        ignore_csum: bool = False,
    ):
        self._img = img
        self.force = force
        self.ignore_csum = ignore_csum
        self.superblock = self._open_superblock(superblock, blocksize)
        sb = self.superblock

        if sb.unsupported_incompat and not force:
            raise VolumeError(
                f"Filesystem has unsupported feature(s) "
                f"(incompat 0x{sb.unsupported_incompat:x})"
            )
        if sb.has_ro_compat(RO_COMPAT_METADATA_CSUM) and not ignore_csum:
            if checksum.superblock_csum(sb.raw) != sb.checksum:
                raise ChecksumError("Superblock checksum does not match superblock")

        self.is_journal_dev = sb.has_incompat(INCOMPAT_JOURNAL_DEV)
        self.geometry = Geometry.from_superblock(sb)
        self.csum_seed = checksum.csum_seed(
            sb.uuid, sb.checksum_seed, sb.has_incompat(INCOMPAT_CSUM_SEED))

        self._descs: list[RawGroupDesc] = []
        if not self.is_journal_dev:
            group_block = superblock if superblock else sb.first_data_block
            if group_block == 0 and self.geometry.block_size == 1024:
                group_block = 1
            self._descs = self._read_descriptors(group_block)

        # Per-group bitmap bytes; None marks a group whose bitmap failed to load
        self._block_maps: Optional[list[Optional[bytes]]] = None
        self._inode_maps: Optional[list[Optional[bytes]]] = None
        self._block_errors: dict[int, str] = {}
        self._inode_errors: dict[int, str] = {}

        geo = self.geometry
        logger.info(
            "ext: block_size=%d, blocks=%d, groups=%d, blocks_per_group=%d, "
            "inodes_per_group=%d, 64bit=%s, flex_bg=%s, meta_bg=%s",
            geo.block_size, geo.blocks_count, geo.group_count,
            geo.blocks_per_group, geo.inodes_per_group,
            geo.is_64bit, geo.flex_bg, geo.meta_bg,
        )

    # ── Raw I/O ──

    def _read(self, offset: int, length: int) -> bytes:
        try:
            data = self._img.read(offset, length)
        except (IOError, OSError) as e:
            raise VolumeError(f"Read error at byte {offset}: {e}") from e
        if len(data) < length:
            raise VolumeError(
                f"Short read at byte {offset} ({len(data)}/{length} bytes)")
        return data

    def read_block(self, block: int, count: int = 1) -> bytes:
        bs = self.geometry.block_size
        return self._read(block * bs, count * bs)

    # ── Superblock + descriptors ──

    def _open_superblock(self, superblock: int, blocksize: int) -> Superblock:
        if not superblock:
            return self._parse_superblock(SUPERBLOCK_OFFSET)
        if blocksize:
            return self._parse_superblock(superblock * blocksize)

        # Backup superblock without a block size: try every legal size
        last_error: Optional[VolumeError] = None
        for log in range(EXT2_MIN_BLOCK_LOG_SIZE, EXT2_MAX_BLOCK_LOG_SIZE + 1):
            try:
                sb = self._parse_superblock(superblock * (1 << log))
            except VolumeError as e:
                last_error = e
                continue
            if 1024 << sb.log_block_size == 1 << log:
                return sb
        raise last_error or VolumeError("Bad magic number in super-block")

    def _parse_superblock(self, offset: int) -> Superblock:
        sb = Superblock.parse(self._read(offset, SUPERBLOCK_SIZE))
        if sb.magic != EXT2_SUPER_MAGIC:
            raise VolumeError("Bad magic number in super-block")
        if not EXT2_MIN_BLOCK_LOG_SIZE <= sb.log_block_size + 10 <= EXT2_MAX_BLOCK_LOG_SIZE:
            raise VolumeError(f"Invalid block size (log {sb.log_block_size})")
        if sb.has_incompat(INCOMPAT_JOURNAL_DEV):
            return sb
        if sb.blocks_per_group == 0 or sb.inodes_per_group == 0:
            raise VolumeError("The ext2 superblock is corrupt")
        if sb.first_data_block >= sb.blocks_count:
            raise VolumeError("The ext2 superblock is corrupt")
        return sb

    def _read_descriptors(self, group_block: int) -> list[RawGroupDesc]:
        geo = self.geometry
        raw = bytearray()
        for i in range(geo.desc_blocks):
            raw += self.read_block(geo.descriptor_block_loc(group_block, i))
        descs = []
        for g in range(geo.group_count):
            off = g * geo.desc_size
            descs.append(RawGroupDesc.parse(raw[off:off + geo.desc_size], geo.desc_size))
        logger.info("Read %d group descriptors (%d blocks)", len(descs), geo.desc_blocks)
        return descs

    def expected_desc_csum(self, group: int) -> int:
        geo = self.geometry
        return checksum.group_desc_csum(
            self._descs[group].raw, group, self.superblock.uuid,
            self.csum_seed, geo.metadata_csum,
        )

    def desc_csum_ok(self, group: int) -> bool:
        return self._descs[group].checksum == self.expected_desc_csum(group)

    def group_descriptor(self, group: int) -> GroupDescriptor:
        geo = self.geometry
        raw = self._descs[group]
        super_blk, old_desc_blk, new_desc_blk = geo.super_and_bgd_loc(group)
        desc = GroupDescriptor(
            group=group,
            first_block=geo.group_first_block(group),
            last_block=geo.group_last_block(group),
            super_blk=super_blk,
            old_desc_blk=old_desc_blk,
            old_desc_blocks=geo.old_desc_blocks,
            reserved_gdt=geo.reserved_gdt_blocks,
            new_desc_blk=new_desc_blk,
            block_bitmap=raw.block_bitmap,
            inode_bitmap=raw.inode_bitmap,
            inode_table=raw.inode_table,
            inode_table_blocks=geo.inode_blocks_per_group,
            free_blocks=raw.free_blocks_count,
            free_inodes=raw.free_inodes_count,
            used_dirs=raw.used_dirs_count,
            itable_unused=raw.itable_unused,
            flags=raw.flags,
        )
        if geo.group_desc_csum:
            desc.checksum = raw.checksum
            desc.expected_checksum = self.expected_desc_csum(group)
        if geo.metadata_csum:
            desc.block_bitmap_csum = raw.block_bitmap_csum
            desc.inode_bitmap_csum = raw.inode_bitmap_csum
        return desc

    # ── Bitmaps ──

    @property
    def block_bitmap_loaded(self) -> bool:
        return self._block_maps is not None

    @property
    def inode_bitmap_loaded(self) -> bool:
        return self._inode_maps is not None

    def read_bitmaps(self, ignore_csum: bool = False) -> list[VolumeError]:
        """
        Load every group's block and inode bitmap into memory.

        Groups whose bitmap cannot be read (or fails its checksum unless
        `ignore_csum`) are recorded as failed; later range requests touching
        them raise BitmapReadError.  Returns the errors encountered.
        """
        geo = self.geometry
        block_nbytes = geo.clusters_per_group // 8
        inode_nbytes = geo.inodes_per_group // 8
        wide_csum = geo.desc_size >= EXT2_MIN_DESC_SIZE_64BIT
        errors: list[VolumeError] = []
        block_maps: list[Optional[bytes]] = []
        inode_maps: list[Optional[bytes]] = []
        self._block_errors = {}
        self._inode_errors = {}

        for g in range(geo.group_count):
            raw = self._descs[g]
            uninit_ok = geo.group_desc_csum and self.desc_csum_ok(g)

            try:
                if uninit_ok and raw.has_flag(EXT2_BG_BLOCK_UNINIT):
                    bitmap = self._uninit_block_bitmap(g, block_nbytes)
                else:
                    bitmap = self._read_bitmap_block(raw.block_bitmap, block_nbytes, "block", g)
                    if geo.metadata_csum and not ignore_csum:
                        if checksum.bitmap_csum(self.csum_seed, bitmap, wide_csum) != raw.block_bitmap_csum:
                            raise ChecksumError(f"Block bitmap checksum does not match bitmap (group {g})")
                block_maps.append(self._pad_last_group(g, bitmap))
            except VolumeError as e:
                logger.debug("Group %d: %s", g, e)
                self._block_errors[g] = str(e)
                block_maps.append(None)
                errors.append(e)

            try:
                if uninit_ok and raw.has_flag(EXT2_BG_INODE_UNINIT):
                    bitmap = bytes(inode_nbytes)
                else:
                    bitmap = self._read_bitmap_block(raw.inode_bitmap, inode_nbytes, "inode", g)
                    if geo.metadata_csum and not ignore_csum:
                        if checksum.bitmap_csum(self.csum_seed, bitmap, wide_csum) != raw.inode_bitmap_csum:
                            raise ChecksumError(f"Inode bitmap checksum does not match bitmap (group {g})")
                inode_maps.append(bitmap)
            except VolumeError as e:
                logger.debug("Group %d: %s", g, e)
                self._inode_errors[g] = str(e)
                inode_maps.append(None)
                errors.append(e)

        self._block_maps = block_maps
        self._inode_maps = inode_maps

        free = sum(count_free(m, geo.clusters_per_group) for m in block_maps if m is not None)
        logger.info("Bitmaps loaded: %d free clusters counted, %d load errors", free, len(errors))
        return errors

    def _read_bitmap_block(self, block: int, nbytes: int, kind: str, group: int) -> bytes:
        geo = self.geometry
        if block < geo.first_data_block or block >= geo.blocks_count:
            raise VolumeError(f"Invalid {kind} bitmap block {block} for group {group}")
        return self.read_block(block)[:nbytes]

    def _uninit_block_bitmap(self, group: int, nbytes: int) -> bytes:
        """BLOCK_UNINIT groups: only the group's own metadata is in use."""
        geo = self.geometry
        bitmap = bytearray(nbytes)
        first = geo.group_first_block(group)
        last = geo.group_last_block(group)
        super_blk, old_desc_blk, new_desc_blk = geo.super_and_bgd_loc(group)
        raw = self._descs[group]

        used: list[int] = []
        if super_blk or group == 0:
            used.append(super_blk)
        if old_desc_blk:
            used.extend(range(old_desc_blk,
                              old_desc_blk + geo.old_desc_blocks + geo.reserved_gdt_blocks))
        if new_desc_blk:
            used.append(new_desc_blk)
        used.append(raw.block_bitmap)
        used.append(raw.inode_bitmap)
        used.extend(range(raw.inode_table, raw.inode_table + geo.inode_blocks_per_group))

        for blk in used:
            if first <= blk <= last:
                bit = (blk - first) // geo.cluster_ratio
                bitmap[bit >> 3] |= 1 << (bit & 7)
        return bytes(bitmap)

    def _pad_last_group(self, group: int, bitmap: bytes) -> bytes:
        """Mark clusters past the end of the volume as in use."""
        geo = self.geometry
        if group != geo.group_count - 1:
            return bitmap
        valid = -(-(geo.group_last_block(group) - geo.group_first_block(group) + 1)
                  // geo.cluster_ratio)
        if valid >= geo.clusters_per_group:
            return bitmap
        padded = bytearray(bitmap)
        for bit in range(valid, geo.clusters_per_group):
            padded[bit >> 3] |= 1 << (bit & 7)
        return bytes(padded)

    def block_bitmap_range(self, start: int, count: int) -> bytes:
        """Bitmap bytes for `count` clusters starting at cluster `start`."""
        geo = self.geometry
        base = geo.first_data_block // geo.cluster_ratio
        return self._bitmap_range(self._block_maps, self._block_errors, "block",
                                  start - base, count, geo.clusters_per_group)

    def inode_bitmap_range(self, start: int, count: int) -> bytes:
        """Bitmap bytes for `count` inodes starting at inode `start` (1-based)."""
        return self._bitmap_range(self._inode_maps, self._inode_errors, "inode",
                                  start - 1, count, self.geometry.inodes_per_group)

    @staticmethod
    def _bitmap_range(maps, errors, kind, index, count, per_group) -> bytes:
        if maps is None:
            raise BitmapReadError(f"{kind} bitmap not loaded")
        if index < 0 or index % per_group or count % 8:
            raise BitmapReadError(f"unaligned {kind} bitmap range ({index}, {count})")
        out = bytearray()
        first = index // per_group
        for g in range(first, first + -(-count // per_group)):
            if g >= len(maps):
                raise BitmapReadError(f"{kind} bitmap range past end of volume (group {g})")
            if maps[g] is None:
                raise BitmapReadError(errors.get(g, f"{kind} bitmap for group {g} unavailable"))
            out += maps[g]
        return bytes(out[:count // 8])

    # ── Inodes ──

    def read_inode(self, ino: int) -> Inode:
        geo = self.geometry
        if ino < 1 or ino > geo.inodes_per_group * geo.group_count:
            raise VolumeError(f"Illegal inode number {ino}")
        group, index = divmod(ino - 1, geo.inodes_per_group)
        table = self._descs[group].inode_table
        offset = table * geo.block_size + index * geo.inode_size
        return Inode.parse(self._read(offset, geo.inode_size))

    def _map_logical(self, inode: Inode, logical: int) -> int:
        """Physical block of an inode's logical block (0 when unmapped)."""
        if inode.uses_extents:
            node = inode.i_block
            for _ in range(8):
                depth, entries = parse_extent_node(node)
                if depth == 0:
                    for start, length, phys in entries:
                        if start <= logical < start + length:
                            return phys + (logical - start)
                    return 0
                child = 0
                for start, _, blk in entries:
                    if start > logical:
                        break
                    child = blk
                if not child:
                    return 0
                node = self.read_block(child)
            raise VolumeError("Extent tree too deep")

        return self._lookup_block_map(inode.block_pointers(), logical)

    def _pointer_block(self, block: int) -> Optional[list[int]]:
        """Block numbers stored in an indirect block (None if it is out of range)."""
        geo = self.geometry
        if block == 0 or block >= geo.blocks_count:
            return None
        data = self.read_block(block)
        return [int.from_bytes(data[n:n + 4], "little") for n in range(0, len(data), 4)]

    def _lookup_block_map(self, pointers: list[int], logical: int) -> int:
        if logical < EXT2_NDIR_BLOCKS:
            return pointers[logical]
        per_block = self.geometry.block_size // 4
        logical -= EXT2_NDIR_BLOCKS
        for level, block in enumerate(pointers[EXT2_NDIR_BLOCKS:], start=1):
            span = per_block ** level
            if logical >= span:
                logical -= span
                continue
            for _ in range(level):
                entries = self._pointer_block(block)
                if entries is None:
                    return 0
                span //= per_block
                block = entries[logical // span]
                logical %= span
            return block
        return 0

    def _data_blocks(self, pointers: list[int]) -> Iterator[int]:
        """Non-zero data blocks of a block-mapped inode (holes skipped)."""

        def walk(block: int, level: int) -> Iterator[int]:
            if level == 0:
                if block:
                    yield block
                return
            entries = self._pointer_block(block)
            if entries is None:
                return
            for child in entries:
                if child:
                    yield from walk(child, level - 1)

        for block in pointers[:EXT2_NDIR_BLOCKS]:
            if block:
                yield block
        for level, block in enumerate(pointers[EXT2_NDIR_BLOCKS:], start=1):
            yield from walk(block, level)

    def bad_blocks(self) -> list[int]:
        """Sorted bad-block list from the bad-block inode."""
        geo = self.geometry
        inode = self.read_inode(EXT2_BAD_INO)
        if inode.uses_extents:
            raise VolumeError("Bad block inode uses extents")
        found = {
            blk for blk in self._data_blocks(inode.block_pointers())
            if geo.first_data_block <= blk < geo.blocks_count
        }
        logger.info("Bad block inode lists %d blocks", len(found))
        return sorted(found)

    # ── Journal ──

    @property
    def has_inline_journal(self) -> bool:
        sb = self.superblock
        return sb.has_compat(COMPAT_HAS_JOURNAL) and sb.journal_inum != 0

    def journal_superblock(self, inline: bool = True) -> bytes:
        """
        Raw journal superblock bytes.

        inline=True  — first block of the journal inode
        inline=False — this volume is an external journal device
        """
        if inline:
            try:
                inode = self.read_inode(self.superblock.journal_inum)
                block = self._map_logical(inode, 0)
            except (VolumeError, ValueError) as e:
                raise JournalError(f"while reading journal inode: {e}") from e
            if not block:
                raise JournalError("Journal inode has no first block")
            try:
                data = self._read(block * self.geometry.block_size, JOURNAL_SB_SIZE)
            except VolumeError as e:
                raise JournalError(f"while reading journal super block: {e}") from e
            if int.from_bytes(data[:4], "big") != JBD2_MAGIC_NUMBER:
                raise JournalError("Journal superblock magic number invalid!")
            return data

        offset = (self.superblock.first_data_block + 1) * self.geometry.block_size
        try:
            data = self._read(offset, JOURNAL_SB_SIZE)
        except VolumeError as e:
            raise JournalError(f"while reading journal superblock: {e}") from e
        if (int.from_bytes(data[:4], "big") != JBD2_MAGIC_NUMBER
                or int.from_bytes(data[4:8], "big") != JBD2_SUPERBLOCK_V2):
            raise JournalError("Couldn't find journal superblock magic numbers")
        return data

    def close(self):
        close = getattr(self._img, "close", None)
        if close:
            close()
