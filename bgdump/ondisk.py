"""
On-disk structures — ext2/3/4 superblock, group descriptor, inode and
JBD2 journal superblock decoding.

ext2/3/4 superblock (1024 bytes at byte offset 1024, little-endian):
  +0:   s_inodes_count          +4:   s_blocks_count_lo
  +8:   s_r_blocks_count_lo     +12:  s_free_blocks_count_lo
  +16:  s_free_inodes_count     +20:  s_first_data_block
  +24:  s_log_block_size        +28:  s_log_cluster_size
  +32:  s_blocks_per_group      +36:  s_clusters_per_group
  +40:  s_inodes_per_group      +56:  s_magic (0xEF53)
  +92:  s_feature_compat        +96:  s_feature_incompat
  +100: s_feature_ro_compat     +206: s_reserved_gdt_blocks
  +224: s_journal_inum          +254: s_desc_size
  +260: s_first_meta_bg         +336: s_blocks_count_hi
  +1020: s_checksum

Block group descriptor (32 bytes, 64 bytes with the 64bit feature):
  +0: bg_block_bitmap_lo   +4: bg_inode_bitmap_lo   +8: bg_inode_table_lo
  +12/14/16: free blocks / free inodes / used dirs (lo 16 bits)
  +18: bg_flags   +24/26: bitmap checksums (lo)   +28: itable_unused_lo
  +30: bg_checksum
  +32..+58: the matching _hi halves

Journal superblock (big-endian, first block of the journal).
"""

import struct
import uuid
from dataclasses import dataclass, field

# ── Magic numbers ──
EXT2_SUPER_MAGIC = 0xEF53
JBD2_MAGIC_NUMBER = 0xC03B3998
JBD2_SUPERBLOCK_V1 = 3
JBD2_SUPERBLOCK_V2 = 4

SUPERBLOCK_OFFSET = 1024
SUPERBLOCK_SIZE = 1024
SUPERBLOCK_CSUM_OFFSET = 0x3FC

EXT2_MIN_DESC_SIZE = 32
EXT2_MIN_DESC_SIZE_64BIT = 64
GROUP_DESC_CSUM_OFFSET = 0x1E

EXT2_MIN_BLOCK_LOG_SIZE = 10
EXT2_MAX_BLOCK_LOG_SIZE = 16

EXT2_BAD_INO = 1
EXT2_GOOD_OLD_INODE_SIZE = 128
EXT2_NDIR_BLOCKS = 12
EXT4_EXTENTS_FL = 0x80000
EXT4_EXT_MAGIC = 0xF30A

# ── Feature flags ──
COMPAT_HAS_JOURNAL = 0x0004
COMPAT_SPARSE_SUPER2 = 0x0200

RO_COMPAT_SPARSE_SUPER = 0x0001
RO_COMPAT_GDT_CSUM = 0x0010
RO_COMPAT_BIGALLOC = 0x0200
RO_COMPAT_METADATA_CSUM = 0x0400

INCOMPAT_JOURNAL_DEV = 0x0008
INCOMPAT_META_BG = 0x0010
INCOMPAT_64BIT = 0x0080
INCOMPAT_FLEX_BG = 0x0200
INCOMPAT_CSUM_SEED = 0x2000

# Incompatible features this reader understands (anything else needs --force)
INCOMPAT_SUPPORTED = (
    0x0001 | 0x0002 | 0x0004 | INCOMPAT_JOURNAL_DEV | INCOMPAT_META_BG
    | 0x0040 | INCOMPAT_64BIT | 0x0100 | INCOMPAT_FLEX_BG | 0x0400
    | 0x1000 | INCOMPAT_CSUM_SEED | 0x4000 | 0x8000 | 0x10000 | 0x20000
)

# Group flags
EXT2_BG_INODE_UNINIT = 0x0001
EXT2_BG_BLOCK_UNINIT = 0x0002
EXT2_BG_INODE_ZEROED = 0x0004

BG_FLAG_NAMES = (
    (EXT2_BG_INODE_UNINIT, "INODE_UNINIT"),
    (EXT2_BG_BLOCK_UNINIT, "BLOCK_UNINIT"),
    (EXT2_BG_INODE_ZEROED, "ITABLE_ZEROED"),
)

# (compat type index, mask) → name; index 0 = compat, 1 = incompat, 2 = ro_compat
_FEATURE_NAMES: dict[tuple[int, int], str] = {
    (0, 0x0001): "dir_prealloc",
    (0, 0x0002): "imagic_inodes",
    (0, 0x0004): "has_journal",
    (0, 0x0008): "ext_attr",
    (0, 0x0010): "resize_inode",
    (0, 0x0020): "dir_index",
    (0, 0x0040): "lazy_bg",
    (0, 0x0100): "snapshot_bitmap",
    (0, 0x0200): "sparse_super2",
    (0, 0x0400): "fast_commit",
    (0, 0x0800): "stable_inodes",
    (0, 0x1000): "orphan_file",
    (1, 0x0001): "compression",
    (1, 0x0002): "filetype",
    (1, 0x0004): "needs_recovery",
    (1, 0x0008): "journal_dev",
    (1, 0x0010): "meta_bg",
    (1, 0x0040): "extent",
    (1, 0x0080): "64bit",
    (1, 0x0100): "mmp",
    (1, 0x0200): "flex_bg",
    (1, 0x0400): "ea_inode",
    (1, 0x1000): "dirdata",
    (1, 0x2000): "metadata_csum_seed",
    (1, 0x4000): "large_dir",
    (1, 0x8000): "inline_data",
    (1, 0x10000): "encrypt",
    (1, 0x20000): "casefold",
    (2, 0x0001): "sparse_super",
    (2, 0x0002): "large_file",
    (2, 0x0008): "huge_file",
    (2, 0x0010): "uninit_bg",
    (2, 0x0020): "dir_nlink",
    (2, 0x0040): "extra_isize",
    (2, 0x0100): "quota",
    (2, 0x0200): "bigalloc",
    (2, 0x0400): "metadata_csum",
    (2, 0x1000): "read-only",
    (2, 0x2000): "project",
    (2, 0x8000): "verity",
    (2, 0x10000): "orphan_present",
}

# Journal features
JBD2_FEATURE_COMPAT_CHECKSUM = 0x0001
JBD2_FEATURE_INCOMPAT_CSUM_V2 = 0x0008
JBD2_FEATURE_INCOMPAT_CSUM_V3 = 0x0010
JBD2_CRC32C_CHKSUM = 4

_JOURNAL_FEATURE_NAMES: dict[tuple[int, int], str] = {
    (0, JBD2_FEATURE_COMPAT_CHECKSUM): "journal_checksum",
    (1, 0x0001): "journal_incompat_revoke",
    (1, 0x0002): "journal_64bit",
    (1, 0x0004): "journal_async_commit",
    (1, JBD2_FEATURE_INCOMPAT_CSUM_V2): "journal_checksum_v2",
    (1, JBD2_FEATURE_INCOMPAT_CSUM_V3): "journal_checksum_v3",
}

_COMPAT_CHARS = "CIR"


def _unknown_feature(compat: int, mask: int) -> str:
    return f"FEATURE_{_COMPAT_CHARS[compat]}{mask.bit_length() - 1}"


def _names_for(masks: tuple[int, int, int], table: dict) -> list[str]:
    names = []
    for compat, mask in enumerate(masks):
        for bit in range(32):
            m = 1 << bit
            if mask & m:
                names.append(table.get((compat, m)) or _unknown_feature(compat, m))
    return names


def uuid_str(raw: bytes) -> str:
    if not any(raw):
        return "<none>"
    return str(uuid.UUID(bytes=bytes(raw)))


def _cstr(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("latin-1")


def _u16(data: bytes, off: int) -> int:
    return struct.unpack_from("<H", data, off)[0]


def _u32(data: bytes, off: int) -> int:
    return struct.unpack_from("<I", data, off)[0]


def _u64(data: bytes, off: int) -> int:
    return struct.unpack_from("<Q", data, off)[0]


# ─────────────────────────────────────────────────────────────
#  Superblock
# ─────────────────────────────────────────────────────────────

@dataclass
class Superblock:
    """Decoded ext2/3/4 superblock (only the fields the report uses)."""
    inodes_count: int
    blocks_count: int
    r_blocks_count: int
    free_blocks_count: int
    free_inodes_count: int
    first_data_block: int
    log_block_size: int
    log_cluster_size: int
    blocks_per_group: int
    clusters_per_group: int
    inodes_per_group: int
    mtime: int
    wtime: int
    mnt_count: int
    max_mnt_count: int
    magic: int
    state: int
    errors: int
    lastcheck: int
    creator_os: int
    rev_level: int
    inode_size: int
    feature_compat: int
    feature_incompat: int
    feature_ro_compat: int
    uuid: bytes
    volume_name: str
    last_mounted: str
    reserved_gdt_blocks: int
    journal_uuid: bytes
    journal_inum: int
    desc_size: int
    first_meta_bg: int
    mkfs_time: int
    flags: int
    log_groups_per_flex: int
    checksum_type: int
    backup_bgs: tuple[int, int]
    checksum_seed: int
    checksum: int
    raw: bytes = field(repr=False, default=b"")

    @classmethod
    def parse(cls, data: bytes) -> "Superblock":
        if len(data) < SUPERBLOCK_SIZE:
            raise ValueError(f"superblock too short ({len(data)} bytes)")
        incompat = _u32(data, 96)
        is_64bit = bool(incompat & INCOMPAT_64BIT)
        blocks_lo = _u32(data, 4)
        r_blocks_lo = _u32(data, 8)
        free_lo = _u32(data, 12)
        if is_64bit:
            blocks = blocks_lo | (_u32(data, 336) << 32)
            r_blocks = r_blocks_lo | (_u32(data, 340) << 32)
            free = free_lo | (_u32(data, 344) << 32)
        else:
            blocks, r_blocks, free = blocks_lo, r_blocks_lo, free_lo
        rev_level = _u32(data, 76)
        return cls(
            inodes_count=_u32(data, 0),
            blocks_count=blocks,
            r_blocks_count=r_blocks,
            free_blocks_count=free,
            free_inodes_count=_u32(data, 16),
            first_data_block=_u32(data, 20),
            log_block_size=_u32(data, 24),
            log_cluster_size=_u32(data, 28),
            blocks_per_group=_u32(data, 32),
            clusters_per_group=_u32(data, 36),
            inodes_per_group=_u32(data, 40),
            mtime=_u32(data, 44),
            wtime=_u32(data, 48),
            mnt_count=_u16(data, 52),
            max_mnt_count=struct.unpack_from("<h", data, 54)[0],
            magic=_u16(data, 56),
            state=_u16(data, 58),
            errors=_u16(data, 60),
            lastcheck=_u32(data, 64),
            creator_os=_u32(data, 72),
            rev_level=rev_level,
            inode_size=_u16(data, 88) if rev_level else EXT2_GOOD_OLD_INODE_SIZE,
            feature_compat=_u32(data, 92),
            feature_incompat=incompat,
            feature_ro_compat=_u32(data, 100),
            uuid=bytes(data[104:120]),
            volume_name=_cstr(data[120:136]),
            last_mounted=_cstr(data[136:200]),
            reserved_gdt_blocks=_u16(data, 206),
            journal_uuid=bytes(data[208:224]),
            journal_inum=_u32(data, 224),
            desc_size=_u16(data, 254),
            first_meta_bg=_u32(data, 260),
            mkfs_time=_u32(data, 264),
            flags=_u32(data, 352),
            log_groups_per_flex=data[372],
            checksum_type=data[373],
            backup_bgs=(_u32(data, 0x24C), _u32(data, 0x250)),
            checksum_seed=_u32(data, 0x270),
            checksum=_u32(data, SUPERBLOCK_CSUM_OFFSET),
            raw=bytes(data[:SUPERBLOCK_SIZE]),
        )

    def has_compat(self, mask: int) -> bool:
        return bool(self.feature_compat & mask)

    def has_incompat(self, mask: int) -> bool:
        return bool(self.feature_incompat & mask)

    def has_ro_compat(self, mask: int) -> bool:
        return bool(self.feature_ro_compat & mask)

    @property
    def feature_names(self) -> list[str]:
        return _names_for(
            (self.feature_compat, self.feature_incompat, self.feature_ro_compat),
            _FEATURE_NAMES,
        )

    @property
    def unsupported_incompat(self) -> int:
        return self.feature_incompat & ~INCOMPAT_SUPPORTED


# ─────────────────────────────────────────────────────────────
#  Group descriptor (raw on-disk fields)
# ─────────────────────────────────────────────────────────────

@dataclass
class RawGroupDesc:
    """One group descriptor as stored, with the 64-bit halves merged."""
    block_bitmap: int
    inode_bitmap: int
    inode_table: int
    free_blocks_count: int
    free_inodes_count: int
    used_dirs_count: int
    flags: int
    block_bitmap_csum: int
    inode_bitmap_csum: int
    itable_unused: int
    checksum: int
    raw: bytes = field(repr=False, default=b"")

    @classmethod
    def parse(cls, data: bytes, desc_size: int) -> "RawGroupDesc":
        wide = desc_size >= EXT2_MIN_DESC_SIZE_64BIT

        def merge(lo_off: int, hi_off: int, width: int) -> int:
            read = _u32 if width == 4 else _u16
            value = read(data, lo_off)
            if wide:
                value |= read(data, hi_off) << (8 * width)
            return value

        return cls(
            block_bitmap=merge(0, 32, 4),
            inode_bitmap=merge(4, 36, 4),
            inode_table=merge(8, 40, 4),
            free_blocks_count=merge(12, 44, 2),
            free_inodes_count=merge(14, 46, 2),
            used_dirs_count=merge(16, 48, 2),
            flags=_u16(data, 18),
            block_bitmap_csum=merge(24, 56, 2),
            inode_bitmap_csum=merge(26, 58, 2),
            itable_unused=merge(28, 50, 2),
            checksum=_u16(data, GROUP_DESC_CSUM_OFFSET),
            raw=bytes(data[:desc_size]),
        )

    def has_flag(self, mask: int) -> bool:
        return bool(self.flags & mask)


# ─────────────────────────────────────────────────────────────
#  Inode (block mapping only)
# ─────────────────────────────────────────────────────────────

@dataclass
class Inode:
    mode: int
    size: int
    flags: int
    i_block: bytes = field(repr=False)

    @classmethod
    def parse(cls, data: bytes) -> "Inode":
        size = _u32(data, 4)
        if len(data) >= 112:
            size |= _u32(data, 108) << 32
        return cls(
            mode=_u16(data, 0),
            size=size,
            flags=_u32(data, 32),
            i_block=bytes(data[40:100]),
        )

    @property
    def uses_extents(self) -> bool:
        return bool(self.flags & EXT4_EXTENTS_FL)

    def block_pointers(self) -> list[int]:
        """The 15 i_block slots as little-endian block numbers."""
        return list(struct.unpack_from("<15I", self.i_block, 0))


def parse_extent_node(data: bytes) -> tuple[int, list[tuple[int, int, int]]]:
    """
    Decode an extent tree node (i_block or an index/leaf block).

    Returns (depth, entries).  Leaf entries are (logical, length, physical);
    index entries are (logical, 0, child_block).
    """
    magic, count, _max, depth = struct.unpack_from("<HHHH", data, 0)
    if magic != EXT4_EXT_MAGIC:
        raise ValueError(f"bad extent header magic 0x{magic:04x}")
    entries = []
    for n in range(count):
        off = 12 + n * 12
        if off + 12 > len(data):
            break
        if depth == 0:
            logical, length, start_hi, start_lo = struct.unpack_from("<IHHI", data, off)
            if length > 32768:
                length -= 32768     # uninitialized extent
            entries.append((logical, length, (start_hi << 32) | start_lo))
        else:
            logical, leaf_lo, leaf_hi = struct.unpack_from("<IIH", data, off)
            entries.append((logical, 0, (leaf_hi << 32) | leaf_lo))
    return depth, entries


# ─────────────────────────────────────────────────────────────
#  Journal superblock
# ─────────────────────────────────────────────────────────────

@dataclass
class JournalSuperblock:
    """JBD2 superblock; every field is stored big-endian."""
    magic: int
    blocktype: int
    blocksize: int
    maxlen: int
    first: int
    sequence: int
    start: int
    errno: int
    feature_compat: int
    feature_incompat: int
    feature_ro_compat: int
    uuid: bytes
    nr_users: int
    checksum_type: int
    checksum: int
    users: list[bytes]

    @classmethod
    def parse(cls, data: bytes) -> "JournalSuperblock":
        if len(data) < 0x100:
            raise ValueError(f"journal superblock too short ({len(data)} bytes)")
        (magic, blocktype, _seq, blocksize, maxlen, first, sequence, start,
         errno, f_compat, f_incompat, f_ro) = struct.unpack_from(">IIIIIIIIiIII", data, 0)
        nr_users = struct.unpack_from(">I", data, 64)[0]
        users = []
        for n in range(min(nr_users, 48)):
            off = 0x100 + n * 16
            if off + 16 > len(data):
                break
            users.append(bytes(data[off:off + 16]))
        return cls(
            magic=magic,
            blocktype=blocktype,
            blocksize=blocksize,
            maxlen=maxlen,
            first=first,
            sequence=sequence,
            start=start,
            errno=errno,
            feature_compat=f_compat,
            feature_incompat=f_incompat,
            feature_ro_compat=f_ro,
            uuid=bytes(data[48:64]),
            nr_users=nr_users,
            checksum_type=data[80],
            checksum=struct.unpack_from(">I", data, 0xFC)[0],
            users=users,
        )

    @property
    def feature_names(self) -> list[str]:
        return _names_for(
            (self.feature_compat, self.feature_incompat, self.feature_ro_compat),
            _JOURNAL_FEATURE_NAMES,
        )

    @property
    def has_csum_v2v3(self) -> bool:
        return bool(self.feature_incompat
                    & (JBD2_FEATURE_INCOMPAT_CSUM_V2 | JBD2_FEATURE_INCOMPAT_CSUM_V3))

    @property
    def checksum_type_name(self) -> str:
        return "crc32c" if self.checksum_type == JBD2_CRC32C_CHKSUM else "unknown"
