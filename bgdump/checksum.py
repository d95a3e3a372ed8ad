"""
Metadata checksums — recompute what ext4 stores next to its metadata.

  • uninit_bg (RO_COMPAT_GDT_CSUM)   — crc16(uuid + group + desc)
  • metadata_csum                   — crc32c(seed, group + desc) & 0xFFFF
  • bitmaps (metadata_csum)         — crc32c(seed, bitmap bytes)
  • superblock (metadata_csum)      — crc32c(~0, superblock[:0x3FC])

ext4 uses the raw (non-inverted) crc32c; the crc32c package computes the
standard inverted form, so `ext4_crc32c` converts between the two.
"""

import struct

from crc32c import crc32c

from .ondisk import GROUP_DESC_CSUM_OFFSET, SUPERBLOCK_CSUM_OFFSET

_MASK32 = 0xFFFFFFFF


def _crc16_table() -> list[int]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ 0xA001 if c & 1 else c >> 1
        table.append(c)
    return table


_CRC16_TABLE = _crc16_table()


def crc16(crc: int, data: bytes) -> int:
    """CRC-16 (ANSI, reflected 0x8005) continuing from `crc`."""
    for b in data:
        crc = ((crc >> 8) & 0xFF) ^ _CRC16_TABLE[(crc ^ b) & 0xFF]
    return crc & 0xFFFF


def ext4_crc32c(seed: int, data: bytes) -> int:
    """crc32c without the final inversion, seeded like the kernel's crc32c_le."""
    return crc32c(bytes(data), seed ^ _MASK32) ^ _MASK32


def csum_seed(uuid: bytes, stored_seed: int = 0, has_seed_feature: bool = False) -> int:
    if has_seed_feature:
        return stored_seed
    return ext4_crc32c(_MASK32, uuid)


def group_desc_csum(
    desc: bytes,
    group: int,
    uuid: bytes,
    seed: int,
    metadata_csum: bool,
) -> int:
    """Expected bg_checksum for one descriptor (`desc` is the full descriptor)."""
    group_le = struct.pack("<I", group)
    if metadata_csum:
        zeroed = bytearray(desc)
        zeroed[GROUP_DESC_CSUM_OFFSET:GROUP_DESC_CSUM_OFFSET + 2] = b"\x00\x00"
        crc = ext4_crc32c(seed, group_le)
        crc = ext4_crc32c(crc, zeroed)
        return crc & 0xFFFF

    crc = crc16(0xFFFF, uuid)
    crc = crc16(crc, group_le)
    crc = crc16(crc, desc[:GROUP_DESC_CSUM_OFFSET])
    tail = GROUP_DESC_CSUM_OFFSET + 2
    if tail < len(desc):
        crc = crc16(crc, desc[tail:])
    return crc


def bitmap_csum(seed: int, bitmap: bytes, wide: bool) -> int:
    """Checksum of a bitmap as it would be stored (low 16 bits unless `wide`)."""
    crc = ext4_crc32c(seed, bitmap)
    return crc if wide else crc & 0xFFFF


def superblock_csum(raw: bytes) -> int:
    return ext4_crc32c(_MASK32, raw[:SUPERBLOCK_CSUM_OFFSET])
