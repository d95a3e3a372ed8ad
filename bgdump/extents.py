"""
Extent Compressor — Allocation bitmap → ordered free-space runs.

ext2/3/4 bitmaps store one bit per unit (block, cluster or inode):
  bit i lives in byte i >> 3 at position i & 7
  1 = allocated, 0 = free

A run of free bits is reported as one Extent.  Bitmap indexes are mapped to
output units with:

    value = (index + offset // ratio + group * num) * ratio

where `num` is the number of bits per group, `offset` the first data unit of
the volume and `ratio` the number of output units per bit (cluster ratio for
block bitmaps, 1 for inode bitmaps).
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Extent:
    """A maximal free run, both ends inclusive, in output units."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def is_single(self) -> bool:
        return self.start == self.end


def in_use(bitmap: bytes, index: int) -> bool:
    """Test bit `index`; bits past the end of the buffer count as allocated."""
    byte_idx = index >> 3
    if byte_idx >= len(bitmap):
        return True
    return bool((bitmap[byte_idx] >> (index & 7)) & 1)


def free_extents(
    bitmap: bytes,
    num: int,
    group: int = 0,
    offset: int = 0,
    ratio: int = 1,
) -> list[Extent]:
    """
    Compress the free entries of one group's bitmap into extents.

    Args:
        bitmap: Raw bitmap bytes for the group.
        num:    Number of entries (bits) in the group.
        group:  Group index, shifts the output by group * num entries.
        offset: First data unit of the volume (first data block, or 1 for inodes).
        ratio:  Output units per bitmap entry.

    Returns:
        Extents in ascending order; empty when nothing is free.
    """
    if ratio < 1:
        raise ValueError(f"ratio must be >= 1, got {ratio}")

    base = offset // ratio + group * num
    extents: list[Extent] = []
    i = 0
    while i < num:
        if in_use(bitmap, i):
            i += 1
            continue
        j = i
        while j + 1 < num and not in_use(bitmap, j + 1):
            j += 1
        extents.append(Extent((i + base) * ratio, (j + base) * ratio))
        i = j + 1
    return extents


def count_free(bitmap: bytes, num: int) -> int:
    """Number of free entries among the first `num` bits."""
    return sum(1 for i in range(num) if not in_use(bitmap, i))
