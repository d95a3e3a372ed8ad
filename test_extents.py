"""
Test the extent compressor: bitmap → free runs.
"""
import random

import pytest

from bgdump.extents import Extent, count_free, free_extents, in_use


def _bitmap(num, free):
    """Bitmap of `num` entries, all allocated except the indexes in `free`."""
    buf = bytearray(b"\xff" * ((num + 7) // 8))
    for i in free:
        buf[i >> 3] &= ~(1 << (i & 7)) & 0xFF
    return bytes(buf)


def test_single_run():
    bm = _bitmap(8192, range(100, 150))
    extents = free_extents(bm, 8192, group=0, offset=0, ratio=1)
    print(f"  {extents}")
    assert extents == [Extent(100, 149)]
    assert extents[0].length == 50


def test_fully_allocated():
    assert free_extents(_bitmap(1024, []), 1024) == []


def test_single_free_entry():
    extents = free_extents(_bitmap(64, [17]), 64)
    assert extents == [Extent(17, 17)]
    assert extents[0].is_single
    assert extents[0].length == 1


def test_group_offset_and_ratio():
    # Group 2 of a 1 KiB-block volume: first data block 1
    bm = _bitmap(1024, [0, 1, 2, 1023])
    assert free_extents(bm, 1024, group=2, offset=1) == [
        Extent(2049, 2051), Extent(3072, 3072)]
    # Cluster ratio 16, first data block 0
    bm = _bitmap(32, [3, 4])
    assert free_extents(bm, 32, group=1, offset=0, ratio=16) == [
        Extent((3 + 32) * 16, (4 + 32) * 16)]


def test_inode_numbering():
    bm = _bitmap(32, range(11, 32))
    assert free_extents(bm, 32, group=0, offset=1, ratio=1) == [Extent(12, 32)]
    assert free_extents(bm, 32, group=1, offset=1, ratio=1) == [Extent(44, 64)]


def test_bits_past_buffer_are_allocated():
    assert in_use(b"", 0)
    assert free_extents(b"\x00", 16) == [Extent(0, 7)]


def test_bad_ratio():
    with pytest.raises(ValueError):
        free_extents(b"\x00", 8, ratio=0)


def test_extents_cover_free_bits_exactly():
    rng = random.Random(42)
    for _ in range(50):
        num = rng.randint(1, 300)
        free = {i for i in range(num) if rng.random() < 0.4}
        extents = free_extents(_bitmap(num, free), num)

        covered = []
        for e in extents:
            covered.extend(range(e.start, e.end + 1))
        assert covered == sorted(free)
        assert len(covered) == count_free(_bitmap(num, free), num)
        for a, b in zip(extents, extents[1:]):
            # strictly increasing and maximal (a gap between runs)
            assert a.end + 1 < b.start


if __name__ == "__main__":
    for name, fn in list(globals().items()):
        if name.startswith("test_") and callable(fn):
            print(f"▶ {name}")
            fn()
    print("✅ All extent tests passed")
