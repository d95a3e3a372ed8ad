"""
Test the crc16 / crc32c helpers and ext4 checksum layouts.
"""
import struct

from bgdump.checksum import (
    bitmap_csum,
    crc16,
    csum_seed,
    ext4_crc32c,
    group_desc_csum,
    superblock_csum,
)

CHECK = b"123456789"


def test_crc16_check_value():
    # CRC-16/ARC and CRC-16/MODBUS share the polynomial, differ in init
    assert crc16(0, CHECK) == 0xBB3D
    assert crc16(0xFFFF, CHECK) == 0x4B37


def test_crc32c_raw_form():
    # Standard crc32c("123456789") is 0xE3069283; ext4 keeps it uninverted
    assert ext4_crc32c(0xFFFFFFFF, CHECK) == 0xE3069283 ^ 0xFFFFFFFF


def test_crc32c_chaining():
    whole = ext4_crc32c(0xFFFFFFFF, CHECK)
    part = ext4_crc32c(ext4_crc32c(0xFFFFFFFF, CHECK[:4]), CHECK[4:])
    assert whole == part


def test_csum_seed():
    uuid = bytes(range(16))
    assert csum_seed(uuid) == ext4_crc32c(0xFFFFFFFF, uuid)
    assert csum_seed(uuid, 0x12345678, has_seed_feature=True) == 0x12345678


def test_gdt_csum_skips_checksum_field():
    uuid = bytes(range(16))
    desc = bytearray(32)
    struct.pack_into("<III", desc, 0, 5, 6, 7)
    base = group_desc_csum(bytes(desc), 0, uuid, 0, metadata_csum=False)
    desc[30:32] = b"\xAB\xCD"
    assert group_desc_csum(bytes(desc), 0, uuid, 0, metadata_csum=False) == base
    assert group_desc_csum(bytes(desc), 1, uuid, 0, metadata_csum=False) != base


def test_metadata_csum_descriptor():
    uuid = bytes(range(16))
    seed = csum_seed(uuid)
    desc = bytearray(64)
    struct.pack_into("<III", desc, 0, 5, 6, 7)
    expected = ext4_crc32c(ext4_crc32c(seed, struct.pack("<I", 3)), bytes(desc)) & 0xFFFF
    desc[30:32] = b"\x11\x22"
    assert group_desc_csum(bytes(desc), 3, uuid, seed, metadata_csum=True) == expected


def test_bitmap_csum_width():
    seed = 0x1234
    bitmap = bytes(range(128))
    full = ext4_crc32c(seed, bitmap)
    assert bitmap_csum(seed, bitmap, wide=True) == full
    assert bitmap_csum(seed, bitmap, wide=False) == full & 0xFFFF


def test_superblock_csum_ignores_stored_value():
    sb = bytearray(1024)
    sb[56:58] = b"\x53\xEF"
    first = superblock_csum(bytes(sb))
    sb[0x3FC:0x400] = b"\xFF\xFF\xFF\xFF"
    assert superblock_csum(bytes(sb)) == first


if __name__ == "__main__":
    for name, fn in list(globals().items()):
        if name.startswith("test_") and callable(fn):
            print(f"▶ {name}")
            fn()
    print("✅ All checksum tests passed")
