"""
Test the report builder's field streams (content only, no rendering).
"""
from bgdump.builder import (
    FieldType,
    bad_block_fields,
    group_fields,
    journal_fields,
    relative_offset,
)
from bgdump.extents import Extent
from bgdump.ondisk import JournalSuperblock
from bgdump.volume import Geometry, GroupDescriptor


def field_map(fields) -> dict:
    return {f.key: f.value for f in fields}


def make_geometry(**overrides) -> Geometry:
    params = dict(
        block_size=4096, cluster_ratio=1, blocks_per_group=8192,
        clusters_per_group=8192, inodes_per_group=2048, group_count=4,
        blocks_count=4 * 8192, first_data_block=0, inode_size=256,
    )
    params.update(overrides)
    return Geometry(**params)


def make_desc(group=0, **overrides) -> GroupDescriptor:
    first = group * 8192
    params = dict(
        group=group, first_block=first, last_block=first + 8191,
        super_blk=first if group in (0, 1, 3) else 0,
        old_desc_blk=first + 1 if group in (0, 1, 3) else 0,
        old_desc_blocks=1, reserved_gdt=0, new_desc_blk=0,
        block_bitmap=first + 2, inode_bitmap=first + 3, inode_table=first + 4,
        inode_table_blocks=128, free_blocks=100, free_inodes=2000,
        used_dirs=2, itable_unused=0,
    )
    params.update(overrides)
    return GroupDescriptor(**params)


def _bitmap(num, free):
    buf = bytearray(b"\xff" * (num // 8))
    for i in free:
        buf[i >> 3] &= ~(1 << (i & 7)) & 0xFF
    return bytes(buf)


def test_field_order():
    geo = make_geometry(group_desc_csum=True, metadata_csum=True)
    desc = make_desc(reserved_gdt=2, checksum=0x1234, expected_checksum=0x5678,
                     block_bitmap_csum=0xAABBCCDD, inode_bitmap_csum=0x11223344)
    keys = [f.key for f in group_fields(geo, desc, _bitmap(8192, []), _bitmap(2048, []))]
    assert keys == [
        "num", "blocks", "group-desc-csum", "group-desc-csum-exp", "bg-opts",
        "superblock-type", "superblock-at",
        "group-descriptors-at", "reserved-gdt-blocks-at",
        "block-bitmap-at", "block-bitmap-rel-offset", "block-bitmap-csum",
        "inode-bitmap-at", "inode-bitmap-rel-offset", "inode-bitmap-csum",
        "inode-table-at", "inode-table-rel-offset",
        "free-blocks-count", "free-inodes-count", "used-dirs-count", "unused-inodes",
        "free-blocks", "free-inodes",
    ]


def test_matching_checksum_has_no_expected_field():
    geo = make_geometry(group_desc_csum=True)
    fields = field_map(group_fields(geo, make_desc(checksum=0x1234, expected_checksum=0x1234)))
    assert fields["group-desc-csum"] == 0x1234
    assert "group-desc-csum-exp" not in fields


def test_mismatched_checksum_reports_both():
    geo = make_geometry(group_desc_csum=True)
    fields = field_map(group_fields(geo, make_desc(checksum=0x1234, expected_checksum=0x5678)))
    assert fields["group-desc-csum"] == 0x1234
    assert fields["group-desc-csum-exp"] == 0x5678


def test_no_checksum_capability():
    fields = field_map(group_fields(make_geometry(), make_desc(flags=0x7)))
    assert "group-desc-csum" not in fields
    assert fields["bg-opts"] == []
    assert "block-bitmap-csum" not in fields


def test_bg_opts_with_checksums():
    geo = make_geometry(group_desc_csum=True)
    fields = field_map(group_fields(geo, make_desc(flags=0x7, checksum=1, expected_checksum=1)))
    assert fields["bg-opts"] == ["INODE_UNINIT", "BLOCK_UNINIT", "ITABLE_ZEROED"]


def test_superblock_labels():
    geo = make_geometry()
    assert field_map(group_fields(geo, make_desc(0)))["superblock-type"] == "Primary"
    assert field_map(group_fields(geo, make_desc(1)))["superblock-type"] == "Backup"
    fields = field_map(group_fields(geo, make_desc(2)))
    assert "superblock-at" not in fields
    assert "group-descriptors-at" not in fields
    assert "group-desc-at" not in fields


def test_new_style_descriptor():
    desc = make_desc(2, new_desc_blk=2 * 8192)
    fields = field_map(group_fields(make_geometry(meta_bg=True), desc))
    assert fields["group-desc-at"] == 16384
    assert "group-descriptors-at" not in fields


def test_relative_offsets_inside_group():
    geo = make_geometry()
    assert relative_offset(geo, 10, 0, 8191) == (None, 10)
    assert relative_offset(geo, 0, 0, 8191) == (None, 0)
    # inode table at the group start is not annotated
    assert relative_offset(geo, 0, 0, 8191, itable=True) is None


def test_relative_offsets_flex_bg():
    geo = make_geometry(flex_bg=True)
    desc = make_desc(3, block_bitmap=1030, inode_bitmap=1046, inode_table=1062)
    fields = field_map(group_fields(geo, desc))
    assert fields["block-bitmap-rel-offset"] == (0, 1030)
    assert fields["inode-bitmap-rel-offset"] == (0, 1046)
    assert fields["inode-table-rel-offset"] == (0, 1062)


def test_relative_offsets_outside_without_flex_bg():
    desc = make_desc(3, block_bitmap=1030)
    fields = field_map(group_fields(make_geometry(), desc))
    assert "block-bitmap-rel-offset" not in fields


def test_units_label():
    fields = field_map(group_fields(make_geometry(), make_desc()))
    assert fields["free-blocks-count"] == (100, "blocks")
    fields = field_map(group_fields(make_geometry(bigalloc=True, cluster_ratio=16), make_desc()))
    assert fields["free-blocks-count"] == (100, "clusters")


def test_free_space_sections():
    geo = make_geometry()
    fields = field_map(group_fields(geo, make_desc(), _bitmap(8192, range(100, 150)), None))
    assert fields["free-blocks"] == [Extent(100, 149)]
    assert "free-inodes" not in fields
    # fully allocated: present but empty
    fields = field_map(group_fields(geo, make_desc(), _bitmap(8192, []), _bitmap(2048, [])))
    assert fields["free-blocks"] == []
    assert fields["free-inodes"] == []


def test_inode_extents_numbering():
    geo = make_geometry()
    fields = field_map(group_fields(geo, make_desc(1), None, _bitmap(2048, [0, 1])))
    assert fields["free-inodes"] == [Extent(2049, 2050)]


def _journal(**overrides) -> JournalSuperblock:
    params = dict(
        magic=0xC03B3998, blocktype=4, blocksize=4096, maxlen=32768, first=1,
        sequence=0x10, start=0, errno=0, feature_compat=0, feature_incompat=0,
        feature_ro_compat=0, uuid=bytes(16), nr_users=1, checksum_type=0,
        checksum=0, users=[bytes(16)],
    )
    params.update(overrides)
    return JournalSuperblock(**params)


def test_journal_fields_minimal():
    fields = list(journal_fields(_journal(), 4096))
    m = field_map(fields)
    assert [f.key for f in fields] == [
        "journal-features", "journal-size", "journal-length",
        "journal-sequence", "journal-start",
    ]
    assert m["journal-features"] == []
    assert m["journal-size"] == "128M"
    assert m["journal-sequence"] == 0x10


def test_journal_fields_optional():
    jsb = _journal(blocksize=1024, maxlen=4096, first=2, nr_users=2,
                   users=[bytes(range(16)), bytes(16)], errno=-5,
                   feature_compat=0x1, feature_incompat=0x10 | 0x1,
                   checksum_type=4, checksum=0xDEADBEEF)
    m = field_map(journal_fields(jsb, 4096))
    assert m["journal-size"] == "4096k"
    assert m["journal-block-size"] == 1024
    assert m["journal-first-block"] == 2
    assert m["journal-number-of-users"] == 2
    assert m["journal-features"] == [
        "journal_checksum", "journal_incompat_revoke", "journal_checksum_v3"]
    # v2/v3 checksum type wins over the v1 compat flag
    assert m["journal-checksum-type"] == "crc32c"
    assert m["journal-checksum"] == 0xDEADBEEF
    assert len(m["journal-users"]) == 2
    assert m["journal-errno"] == -5


def test_journal_v1_checksum():
    m = field_map(journal_fields(_journal(feature_compat=0x1), 4096))
    assert m["journal-checksum-type"] == "crc32"
    assert "journal-checksum" not in m


def test_journal_unknown_feature_name():
    m = field_map(journal_fields(_journal(feature_incompat=0x80), 4096))
    assert m["journal-features"] == ["FEATURE_I7"]


def test_bad_block_fields():
    (f,) = bad_block_fields([5, 9])
    assert f.key == "bad-blocks"
    assert f.type is FieldType.NUMBERS
    assert f.value == [5, 9]


if __name__ == "__main__":
    for name, fn in list(globals().items()):
        if name.startswith("test_") and callable(fn):
            print(f"▶ {name}")
            fn()
    print("✅ All builder tests passed")
