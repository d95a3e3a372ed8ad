# bgdump — Block group layout reporter for ext2/3/4 volumes.
# Reads the control structures of a volume and lists them per group.
#
# Architecture (bottom → top):
#   extents    — Allocation bitmap → free extent runs
#   ondisk     — Superblock / group descriptor / inode / journal decoding
#   checksum   — crc16 + crc32c helpers for descriptor and bitmap checksums
#   image      — pytsk3 image access (raw devices, disk images, offsets)
#   volume     — Volume accessor: geometry, placement, bitmaps, journal
#   builder    — Per-section field emitters shared by every renderer
#   document   — Hierarchical document tree + JSON-shaped serializer
#   render     — Text, group-table and structured renderers
#   report     — Driver: sequences header, journal, bad blocks, groups

APP_VERSION = "1.2.0"
