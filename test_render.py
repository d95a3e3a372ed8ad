"""
Test number formatting and the free-space lines of the text and structured
renderers, fed straight from the builder.
"""
import io
import json

from bgdump.builder import group_fields
from bgdump.render import NumberFormat, StructuredRenderer, TextRenderer

from test_builder import _bitmap, make_desc, make_geometry


def test_decimal_numbers():
    fmt = NumberFormat()
    assert fmt.number(1030) == "1030"
    assert fmt.span(5, 5) == "5"
    assert fmt.span(5, 9) == "5-9"


def test_hex_width_follows_64bit():
    narrow = NumberFormat(hex_format=True)
    wide = NumberFormat(hex_format=True, blocks64=True)
    assert narrow.number(0x64) == "0x0064"
    assert wide.number(0x64) == "0x00000064"
    assert wide.span(0x64, 0x95) == "0x00000064-0x00000095"
    assert wide.span(0x64, 0x64) == "0x00000064"
    # wider values are never truncated
    assert narrow.number(0x12345) == "0x12345"


def _group_text(fmt: NumberFormat, free_bits) -> str:
    out = io.StringIO()
    fields = group_fields(make_geometry(), make_desc(),
                          _bitmap(8192, free_bits), _bitmap(2048, []))
    TextRenderer(out, fmt).group(fields)
    return out.getvalue()


def _group_doc(fmt: NumberFormat, free_bits) -> dict:
    out = io.StringIO()
    r = StructuredRenderer(out, fmt, io.StringIO())
    r.begin_groups()
    r.group(group_fields(make_geometry(), make_desc(),
                         _bitmap(8192, free_bits), _bitmap(2048, [])))
    r.end_groups()
    r.finish()
    return json.loads(out.getvalue())["desc"][0]


def test_single_free_block_text():
    text = _group_text(NumberFormat(), [100])
    print(text)
    assert "  Free blocks: 100\n" in text
    assert "100-100" not in text
    # fully allocated inode bitmap: label with nothing after it
    assert "  Free inodes: \n" in text


def test_mixed_free_runs_text():
    text = _group_text(NumberFormat(), [100, 200, 201, 202])
    assert "  Free blocks: 100, 200-202\n" in text


def test_single_free_block_text_hex64():
    text = _group_text(NumberFormat(hex_format=True, blocks64=True), [100])
    assert "  Free blocks: 0x00000064\n" in text


def test_single_free_block_structured():
    desc = _group_doc(NumberFormat(), [100])
    assert desc["free-blocks"] == [{"start": "100", "len": "1"}]
    assert desc["free-inodes"] == []


def test_structured_hex_lengths():
    desc = _group_doc(NumberFormat(hex_format=True), [100, 200, 201, 202])
    assert desc["free-blocks"] == [
        {"start": "0x0064", "len": "0x0001"},
        {"start": "0x00c8", "len": "0x0003"},
    ]
    desc = _group_doc(NumberFormat(hex_format=True, blocks64=True), [100])
    assert desc["free-blocks"] == [{"start": "0x00000064", "len": "0x00000001"}]


if __name__ == "__main__":
    for name, fn in list(globals().items()):
        if name.startswith("test_") and callable(fn):
            print(f"▶ {name}")
            fn()
    print("✅ All render tests passed")
