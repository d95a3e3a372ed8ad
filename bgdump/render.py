"""
Renderers — consumers of the builder's Field streams.

  Renderer              Mode   Output
  ───────────────────   ────   ──────────────────────────────────────────
  TextRenderer          text   dumpe2fs-style report, streamed as it goes
  GroupTableRenderer    -g     one colon-separated line per group
  StructuredRenderer    -j     Document tree, serialized once at finish()

All three share one interface, driven by report.run_report():

    r.section(name, fields)   # "super", "journal", "bad-blocks"
    r.begin_groups()
    r.group(fields)           # once per group, ascending
    r.end_groups()
    r.note(text)              # banners and diagnostics
    r.finish()

Numeric display (hex vs decimal, 32 vs 64 bit width) comes from the
NumberFormat each renderer is built with.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Iterable, Optional, TextIO

from .builder import Field, FieldType
from .document import Node, NodeKind, dump, new_object

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NumberFormat:
    """Display mode for block addresses."""
    hex_format: bool = False
    blocks64: bool = False

    def number(self, n: int) -> str:
        if self.hex_format:
            return f"0x{n:08x}" if self.blocks64 else f"0x{n:04x}"
        return str(n)

    def span(self, a: int, b: int) -> str:
        if a == b:
            return self.number(a)
        return f"{self.number(a)}-{self.number(b)}"


def _relative_text(value) -> str:
    bg, offset = value
    if bg is None:
        return f" (+{offset})"
    return f" (bg #{bg} + {offset})"


# ─────────────────────────────────────────────────────────────
#  Text
# ─────────────────────────────────────────────────────────────

_LABEL_WIDTH = 26

_LABELS = {
    "filesystem-uuid": "Filesystem UUID",
    "filesystem-revision": "Filesystem revision #",
    "filesystem-os-type": "Filesystem OS type",
    "reserved-gdt-blocks": "Reserved GDT blocks",
    "journal-uuid": "Journal UUID",
}


def label_for(key: str) -> str:
    return _LABELS.get(key) or key.replace("-", " ").capitalize()


class TextRenderer:
    """Plain-text report written straight to `out`."""

    def __init__(self, out: TextIO, fmt: NumberFormat, ignore_80col: bool = False):
        self.out = out
        self.fmt = fmt
        self.ignore_80col = ignore_80col

    def value(self, f: Field) -> str:
        t, v = f.type, f.value
        if t is FieldType.NUMBER:
            return self.fmt.number(v)
        if t is FieldType.RANGE:
            return self.fmt.span(*v)
        if t is FieldType.CSUM16:
            return f"0x{v:04x}"
        if t is FieldType.CSUM32:
            return f"0x{v:08x}"
        if t is FieldType.RELATIVE:
            return _relative_text(v)
        if t is FieldType.QUANTITY:
            return f"{v[0]} {v[1]}"
        if t is FieldType.EXTENTS:
            return ", ".join(self.fmt.span(e.start, e.end) for e in v)
        if t is FieldType.NAMES:
            return "".join(f" {name}" for name in v) if v else " (none)"
        if t is FieldType.NUMBERS:
            return ", ".join(str(n) for n in v)
        return str(v)

    # ── Sections ──

    def section(self, name: str, fields: Iterable[Field]):
        w = self.out.write
        if name == "bad-blocks":
            for f in fields:
                if f.value:
                    w("Bad blocks: " + self.value(f))
            w("\n")
            return

        for f in fields:
            label = f"{label_for(f.key)}:"
            if f.key == "journal-users":
                for n, user in enumerate(f.value):
                    w(f"{label if n == 0 else '':<{_LABEL_WIDTH}}{user}\n")
            elif f.type is FieldType.NAMES:
                w(f"{label:<{_LABEL_WIDTH - 1}}{self.value(f)}\n")
            else:
                w(f"{label:<{_LABEL_WIDTH}}{self.value(f)}\n")

    # ── Groups ──

    def begin_groups(self):
        self.out.write("\n")

    def group(self, fields: Iterable[Field]):
        d = {f.key: f for f in fields}
        w = self.out.write
        num = self.fmt

        w(f"Group {d['num'].value}: (Blocks {self.value(d['blocks'])})")
        if "group-desc-csum" in d:
            w(f" csum {self.value(d['group-desc-csum'])}")
            if "group-desc-csum-exp" in d:
                w(f" (EXPECTED {self.value(d['group-desc-csum-exp'])})")
        opts = d["bg-opts"].value
        if opts:
            w(" [" + ", ".join(opts) + "]")
        w("\n")

        has_super = "superblock-at" in d
        if has_super:
            w(f"  {d['superblock-type'].value} superblock at "
              f"{num.number(d['superblock-at'].value)}")
        if "group-descriptors-at" in d:
            w(", Group descriptors at " + self.value(d["group-descriptors-at"]))
            if "reserved-gdt-blocks-at" in d:
                w("\n  Reserved GDT blocks at " + self.value(d["reserved-gdt-blocks-at"]))
        elif "group-desc-at" in d:
            w(("," if has_super else " ") + " Group descriptor at "
              + num.number(d["group-desc-at"].value))
            has_super = True
        if has_super:
            w("\n")

        w("  Block bitmap at " + num.number(d["block-bitmap-at"].value))
        if "block-bitmap-rel-offset" in d:
            w(self.value(d["block-bitmap-rel-offset"]))
        if "block-bitmap-csum" in d:
            w(", csum " + self.value(d["block-bitmap-csum"]))
        w("," if self.ignore_80col else "\n ")
        w(" Inode bitmap at " + num.number(d["inode-bitmap-at"].value))
        if "inode-bitmap-rel-offset" in d:
            w(self.value(d["inode-bitmap-rel-offset"]))
        if "inode-bitmap-csum" in d:
            w(", csum " + self.value(d["inode-bitmap-csum"]))

        w("\n  Inode table at " + self.value(d["inode-table-at"]))
        if "inode-table-rel-offset" in d:
            w(self.value(d["inode-table-rel-offset"]))

        free_blocks, units = d["free-blocks-count"].value
        w(f"\n  {free_blocks} free {units}, {d['free-inodes-count'].value} free inodes, "
          f"{d['used-dirs-count'].value} directories")
        unused = d["unused-inodes"].value
        if unused:
            w(f", {unused} unused inodes")
        w("\n")

        if "free-blocks" in d:
            w("  Free blocks: " + self.value(d["free-blocks"]) + "\n")
        if "free-inodes" in d:
            w("  Free inodes: " + self.value(d["free-inodes"]) + "\n")

    def end_groups(self):
        pass

    def note(self, text: str):
        self.out.write(text)

    def finish(self):
        self.out.flush()


class GroupTableRenderer(TextRenderer):
    """`-g` output: group:block:super:gdt:bbitmap:ibitmap:itable."""

    def section(self, name: str, fields: Iterable[Field]):
        pass

    def begin_groups(self):
        self.out.write("\n")
        self.out.write("group:block:super:gdt:bbitmap:ibitmap:itable\n")

    def group(self, fields: Iterable[Field]):
        d = {f.key: f for f in fields}
        parts = [str(d["num"].value), str(d["blocks"].value[0])]
        parts.append(str(d["superblock-at"].value) if "superblock-at" in d else "-1")
        if "group-descriptors-at" in d:
            parts.append(self.value(d["group-descriptors-at"]))
        elif "group-desc-at" in d:
            parts.append(str(d["group-desc-at"].value))
        else:
            parts.append("-1")
        parts.append(str(d["block-bitmap-at"].value))
        parts.append(str(d["inode-bitmap-at"].value))
        parts.append(str(d["inode-table-at"].value[0]))
        self.out.write(":".join(parts) + "\n")


# ─────────────────────────────────────────────────────────────
#  Structured
# ─────────────────────────────────────────────────────────────

class StructuredRenderer:
    """
    Builds one Document for the whole run and writes it at finish().

    Notes (banners, diagnostics) go to `err` so `out` holds nothing but
    the document.
    """

    def __init__(self, out: TextIO, fmt: NumberFormat, err: Optional[TextIO] = None):
        self.out = out
        self.err = err if err is not None else sys.stderr
        self.fmt = fmt
        self.root: Node = new_object()
        self._desc: Optional[Node] = None

    def _range(self, obj: Node, key: Optional[str], a: int, b: int):
        sub = obj.add_object(key) if key is not None else obj.append_object()
        sub.add_str("start", self.fmt.number(a))
        sub.add_str("len", self.fmt.number(b - a + 1))

    def add_field(self, obj: Node, f: Field):
        t, v, key = f.type, f.value, f.key
        if t is FieldType.NUMBER:
            obj.add_str(key, self.fmt.number(v))
        elif t is FieldType.RANGE:
            self._range(obj, key, *v)
        elif t is FieldType.CSUM16:
            obj.add_str(key, f"0x{v:04x}")
        elif t is FieldType.CSUM32:
            obj.add_str(key, f"0x{v:08x}")
        elif t is FieldType.RELATIVE:
            bg, offset = v
            sub = obj.add_object(key)
            if bg is not None:
                sub.add_str("bg", str(bg))
            sub.add_str("offset", str(offset))
        elif t is FieldType.QUANTITY:
            obj.add_str(key, f"{v[0]} {v[1]}")
        elif t is FieldType.EXTENTS:
            lst = obj.add_list(key, NodeKind.OBJECT)
            for e in v:
                self._range(lst, None, e.start, e.end)
        elif t in (FieldType.NAMES, FieldType.NUMBERS):
            lst = obj.add_list(key, NodeKind.STRING)
            for item in v:
                lst.append_str(str(item))
        else:
            obj.add_str(key, str(v))

    def section(self, name: str, fields: Iterable[Field]):
        if name == "bad-blocks":
            for f in fields:
                self.add_field(self.root, f)
            return
        obj = self.root.add_object(name)
        for f in fields:
            self.add_field(obj, f)

    def begin_groups(self):
        self._desc = self.root.add_list("desc", NodeKind.OBJECT)

    def group(self, fields: Iterable[Field]):
        obj = self._desc.append_object()
        for f in fields:
            self.add_field(obj, f)

    def end_groups(self):
        logger.debug("Document holds %d groups", len(self._desc) if self._desc else 0)

    def note(self, text: str):
        self.err.write(text)

    def finish(self):
        dump(self.root, self.out)
        self.out.write("\n")
        self.out.flush()
        self.root.release()
