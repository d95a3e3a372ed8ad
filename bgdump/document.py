"""
Document model — a small owned tree for structured (JSON-shaped) output.

Four node kinds:

  Kind      Holds
  ───────   ─────────────────────────────────────────────
  STRING    text
  FLAG      bool
  LIST      ordered children, all of one item kind
  OBJECT    ordered key → child, keys unique

Every node has exactly one parent; releasing a node releases its subtree.
`dump()` writes the tree as

    {
      "key": "value",
      "list": [
        "a",
        "b"
      ],
      "empty": {}
    }

(one newline plus two spaces per level before each member, ", " between
members, closing delimiter on its own line unless the container is empty).
"""

import io
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TextIO, Union


class NodeKind(Enum):
    STRING = "string"
    FLAG = "flag"
    LIST = "list"
    OBJECT = "object"


class DocumentError(Exception):
    """Invalid tree operation (duplicate key, wrong item kind, wrong node kind)."""


@dataclass
class Node:
    kind: NodeKind
    value: Union[str, bool, None] = None
    item_kind: Optional[NodeKind] = None
    items: list["Node"] = field(default_factory=list)
    members: dict[str, "Node"] = field(default_factory=dict)

    # ── Object operations ──

    def _require(self, kind: NodeKind):
        if self.kind is not kind:
            raise DocumentError(f"{self.kind.value} node used as {kind.value}")

    def _put(self, key: str, node: "Node") -> "Node":
        self._require(NodeKind.OBJECT)
        if key in self.members:
            raise DocumentError(f"duplicate key {key!r}")
        self.members[key] = node
        return node

    def add_str(self, key: str, value: str) -> "Node":
        return self._put(key, Node(NodeKind.STRING, value=str(value)))

    def add_flag(self, key: str, value: bool) -> "Node":
        return self._put(key, Node(NodeKind.FLAG, value=bool(value)))

    def add_object(self, key: str) -> "Node":
        return self._put(key, new_object())

    def add_list(self, key: str, item_kind: NodeKind) -> "Node":
        return self._put(key, new_list(item_kind))

    def delete(self, key: str):
        """Remove `key` and release its subtree; missing keys are ignored."""
        self._require(NodeKind.OBJECT)
        node = self.members.pop(key, None)
        if node is not None:
            node.release()

    def get(self, key: str) -> Optional["Node"]:
        self._require(NodeKind.OBJECT)
        return self.members.get(key)

    def keys(self) -> list[str]:
        self._require(NodeKind.OBJECT)
        return list(self.members)

    # ── List operations ──

    def _append(self, node: "Node") -> "Node":
        self._require(NodeKind.LIST)
        if node.kind is not self.item_kind:
            raise DocumentError(
                f"cannot append {node.kind.value} to a list of {self.item_kind.value}")
        self.items.append(node)
        return node

    def append_str(self, value: str) -> "Node":
        return self._append(Node(NodeKind.STRING, value=str(value)))

    def append_flag(self, value: bool) -> "Node":
        return self._append(Node(NodeKind.FLAG, value=bool(value)))

    def append_object(self) -> "Node":
        return self._append(new_object())

    def append_list(self, item_kind: NodeKind) -> "Node":
        return self._append(new_list(item_kind))

    def __len__(self) -> int:
        if self.kind is NodeKind.LIST:
            return len(self.items)
        if self.kind is NodeKind.OBJECT:
            return len(self.members)
        return 0

    # ── Lifetime ──

    def release(self):
        """Drop every child, depth first."""
        for child in self.items:
            child.release()
        for child in self.members.values():
            child.release()
        self.items.clear()
        self.members.clear()
        self.value = None

    def to_python(self):
        """Plain dict/list/str/bool copy of the subtree."""
        if self.kind is NodeKind.OBJECT:
            return {k: v.to_python() for k, v in self.members.items()}
        if self.kind is NodeKind.LIST:
            return [n.to_python() for n in self.items]
        return self.value


def new_object() -> Node:
    return Node(NodeKind.OBJECT)


def new_list(item_kind: NodeKind) -> Node:
    return Node(NodeKind.LIST, item_kind=item_kind)


# ─────────────────────────────────────────────────────────────
#  Serialization
# ─────────────────────────────────────────────────────────────

def _indent(out: TextIO, level: int):
    out.write("\n" + "  " * level)


def _dump_leaf(node: Node, out: TextIO):
    if node.kind is NodeKind.FLAG:
        out.write("true" if node.value else "false")
    else:
        out.write(json.dumps(node.value, ensure_ascii=False))


def dump(node: Node, out: TextIO, level: int = 0):
    """Write `node` (any kind) at nesting `level`."""
    if node.kind is NodeKind.OBJECT:
        out.write("{")
        for n, (key, child) in enumerate(node.members.items()):
            if n:
                out.write(", ")
            _indent(out, level + 1)
            out.write(json.dumps(key, ensure_ascii=False) + ": ")
            dump(child, out, level + 1)
        if node.members:
            _indent(out, level)
        out.write("}")
    elif node.kind is NodeKind.LIST:
        out.write("[")
        for n, child in enumerate(node.items):
            if n:
                out.write(", ")
            _indent(out, level + 1)
            dump(child, out, level + 1)
        if node.items:
            _indent(out, level)
        out.write("]")
    else:
        _dump_leaf(node, out)


def dumps(node: Node) -> str:
    buf = io.StringIO()
    dump(node, buf)
    return buf.getvalue()
