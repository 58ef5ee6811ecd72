"""Disk-backed B-tree whose nodes are stored as JSON page files."""

from __future__ import annotations

import bisect
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

METADATA_FILE = "metadata.json"


class BTreeError(Exception):
    """Raised when a B-tree cannot be created, read or written."""


@dataclass
class KeyValue:
    """A key with its stored value."""

    key: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyValue:
        return cls(key=data["key"], value=data.get("value"))


@dataclass
class Node:
    """One page of the tree: sorted keys and, for inner nodes, child page ids."""

    id: int
    is_leaf: bool = True
    keys: list[KeyValue] = field(default_factory=list)
    children: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "is_leaf": self.is_leaf,
            "keys": [kv.to_dict() for kv in self.keys],
            "children": list(self.children),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls(
            id=int(data["id"]),
            is_leaf=bool(data.get("is_leaf", False)),
            keys=[KeyValue.from_dict(kv) for kv in data.get("keys") or []],
            children=[int(c) for c in data.get("children") or []],
        )


@dataclass
class BTree:
    """A B-tree of minimum degree ``order`` persisted one node per file."""

    root_id: int
    order: int
    next_id: int
    db_id: str
    page_dir: Path
    _lock: threading.RLock = field(
        default_factory=threading.RLock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.page_dir = Path(self.page_dir)

    # ------------------------------------------------------------------ setup

    @classmethod
    def create(cls, order: int, collection_name: str, page_dir: str | Path) -> BTree:
        """Create a new, empty tree in ``page_dir``."""
        if order < 3:
            raise BTreeError("B-tree order must be at least 3")
        page_dir = Path(page_dir)
        try:
            page_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BTreeError(f"failed to create pages directory: {exc}") from exc

        tree = cls(root_id=1, order=order, next_id=2, db_id=collection_name, page_dir=page_dir)
        tree.save_node(Node(id=1, is_leaf=True))
        tree.save_metadata()
        return tree

    @classmethod
    def load(cls, collection_name: str, page_dir: str | Path) -> BTree:
        """Open an existing tree from the metadata stored in ``page_dir``."""
        page_dir = Path(page_dir)
        try:
            data = json.loads((page_dir / METADATA_FILE).read_text())
        except OSError as exc:
            raise BTreeError(f"failed to read metadata file: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise BTreeError(f"failed to parse metadata: {exc}") from exc
        try:
            return cls(
                root_id=int(data["root_id"]),
                order=int(data["order"]),
                next_id=int(data["next_id"]),
                db_id=collection_name,
                page_dir=page_dir,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise BTreeError(f"failed to parse metadata: {exc}") from exc

    def save_metadata(self) -> None:
        with self._lock:
            data = {
                "root_id": self.root_id,
                "order": self.order,
                "next_id": self.next_id,
                "db_id": self.db_id,
                "page_dir": str(self.page_dir),
            }
        try:
            (self.page_dir / METADATA_FILE).write_text(json.dumps(data, indent=2))
        except OSError as exc:
            raise BTreeError(f"failed to write metadata file: {exc}") from exc

    def close(self) -> None:
        self.save_metadata()

    def __enter__(self) -> BTree:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ pages

    def _node_path(self, node_id: int) -> Path:
        return self.page_dir / f"page_{node_id}.json"

    def save_node(self, node: Node) -> None:
        try:
            self._node_path(node.id).write_text(json.dumps(node.to_dict(), indent=2))
        except OSError as exc:
            raise BTreeError(f"failed to write node file: {exc}") from exc

    def load_node(self, node_id: int) -> Node:
        try:
            text = self._node_path(node_id).read_text()
        except OSError as exc:
            raise BTreeError(f"failed to read node file: {exc}") from exc
        try:
            return Node.from_dict(json.loads(text))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise BTreeError(f"failed to parse node: {exc}") from exc

    def delete_node(self, node_id: int) -> None:
        try:
            self._node_path(node_id).unlink(missing_ok=True)
        except OSError as exc:
            raise BTreeError(f"failed to delete node file: {exc}") from exc

    def node_exists(self, node_id: int) -> bool:
        return self._node_path(node_id).exists()

    # ------------------------------------------------------------- operations

    @property
    def max_keys(self) -> int:
        return 2 * self.order - 1

    def _allocate_id(self) -> int:
        with self._lock:
            node_id = self.next_id
            self.next_id += 1
            return node_id

    def _child(self, node: Node, index: int) -> Node:
        if index >= len(node.children):
            raise BTreeError(f"node {node.id} has no child at position {index}")
        return self.load_node(node.children[index])

    def insert(self, key: str, value: Any) -> None:
        """Insert ``key`` with ``value``, replacing the value if the key exists."""
        root = self.load_node(self.root_id)
        if len(root.keys) == self.max_keys:
            new_root = Node(id=self._allocate_id(), is_leaf=False, children=[root.id])
            self._split_child(new_root, 0, root)
            with self._lock:
                self.root_id = new_root.id
            self.save_node(new_root)
            self.save_metadata()
            root = new_root
        self._insert_non_full(root, key, value)

    def _split_child(self, parent: Node, index: int, child: Node) -> Node:
        t = self.order
        right = Node(id=self._allocate_id(), is_leaf=child.is_leaf, keys=child.keys[t:])
        if not child.is_leaf:
            right.children = child.children[t:]
            child.children = child.children[:t]
        middle = child.keys[t - 1]
        child.keys = child.keys[: t - 1]

        parent.children.insert(index + 1, right.id)
        parent.keys.insert(index, middle)

        self.save_node(parent)
        self.save_node(child)
        self.save_node(right)
        return right

    def _insert_non_full(self, node: Node, key: str, value: Any) -> None:
        while True:
            i = bisect.bisect_right([kv.key for kv in node.keys], key)
            if i > 0 and node.keys[i - 1].key == key:
                node.keys[i - 1].value = value
                self.save_node(node)
                return
            if node.is_leaf:
                node.keys.insert(i, KeyValue(key, value))
                self.save_node(node)
                return

            child = self._child(node, i)
            if len(child.keys) == self.max_keys:
                right = self._split_child(node, i, child)
                middle = node.keys[i]
                if key == middle.key:
                    middle.value = value
                    self.save_node(node)
                    return
                if key > middle.key:
                    child = right
            node = child

    def _locate(self, key: str) -> tuple[Node, int] | None:
        node = self.load_node(self.root_id)
        while True:
            i = bisect.bisect_left([kv.key for kv in node.keys], key)
            if i < len(node.keys) and node.keys[i].key == key:
                return node, i
            if node.is_leaf:
                return None
            node = self._child(node, i)

    def find(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, True)`` for a stored key, else ``(None, False)``."""
        found = self._locate(key)
        if found is None:
            return None, False
        node, i = found
        return node.keys[i].value, True

    def find_all(self) -> list[KeyValue]:
        """Every pair in the tree, each node's keys before its children's."""
        try:
            root = self.load_node(self.root_id)
        except BTreeError:
            return []
        return list(self._walk(root))

    def _walk(self, node: Node) -> Iterator[KeyValue]:
        yield from node.keys
        if node.is_leaf:
            return
        for child_id in node.children:
            try:
                child = self.load_node(child_id)
            except BTreeError:
                continue
            yield from self._walk(child)

    def update(self, key: str, value: Any) -> bool:
        """Replace the value of an existing key; return whether it existed."""
        found = self._locate(key)
        if found is None:
            return False
        node, i = found
        node.keys[i].value = value
        self.save_node(node)
        return True

    def upsert(self, key: str, value: Any) -> bool:
        """Update ``key`` if present, insert it otherwise; True if it was updated."""
        if self.update(key, value):
            return True
        self.insert(key, value)
        return False