"""Key deletion and structural repair for the disk-backed B-tree."""

from __future__ import annotations

import bisect
import logging

from .btree import BTree, BTreeError, KeyValue, Node

log = logging.getLogger(__name__)


def _key_list(node: Node) -> list[str]:
    return [kv.key for kv in node.keys]


def _drop_key_and_child(node: Node, index: int) -> None:
    del node.keys[index]
    if index < len(node.children):
        del node.children[index]


def _load_if_present(tree: BTree, node_id: int) -> Node | None:
    """Load a node, or return None (with a warning) when its page is gone."""
    if not tree.node_exists(node_id):
        log.warning("Node %d doesn't exist, ignoring", node_id)
        return None
    return tree.load_node(node_id)


def delete(tree: BTree, key: str) -> bool:
    """Remove ``key`` from ``tree``; return whether it was present."""
    if not tree.node_exists(tree.root_id):
        return False
    root = tree.load_node(tree.root_id)

    deleted = _delete_from_node(tree, root, key)

    if not root.keys and not root.is_leaf and root.children:
        old_root_id = tree.root_id
        tree.root_id = root.children[0]
        tree.delete_node(old_root_id)
        tree.save_metadata()

    return deleted


def _ensure_then_reload(tree: BTree, node: Node, index: int, key: str) -> Node | None:
    """Give child ``index`` enough keys, then return the child that now covers ``key``."""
    try:
        _ensure_min_keys(tree, node, index)
    except BTreeError as exc:
        log.warning("Failed to ensure minimum keys: %s", exc)
    position = bisect.bisect_left(_key_list(node), key)
    if position >= len(node.children):
        return None
    return _load_if_present(tree, node.children[position])


def _delete_from_node(tree: BTree, node: Node | None, key: str) -> bool:
    if node is None:
        return False

    i = bisect.bisect_left(_key_list(node), key)

    if i < len(node.keys) and node.keys[i].key == key:
        if node.is_leaf:
            del node.keys[i]
            tree.save_node(node)
            return True

        if i >= len(node.children) or not tree.node_exists(node.children[i]):
            _drop_key_and_child(node, i)
            tree.save_node(node)
            return True

        try:
            pred = _predecessor(tree, node, i)
        except BTreeError:
            _drop_key_and_child(node, i)
            tree.save_node(node)
            return True

        node.keys[i] = pred

        child = _load_if_present(tree, node.children[i])
        if child is None:
            _drop_key_and_child(node, i)
            tree.save_node(node)
            return True

        if len(child.keys) < tree.order:
            child = _ensure_then_reload(tree, node, i, pred.key)
            if child is None:
                tree.save_node(node)
                return True

        _delete_from_node(tree, child, pred.key)
        tree.save_node(node)
        return True

    if node.is_leaf or i >= len(node.children):
        return False

    if not tree.node_exists(node.children[i]):
        del node.children[i]
        if len(node.children) <= i and i > 0 and len(node.keys) >= i:
            node.keys = node.keys[: i - 1]
        tree.save_node(node)
        return False

    child = _load_if_present(tree, node.children[i])
    if child is None:
        del node.children[i]
        if len(node.keys) > i:
            del node.keys[i]
        tree.save_node(node)
        return False

    if len(child.keys) < tree.order:
        child = _ensure_then_reload(tree, node, i, key)
        if child is None:
            tree.save_node(node)
            return False

    deleted = _delete_from_node(tree, child, key)
    if deleted:
        tree.save_node(node)
    return deleted


def _predecessor(tree: BTree, node: Node, index: int) -> KeyValue:
    """The largest key in the subtree left of ``node.keys[index]``."""
    if index < 0 or index >= len(node.children):
        raise BTreeError("invalid index for predecessor")

    child_id = node.children[index]
    if not tree.node_exists(child_id):
        raise BTreeError("child node doesn't exist")
    child = tree.load_node(child_id)

    while not child.is_leaf:
        if not child.children:
            child.is_leaf = True
            try:
                tree.save_node(child)
            except BTreeError as exc:
                log.warning("Failed to save fixed node: %s", exc)
            break

        child_id = child.children[-1]
        if not tree.node_exists(child_id):
            if child.keys:
                return child.keys[-1]
            raise BTreeError("cannot find predecessor")
        child = tree.load_node(child_id)

    if not child.keys:
        raise BTreeError("leaf node has no keys")
    return child.keys[-1]


def _ensure_min_keys(tree: BTree, node: Node, index: int) -> None:
    """Make child ``index`` hold at least ``order`` keys by borrowing or merging."""
    if index < 0 or index >= len(node.children):
        raise BTreeError("invalid index for ensure_min_keys")

    children = node.children
    if not tree.node_exists(children[index]):
        del children[index]
        if len(node.keys) > index:
            del node.keys[index]
        tree.save_node(node)
        return

    child = tree.load_node(children[index])
    if len(child.keys) >= tree.order:
        return

    if index > 0:
        if not tree.node_exists(children[index - 1]):
            del children[index - 1]
            if len(node.keys) > index - 1:
                del node.keys[index - 1]
            tree.save_node(node)
            return

        left = tree.load_node(children[index - 1])
        if len(left.keys) >= tree.order:
            child.keys.insert(0, node.keys[index - 1])
            if left.keys:
                node.keys[index - 1] = left.keys.pop()
            if not child.is_leaf and left.children:
                child.children.insert(0, left.children.pop())
            tree.save_node(node)
            tree.save_node(child)
            tree.save_node(left)
            return

    if index < len(children) - 1:
        if not tree.node_exists(children[index + 1]):
            del children[index + 1]
            if len(node.keys) > index:
                del node.keys[index]
            tree.save_node(node)
            return

        right = tree.load_node(children[index + 1])
        if len(right.keys) >= tree.order:
            child.keys.append(node.keys[index])
            if right.keys:
                node.keys[index] = right.keys.pop(0)
            if not child.is_leaf and right.children:
                child.children.append(right.children.pop(0))
            tree.save_node(node)
            tree.save_node(child)
            tree.save_node(right)
            return

    if index > 0:
        if not tree.node_exists(children[index - 1]):
            if index < len(children) - 1 and tree.node_exists(children[index + 1]):
                right = tree.load_node(children[index + 1])
                _merge_nodes(tree, node, index, child, right)
                return
            del children[index - 1]
            if len(node.keys) > index - 1:
                del node.keys[index - 1]
            tree.save_node(node)
            return

        left = tree.load_node(children[index - 1])
        _merge_nodes(tree, node, index - 1, left, child)
        return

    if index >= len(children) - 1 or not tree.node_exists(children[index + 1]):
        del children[index]
        if len(node.keys) > index:
            del node.keys[index]
        tree.save_node(node)
        return

    right = tree.load_node(children[index + 1])
    _merge_nodes(tree, node, index, child, right)


def _merge_nodes(tree: BTree, parent: Node, index: int, left: Node, right: Node) -> None:
    """Fold ``parent.keys[index]`` and ``right`` into ``left`` and drop ``right``."""
    if index < 0 or index >= len(parent.keys):
        raise BTreeError("invalid index for merge")

    left.keys.append(parent.keys.pop(index))
    left.keys.extend(right.keys)
    if not left.is_leaf and right.children:
        left.children.extend(right.children)

    right_index = index + 1
    if right_index < len(parent.children):
        del parent.children[right_index]

    tree.save_node(parent)
    tree.save_node(left)
    tree.delete_node(right.id)


def repair_tree(tree: BTree) -> None:
    """Drop references to missing pages and rewrite every reachable node."""
    if not tree.node_exists(tree.root_id):
        tree.save_node(Node(id=tree.root_id, is_leaf=True))
        return
    _repair_node(tree, tree.load_node(tree.root_id))


def _repair_node(tree: BTree, node: Node) -> None:
    if not node.is_leaf:
        valid_children: list[int] = []
        valid_keys: list[KeyValue] = []
        key_index = 0

        for position, child_id in enumerate(node.children):
            if not tree.node_exists(child_id):
                continue
            valid_children.append(child_id)
            if position > 0 and key_index < len(node.keys):
                valid_keys.append(node.keys[key_index])
                key_index += 1
            try:
                child = tree.load_node(child_id)
            except BTreeError:
                continue
            try:
                _repair_node(tree, child)
            except BTreeError as exc:
                log.warning("Failed to repair child %d: %s", child_id, exc)

        node.children = valid_children
        node.keys = valid_keys[: len(valid_children) - 1] if valid_children else []
        if not node.children:
            node.is_leaf = True

    tree.save_node(node)