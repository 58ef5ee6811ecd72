import random

import pytest

from nutelladb.btree import BTree
from nutelladb.deletion import delete, repair_tree


@pytest.fixture
def tree(tmp_path):
    return BTree.create(3, "coll", tmp_path / "pages")


def _keys(tree):
    return sorted(kv.key for kv in tree.find_all())


def test_delete_from_leaf_root(tree):
    for k in ("a", "b", "c"):
        tree.insert(k, k.upper())
    assert delete(tree, "b") is True
    assert tree.find("b") == (None, False)
    assert _keys(tree) == ["a", "c"]
    assert tree.find("a") == ("A", True)


def test_delete_missing_key_returns_false(tree):
    tree.insert("a", "1")
    assert delete(tree, "zz") is False
    assert _keys(tree) == ["a"]


def test_delete_on_empty_tree(tree):
    assert delete(tree, "a") is False
    assert tree.find_all() == []


def test_delete_when_root_page_missing(tree):
    tree.delete_node(tree.root_id)
    assert delete(tree, "a") is False


@pytest.mark.parametrize("order", [3, 4, 5])
@pytest.mark.parametrize("seed", [1, 2, 3])
def test_delete_half_keeps_rest(tmp_path, order, seed):
    tree = BTree.create(order, "coll", tmp_path / "pages")
    keys = [f"key_{n:03d}" for n in range(60)]
    rng = random.Random(seed)
    rng.shuffle(keys)
    for k in keys:
        tree.insert(k, f"v{k}")

    removed = keys[::2]
    kept = keys[1::2]
    for k in removed:
        assert delete(tree, k) is True

    for k in removed:
        assert tree.find(k) == (None, False)
    for k in kept:
        assert tree.find(k) == (f"v{k}", True)
    remaining = [kv.key for kv in tree.find_all()]
    assert sorted(remaining) == sorted(kept)
    assert len(remaining) == len(kept)


def test_delete_everything_then_reinsert(tmp_path):
    tree = BTree.create(3, "coll", tmp_path / "pages")
    keys = [f"k{n:02d}" for n in range(40)]
    for k in keys:
        tree.insert(k, k)
    rng = random.Random(7)
    order = keys[:]
    rng.shuffle(order)
    for k in order:
        assert delete(tree, k) is True
    assert tree.find_all() == []
    assert delete(tree, keys[0]) is False

    tree.insert("again", "yes")
    assert tree.find("again") == ("yes", True)


def test_root_collapse_is_persisted(tmp_path):
    page_dir = tmp_path / "pages"
    tree = BTree.create(3, "coll", page_dir)
    keys = [f"k{n}" for n in range(6)]
    for k in keys:
        tree.insert(k, k)
    old_root = tree.root_id
    assert not tree.load_node(old_root).is_leaf

    for k in keys[:4]:
        delete(tree, k)

    assert tree.root_id != old_root
    assert not tree.node_exists(old_root)
    reloaded = BTree.load("coll", page_dir)
    assert reloaded.root_id == tree.root_id
    assert _keys(reloaded) == keys[4:]


def test_repair_drops_missing_child(tree):
    keys = [f"k{n}" for n in range(6)]
    for k in keys:
        tree.insert(k, k)
    root = tree.load_node(tree.root_id)
    left_id, right_id = root.children
    left_keys = sorted(kv.key for kv in tree.load_node(left_id).keys)
    tree.delete_node(right_id)

    repair_tree(tree)

    repaired = tree.load_node(tree.root_id)
    assert repaired.children == [left_id]
    assert repaired.keys == []
    assert _keys(tree) == left_keys


def test_repair_recreates_missing_root(tree):
    tree.insert("a", "1")
    tree.delete_node(tree.root_id)
    repair_tree(tree)
    root = tree.load_node(tree.root_id)
    assert root.is_leaf is True
    assert root.keys == []


def test_repair_leaves_healthy_tree_intact(tree):
    keys = [f"k{n:02d}" for n in range(20)]
    for k in keys:
        tree.insert(k, k)
    repair_tree(tree)
    assert _keys(tree) == keys
    for k in keys:
        assert tree.find(k) == (k, True)