# nutelladb

This is a library of storage building blocks for a small key-value database:

- a B-tree whose nodes are stored one per JSON file on disk,
- an LRU cache of string values grouped by collection, which can be saved to `cache.json`,
- a zlib-compressed, SHA-1 addressed object store under `.nutella/objects`. It can store a blob as a binary delta against a similar blob. It can snapshot a directory as tree and commit objects, restore that directory, and pack loose objects into a single pack file.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

## The B-tree

```python
from nutelladb.btree import BTree
from nutelladb.deletion import delete, repair_tree

tree = BTree.create(3, "users", "users/pages")   # order must be at least 3
tree.insert("alice", "admin")
value, found = tree.find("alice")               # ("admin", True)
tree.update("alice", "owner")                   # True if the key existed
tree.upsert("bob", "guest")                     # inserts when missing; returns False then
for kv in tree.find_all():
    print(kv.key, kv.value)
delete(tree, "bob")                             # True if the key was present
tree.close()                                    # writes metadata.json

tree = BTree.load("users", "users/pages")
```

- `nutelladb.btree` holds the `KeyValue` and `Node` classes. `BTree.save_node`, `load_node`, `delete_node` and `node_exists` read and write the page files `page_<id>.json`. `BTree` can also be used as a context manager, and it saves its metadata on exit.
- `nutelladb.deletion.delete` removes a key. It borrows keys from sibling nodes or merges nodes, and it tolerates page files that are missing. `repair_tree` drops references to missing pages and rewrites every node it can reach.
- Failures raise `BTreeError`.

## The cache

```python
from nutelladb.cache import Cache, create_cache

cache = create_cache("db_dir", ["users"])   # saves db_dir/cache.json
cache.insert("users", "alice", "admin")    # evicts the least recently used entry when full
cache.find("users", "alice")                # "admin"; raises CacheError when missing
cache.update("users", "alice", "owner")     # the key must already be cached
cache.delete("users", "alice")
cache.save("db_dir")
cache = Cache.load("db_dir")
```

`Cache` also has `add_collection`, `size`, `set_max_size`, `clear`, `keys` and `collections`. Each of the functions `add_collection_to_disk`, `find_in_saved_cache`, `insert_in_saved_cache`, `update_saved_cache` and `delete_from_saved_cache` loads `cache.json` and applies one operation. All of them except the find function then save the file again.

## Objects, snapshots and packs

- `nutelladb.delta`: `compute_delta(base, target)` and `apply_delta(base, delta)` produce and apply binary deltas made of copy and insert instructions. `compute_delta_operations` returns the instructions as a list of `DeltaOperation`. Failures raise `DeltaError`.
- `nutelladb.objects`: `write_object`, `create_commit`, `read_object` and `object_path`. `hash_and_write_blob(root, filename)` stores a file as a blob. If a stored blob is similar enough and the delta is smaller than 90% of the content, it stores a delta object instead. `read_object` resolves delta objects against their base. Failures raise `ObjectError`.
- `nutelladb.similarity`: `calculate_similarity` and `find_similar_object`, which choose the base blob for a delta.
- `nutelladb.ignore`: `load_ignore_patterns(root)` reads `.nutignore`, which holds one pattern per line and skips blank lines and lines that start with `#`. `should_ignore(rel_path, patterns)` tests a path against shell-style patterns and against plain substrings.
- `nutelladb.trees`: `write_tree(root, directory, ignores)` stores a directory as tree objects and skips `.nutella` and any ignored paths. `restore_commit(root, commit_sha)` empties `root` and then writes back the commit's tree. It keeps `.nutella`, `.nutignore` and ignored names. `clean_directory` and `restore_tree` do the two steps separately.
- `nutelladb.pack`: `find_loose_objects(root)` lists the ids of loose objects. `pack_objects(root)` writes `.nutella/objects/pack/pack-<timestamp>.pack` and a matching `.idx`, and returns a `PackResult`, or `None` when there are no loose objects. The pack starts with `PACK`, the version 2 and the object count, as big-endian 32-bit numbers, and then holds each object decompressed. Each entry in the index is the 40-character id followed by a big-endian 64-bit offset.

```python
from nutelladb.ignore import load_ignore_patterns
from nutelladb.objects import create_commit
from nutelladb.trees import restore_commit, write_tree

tree_sha = write_tree("db_dir", ".", load_ignore_patterns("db_dir"))
commit_sha = create_commit("db_dir", tree_sha, "first snapshot")
restore_commit("db_dir", commit_sha)
```

## What it does not do

- It has no command-line program and no network server. You can only use it as a library.
- It has no database layer on top of the B-tree. Nothing keeps a manifest of collections, puts collections under one database directory, or keeps the cache in step with the trees. You wire a `BTree` and a `Cache` together yourself.
- It keeps no snapshot history. `create_commit` stores a commit object, but nothing records which commits exist or when they were made, so you must keep the commit ids yourself.

## Tests

```
pip install .[test]
pytest
```