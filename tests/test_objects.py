import hashlib
import zlib

import pytest

from nutelladb.delta import compute_delta
from nutelladb.objects import (
    ObjectError,
    create_commit,
    hash_and_write_blob,
    object_path,
    read_object,
    write_delta_object,
    write_object,
)


@pytest.fixture
def repo(tmp_path):
    (tmp_path / ".nutella" / "objects").mkdir(parents=True)
    return tmp_path


def test_object_path_layout(tmp_path):
    sha = "ab" + "c" * 38
    assert object_path(tmp_path, sha) == tmp_path / ".nutella" / "objects" / "ab" / ("c" * 38)


def test_object_path_rejects_short_sha(tmp_path):
    with pytest.raises(ObjectError):
        object_path(tmp_path, "a")


def test_empty_blob_has_known_hash(repo):
    assert write_object(repo, b"blob 0\0") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"


def test_write_then_read_round_trip(repo):
    store = b"blob 5\0hello"
    sha = write_object(repo, store)
    assert sha == hashlib.sha1(store).hexdigest()
    assert read_object(repo, sha) == store
    assert zlib.decompress(object_path(repo, sha).read_bytes()) == store


def test_hash_and_write_blob_known_hash(repo):
    path = repo / "hello.txt"
    path.write_bytes(b"hello world\n")
    sha = hash_and_write_blob(repo, path)
    assert sha == "3b18e512dba79e4c8300dd08aeb37f8e728b8dad"
    assert read_object(repo, sha) == b"blob 12\0hello world\n"


def test_hash_and_write_blob_is_idempotent(repo):
    path = repo / "data.txt"
    path.write_bytes(b"some content")
    first = hash_and_write_blob(repo, path)
    second = hash_and_write_blob(repo, path)
    assert first == second


def test_hash_and_write_blob_missing_file(repo):
    with pytest.raises(ObjectError):
        hash_and_write_blob(repo, repo / "absent.txt")


def test_similar_blob_is_stored_as_delta(repo):
    base_file = repo / "base.txt"
    base_file.write_bytes(b"x" * 300)
    base_sha = hash_and_write_blob(repo, base_file)

    target = b"x" * 290 + b"y" * 10
    target_file = repo / "target.txt"
    target_file.write_bytes(target)
    sha = hash_and_write_blob(repo, target_file)

    assert sha != base_sha
    raw = zlib.decompress(object_path(repo, sha).read_bytes())
    assert raw.startswith(b"delta " + base_sha.encode())
    assert read_object(repo, sha) == b"blob 300\0" + target


def test_dissimilar_blob_is_stored_in_full(repo):
    (repo / "a.txt").write_bytes(b"a" * 300)
    hash_and_write_blob(repo, repo / "a.txt")
    (repo / "b.txt").write_bytes(b"b" * 300)
    sha = hash_and_write_blob(repo, repo / "b.txt")
    raw = zlib.decompress(object_path(repo, sha).read_bytes())
    assert raw == b"blob 300\0" + b"b" * 300


def test_write_delta_object_resolves_on_read(repo):
    base = b"This is some base content that we'll modify slightly to test delta generation."
    target = b"This is some base content that we've modified slightly to test delta generation!"
    base_sha = write_object(repo, b"blob %d\0" % len(base) + base)
    delta_sha = write_delta_object(repo, base_sha, compute_delta(base, target))
    assert read_object(repo, delta_sha) == b"blob %d\0" % len(target) + target


def test_create_commit_format(repo):
    tree = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
    sha = create_commit(repo, tree, "first commit")
    content = f"tree {tree}\n\nfirst commit\n".encode()
    assert read_object(repo, sha) == b"commit %d\0" % len(content) + content


def test_read_missing_object(repo):
    with pytest.raises(ObjectError):
        read_object(repo, "0" * 40)


def test_read_corrupt_object(repo):
    path = object_path(repo, "1" * 40)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"not compressed")
    with pytest.raises(ObjectError):
        read_object(repo, "1" * 40)


def test_read_delta_with_bad_header(repo):
    sha = write_object(repo, b"delta onlyonefield\0abc")
    with pytest.raises(ObjectError):
        read_object(repo, sha)


def test_read_delta_with_wrong_base_size(repo):
    base_sha = write_object(repo, b"blob 3\0abc")
    delta = compute_delta(b"abcdef", b"abcdefgh")
    sha = write_delta_object(repo, base_sha, delta)
    with pytest.raises(ObjectError):
        read_object(repo, sha)