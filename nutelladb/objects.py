"""Content-addressed, zlib-compressed object storage under ``.nutella/objects``."""

from __future__ import annotations

import hashlib
import logging
import zlib
from pathlib import Path

from .delta import DeltaError, apply_delta, compute_delta
from .similarity import find_similar_object

log = logging.getLogger(__name__)


class ObjectError(Exception):
    """Raised when an object cannot be written, read or decoded."""


def object_path(root: str | Path, sha: str) -> Path:
    """Where the object ``sha`` lives inside the repository at ``root``."""
    if len(sha) < 2:
        raise ObjectError(f"invalid SHA: {sha!r}")
    return Path(root) / ".nutella" / "objects" / sha[:2] / sha[2:]


def _store(root: str | Path, sha: str, store: bytes) -> None:
    path = object_path(root, sha)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(zlib.compress(store))
    except OSError as exc:
        raise ObjectError(f"error writing object {sha}: {exc}") from exc


def write_object(root: str | Path, store: bytes) -> str:
    """Store the framed object ``store`` and return its SHA-1."""
    store = bytes(store)
    sha = hashlib.sha1(store).hexdigest()
    _store(root, sha, store)
    return sha


def write_delta_object(root: str | Path, base_id: str, delta: bytes) -> str:
    """Store ``delta`` against the object ``base_id`` and return the new id."""
    delta = bytes(delta)
    header = f"delta {base_id} {len(delta)}\0".encode()
    return write_object(root, header + delta)


def hash_and_write_blob(root: str | Path, filename: str | Path) -> str:
    """Store a file as a blob, or as a delta against a similar blob when smaller."""
    try:
        content = Path(filename).read_bytes()
    except OSError as exc:
        raise ObjectError(f"error reading {filename}: {exc}") from exc

    store = b"blob %d\0" % len(content) + content
    sha = hashlib.sha1(store).hexdigest()
    if object_path(root, sha).exists():
        return sha

    match = find_similar_object(root, content)
    if match is not None:
        base_id, base_content = match
        delta = compute_delta(base_content, content)
        if len(delta) < len(content) * 9 // 10:
            try:
                return write_delta_object(root, base_id, delta)
            except ObjectError as exc:
                log.warning("failed to write delta: %s", exc)

    _store(root, sha, store)
    return sha


def create_commit(root: str | Path, tree_sha: str, message: str) -> str:
    """Store a commit pointing at ``tree_sha`` and return its id."""
    content = f"tree {tree_sha}\n\n{message}\n".encode()
    return write_object(root, b"commit %d\0" % len(content) + content)


def read_object(root: str | Path, sha: str) -> bytes:
    """The decompressed object, with delta objects resolved against their base."""
    path = object_path(root, sha)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ObjectError(f"error reading object file: {exc}") from exc
    try:
        data = zlib.decompress(raw)
    except zlib.error as exc:
        raise ObjectError(f"error decompressing object {sha}: {exc}") from exc

    if not data.startswith(b"delta "):
        return data

    header, sep, delta_data = data.partition(b"\0")
    if not sep:
        raise ObjectError("invalid delta object: missing null byte")
    parts = header.decode("utf-8", errors="replace").split()
    if len(parts) != 3:
        raise ObjectError(f"invalid delta header: {header!r}")

    base = read_object(root, parts[1])
    base_header, sep, base_content = base.partition(b"\0")
    if not sep:
        raise ObjectError("invalid base object: missing null byte")
    base_parts = base_header.split()
    if not base_parts:
        raise ObjectError(f"invalid base object header: {base_header!r}")

    try:
        result = apply_delta(base_content, delta_data)
    except DeltaError as exc:
        raise ObjectError(f"error applying delta: {exc}") from exc
    return b"%s %d\0" % (base_parts[0], len(result)) + result