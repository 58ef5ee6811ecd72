"""Tree objects: snapshotting a directory and restoring it from a commit."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Iterator

from .ignore import IGNORE_FILE, load_ignore_patterns, should_ignore
from .objects import ObjectError, hash_and_write_blob, read_object, write_object

log = logging.getLogger(__name__)

REPO_DIR = ".nutella"
FILE_MODE = "100644"
DIR_MODES = ("40000", "040000")


def write_tree(
    root: str | Path = ".", directory: str | Path = ".", ignores: Iterable[str] = ()
) -> str:
    """Store ``root/directory`` recursively as tree and blob objects; return the tree id."""
    root = Path(root)
    directory = str(directory)
    patterns = list(ignores)
    try:
        with os.scandir(root / directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise ObjectError(f"error reading directory {root / directory}: {exc}") from exc

    body = bytearray()
    for entry in entries:
        name = entry.name
        if name == REPO_DIR:
            continue
        rel_path = name if directory == "." else os.path.join(directory, name)
        if should_ignore(rel_path, patterns):
            continue
        if entry.is_dir(follow_symlinks=False):
            mode, sha = "40000", write_tree(root, rel_path, patterns)
        else:
            mode, sha = FILE_MODE, hash_and_write_blob(root, entry.path)
        body += f"{mode} ".encode() + os.fsencode(name) + b"\0" + bytes.fromhex(sha)

    return write_object(root, b"tree %d\0" % len(body) + bytes(body))


def clean_directory(root: str | Path = ".", ignores: Iterable[str] = ()) -> list[str]:
    """Remove everything in ``root`` except the repository, ignore file and ignored names."""
    root = Path(root)
    patterns = list(ignores)
    try:
        entries = sorted(root.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise ObjectError(f"error reading directory {root}: {exc}") from exc

    removed = []
    for path in entries:
        name = path.name
        if name in (REPO_DIR, IGNORE_FILE) or should_ignore(name, patterns):
            continue
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as exc:
            log.warning("error removing %s: %s", name, exc)
            continue
        removed.append(name)
    return removed


def _body(data: bytes) -> bytes:
    header, sep, body = data.partition(b"\0")
    if not sep:
        raise ObjectError("invalid object: missing null byte")
    return body


def _tree_entries(body: bytes) -> Iterator[tuple[str, str, str]]:
    """``(mode, name, sha)`` for each entry of a tree body."""
    i = 0
    while i < len(body):
        space = body.find(b" ", i)
        if space < 0:
            raise ObjectError("invalid tree entry: missing mode separator")
        nul = body.find(b"\0", space + 1)
        if nul < 0:
            raise ObjectError("invalid tree entry: missing name terminator")
        end = nul + 1 + 20
        if end > len(body):
            raise ObjectError("invalid tree entry: truncated hash")
        yield body[i:space].decode(), os.fsdecode(body[space + 1 : nul]), body[nul + 1 : end].hex()
        i = end


def restore_tree(
    root: str | Path,
    tree_sha: str,
    restore_path: str | Path = ".",
    repo_rel: str = "",
    ignores: Iterable[str] = (),
) -> None:
    """Recreate the files of ``tree_sha`` under ``root/restore_path``."""
    root = Path(root)
    patterns = list(ignores)
    target = root / restore_path

    for mode, name, sha in _tree_entries(_body(read_object(root, tree_sha))):
        rel_entry = os.path.join(repo_rel, name) if repo_rel else name
        if should_ignore(rel_entry, patterns):
            continue
        full_path = target / name
        if mode == FILE_MODE:
            content = _body(read_object(root, sha))
            try:
                target.mkdir(parents=True, exist_ok=True)
                full_path.write_bytes(content)
            except OSError as exc:
                log.warning("failed to write file %s: %s", full_path, exc)
        elif mode in DIR_MODES:
            try:
                full_path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                log.warning("failed to create directory %s: %s", full_path, exc)
                continue
            restore_tree(root, sha, Path(restore_path) / name, rel_entry, patterns)


def restore_commit(root: str | Path, commit_sha: str) -> str:
    """Replace the working files of ``root`` with the commit's tree; return the tree id."""
    root = Path(root)
    body = _body(read_object(root, commit_sha))
    first_line = body.split(b"\n", 1)[0]
    if not first_line.startswith(b"tree "):
        raise ObjectError("invalid commit object: no tree reference found")
    tree_sha = first_line[len(b"tree ") :].decode()

    try:
        ignores = load_ignore_patterns(root)
    except OSError:
        ignores = []
    clean_directory(root, ignores)
    restore_tree(root, tree_sha, ".", "", ignores)
    log.info("Restored to commit %s", commit_sha)
    return tree_sha