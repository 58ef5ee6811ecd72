"""Finding a stored blob that resembles new content, for use as a delta base."""

from __future__ import annotations

import os
import zlib
from collections import Counter
from pathlib import Path
from typing import Iterator

SAMPLE_SIZE = 100
MIN_LENGTH = 10
SIMILARITY_THRESHOLD = 0.6
_OBJECT_NAME_LENGTH = 38


def _samples(data: bytes) -> bytes:
    step = max(1, len(data) // SAMPLE_SIZE)
    return data[: min(len(data), SAMPLE_SIZE * step) : step]


def calculate_similarity(a: bytes, b: bytes) -> float:
    """Share of equal byte pairs among evenly spaced samples of ``a`` and ``b``."""
    if len(a) < MIN_LENGTH or len(b) < MIN_LENGTH:
        return 0.0
    samples_a, samples_b = _samples(bytes(a)), _samples(bytes(b))
    if not samples_a or not samples_b:
        return 0.0
    counts_a, counts_b = Counter(samples_a), Counter(samples_b)
    matches = sum(count * counts_b[byte] for byte, count in counts_a.items())
    return matches / (len(samples_a) * len(samples_b))


def _walk_files(directory: Path) -> Iterator[Path]:
    """Files below ``directory`` in lexical order, without following links."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            yield from _walk_files(Path(entry.path))
        else:
            yield Path(entry.path)


def find_similar_object(root: str | Path, content: bytes) -> tuple[str, bytes] | None:
    """The stored blob most similar to ``content`` above the threshold, if any.

    Returns ``(object_id, blob_content)`` or None.
    """
    content = bytes(content)
    objects_dir = Path(root) / ".nutella" / "objects"
    best: tuple[str, bytes] | None = None
    best_similarity = 0.0

    for path in _walk_files(objects_dir):
        if len(path.name) != _OBJECT_NAME_LENGTH:
            continue
        try:
            data = zlib.decompress(path.read_bytes())
        except (OSError, zlib.error):
            continue
        header, sep, blob = data.partition(b"\0")
        if not sep or not header.startswith(b"blob "):
            continue
        if len(blob) < len(content) // 2 or len(blob) > len(content) * 2:
            continue
        similarity = calculate_similarity(blob, content)
        if similarity > best_similarity and similarity > SIMILARITY_THRESHOLD:
            best = (path.parent.name + path.name, blob)
            best_similarity = similarity

    return best