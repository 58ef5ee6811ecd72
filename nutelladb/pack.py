"""Packing loose objects into a single pack file with an offset index."""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .objects import ObjectError, read_object

log = logging.getLogger(__name__)

PACK_SIGNATURE = b"PACK"
PACK_VERSION = 2
_HEADER = struct.Struct(">II")
_OFFSET = struct.Struct(">Q")


@dataclass
class PackResult:
    """Where a pack was written and which objects it holds at which offsets."""

    name: str
    pack_path: Path
    index_path: Path
    objects: list[str] = field(default_factory=list)
    offsets: list[int] = field(default_factory=list)


def _walk_files(directory: Path) -> Iterator[Path]:
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


def find_loose_objects(root: str | Path = ".") -> list[str]:
    """Ids of the loose objects stored under ``root``, in path order."""
    root = Path(root)
    objects = []
    for path in _walk_files(root / ".nutella" / "objects"):
        if "pack" in str(path.relative_to(root)):
            continue
        directory, name = path.parent.name, path.name
        if len(directory) == 2 and len(name) == 38:
            objects.append(directory + name)
    return objects


def pack_objects(root: str | Path = ".") -> PackResult | None:
    """Write all loose objects into one pack and index; None if there are none."""
    root = Path(root)
    pack_dir = root / ".nutella" / "objects" / "pack"
    try:
        pack_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ObjectError(f"error creating pack directory: {exc}") from exc

    objects = find_loose_objects(root)
    if not objects:
        return None
    log.info("Found %d objects to pack", len(objects))

    name = "pack-" + datetime.now().strftime("%Y%m%d-%H%M%S")
    result = PackResult(
        name=name,
        pack_path=pack_dir / f"{name}.pack",
        index_path=pack_dir / f"{name}.idx",
        objects=objects,
    )
    try:
        with result.pack_path.open("wb") as pack, result.index_path.open("wb") as index:
            pack.write(PACK_SIGNATURE + _HEADER.pack(PACK_VERSION, len(objects)))
            for count, obj_id in enumerate(objects):
                data = read_object(root, obj_id)
                offset = pack.tell()
                pack.write(data)
                index.write(obj_id.encode("ascii") + _OFFSET.pack(offset))
                result.offsets.append(offset)
                if count % 100 == 0:
                    log.info("Packed %d/%d objects", count, len(objects))
    except OSError as exc:
        raise ObjectError(f"error writing pack {name}: {exc}") from exc
    return result