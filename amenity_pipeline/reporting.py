"""Output writing helpers."""
from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, TextIO


def _sync_parent(target: Path) -> None:
    """Flush the rename of ``target`` to disk where the platform allows it."""
    flags = getattr(os, "O_DIRECTORY", None)
    if flags is None:
        return
    try:
        fd = os.open(target.parent, flags)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


@contextmanager
def atomic_writer(path: str, encoding: str = "utf-8") -> Iterator[TextIO]:
    """Write to a sibling temp file and move it over ``path`` only on success.

    Readers see either the previous document or the complete new one. The
    parent directory is created when missing.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    )
    tmp = Path(handle.name)
    try:
        with handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    _sync_parent(target)


def write_amenities_json(path: str, records: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path) as f:
        json.dump(list(records), f, ensure_ascii=False, indent=2)


def write_json_object(path: str, payload: Mapping[str, Any]) -> None:
    with atomic_writer(path) as f:
        json.dump(dict(payload), f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")
