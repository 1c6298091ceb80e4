"""Document storage for plan and tracker state.

All state lives under one root (the state directory). Keys are
``/``-separated paths relative to that root, e.g.
``plans/plan-001-generated/TASK-TRACKER.json``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from zenflow.errors import SchemaError
from zenflow.io_utils import atomic_write_text, dump_json, read_text


class DocumentStore(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, text: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def list_dirs(self, key: str) -> list[str]: ...

    def locate(self, key: str) -> str: ...


class FileStore:
    """Filesystem-backed store. Every write is write-temp-then-rename."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*key.split("/"))

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return read_text(path)

    def write(self, key: str, text: str) -> None:
        atomic_write_text(self._path(key), text)

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def list_dirs(self, key: str) -> list[str]:
        path = self._path(key)
        if not path.is_dir():
            return []
        return sorted(p.name for p in path.iterdir() if p.is_dir())

    def locate(self, key: str) -> str:
        return str(self._path(key))


class MemoryStore:
    """Dict-backed store for tests."""

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self.documents: dict[str, str] = dict(documents or {})

    def read(self, key: str) -> str | None:
        return self.documents.get(key)

    def write(self, key: str, text: str) -> None:
        self.documents[key] = text

    def exists(self, key: str) -> bool:
        prefix = key.rstrip("/") + "/"
        return key in self.documents or any(k.startswith(prefix) for k in self.documents)

    def list_dirs(self, key: str) -> list[str]:
        prefix = key.rstrip("/") + "/"
        names = set()
        for k in self.documents:
            if k.startswith(prefix):
                rest = k[len(prefix):]
                if "/" in rest:
                    names.add(rest.split("/", 1)[0])
        return sorted(names)

    def locate(self, key: str) -> str:
        return f"memory://{key}"


def load_json(store: DocumentStore, key: str) -> Any | None:
    """Parse the JSON document at *key*; ``None`` when it does not exist."""
    text = store.read(key)
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(store.locate(key), f"invalid JSON ({exc})") from exc


def save_json(store: DocumentStore, key: str, data: Any) -> None:
    store.write(key, dump_json(data))
