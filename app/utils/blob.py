"""Single-value persistent blobs (the pending list, the last-check marker)."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional, Protocol


class PersistentBlob(Protocol):
    def read(self) -> Optional[str]: ...

    def write(self, value: str) -> None: ...

    def delete(self) -> None: ...


class MemoryBlob:
    """In-process blob; used by tests and by the dev server without a state dir."""

    def __init__(self, value: Optional[str] = None):
        self.value = value

    def read(self) -> Optional[str]:
        return self.value

    def write(self, value: str) -> None:
        self.value = value

    def delete(self) -> None:
        self.value = None


class FileBlob:
    """Blob stored in one UTF-8 file, replaced atomically on every write."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def write(self, value: str) -> None:
        tmp = self.path.with_suffix(self.path.suffix + f".tmp.{uuid.uuid4().hex}")
        tmp.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(self.path)

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"FileBlob({str(self.path)!r})"
