"""Output artifacts and the publish manifest."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from tocbuild.errors import OutputError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = ".publish.json"


class Output(Protocol):
    def write_text(self, path: str, content: str) -> None: ...

    def write_json(self, path: str, content: Any) -> None: ...


class FileOutput:
    """Write artifacts under *output_dir*; paths are output-relative."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir
        self._lock = threading.Lock()
        self._written: list[str] = []

    @property
    def written(self) -> list[str]:
        with self._lock:
            return sorted(self._written)

    def _write(self, path: str, text: str) -> None:
        target = self.output_dir / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            msg = f"cannot write {target}: {exc}"
            raise OutputError(msg) from exc
        with self._lock:
            self._written.append(path)
        logger.debug("Wrote %s", target)

    def write_text(self, path: str, content: str) -> None:
        self._write(path, content)

    def write_json(self, path: str, content: Any) -> None:
        self._write(path, json.dumps(content, indent=2, ensure_ascii=False, default=str) + "\n")


@dataclass(frozen=True)
class PublishItem:
    """One manifest entry: the logical output of a source file."""

    file: str
    output_path: str
    metadata: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_path": self.file,
            "output_path": self.output_path,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
        }


class PublishManifest:
    """Thread-safe record of every file's logical output path.

    An entry exists even when the artifact was not written (errors or dry
    run), so the manifest always lists every built file.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, PublishItem] = {}

    def set_publish_item(
        self, file: str, metadata: Mapping[str, Any] | None, output_path: str
    ) -> None:
        with self._lock:
            self._items[file] = PublishItem(file=file, output_path=output_path, metadata=metadata)

    def get(self, file: str) -> PublishItem | None:
        with self._lock:
            return self._items.get(file)

    def items(self) -> list[PublishItem]:
        with self._lock:
            return [self._items[key] for key in sorted(self._items)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, file: object) -> bool:
        with self._lock:
            return file in self._items

    def to_dict(self) -> dict[str, Any]:
        return {"files": [item.to_dict() for item in self.items()]}

    def write(self, path: Path) -> None:
        """Write the manifest as JSON to *path*."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(self.to_dict(), indent=2, ensure_ascii=False, default=str) + "\n",
                encoding="utf-8",
            )
        except OSError as exc:
            msg = f"cannot write publish manifest {path}: {exc}"
            raise OutputError(msg) from exc
        logger.info("Wrote publish manifest with %d entries to %s", len(self), path)
