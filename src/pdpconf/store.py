"""An ordered set of configuration documents with first-match resolution."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from pdpconf.document import PathDocument, SourceWriteError
from pdpconf.models import ConfigValue, Leaf, as_bool, as_int, as_str, as_str_list

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = Path("config") / "application.yml"

_SKIPPED_SCHEMES = ("classpath:", "classpath*:")
_STRIPPED_PREFIXES = ("optional:", "file:")


def discover_sources(locations: Iterable[str], base_dir: Path) -> list[Path]:
    """Resolve configuration location strings to an ordered list of source files.

    Each entry may itself be a comma-separated list.  ``classpath:`` entries
    are not file-backed and are skipped; ``optional:`` and ``file:`` prefixes
    are stripped; relative paths are resolved against *base_dir*.

    Args:
        locations: Location strings in priority order, primary first.
        base_dir:  Directory that relative locations are resolved against.

    Returns:
        De-duplicated source paths.  When no file-backed location remains,
        ``base_dir/config/application.yml``.
    """
    sources: list[Path] = []
    for entry in locations:
        for raw in entry.split(","):
            location = raw.strip()
            if not location or location.startswith(_SKIPPED_SCHEMES):
                continue
            for prefix in _STRIPPED_PREFIXES:
                if location.startswith(prefix):
                    location = location[len(prefix) :]
            path = Path(location).expanduser()
            if not path.is_absolute():
                path = base_dir / path
            if path not in sources:
                sources.append(path)

    if not sources:
        sources.append(base_dir / DEFAULT_SOURCE)
    return sources


class ConfigDocumentSet:
    """Resolve paths across several documents; the first one is primary.

    Reads return the value from the first document that defines a path.
    Writes update that same document, or the primary one for new paths.
    """

    def __init__(self, sources: Sequence[Path]) -> None:
        if not sources:
            raise ValueError("At least one configuration source is required")
        self.documents: list[PathDocument] = []
        for source in sources:
            document = PathDocument(source)
            document.load()
            self.documents.append(document)

    @property
    def primary(self) -> PathDocument:
        return self.documents[0]

    def exists_at(self, path: str) -> bool:
        return any(document.exists_at(path) for document in self.documents)

    def get_at(self, path: str, default: ConfigValue | None = None) -> ConfigValue | None:
        for document in self.documents:
            if document.exists_at(path):
                value = document.get_at(path)
                return default if value is None else value
        return default

    def set_at(self, path: str, value: Leaf) -> None:
        for document in self.documents:
            if document.exists_at(path):
                document.set_at(path, value)
                return
        self.primary.set_at(path, value)

    def get_str(self, path: str, default: str = "") -> str:
        return as_str(self.get_at(path), default)

    def get_bool(self, path: str, default: bool = False) -> bool:
        return as_bool(self.get_at(path), default)

    def get_int(self, path: str, default: int = 0) -> int:
        return as_int(self.get_at(path), default)

    def get_str_list(self, path: str, default: list[str] | None = None) -> list[str]:
        return as_str_list(self.get_at(path), default)

    @property
    def dirty(self) -> bool:
        return any(document.dirty for document in self.documents)

    def persist_all(self) -> tuple[list[Path], list[tuple[Path, str]]]:
        """Persist every dirty document.

        A failing source does not stop the remaining ones from being written.

        Returns:
            A tuple ``(written, failed)`` where *written* lists the sources
            that were rewritten and *failed* holds ``(source, error_msg)``
            pairs for sources that could not be written.
        """
        written: list[Path] = []
        failed: list[tuple[Path, str]] = []
        for document in self.documents:
            try:
                if document.persist():
                    written.append(document.source)
            except SourceWriteError as exc:
                logger.error("%s", exc)
                failed.append((document.source, str(exc)))
        return written, failed
