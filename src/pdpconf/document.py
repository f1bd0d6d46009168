"""A single YAML configuration document addressed by slash-delimited paths."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from pdpconf.models import ConfigValue, Leaf

logger = logging.getLogger(__name__)


class SourceParseError(Exception):
    """Raised when a configuration source does not hold a YAML mapping."""


class SourceWriteError(Exception):
    """Raised when a configuration document cannot be written back to its source."""

    def __init__(self, source: Path, message: str) -> None:
        super().__init__(f"Failed to write {source}: {message}")
        self.source = source


def _segments(path: str) -> list[str]:
    return path.split("/")


def _replace_atomically(source: Path, text: str) -> None:
    """Write *text* to a sibling temp file, then move it over *source*.

    The existing file keeps its content and permissions if anything fails.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{source.name}.", dir=source.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.chmod(tmp_name, stat.S_IMODE(source.stat().st_mode))
        os.replace(tmp_name, source)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_mapping(source: Path) -> dict[str, Any]:
    """Parse *source* as YAML and return its root mapping.

    Raises:
        SourceParseError: When the content is not valid YAML or its root
            is not a mapping.
    """
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8"))
    except UnicodeDecodeError as exc:
        raise SourceParseError(f"not UTF-8 encoded: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SourceParseError(str(exc)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SourceParseError(f"root is a {type(data).__name__}, not a mapping")
    return data


class PathDocument:
    """In-memory tree loaded from, and persisted back to, one YAML source.

    Values are addressed with paths such as ``server/ssl/enabled``.  Walking a
    path stops at the first leaf, so trailing segments below a leaf are
    ignored by :meth:`get_at` and :meth:`exists_at`.
    """

    def __init__(self, source: Path) -> None:
        self.source = Path(source)
        self.data: dict[str, ConfigValue] = {}
        self.dirty = False

    def load(self) -> None:
        """Read the source; fall back to an empty document on any problem."""
        self.dirty = False
        if not self.source.exists():
            logger.info("%s does not exist, it will be created on save", self.source)
            self.data = {}
            return
        try:
            self.data = _read_mapping(self.source)
        except SourceParseError as exc:
            logger.warning(
                "%s is not a valid YAML document (%s), starting from an empty one",
                self.source,
                exc,
            )
            self.data = {}
        except OSError as exc:
            logger.warning("Could not read %s (%s), starting from an empty one", self.source, exc)
            self.data = {}

    def get_at(self, path: str) -> ConfigValue | None:
        current: dict[str, ConfigValue] = self.data
        for key in _segments(path):
            if key not in current:
                return None
            value = current[key]
            if not isinstance(value, dict):
                return value
            current = value
        return None

    def exists_at(self, path: str) -> bool:
        current: dict[str, ConfigValue] = self.data
        for key in _segments(path):
            if key not in current:
                return False
            value = current[key]
            if not isinstance(value, dict):
                return True
            current = value
        return False

    def set_at(self, path: str, value: Leaf) -> None:
        """Set the leaf at *path*, creating intermediate mappings as needed.

        The document only becomes dirty when the stored value actually changes.

        Raises:
            ValueError: If *value* is a mapping, if the terminal segment holds a
                nested mapping, or if an intermediate segment holds a leaf.
        """
        if isinstance(value, dict):
            raise ValueError(f"Cannot store a mapping at {path!r}; values must be leaves")

        segments = _segments(path)
        current: dict[str, ConfigValue] = self.data
        for i, key in enumerate(segments[:-1]):
            child = current.setdefault(key, {})
            if not isinstance(child, dict):
                prefix = "/".join(segments[: i + 1])
                raise ValueError(f"Cannot descend into {prefix!r}: it holds a value")
            current = child

        last = segments[-1]
        if isinstance(current.get(last), dict):
            raise ValueError(f"Cannot overwrite the section at {path!r} with a value")

        existing = self.get_at(path)
        # True == 1 in Python, but a YAML boolean and a number are different leaves
        if existing is None or type(existing) is not type(value) or existing != value:
            self.dirty = True
        current[last] = value

    def leaves(self) -> Iterator[tuple[str, Leaf]]:
        """Yield ``(path, value)`` for every leaf, depth first."""
        yield from _walk(self.data, "")

    def persist(self) -> bool:
        """Write the whole document back to its source if it changed.

        Returns:
            ``True`` when the source was written, ``False`` when the document
            was clean and nothing happened.

        Raises:
            SourceWriteError: When the directory or file cannot be created or
                written.  The document stays dirty so a retry writes again.
        """
        if not self.dirty:
            return False

        parent = self.source.parent
        try:
            if not parent.exists():
                parent.mkdir(parents=True)
                logger.info("Created directory %s", parent)
            if not self.source.exists():
                self.source.touch()
                logger.info("Created file %s", self.source)
            text = yaml.safe_dump(self.data, sort_keys=False, default_flow_style=False)
            _replace_atomically(self.source, text)
        except (OSError, yaml.YAMLError) as exc:
            raise SourceWriteError(self.source, str(exc)) from exc

        self.dirty = False
        logger.debug("Wrote %s", self.source)
        return True

    def __repr__(self) -> str:
        return f"PathDocument({str(self.source)!r}, dirty={self.dirty})"


def _walk(node: dict[str, ConfigValue], prefix: str) -> Iterator[tuple[str, Leaf]]:
    for key, value in node.items():
        path = f"{prefix}/{key}" if prefix else str(key)
        if isinstance(value, dict):
            yield from _walk(value, path)
        else:
            yield path, value
