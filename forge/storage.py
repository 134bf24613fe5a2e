"""TOML-backed persistence layer driven by ``forge/storage.toml``.

This module centralises all disk I/O behind :class:`DataStore`.  Collections
are looked up from ``storage.toml`` which specifies their relative path and,
for single-document collections, the table holding the entries.  Keyed
collections store one TOML file per record so concurrent writers touching
different entities never rewrite each other's files.

Game operations go through :meth:`DataStore.transaction`, which serialises
access on the store's lock, reads fresh records, stages writes and commits
them only when the block finishes without raising.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import tempfile
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, MutableMapping, Optional
from urllib.parse import quote, unquote

import tomllib

log = logging.getLogger(__name__)


def _is_site_packages(path: Path) -> bool:
    """Return ``True`` if ``path`` is inside a site/dist-packages directory."""

    normalized = {part.lower() for part in path.parts}
    return "site-packages" in normalized or "dist-packages" in normalized


def resolve_storage_root(package_root: Path) -> Path:
    """Determine where mutable data should be stored.

    Data lives alongside the source tree when the project runs from a
    checkout.  When the package is installed into site-packages, or the
    checkout is read-only, the current working directory is used instead.
    ``FORGE_DATA_ROOT`` (or ``FORGE_STORAGE_ROOT``) overrides both.
    """

    override = os.getenv("FORGE_DATA_ROOT") or os.getenv("FORGE_STORAGE_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()

    return package_root


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def _normalize_for_toml(value: Any) -> Any:
    if isinstance(value, MappingProxyType):
        value = dict(value)
    if isinstance(value, Mapping):
        normalized: Dict[str, Any] = {}
        for key, item in value.items():
            if item is None:
                continue
            normalized[str(key)] = _normalize_for_toml(item)
        return normalized
    if isinstance(value, (set, frozenset)):
        items = [_normalize_for_toml(item) for item in value if item is not None]
        return sorted(items, key=lambda item: repr(item))
    if isinstance(value, (list, tuple)):
        return [_normalize_for_toml(item) for item in value if item is not None]
    if isinstance(value, Enum):
        enum_value = value.value
        if isinstance(enum_value, (str, bool)):
            return enum_value
        if isinstance(enum_value, (int, float)):
            return value.name.lower()
        return str(enum_value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0.0
        return value
    if isinstance(value, bytes):
        return value.decode("utf8", "replace")
    return str(value)


def _quote_string(value: str) -> str:
    replacements = {
        "\\": "\\\\",
        '"': '\\"',
        "\b": "\\b",
        "\t": "\\t",
        "\n": "\\n",
        "\f": "\\f",
        "\r": "\\r",
    }

    def _escape_char(char: str) -> str:
        if char in replacements:
            return replacements[char]
        code = ord(char)
        if 0x20 <= code <= 0x7E:
            return char
        if code > 0xFFFF:
            return f"\\U{code:08x}"
        return f"\\u{code:04x}"

    return '"' + "".join(_escape_char(char) for char in value) + '"'


def _format_key(key: str) -> str:
    if key and all(char.isascii() and (char.isalnum() or char in "_-") for char in key):
        return key
    return _quote_string(key)


def _format_toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # repr keeps a decimal point so floats read back as floats
        return repr(value)
    if isinstance(value, str):
        return _quote_string(value)
    if isinstance(value, list):
        if value and all(isinstance(item, Mapping) for item in value):
            raise TypeError("Nested table arrays handled separately")
        return "[" + ", ".join(_format_toml_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        return (
            "{"
            + ", ".join(
                f"{_format_key(str(key))} = {_format_toml_value(item)}"
                for key, item in value.items()
            )
            + "}"
        )
    return _quote_string(str(value))


def _serialize_table(
    data: Mapping[str, Any],
    *,
    parent: tuple[str, ...] | None = None,
    output: list[str],
) -> None:
    parent = parent or ()
    simple_items: list[tuple[str, Any]] = []
    tables: list[tuple[str, Mapping[str, Any]]] = []
    array_tables: list[tuple[str, list[Mapping[str, Any]]]] = []

    for key, value in data.items():
        if isinstance(value, Mapping):
            tables.append((key, value))
        elif isinstance(value, list) and value and all(
            isinstance(item, Mapping) for item in value
        ):
            array_tables.append((key, value))
        else:
            simple_items.append((key, value))

    simple_items.sort(key=lambda item: item[0])
    tables.sort(key=lambda item: item[0])
    array_tables.sort(key=lambda item: item[0])

    for key, value in simple_items:
        output.append(f"{_format_key(key)} = {_format_toml_value(value)}")

    for key, value in tables:
        header = ".".join(_format_key(part) for part in (*parent, key))
        if output and output[-1] != "":
            output.append("")
        output.append(f"[{header}]")
        _serialize_table(value, parent=(*parent, key), output=output)

    for key, items in array_tables:
        header = ".".join(_format_key(part) for part in (*parent, key))
        for item in items:
            if output and output[-1] != "":
                output.append("")
            output.append(f"[[{header}]]")
            _serialize_table(item, parent=(*parent, key), output=output)


def _toml_dumps(data: Mapping[str, Any]) -> str:
    normalized = _normalize_for_toml(data)
    if not isinstance(normalized, Mapping):
        raise TypeError("Top level TOML document must be a mapping")
    ordered = dict(sorted(normalized.items(), key=lambda item: item[0]))
    output: list[str] = []
    _serialize_table(ordered, output=output)
    return "\n".join(output) + "\n"


def _read_toml(path: Path) -> Any:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return None
    except (tomllib.TOMLDecodeError, OSError):
        log.warning("Ignoring unreadable TOML file at %s", path, exc_info=True)
        return None


def _write_toml(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    data = _toml_dumps(payload)
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf8", dir=path.parent, delete=False
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass


# ---------------------------------------------------------------------------
# Configuration handling
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CollectionConfig:
    name: str
    path: str
    section: str | None = None

    def requires_key(self) -> bool:
        return "{key}" in self.path

    def requires_guild(self) -> bool:
        return "{guild_id}" in self.path

    def build_relative_path(
        self,
        *,
        guild_id: str | None = None,
        key: str | None = None,
    ) -> str:
        mapping: dict[str, str] = {}
        if "{guild_id}" in self.path:
            if guild_id is None:
                raise ValueError(f"Collection {self.name!r} requires a guild id")
            mapping["guild_id"] = guild_id
        if "{key}" in self.path:
            if key is None:
                raise ValueError(f"Collection {self.name!r} requires a key")
            mapping["key"] = key
        return self.path.format(**mapping)

    def resolve_path(
        self,
        base: Path,
        *,
        guild_id: str | None = None,
        key: str | None = None,
    ) -> Path:
        return base / self.build_relative_path(guild_id=guild_id, key=key)

    def record_directory(self, base: Path, *, guild_id: str | None = None) -> Path:
        if not self.requires_key():
            raise ValueError(f"Collection {self.name!r} does not store records per key")
        return self.resolve_path(base, guild_id=guild_id, key="__dummy__").parent


def _load_storage_config(path: Path) -> dict[str, CollectionConfig]:
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise RuntimeError(f"Missing storage configuration at {path}") from exc

    raw_collections = payload.get("collections") if isinstance(payload, Mapping) else None
    if not isinstance(raw_collections, Mapping):
        raise RuntimeError("storage configuration must define a [collections] table")

    collections: dict[str, CollectionConfig] = {}
    for name, options in raw_collections.items():
        if not isinstance(options, Mapping):
            continue
        path_value = str(options.get("path", "")).strip()
        if not path_value:
            raise RuntimeError(f"Collection {name!r} is missing a path entry")
        section_value = options.get("section")
        collections[str(name)] = CollectionConfig(
            name=str(name),
            path=path_value,
            section=str(section_value) if section_value is not None else None,
        )
    return collections


_DELETED = object()


class StoreTransaction:
    """Staged view over the store used inside :meth:`DataStore.transaction`.

    Reads see the transaction's own pending writes; nothing reaches disk
    until the surrounding block exits cleanly.
    """

    def __init__(self, store: "DataStore", guild_id: str | None) -> None:
        self._store = store
        self._guild_id = guild_id
        self._staged: dict[tuple[str, str], Any] = {}

    @property
    def guild_id(self) -> str | None:
        return self._guild_id

    def get(self, collection: str, key: str | int) -> Optional[Dict[str, Any]]:
        staged_key = (collection, str(key))
        if staged_key in self._staged:
            value = self._staged[staged_key]
            return None if value is _DELETED else deepcopy(value)
        return self._store._read_entry(collection, self._guild_id, str(key))

    def all(self, collection: str) -> dict[str, Any]:
        records = self._store._read_collection(collection, self._guild_id)
        for (name, key), value in self._staged.items():
            if name != collection:
                continue
            if value is _DELETED:
                records.pop(key, None)
            else:
                records[key] = deepcopy(value)
        return records

    def set(self, collection: str, key: str | int, value: Mapping[str, Any]) -> None:
        self._store._collection(collection)
        self._staged[(collection, str(key))] = deepcopy(dict(value))

    def delete(self, collection: str, key: str | int) -> None:
        self._store._collection(collection)
        self._staged[(collection, str(key))] = _DELETED

    @property
    def pending(self) -> int:
        return len(self._staged)

    def _commit(self) -> None:
        for (collection, key), value in self._staged.items():
            if value is _DELETED:
                self._store._delete_entry(collection, self._guild_id, key)
            else:
                self._store._write_entry(collection, self._guild_id, key, value)
        self._staged.clear()


# ---------------------------------------------------------------------------
# DataStore implementation
# ---------------------------------------------------------------------------


class DataStore:
    """Asynchronous datastore routing collections based on configuration."""

    def __init__(
        self,
        root: Path | str | None = None,
        *,
        config_path: Path | None = None,
    ) -> None:
        self._package_root = Path(__file__).resolve().parent.parent
        if root is None:
            self._storage_root = resolve_storage_root(self._package_root)
        else:
            self._storage_root = Path(root).expanduser().resolve()
        self._config_path = config_path or Path(__file__).with_name("storage.toml")
        self._collections = _load_storage_config(self._config_path)
        self._lock = asyncio.Lock()

    @property
    def root(self) -> Path:
        return self._storage_root

    @asynccontextmanager
    async def transaction(
        self, guild_id: int | str | None = None
    ) -> AsyncIterator[StoreTransaction]:
        async with self._lock:
            txn = StoreTransaction(self, self._guild_key(guild_id))
            yield txn
            if txn.pending:
                log.debug("Committing %d staged writes for guild %s", txn.pending, guild_id)
            txn._commit()

    async def get(self, guild_id: int | str | None, collection: str) -> Mapping[str, Any]:
        async with self._lock:
            return MappingProxyType(
                self._read_collection(collection, self._guild_key(guild_id))
            )

    async def get_record(
        self, guild_id: int | str | None, collection: str, key: str | int
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return self._read_entry(collection, self._guild_key(guild_id), str(key))

    async def get_many(
        self, guild_id: int | str | None, collections: Iterable[str]
    ) -> dict[str, Mapping[str, Any]]:
        async with self._lock:
            guild_key = self._guild_key(guild_id)
            return {
                name: MappingProxyType(self._read_collection(name, guild_key))
                for name in dict.fromkeys(collections)
            }

    async def set(
        self,
        guild_id: int | str | None,
        collection: str,
        key: str | int,
        value: Any,
    ) -> None:
        async with self._lock:
            self._write_entry(collection, self._guild_key(guild_id), str(key), deepcopy(value))

    async def delete(self, guild_id: int | str | None, collection: str, key: str | int) -> None:
        async with self._lock:
            self._delete_entry(collection, self._guild_key(guild_id), str(key))

    def _collection(self, name: str) -> CollectionConfig:
        try:
            return self._collections[name]
        except KeyError as exc:
            raise KeyError(f"Unknown collection: {name}") from exc

    @staticmethod
    def _guild_key(guild_id: int | str | None) -> str | None:
        return str(guild_id) if guild_id is not None else None

    def _checked_guild(self, config: CollectionConfig, guild_id: str | None) -> str | None:
        if config.requires_guild() and guild_id is None:
            raise ValueError(f"Collection {config.name!r} requires a guild id")
        return guild_id

    def _read_collection(self, collection: str, guild_id: str | None) -> dict[str, Any]:
        config = self._collection(collection)
        guild_id = self._checked_guild(config, guild_id)
        if config.requires_key():
            return self._read_record_collection(config, guild_id)
        _, section = self._load_document(config, guild_id)
        return {str(key): value for key, value in section.items()}

    def _read_record_collection(
        self, config: CollectionConfig, guild_id: str | None
    ) -> dict[str, Any]:
        directory = config.record_directory(self._storage_root, guild_id=guild_id)
        if not directory.exists():
            return {}
        result: dict[str, Any] = {}
        for path in sorted(directory.glob("*.toml")):
            payload = _read_toml(path)
            if isinstance(payload, MutableMapping):
                result[_decode_collection_key(path.stem)] = payload
        return result

    def _read_entry(
        self, collection: str, guild_id: str | None, key: str
    ) -> Optional[Dict[str, Any]]:
        config = self._collection(collection)
        guild_id = self._checked_guild(config, guild_id)
        if config.requires_key():
            payload = _read_toml(self._record_path(config, guild_id, key))
            return dict(payload) if isinstance(payload, MutableMapping) else None
        _, section = self._load_document(config, guild_id)
        value = section.get(key)
        return dict(value) if isinstance(value, Mapping) else None

    def _write_entry(
        self, collection: str, guild_id: str | None, key: str, value: Any
    ) -> None:
        config = self._collection(collection)
        guild_id = self._checked_guild(config, guild_id)
        if config.requires_key():
            _write_toml(self._record_path(config, guild_id, key), value)
            return
        document, section = self._load_document(config, guild_id)
        section[key] = value
        _write_toml(config.resolve_path(self._storage_root, guild_id=guild_id), document)

    def _delete_entry(self, collection: str, guild_id: str | None, key: str) -> None:
        config = self._collection(collection)
        guild_id = self._checked_guild(config, guild_id)
        if config.requires_key():
            try:
                self._record_path(config, guild_id, key).unlink()
            except FileNotFoundError:
                return
            return
        document, section = self._load_document(config, guild_id)
        if key in section:
            section.pop(key, None)
            _write_toml(config.resolve_path(self._storage_root, guild_id=guild_id), document)

    def _load_document(
        self, config: CollectionConfig, guild_id: str | None
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        path = config.resolve_path(self._storage_root, guild_id=guild_id)
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping):
            payload = {}
        if config.section:
            section = payload.setdefault(config.section, {})
            if not isinstance(section, MutableMapping):
                section = {}
                payload[config.section] = section
        else:
            section = payload
        return payload, section

    def _record_path(self, config: CollectionConfig, guild_id: str | None, key: str) -> Path:
        directory = config.record_directory(self._storage_root, guild_id=guild_id)
        return directory / f"{self._encode_collection_key(key)}.toml"

    @staticmethod
    def _encode_collection_key(key: str) -> str:
        return quote(str(key), safe="")


def _decode_collection_key(filename: str) -> str:
    return unquote(filename)


__all__ = ["DataStore", "StoreTransaction", "resolve_storage_root"]
