"""Key-value cache with strict ``add`` semantics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterator, TypeVar

from enigma.error import EnigmaError, ErrorCode

V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class CacheItem(Generic[V]):
    key: str
    value: V


class KeyValueCache(Generic[V]):
    """String-keyed cache.

    Keys are normalized with ``str()`` so integer handles and their string
    forms address the same entry.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, V] = {}

    def add(self, key: Any, entry: V) -> None:
        """Add an entry, refusing to overwrite.

        Raises:
            ConfigurationError: If ``key`` is already present
        """
        key = str(key)
        if key in self._entries:
            raise EnigmaError.create(
                ErrorCode.ENTRY_ALREADY_DEFINED,
                f"Entry already defined with key {key}",
            )
        self._entries[key] = entry

    def set(self, key: Any, entry: V) -> None:
        self._entries[str(key)] = entry

    def remove(self, key: Any) -> None:
        self._entries.pop(str(key), None)

    def get(self, key: Any) -> V | None:
        return self._entries.get(str(key))

    def get_all(self) -> list[CacheItem[V]]:
        return [CacheItem(key, value) for key, value in self._entries.items()]

    def get_key(self, entry: V) -> str | None:
        for key, value in self._entries.items():
            if value is entry:
                return key
        return None

    def clear(self) -> None:
        self._entries = {}

    def __contains__(self, key: Any) -> bool:
        return str(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
