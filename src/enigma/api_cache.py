"""Cache of generated API objects, keyed by engine handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from enigma.cache import KeyValueCache

if TYPE_CHECKING:
    from enigma.schema import ApiObject

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApiCacheEntry:
    """One live handle: its API object plus the per-method delta baselines."""

    api: ApiObject
    delta_cache: KeyValueCache[Any] = field(default_factory=KeyValueCache)


@dataclass(frozen=True, slots=True)
class ApiListing:
    handle: str
    api: ApiObject


class ApiCache(KeyValueCache[ApiCacheEntry]):
    """Owns exactly one API object per live handle.

    The delta cache of each entry holds the last reconstructed value for every
    ``<method>-<out param>`` key of that handle. It is dropped together with
    the entry when the handle closes.
    """

    __slots__ = ()

    def on_handle_changed(self, handle: Any) -> None:
        api = self.get_api(handle)
        if api is not None:
            api.emit("changed")

    def on_handle_closed(self, handle: Any) -> None:
        api = self.get_api(handle)
        if api is not None:
            api.emit("closed")
            self.remove(handle)

    def on_session_closed(self) -> None:
        """Emit ``closed`` on every API, release its listeners and empty the cache."""
        for entry in self.get_apis():
            entry.api.emit("closed")
            entry.api.remove_all_listeners()
        self.clear()

    def add(self, handle: Any, api: ApiObject) -> ApiCacheEntry:  # type: ignore[override]
        entry = ApiCacheEntry(api)
        super().add(handle, entry)
        return entry

    def get_api(self, handle: Any) -> ApiObject | None:
        if handle is None:
            return None
        entry = self.get(handle)
        return entry.api if entry is not None else None

    def get_apis(self) -> list[ApiListing]:
        return [ApiListing(item.key, item.value.api) for item in self.get_all()]

    def get_apis_by_type(self, type_name: str) -> list[ApiListing]:
        return [entry for entry in self.get_apis() if entry.api.type == type_name]

    def get_patchee(self, handle: Any, cache_id: str) -> Any:
        entry = self.get(handle)
        return entry.delta_cache.get(cache_id) if entry is not None else None

    def set_patchee(self, handle: Any, cache_id: str, patchee: Any) -> None:
        entry = self.get(handle)
        if entry is None:
            logger.debug("No API for handle %s, delta baseline for %s not kept", handle, cache_id)
            return
        entry.delta_cache.set(cache_id, patchee)
