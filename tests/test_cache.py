"""Tests for the key-value cache, the API cache and the event emitter."""

import pytest

from enigma.api_cache import ApiCache
from enigma.cache import KeyValueCache
from enigma.error import ConfigurationError, ErrorCode
from enigma.events import EventEmitter


class FakeApi(EventEmitter):
    def __init__(self, type_name: str) -> None:
        super().__init__()
        self.type = type_name


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_listeners_run_in_order(self) -> None:
        emitter = EventEmitter()
        calls = []
        emitter.on("x", lambda value: calls.append(("first", value)))
        emitter.on("x", lambda value: calls.append(("second", value)))
        assert emitter.emit("x", 1) is True
        assert calls == [("first", 1), ("second", 1)]

    def test_emit_without_listeners(self) -> None:
        assert EventEmitter().emit("nothing") is False

    def test_once(self) -> None:
        emitter = EventEmitter()
        calls = []
        listener = emitter.once("x", calls.append)
        emitter.emit("x", 1)
        emitter.emit("x", 2)
        assert calls == [1]
        assert emitter.listeners("x") == []
        assert listener is not None

    def test_remove_once_listener_by_original(self) -> None:
        emitter = EventEmitter()
        calls = []
        append = calls.append
        emitter.once("x", append)
        emitter.remove_listener("x", append)
        emitter.emit("x", 1)
        assert calls == []

    def test_remove_all_listeners(self) -> None:
        emitter = EventEmitter()
        emitter.on("a", print)
        emitter.on("b", print)
        emitter.remove_all_listeners("a")
        assert emitter.listeners("a") == []
        assert emitter.listeners("b") == [print]
        emitter.remove_all_listeners()
        assert emitter.listeners("b") == []


class TestKeyValueCache:
    """Tests for KeyValueCache."""

    def test_add_and_get_normalize_keys(self) -> None:
        cache: KeyValueCache[str] = KeyValueCache()
        cache.add(1, "one")
        assert cache.get("1") == "one"
        assert 1 in cache
        assert cache.get_key("one") == "1"

    def test_add_refuses_duplicates(self) -> None:
        cache: KeyValueCache[str] = KeyValueCache()
        cache.add("a", "x")
        with pytest.raises(ConfigurationError) as exc_info:
            cache.add("a", "y")
        assert exc_info.value.code == ErrorCode.ENTRY_ALREADY_DEFINED

    def test_set_overwrites(self) -> None:
        cache: KeyValueCache[str] = KeyValueCache()
        cache.add("a", "x")
        cache.set("a", "y")
        assert cache.get("a") == "y"

    def test_remove_and_clear(self) -> None:
        cache: KeyValueCache[int] = KeyValueCache()
        cache.add("a", 1)
        cache.add("b", 2)
        cache.remove("a")
        cache.remove("missing")
        assert [item.key for item in cache.get_all()] == ["b"]
        cache.clear()
        assert len(cache) == 0


class TestApiCache:
    """Tests for ApiCache."""

    def test_add_and_lookup(self) -> None:
        apis = ApiCache()
        doc = FakeApi("Doc")
        apis.add(1, doc)
        apis.add(2, FakeApi("GenericObject"))
        assert apis.get_api(1) is doc
        assert apis.get_api(None) is None
        assert [listing.api for listing in apis.get_apis_by_type("Doc")] == [doc]
        assert [listing.handle for listing in apis.get_apis()] == ["1", "2"]

    def test_handle_changed_emits_changed(self) -> None:
        apis = ApiCache()
        doc = FakeApi("Doc")
        apis.add(1, doc)
        calls = []
        doc.on("changed", lambda: calls.append("changed"))
        apis.on_handle_changed(1)
        apis.on_handle_changed(99)
        assert calls == ["changed"]

    def test_handle_closed_emits_and_evicts(self) -> None:
        apis = ApiCache()
        doc = FakeApi("Doc")
        apis.add(1, doc)
        calls = []
        doc.on("closed", lambda: calls.append("closed"))
        apis.on_handle_closed(1)
        assert calls == ["closed"]
        assert apis.get_api(1) is None

    def test_session_closed_releases_everything(self) -> None:
        apis = ApiCache()
        doc = FakeApi("Doc")
        apis.add(1, doc)
        calls = []
        doc.on("closed", lambda: calls.append("closed"))
        apis.on_session_closed()
        assert calls == ["closed"]
        assert doc.listeners("closed") == []
        assert len(apis) == 0

    def test_patchees_are_scoped_to_the_handle(self) -> None:
        apis = ApiCache()
        apis.add(1, FakeApi("GenericObject"))
        apis.set_patchee(1, "GetLayout-qLayout", {"a": 1})
        assert apis.get_patchee(1, "GetLayout-qLayout") == {"a": 1}
        assert apis.get_patchee(1, "GetProperties-qProp") is None
        apis.set_patchee(2, "GetLayout-qLayout", {"b": 1})
        assert apis.get_patchee(2, "GetLayout-qLayout") is None
        apis.on_handle_closed(1)
        assert apis.get_patchee(1, "GetLayout-qLayout") is None
