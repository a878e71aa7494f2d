"""JSON-Patch generation and application for the delta protocol.

Patches follow the JSON-Patch draft (``add``, ``replace``, ``remove``,
``move``) and address values with JSON-Pointers. Two deliberate deviations
keep the delta protocol cheap:

- ``apply`` keeps object and array references whenever a patch replaces a
  container with a container of the same kind, so anyone holding the old
  reference sees the new contents.
- ``generate`` only diffs arrays whose elements carry a stable identifier
  (see :func:`identifier_of`). Any other array is replaced wholesale.

Example:
    ```python
    original = {"foo": [1, 2, 3], "bar": {"baz": True, "qux": 1}}
    update_object(original, {"foo": [4, 5, 6], "bar": {"baz": False}})
    # original == {"foo": [4, 5, 6], "bar": {"baz": False}}
    ```
"""

from __future__ import annotations

import copy
from typing import Any

from enigma.error import EnigmaError, ErrorCode

#: Nested field that identifies an array element across two versions of an array.
IDENTIFIER_PATH = ("qInfo", "qId")

Patch = dict[str, Any]

_UNSET = object()


# -----------------------------------------------------------------------------
# Stable identifiers
# -----------------------------------------------------------------------------

def has_identifier(value: Any) -> bool:
    """Whether ``value`` opts into identifier-matched array diffing."""
    node = value
    for part in IDENTIFIER_PATH:
        if not isinstance(node, dict) or part not in node:
            return False
        node = node[part]
    return True


def identifier_of(value: Any) -> Any:
    """Return the stable identifier of an array element.

    Callers must check :func:`has_identifier` first.
    """
    node = value
    for part in IDENTIFIER_PATH:
        node = node[part]
    return node


def has_identifiers(values: list[Any]) -> bool:
    return all(has_identifier(value) for value in values)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _is_special_property(obj: dict[str, Any], key: str) -> bool:
    """Keys that are internal or cannot be represented as JSON are never patched."""
    return (
        callable(obj[key])
        or (isinstance(key, str) and (key.startswith("$$") or key.startswith("_")))
    )


def _escape(token: Any) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def _unescape(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def _is_index(token: str) -> bool:
    return token == "-" or token.isdigit()


def _no_parent() -> EnigmaError:
    return EnigmaError.create(
        ErrorCode.PATCH_HAS_NO_PARENT,
        "Patchee is not an object we can patch",
    )


def compare(a: Any, b: Any) -> bool:
    """Deep, type-strict equality (``True`` does not equal ``1``)."""
    if isinstance(a, dict) and isinstance(b, dict):
        if len(a) != len(b):
            return False
        return all(key in b and compare(value, b[key]) for key, value in a.items())
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(compare(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return False
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return a == b


def _get_parent(data: Any, path: str) -> Any:
    """Walk ``path`` and return the container holding its last token.

    Missing intermediate objects are created on the way: a list when the next
    token looks like an index, a dict otherwise.
    """
    tokens = [_unescape(token) for token in path[1:].split("/")]
    for i, token in enumerate(tokens[:-1]):
        if isinstance(data, list):
            if not token.isdigit() or int(token) >= len(data):
                raise _no_parent()
            data = data[int(token)]
        elif isinstance(data, dict):
            if token not in data:
                data[token] = [] if _is_index(tokens[i + 1]) else {}
            data = data[token]
        else:
            raise _no_parent()
    return data


def _get_child(parent: Any, key: str) -> Any:
    if isinstance(parent, dict):
        return parent.get(key)
    if isinstance(parent, list) and key.isdigit() and int(key) < len(parent):
        return parent[int(key)]
    return None


def _list_index(values: list[Any], key: str, insert: bool) -> int:
    if insert and key == "-":
        return len(values)
    if not key.isdigit():
        raise _no_parent()
    index = int(key)
    if index > len(values) or (not insert and index == len(values)):
        raise _no_parent()
    return index


def _pop(container: Any, key: str) -> Any:
    if isinstance(container, list):
        return container.pop(_list_index(container, key, insert=False))
    if not isinstance(container, dict) or key not in container:
        raise _no_parent()
    return container.pop(key)


def _empty_object(obj: dict[str, Any]) -> None:
    for key in list(obj):
        if not _is_special_property(obj, key):
            del obj[key]


def _find_index(values: list[Any], identifier: Any, hint: int | None = None) -> int:
    if hint is not None and hint < len(values) and identifier_of(values[hint]) == identifier:
        return hint
    for i, value in enumerate(values):
        if identifier_of(value) == identifier:
            return i
    return -1


# -----------------------------------------------------------------------------
# Generation
# -----------------------------------------------------------------------------

def _patch_array(original: list[Any], new_values: list[Any], base_path: str) -> list[Patch]:
    """Generate patches turning ``original`` into ``new_values``.

    Elements are matched by identifier: vanished identifiers are removed
    back-to-front, new identifiers are added, and identifiers that changed
    position are moved. Without identifiers the array is replaced.
    """
    old_values = list(original)

    if compare(new_values, old_values):
        return []

    if not (has_identifiers(new_values) and has_identifiers(old_values)):
        return [{"op": "replace", "path": base_path or "/", "value": copy.deepcopy(new_values)}]

    patches: list[Patch] = []

    for i in range(len(old_values) - 1, -1, -1):
        index = _find_index(new_values, identifier_of(old_values[i]), i)
        if index == -1:
            patches.append({"op": "remove", "path": f"{base_path}/{i}"})
            del old_values[i]
        else:
            patches.extend(generate(old_values[i], new_values[index], f"{base_path}/{i}"))

    for i, value in enumerate(new_values):
        index = _find_index(old_values, identifier_of(value))
        if index == -1:
            patches.append({"op": "add", "path": f"{base_path}/{i}", "value": copy.deepcopy(value)})
            old_values.insert(i, value)
        elif index != i:
            patches.append({"op": "move", "path": f"{base_path}/{i}", "from": f"{base_path}/{index}"})
            old_values.insert(i, old_values.pop(index))

    return patches


def generate(original: Any, new_data: Any, base_path: str = "") -> list[Patch]:
    """Generate the patches that turn ``original`` into ``new_data``.

    Args:
        original: The value that will be patched
        new_data: The value to compare against
        base_path: Prefix for the generated paths (used when recursing)

    Returns:
        An ordered list of patches, empty when nothing differs or when the
        inputs are not containers
    """
    if isinstance(original, list) and isinstance(new_data, list):
        return _patch_array(original, new_data, base_path)
    if not (isinstance(original, dict) and isinstance(new_data, dict)):
        return []

    patches: list[Patch] = []

    for key in new_data:
        if _is_special_property(new_data, key):
            continue
        value = copy.deepcopy(new_data[key])
        path = f"{base_path}/{_escape(key)}"

        if key not in original:
            patches.append({"op": "add", "path": path, "value": value})
            continue

        old_value = original[key]
        if compare(value, old_value):
            continue
        if isinstance(value, dict) and isinstance(old_value, dict):
            patches.extend(generate(old_value, value, path))
        elif isinstance(value, list) and isinstance(old_value, list):
            patches.extend(_patch_array(old_value, value, path))
        else:
            patches.append({"op": "replace", "path": path, "value": value})

    for key in original:
        if key not in new_data and not _is_special_property(original, key):
            patches.append({"op": "remove", "path": f"{base_path}/{_escape(key)}"})

    return patches


# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------

def apply(original: Any, patches: list[Patch]) -> None:
    """Apply ``patches`` to ``original`` in place.

    Raises:
        ProtocolError: ``PATCH_HAS_NO_PARENT`` when a patch addresses a value
            that cannot be reached or replaced in place (e.g. a primitive
            value at the root)
    """
    for patch in patches:
        op = patch["op"]
        path = patch["path"]

        if path in ("", "/"):
            parent = None
            key = ""
            target = original
        else:
            parent = _get_parent(original, path)
            if not isinstance(parent, (dict, list)):
                raise _no_parent()
            key = _unescape(path.rsplit("/", 1)[-1])
            target = _get_child(parent, key)

        if op in ("add", "replace"):
            value = patch.get("value")
            if isinstance(parent, list):
                index = _list_index(parent, key, insert=True)
                if op == "add" or index >= len(parent):
                    parent.insert(index, value)
                else:
                    parent[index] = value
            elif isinstance(target, list) and isinstance(value, list):
                target[:] = list(value)
            elif isinstance(target, dict) and isinstance(value, dict):
                _empty_object(target)
                target.update(copy.deepcopy(value))
            elif parent is None:
                raise _no_parent()
            else:
                parent[key] = value
        elif op == "move":
            from_path = patch["from"]
            old_parent = _get_parent(original, from_path)
            from_key = _unescape(from_path.rsplit("/", 1)[-1])
            if isinstance(parent, list):
                value = _pop(old_parent, from_key)
                parent.insert(_list_index(parent, key, insert=True), value)
            elif parent is None:
                raise _no_parent()
            else:
                parent[key] = _pop(old_parent, from_key)
        elif op == "remove":
            if isinstance(parent, list):
                parent.pop(_list_index(parent, key, insert=False))
            elif parent is None:
                raise _no_parent()
            else:
                parent.pop(key, None)


def update_object(original: dict[str, Any] | list[Any], new_data: Any) -> None:
    """Make ``original`` equal to ``new_data`` while keeping its reference.

    Same as ``apply(original, generate(original, new_data))`` except that an
    empty ``original`` is simply filled with a deep copy.
    """
    if not original:
        if isinstance(original, list):
            original.extend(copy.deepcopy(new_data))
        else:
            original.update(copy.deepcopy(new_data))
        return
    apply(original, generate(original, new_data))


def clone(value: Any) -> Any:
    """Deep copy with no shared references."""
    return copy.deepcopy(value)


def create_patch(op: str, value: Any = _UNSET, path: str = "") -> Patch:
    """Create a patch.

    Args:
        op: ``add``, ``replace``, ``remove`` or ``move`` (case-insensitive)
        value: The new value, or the ``from`` pointer when ``op`` is ``move``
        path: The JSON-Pointer of the value to change
    """
    patch: Patch = {"op": op.lower(), "path": path}
    if patch["op"] == "move":
        patch["from"] = value
    elif value is not _UNSET:
        patch["value"] = value
    return patch
