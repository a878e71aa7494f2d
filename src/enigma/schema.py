"""Schema-driven API classes.

Each engine type in the schema (``Doc``, ``GenericObject``, ...) becomes a
subclass of :class:`ApiObject` with one method per remote method. Methods
are snake_case versions of the wire names and forward to the session:

```python
schema = Schema(definition)
schema.register_mixin({"types": ["Doc"], "extend": {"title": title}})
doc = schema.generate("Doc").create(session, handle=1, id="app.qvf")
layout = await doc.get_app_layout()
```

Mixins are applied once, when a type (or a type/generic type pair) is first
generated, in registration order.
"""

from __future__ import annotations

import functools
import logging
import re
import types
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping

from enigma.cache import KeyValueCache
from enigma.config import Mixin
from enigma.error import EnigmaError, ErrorCode
from enigma.events import EventEmitter
from enigma.request import OUT_KEY_FULL_RESULT, RequestPromise, RpcRequest

if TYPE_CHECKING:
    from enigma.config import Configuration
    from enigma.session import Session

logger = logging.getLogger(__name__)

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """Convert a wire method name (``GetHyperCubeData``) to ``get_hyper_cube_data``."""
    return _ALL_CAP.sub(r"\1_\2", _FIRST_CAP.sub(r"\1_\2", name)).lower()


@dataclass(frozen=True, slots=True)
class MethodDefinition:
    """One remote method as declared in the schema.

    Attributes:
        name: Wire name, e.g. "GetLayout"
        attr: Python attribute name, e.g. "get_layout"
        defaults: Declared parameter names mapped to their default values,
            in declaration order
        out_key: The single declared output name, or OUT_KEY_FULL_RESULT
    """

    name: str
    attr: str
    defaults: Mapping[str, Any]
    out_key: str | int

    @classmethod
    def from_schema(cls, name: str, definition: Mapping[str, Any]) -> MethodDefinition:
        params = definition.get("In") or []
        outputs = definition.get("Out") or []
        defaults = {param["Name"]: param.get("DefaultValue") for param in params}
        out_key = outputs[0]["Name"] if len(outputs) == 1 else OUT_KEY_FULL_RESULT
        return cls(name, to_snake_case(name), defaults, out_key)


class ApiObject(EventEmitter):
    """Base class of every generated API.

    Emits ``changed`` when the engine reports the object changed and
    ``closed`` when its handle is gone.
    """

    #: Wire type name, set on generated subclasses.
    schema_type: str = ""
    #: Remote methods of the type, keyed by Python attribute name.
    schema_methods: Mapping[str, MethodDefinition] = {}

    def __init__(self, session: Session, handle: int, id: str, type: str, generic_type: str) -> None:
        super().__init__()
        self._session = session
        self.handle = handle
        self._id = id
        self._type = type
        self._generic_type = generic_type

    @property
    def session(self) -> Session:
        return self._session

    @property
    def id(self) -> str:
        return self._id

    @property
    def type(self) -> str:
        return self._type

    @property
    def generic_type(self) -> str:
        return self._generic_type

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(handle={self.handle!r}, id={self._id!r}, "
            f"generic_type={self._generic_type!r})"
        )


def _remote_method(definition: MethodDefinition) -> Callable[..., RequestPromise]:
    def method(self: ApiObject, *params: Any) -> RequestPromise:
        return self.session.send(
            RpcRequest(
                method=definition.name,
                handle=self.handle,
                params=list(params),
                out_key=definition.out_key,
            )
        )

    method.__name__ = definition.attr
    method.__qualname__ = definition.attr
    method.__doc__ = f"Call ``{definition.name}`` on the engine."
    return method


def named_param_facade(base: Callable[..., Any], defaults: Mapping[str, Any]) -> Callable[..., Any]:
    """Let ``base`` be called with named parameters.

    A single dict argument whose keys are all declared parameter names, or
    keyword arguments with such names, are turned into positional arguments
    in declaration order, with declared defaults filling omitted names. Any
    other call passes through positionally unchanged.
    """

    def expand(named: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(named[key] if key in named else default for key, default in defaults.items())

    @functools.wraps(base)
    def wrapper(self: ApiObject, *params: Any, **named: Any) -> Any:
        if named:
            if params:
                raise TypeError(f"{base.__name__}() takes positional or named parameters, not both")
            unknown = named.keys() - defaults.keys()
            if unknown:
                raise TypeError(f"{base.__name__}() got unexpected parameters: {', '.join(sorted(unknown))}")
            return base(self, *expand(named))
        if len(params) == 1 and isinstance(params[0], dict) and params[0].keys() <= defaults.keys():
            return base(self, *expand(params[0]))
        return base(self, *params)

    return wrapper


def _override(base: Callable[..., Any], override: Callable[..., Any]) -> Callable[..., Any]:
    def wrapper(self: ApiObject, *args: Any, **kwargs: Any) -> Any:
        return override(self, types.MethodType(base, self), *args, **kwargs)

    wrapper.__name__ = getattr(override, "__name__", getattr(base, "__name__", "override"))
    wrapper.__doc__ = override.__doc__ or base.__doc__
    return wrapper


def _collides(existing: Any, value: Any) -> bool:
    return isinstance(existing, property) or (callable(existing) and callable(value))


class TypeDefinition:
    """Generated class of one schema type and the factory for its instances."""

    def __init__(self, schema: Schema, type_name: str, api_class: type[ApiObject]) -> None:
        self.schema = schema
        self.type = type_name
        self.api_class = api_class

    def create(
        self,
        session: Session,
        handle: int,
        id: str,
        generic_type: str | None = None,
    ) -> ApiObject:
        """Instantiate an API and run the ``init`` hook of every matching mixin.

        Args:
            session: Session the API sends its calls through
            handle: Engine handle
            id: Engine object id (``qGenericId``)
            generic_type: ``qGenericType`` of the object, defaults to the type
        """
        generic_type = generic_type or self.type
        api_class = self.api_class
        mixins = list(self.schema.mixins_for(self.type))
        if generic_type != self.type:
            api_class = self.schema.generic_class(self.type, generic_type)
            mixins.extend(self.schema.mixins_for(generic_type))

        api = api_class(session, handle, id, self.type, generic_type)
        for mixin in mixins:
            if mixin.init is not None:
                mixin.init(api=api, config=self.schema.config)
        return api

    def __repr__(self) -> str:
        return f"TypeDefinition({self.type!r})"


class Schema:
    """Registry of generated API classes for one schema document.

    Owned by a single session, so sessions with different schemas or mixins
    never share generated classes.
    """

    def __init__(self, definition: Mapping[str, Any], config: Configuration | None = None) -> None:
        """Initialize the registry.

        Args:
            definition: Schema document, ``{"structs": {Type: {Method: {...}}}}``
            config: Session configuration, handed to mixin ``init`` hooks
        """
        self.definition = definition
        self.config = config
        self.types: KeyValueCache[TypeDefinition] = KeyValueCache()
        self.mixins: KeyValueCache[list[Mixin]] = KeyValueCache()
        self._generic_classes: dict[tuple[str, str], type[ApiObject]] = {}

    def register_mixin(self, mixin: Mixin | Mapping[str, Any]) -> None:
        """Register a mixin for each of its types.

        Mixins must be registered before the first API of a targeted type is
        generated; classes that already exist are not revisited.
        """
        if not isinstance(mixin, Mixin):
            mixin = Mixin.model_validate(mixin)
        for type_name in mixin.types:
            mixins = self.mixins.get(type_name)
            if mixins is None:
                self.mixins.add(type_name, [mixin])
            else:
                mixins.append(mixin)

    def mixins_for(self, type_name: str) -> list[Mixin]:
        return self.mixins.get(type_name) or []

    def generate(self, type_name: str) -> TypeDefinition:
        """Return the (memoized) generated definition of ``type_name``.

        Raises:
            ConfigurationError: The schema has no such type
        """
        existing = self.types.get(type_name)
        if existing is not None:
            return existing

        struct = self.definition.get("structs", {}).get(type_name)
        if struct is None:
            raise EnigmaError.create(
                ErrorCode.SCHEMA_STRUCT_TYPE_NOT_FOUND,
                f"{type_name} not found",
            )

        methods = {}
        namespace: dict[str, Any] = {"__module__": __name__, "schema_type": type_name}
        for name, method_def in struct.items():
            definition = MethodDefinition.from_schema(name, method_def)
            methods[definition.attr] = definition
            namespace[definition.attr] = _remote_method(definition)
        namespace["schema_methods"] = methods

        api_class = type(type_name, (ApiObject,), namespace)
        self.mixin_type(type_name, api_class)
        self._apply_named_param_facade(api_class, methods)
        logger.debug("Generated API class for %s (%d methods)", type_name, len(methods))

        type_def = TypeDefinition(self, type_name, api_class)
        self.types.add(type_name, type_def)
        return type_def

    def generic_class(self, type_name: str, generic_type: str) -> type[ApiObject]:
        """Return the subclass of ``type_name`` carrying the mixins of ``generic_type``."""
        key = (type_name, generic_type)
        api_class = self._generic_classes.get(key)
        if api_class is None:
            base = self.generate(type_name).api_class
            api_class = type(
                f"{base.__name__}[{generic_type}]",
                (base,),
                {"__module__": __name__},
            )
            overridden = self.mixin_type(generic_type, api_class)
            self._apply_named_param_facade(
                api_class,
                {attr: d for attr, d in base.schema_methods.items() if attr in overridden},
            )
            self._generic_classes[key] = api_class
        return api_class

    def mixin_type(self, type_name: str, api_class: type[ApiObject]) -> set[str]:
        """Apply the mixins registered for ``type_name`` to ``api_class``.

        Returns:
            The names of the overridden methods

        Raises:
            ConfigurationError: An override targets a missing method, or an
                extension collides with an existing one
        """
        overridden: set[str] = set()
        for mixin in self.mixins_for(type_name):
            for name, override in mixin.override.items():
                base = getattr(api_class, name, None)
                if base is None or not callable(base):
                    raise EnigmaError.create(
                        ErrorCode.SCHEMA_MIXIN_CANT_OVERRIDE_FUNCTION,
                        f"No function to override. Type: {type_name} function: {name}",
                    )
                setattr(api_class, name, _override(base, override))
                overridden.add(name)
            for name, value in mixin.extend.items():
                if _collides(getattr(api_class, name, None), value):
                    raise EnigmaError.create(
                        ErrorCode.SCHEMA_MIXIN_EXTEND_NOT_ALLOWED,
                        f"Extend is not allowed for this mixin. Type: {type_name} function: {name}",
                    )
                setattr(api_class, name, value)
        return overridden

    @staticmethod
    def _apply_named_param_facade(api_class: type[ApiObject], methods: Mapping[str, MethodDefinition]) -> None:
        for attr, definition in methods.items():
            setattr(api_class, attr, named_param_facade(getattr(api_class, attr), definition.defaults))
