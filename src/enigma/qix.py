"""Session factory."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from enigma.api_cache import ApiCache
from enigma.config import Configuration
from enigma.error import EnigmaError, ErrorCode
from enigma.intercept import Intercept
from enigma.rpc import RPC
from enigma.schema import Schema
from enigma.session import Session
from enigma.suspend_resume import SuspendResume

logger = logging.getLogger(__name__)


def configure(config: Configuration | Mapping[str, Any] | None) -> Configuration:
    """Validate ``config`` and fill in defaults.

    Raises:
        ConfigurationError: No configuration was supplied
        pydantic.ValidationError: A field is invalid
    """
    if config is None:
        raise EnigmaError.create(ErrorCode.NO_CONFIG_SUPPLIED, "You need to supply a configuration.")
    if isinstance(config, Configuration):
        return config
    return Configuration.model_validate(config)


def create(config: Configuration | Mapping[str, Any] | None) -> Session:
    """Create a session (without opening it).

    Args:
        config: A Configuration, or a dict of its fields

    Returns:
        The new session. Call ``await session.open()`` to connect.
    """
    config = configure(config)

    schema = Schema(config.engine_schema, config)
    for mixin in config.mixins:
        schema.register_mixin(mixin)

    apis = ApiCache()
    rpc = RPC(config.url, config.create_socket)
    suspend_resume = SuspendResume(rpc, apis, config.resume_timeout)
    intercept = Intercept(apis, config.request_interceptors, config.response_interceptors)
    logger.debug("Creating session for %s", config.url)
    return Session(
        config=config,
        rpc=rpc,
        apis=apis,
        schema=schema,
        intercept=intercept,
        suspend_resume=suspend_resume,
    )
