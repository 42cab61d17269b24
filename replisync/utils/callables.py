# Replisync Callable Utilities
# Resolving handler references and invoking sync-or-async callables

import importlib
import inspect
from collections.abc import Callable
from typing import Any

from replisync.errors import HandlerImportError


def resolve_callable(reference: str) -> Callable[..., Any]:
    """
    Import a callable from a 'package.module:attribute' reference.

    Nested attributes are allowed after the colon ('module:Class.method').

    Raises:
        HandlerImportError: If the module or attribute is missing or not callable.
    """
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        raise HandlerImportError(f"Invalid reference '{reference}', expected 'package.module:attribute'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise HandlerImportError(f"Cannot import module '{module_name}': {e}") from e

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise HandlerImportError(f"Module '{module_name}' has no attribute '{attr_path}'") from e

    if not callable(target):
        raise HandlerImportError(f"'{reference}' is not callable")
    return target


async def call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    """Call func and await the result if it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
