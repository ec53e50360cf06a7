"""Decorators shared by the service clients."""

import inspect
from collections.abc import Callable
from contextlib import aclosing
from enum import Enum
from functools import wraps
from typing import Any

from core.logging.context import get_log_context, set_log_context


def _resource(instance: Any, args: tuple, resource_attr: str | None, from_args: bool) -> str:
    # Item operations take the item name first; everything else logs the client's resource
    if from_args and args and isinstance(args[0], str) and not isinstance(args[0], Enum):
        return args[0]
    if resource_attr:
        return str(getattr(instance, resource_attr, "") or "")
    return ""


def set_log_context_for_operation(
    client: str,
    resource_attr: str | None = None,
    *,
    operation: str | None = None,
    resource_from_args: bool = True,
) -> Callable:
    """Decorator to set the logging context for the duration of a client call.

    Sets ``client``, ``operation`` (the method name unless given) and
    ``resource`` (the item name passed first, or ``resource_attr`` of the
    instance). The caller's context is restored afterwards. Works on
    coroutine methods and async generator methods.
    """

    def decorator(func: Callable) -> Callable:
        operation_name = operation or func.__name__

        if inspect.isasyncgenfunction(func):

            @wraps(func)
            async def generator_wrapper(self: Any, *args: Any, **kwargs: Any):
                previous = get_log_context()
                set_log_context(
                    client=client,
                    operation=operation_name,
                    resource=_resource(self, args, resource_attr, resource_from_args),
                )
                try:
                    async with aclosing(func(self, *args, **kwargs)) as items:
                        async for item in items:
                            yield item
                finally:
                    set_log_context(**previous)

            return generator_wrapper

        @wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            previous = get_log_context()
            set_log_context(
                client=client,
                operation=operation_name,
                resource=_resource(self, args, resource_attr, resource_from_args),
            )
            try:
                return await func(self, *args, **kwargs)
            finally:
                set_log_context(**previous)

        return wrapper

    return decorator


__all__ = ["set_log_context_for_operation"]
