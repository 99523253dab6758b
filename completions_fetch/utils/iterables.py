"""Helpers for lazily transforming async iterators."""

import inspect
from typing import AsyncIterator, Awaitable, Callable, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")


async def async_iterable_map(
    source: AsyncIterator[T],
    func: Callable[[T], Union[U, Awaitable[U]]],
) -> AsyncIterator[U]:
    """
    Apply `func` to each item of `source`.

    Closing the returned iterator closes `source` as well.
    """
    try:
        async for item in source:
            result = func(item)
            if inspect.isawaitable(result):
                result = await result
            yield result
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


async def async_iterable_filter(
    source: AsyncIterator[T],
    predicate: Callable[[T], Union[bool, Awaitable[bool]]],
) -> AsyncIterator[T]:
    """
    Keep the items of `source` for which `predicate` holds.

    Closing the returned iterator closes `source` as well.
    """
    try:
        async for item in source:
            keep = predicate(item)
            if inspect.isawaitable(keep):
                keep = await keep
            if keep:
                yield item
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
