"""Helpers for code that accepts both sync and async collaborators."""

import asyncio
from typing import TypeVar

T = TypeVar("T")


async def maybe_await(value: T | asyncio.Future[T]) -> T:
    """Await if value is a coroutine; otherwise return as-is (sync store)."""
    if asyncio.iscoroutine(value):
        return await value
    return value
