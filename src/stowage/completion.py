"""
Completion protocol: one normalized outcome, delivered exactly once.

Manifesto:
    Every provider operation wraps exactly one backend call. Whatever the
    backend does (returns, raises, returns something that has to be
    reshaped) the caller gets one ``(error, value)`` outcome, through the
    callback it passed, through the operation's event on the provider, and
    as the ``Result`` the awaited call resolves to.

Architecture:
    ::

        provider.save(doc, callback)
            │  Completion("save", callback)        callback → once-listener
            │  @on_success / @on_error             hooks registered
            ▼
        completion.start(backend_call, ...)   task when a callback was given
            │  completion.run(...)
            │  raw (error, value)
            ▼
        normalizer.normalize(operation, error, stack)
            │
            ├── error ──▶ error hook ───────────────────────┐
            └── value ──▶ success hook ──(raises)──▶ error hook
                                  │                         │
                                  ▼                         ▼
                           (None, value')             (error', None)
            │
            ├── per-call channel.emit(op, error, value)   → callback
            └── provider channel.emit(op, error, value)   → on(op, ...) listeners

Delivery order is fixed: the callback runs first, provider event listeners
second, both after the hooks ran. A second trigger raises
:class:`~stowage.errors.CompletionError`.

Tags:
    completion, callbacks, events, error-normalization, stowage

Doc-Types:
    - API Reference
    - Adapter Author Guide
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from stowage.errors import CompletionError, InvalidArgumentError
from stowage.events import EventChannel
from stowage.logging import get_logger
from stowage.normalizer import ErrorNormalizer, capture_stack
from stowage.result import Result, from_outcome

__all__ = ["Completion", "SuccessHook", "ErrorHook", "spawn", "validate_callback"]

logger = get_logger(__name__)

SuccessHook = Callable[[Any], Any]
ErrorHook = Callable[[BaseException], Any]


def validate_callback(callback: Any) -> None:
    """Raise synchronously when ``callback`` is given but not callable."""
    if callback is not None and not callable(callback):
        raise InvalidArgumentError("Argument 'callback' must be of type Function")


# Strong references to scheduled operations until they finish.
_pending: set[asyncio.Task] = set()


def spawn(coro: Coroutine[Any, Any, Result[Any]], *, eager: bool) -> Awaitable[Result[Any]]:
    """Return ``coro`` as-is, or scheduled on the running loop when ``eager``.

    Operations called with a callback are scheduled immediately so that the
    callback fires even when the caller never awaits the returned object.
    Outside a running loop there is nothing to schedule on and the
    coroutine is returned unchanged.
    """
    if not eager:
        return coro
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return coro
    task = loop.create_task(coro)
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


class Completion:
    """
    Per-call completion context.

    Created at the start of a provider operation, before any asynchronous
    work, so that an invalid callback fails fast and the call-site stack is
    captured where the caller actually is.

    Example (inside an adapter)::

        completion = self._completion("find_by_id", callback)

        @completion.on_error
        def _missing(error):
            if self._is_missing(error):
                raise NotFoundError.for_id(id, rev)
            return error

        return completion.start(self._find_by_id, id, rev)
    """

    def __init__(
        self,
        operation: str,
        callback: Callable[..., Any] | None = None,
        *,
        channel: EventChannel | None = None,
        normalizer: ErrorNormalizer | None = None,
        stack: str | None = None,
    ) -> None:
        validate_callback(callback)
        self.operation = operation
        self.has_callback = callback is not None
        self.stack = stack if stack is not None else capture_stack(skip=2)
        self._sink = EventChannel()
        if callback is not None:
            self._sink.once(operation, callback)
        self._channel = channel
        self._normalizer = normalizer or ErrorNormalizer()
        self._success_hook: SuccessHook | None = None
        self._error_hook: ErrorHook | None = None
        self._delivered = False

    @property
    def delivered(self) -> bool:
        return self._delivered

    def on_success(self, fn: SuccessHook) -> SuccessHook:
        """Register the success hook (usable as a decorator).

        The hook receives the raw backend value and returns the value to
        deliver. Raising inside the hook turns the raised exception into
        this call's error.
        """
        self._success_hook = fn
        return fn

    def on_error(self, fn: ErrorHook) -> ErrorHook:
        """Register the error hook (usable as a decorator).

        The hook receives the normalized error and returns the error to
        deliver (returning ``None`` keeps the error unchanged). Raising
        inside the hook delivers the raised exception instead.
        """
        self._error_hook = fn
        return fn

    async def run(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Result[Any]:
        """Await one backend call and complete with its outcome."""
        try:
            value = await fn(*args, **kwargs)
        except Exception as e:
            return await self.complete(e)
        return await self.complete(None, value)

    def start(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Awaitable[Result[Any]]:
        """:meth:`run`, scheduled right away when a callback was given."""
        return spawn(self.run(fn, *args, **kwargs), eager=self.has_callback)

    async def complete(self, error: BaseException | None = None, value: Any = None) -> Result[Any]:
        """Trigger the completion with the raw backend outcome."""
        if self._delivered:
            raise CompletionError(f"Completion for '{self.operation}' was already delivered")
        self._delivered = True

        final_error, final_value = await self._resolve(error, value)

        await self._sink.emit(self.operation, final_error, final_value)
        if self._channel is not None:
            await self._channel.emit(self.operation, final_error, final_value)

        logger.debug(
            "completion_delivered",
            operation=self.operation,
            ok=final_error is None,
            error_type=type(final_error).__name__ if final_error is not None else None,
        )
        return from_outcome(final_error, final_value)

    async def _resolve(self, error: BaseException | None, value: Any) -> tuple[Any, Any]:
        error = self._normalizer.normalize(self.operation, error, self.stack)
        if error is not None:
            return await self._handle_error(error), None

        if self._success_hook is None:
            return None, value
        try:
            updated = self._success_hook(value)
            if inspect.isawaitable(updated):
                updated = await updated
        except Exception as e:
            return await self._handle_error(e), None
        return None, updated

    async def _handle_error(self, error: BaseException) -> BaseException:
        if self._error_hook is None:
            return error
        try:
            replaced = self._error_hook(error)
            if inspect.isawaitable(replaced):
                replaced = await replaced
        except Exception as e:
            return e
        if isinstance(replaced, BaseException):
            return replaced
        return error
