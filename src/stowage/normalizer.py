"""
Backend error normalization.

Manifesto:
    CouchDB answers with JSON bodies, MongoDB raises driver exceptions,
    Redis raises its own connection errors and the filesystem raises
    ``OSError``. Callers should not have to know any of that. The
    ``ErrorNormalizer`` maps each raw error onto one of the domain errors in
    :mod:`stowage.errors` with a stable message, or, when no rule applies,
    hands back the original error untouched except for a diagnostic note
    naming the operation and the caller's stack.

Architecture:
    ::

        normalize(operation, error, stack)
            │
            ├── error is None ───────────────▶ None
            ├── StorageError ────────────────▶ unchanged
            ├── first matching rule ─────────▶ rule.build(error)   (cause=error)
            └── no rule ─────────────────────▶ error + note(operation, stack)

Normalization is a pure function of its inputs and never raises: a rule
whose predicate or builder fails is skipped.

Tags:
    error-handling, normalization, stowage

Doc-Types:
    api-reference
"""

from __future__ import annotations

import errno
import socket
import traceback
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from stowage.errors import (
    AuthenticationFailedError,
    DatabaseNotFoundError,
    ServerNotFoundError,
    StorageError,
)
from stowage.logging import get_logger

__all__ = [
    "NormalizationRule",
    "ErrorNormalizer",
    "capture_stack",
    "is_unreachable",
    "server_not_found",
    "database_not_found",
    "authentication_failed",
]

logger = get_logger(__name__)

NOTE_PREFIX = "[stowage]"


@dataclass(frozen=True, slots=True)
class NormalizationRule:
    """Maps one family of raw backend errors to a domain error."""

    kind: str
    matches: Callable[[BaseException], bool]
    build: Callable[[BaseException], StorageError]


def capture_stack(skip: int = 2) -> str:
    """Format the current call stack, dropping the innermost ``skip`` frames."""
    frames = traceback.format_stack()
    if skip:
        frames = frames[:-skip]
    return "".join(frames)


def is_unreachable(error: BaseException) -> bool:
    """True for DNS failures and refused connections."""
    if isinstance(error, (socket.gaierror, ConnectionRefusedError)):
        return True
    if isinstance(error, OSError) and error.errno in (
        errno.ECONNREFUSED,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
    ):
        return True
    cause = error.__cause__ or error.__context__
    if cause is not None and cause is not error:
        return isinstance(cause, (socket.gaierror, ConnectionRefusedError))
    return False


# ── Stock rules ──────────────────────────────────────────────────────────


def server_not_found(
    url: str,
    matches: Callable[[BaseException], bool] = is_unreachable,
) -> NormalizationRule:
    return NormalizationRule(
        kind="server_not_found",
        matches=matches,
        build=lambda error: ServerNotFoundError(url, cause=error),
    )


def database_not_found(
    database: str,
    matches: Callable[[BaseException], bool],
) -> NormalizationRule:
    return NormalizationRule(
        kind="database_not_found",
        matches=matches,
        build=lambda error: DatabaseNotFoundError(database, cause=error),
    )


def authentication_failed(
    matches: Callable[[BaseException], bool],
) -> NormalizationRule:
    return NormalizationRule(
        kind="authentication_failed",
        matches=matches,
        build=lambda error: AuthenticationFailedError(cause=error),
    )


class ErrorNormalizer:
    """
    Ordered set of normalization rules plus the context stamped on results.

    Example:
        normalizer = ErrorNormalizer(
            [server_not_found("http://couch:5984/")],
            provider="Profiles",
            provider_type="CouchDB",
        )
        error = normalizer.normalize("connect", raw_error, stack)
    """

    def __init__(
        self,
        rules: Iterable[NormalizationRule] = (),
        **context: Any,
    ) -> None:
        self._rules = list(rules)
        self._context = context

    @property
    def rules(self) -> list[NormalizationRule]:
        return list(self._rules)

    def add(self, rule: NormalizationRule) -> None:
        self._rules.append(rule)

    def normalize(
        self,
        operation: str,
        error: BaseException | None,
        stack: str | None = None,
    ) -> BaseException | None:
        if error is None:
            return None
        if isinstance(error, StorageError):
            return error

        for rule in self._rules:
            try:
                if not rule.matches(error):
                    continue
                normalized = rule.build(error)
            except Exception as e:
                logger.debug(
                    "normalization_rule_failed",
                    rule=rule.kind,
                    operation=operation,
                    error=str(e),
                )
                continue
            normalized.with_context(operation=operation, **self._context)
            return normalized

        self._annotate(operation, error, stack)
        return error

    def _annotate(self, operation: str, error: BaseException, stack: str | None) -> None:
        notes = getattr(error, "__notes__", None) or []
        if any(note.startswith(NOTE_PREFIX) for note in notes):
            return
        where = " ".join(f"{k}={v}" for k, v in self._context.items() if v is not None)
        note = f"{NOTE_PREFIX} unmapped {type(error).__name__} during '{operation}'"
        if where:
            note += f" ({where})"
        if stack:
            note += "\ncalled from:\n" + stack.rstrip()
        try:
            error.add_note(note)
        except Exception:
            logger.debug("normalization_note_failed", operation=operation)
