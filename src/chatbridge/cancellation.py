"""Explicit cancellation tokens.

A ``CancellationToken`` is passed into every suspendable operation instead of
relying on ambient task state. Linking one token to another is an explicit
subscribe/unsubscribe pair so a link can be scoped to a single attempt.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING

from chatbridge.errors import CancellationError

if TYPE_CHECKING:
    from collections.abc import Callable


class CancellationToken:
    """One-shot cancellation signal carrying the reason it was triggered."""

    def __init__(self) -> None:
        self._reason: BaseException | None = None
        self._callbacks: list[Callable[[BaseException], None]] = []
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel`` has been called."""
        return self._reason is not None

    @property
    def reason(self) -> BaseException | None:
        """The exception describing why the token was cancelled."""
        return self._reason

    def cancel(self, reason: BaseException | str | None = None) -> None:
        """Trigger the token. Later calls are ignored.

        String and ``None`` reasons are wrapped in ``CancellationError``.
        """
        if self._reason is not None:
            return
        if isinstance(reason, BaseException):
            self._reason = reason
        else:
            self._reason = CancellationError(reason or "Operation cancelled")
        self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self._reason)

    def add_callback(
        self, callback: Callable[[BaseException], None]
    ) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """
        if self._reason is not None:
            callback(self._reason)
            return _noop

        self._callbacks.append(callback)

        def remove() -> None:
            with suppress(ValueError):
                self._callbacks.remove(callback)

        return remove

    def link(self, child: CancellationToken) -> Callable[[], None]:
        """Propagate cancellation of this token into *child* until unlinked."""
        return self.add_callback(child.cancel)

    async def wait(self) -> BaseException:
        """Suspend until the token is cancelled and return the reason."""
        await self._event.wait()
        assert self._reason is not None
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise the cancellation reason if the token has fired."""
        if self._reason is not None:
            raise self._reason

    def __repr__(self) -> str:
        state = f"cancelled={self._reason!r}" if self._reason else "active"
        return f"CancellationToken({state})"


def _noop() -> None:
    return None
