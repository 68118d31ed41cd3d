"""Handle of a continuous store subscription."""

from typing import Awaitable, Callable


class StoreSubscription:
    """Unsubscribe handle returned by ``StoreClientInterface.do_subscribe``.

    Usable as an async context manager so a subscription lives exactly as long
    as the block that consumes it::

        async with await store.do_subscribe("users/abc/sentMessages", on_change):
            ...
    """

    def __init__(self, path: str, on_unsubscribe: Callable[[], Awaitable[None]]) -> None:
        self.path = path
        self._on_unsubscribe = on_unsubscribe
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        """Stop delivering changes. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        await self._on_unsubscribe()

    async def __aenter__(self) -> "StoreSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unsubscribe()
