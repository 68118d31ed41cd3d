import asyncio
import itertools
import random
import time
from typing import Any

import httpx

from shared.clients.store.StoreClientInterface import (
    ABORT_TRANSACTION,
    ChangeCallback,
    StoreClientInterface,
    UpdateFunction,
    invoke_callback,
)
from shared.clients.store.models.Subscription import StoreSubscription
from shared.clients.store.models.Transaction import TransactionResult
from shared.clients.store.tree import get_at, merge_at, paths_overlap, set_at
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import StoreError

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class StoreClientMemory(StoreClientInterface):
    """In-process store engine for local development and tests.

    The whole database is one nested dict. Transactions run under an
    asyncio lock, which makes them atomic against every other coroutine.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._root: dict | None = None
        self._lock = asyncio.Lock()
        self._listeners: dict[int, tuple[list[str], ChangeCallback]] = {}
        self._listener_ids = itertools.count(1)
        self._booted = False
        self._last_push_ms = 0
        self._last_rand: list[int] = []

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return []

    ################ AUTH ##################
    def _get_auth_params(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return "memory://store"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        self._booted = True

    async def close(self) -> None:
        self._booted = False
        self._listeners.clear()

    def is_booted(self) -> bool:
        return self._booted

    async def do_healthcheck(self) -> httpx.Response:
        return httpx.Response(200 if self._booted else 503)

    def _ensure_booted(self) -> None:
        if not self._booted:
            raise StoreError("store client 'memory' is not booted. Call boot() before making requests.")

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_read(self, path: str) -> Any:
        self._ensure_booted()
        return get_at(self._root, self.path_segments(path))

    async def do_write(self, path: str, value: Any) -> None:
        self._ensure_booted()
        segments = self.path_segments(path)
        self._root = set_at(self._root, segments, value)
        await self._notify(segments)

    async def do_update(self, path: str, fields: dict) -> None:
        self._ensure_booted()
        segments = self.path_segments(path)
        self._root = merge_at(self._root, segments, fields)
        await self._notify(segments)

    async def do_delete(self, path: str) -> None:
        await self.do_write(path, None)

    async def do_push(self, path: str, value: Any) -> str:
        key = self._next_push_key()
        await self.do_write(self.normalize_path(path, key), value)
        return key

    async def do_transaction(self, path: str, update_fn: UpdateFunction) -> TransactionResult:
        self._ensure_booted()
        segments = self.path_segments(path)
        async with self._lock:
            current = get_at(self._root, segments)
            new_value = update_fn(current)
            if new_value is ABORT_TRANSACTION:
                return TransactionResult(path=path, committed=False, value=current)
            self._root = set_at(self._root, segments, new_value)
            committed_value = get_at(self._root, segments)
        await self._notify(segments)
        return TransactionResult(path=path, committed=True, value=committed_value)

    async def do_subscribe(self, path: str, callback: ChangeCallback) -> StoreSubscription:
        self._ensure_booted()
        segments = self.path_segments(path)
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = (segments, callback)

        async def _remove() -> None:
            self._listeners.pop(listener_id, None)

        subscription = StoreSubscription(path=path, on_unsubscribe=_remove)
        await invoke_callback(callback, get_at(self._root, segments))
        return subscription

    ##########################################
    ################ HELPER ##################
    ##########################################

    async def _notify(self, changed: list[str]) -> None:
        # snapshot, callbacks may unsubscribe while we iterate
        for listener_id, (segments, callback) in list(self._listeners.items()):
            if listener_id not in self._listeners or not paths_overlap(segments, changed):
                continue
            await invoke_callback(callback, get_at(self._root, segments))

    def _next_push_key(self) -> str:
        """Generate a 20 character key that sorts in creation order."""
        now_ms = int(time.time() * 1000)
        duplicate_time = now_ms <= self._last_push_ms
        now_ms = max(now_ms, self._last_push_ms)
        self._last_push_ms = now_ms

        time_chars = []
        for _ in range(8):
            time_chars.append(PUSH_CHARS[now_ms % 64])
            now_ms //= 64
        key = "".join(reversed(time_chars))

        if not duplicate_time or not self._last_rand:
            self._last_rand = [random.randrange(64) for _ in range(12)]
        else:
            # same millisecond: increment the random part so keys stay ordered
            i = 11
            while i >= 0 and self._last_rand[i] == 63:
                self._last_rand[i] = 0
                i -= 1
            if i >= 0:
                self._last_rand[i] += 1
        return key + "".join(PUSH_CHARS[n] for n in self._last_rand)
