import asyncio
import json
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
from shared.clients.store.tree import get_at, merge_at, set_at, split_path
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import PermissionDeniedError, StoreError


class StoreClientFirebase(StoreClientInterface):
    """Firebase Realtime Database over its REST API.

    Every path is addressed as ``{DATABASE_URL}/{path}.json``. Transactions use
    the ETag / if-match protocol, subscriptions the ``text/event-stream`` API.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._database_url = self.get_config_val("DATABASE_URL", default=None, val_type="string")
        self._auth_token = self.get_config_val("AUTH_TOKEN", default="", val_type="string")
        self._transaction_retries = int(self.get_config_val("TRANSACTION_RETRIES", default=25, val_type="number"))
        self._listener_tasks: set[asyncio.Task] = set()

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Firebase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="DATABASE_URL", val_type="string", default=None),
            EnvConfig(env_key="AUTH_TOKEN", val_type="string", default=""),
            EnvConfig(env_key="TRANSACTION_RETRIES", val_type="number", default=25),
        ]

    ################ AUTH ##################
    def _get_auth_params(self) -> dict:
        if self._auth_token:
            return {"auth": self._auth_token}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._database_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/.json"

    def _get_endpoint_path(self, path: str) -> str:
        return f"/{self.normalize_path(path)}.json"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _check_response(self, response: httpx.Response, action: str, path: str) -> None:
        """
        Raises:
            PermissionDeniedError: If the security rules reject the request.
            StoreError: On any other non-2xx status.
        """
        if response.is_success:
            return
        detail = self._parse_error(response)
        self.logging.error("Store %s of '%s' failed with status %d: %s", action, path, response.status_code, detail)
        if response.status_code in (401, 403):
            raise PermissionDeniedError(f"Permission denied: cannot {action} '{path}'.")
        raise StoreError(f"Failed to {action} '{path}' (status {response.status_code}): {detail}")

    def _parse_error(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict) and "error" in body:
            return str(body["error"])
        return response.text

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        return await self.do_request(method="GET", endpoint="/.json", params={"shallow": "true"})

    async def do_read(self, path: str) -> Any:
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_path(path))
        self._check_response(response, "read", path)
        return response.json()

    async def do_write(self, path: str, value: Any) -> None:
        if value is None:
            await self.do_delete(path)
            return
        response = await self.do_request(
            method="PUT",
            endpoint=self._get_endpoint_path(path),
            json=value,
            params={"print": "silent"},
        )
        self._check_response(response, "write", path)

    async def do_update(self, path: str, fields: dict) -> None:
        response = await self.do_request(
            method="PATCH",
            endpoint=self._get_endpoint_path(path),
            json=fields,
            params={"print": "silent"},
        )
        self._check_response(response, "update", path)

    async def do_delete(self, path: str) -> None:
        response = await self.do_request(method="DELETE", endpoint=self._get_endpoint_path(path))
        self._check_response(response, "delete", path)

    async def do_push(self, path: str, value: Any) -> str:
        response = await self.do_request(method="POST", endpoint=self._get_endpoint_path(path), json=value)
        self._check_response(response, "push to", path)
        key = response.json().get("name")
        if not key:
            raise StoreError(f"Push to '{path}' returned no key.")
        return key

    async def do_transaction(self, path: str, update_fn: UpdateFunction) -> TransactionResult:
        endpoint = self._get_endpoint_path(path)

        response = await self.do_request(method="GET", endpoint=endpoint, additional_headers={"X-Firebase-ETag": "true"})
        self._check_response(response, "read", path)

        for attempt in range(1, self._transaction_retries + 1):
            etag = response.headers.get("ETag")
            if not etag:
                raise StoreError(f"Store did not return an ETag for '{path}'; transactions are not supported.")
            current = response.json()

            new_value = update_fn(current)
            if new_value is ABORT_TRANSACTION:
                return TransactionResult(path=path, committed=False, value=current, attempts=attempt)

            response = await self.do_request(
                method="PUT",
                endpoint=endpoint,
                json=new_value,
                send_json_null=True,
                additional_headers={"if-match": etag},
            )
            if response.status_code != 412:
                self._check_response(response, "write", path)
                return TransactionResult(path=path, committed=True, value=response.json(), attempts=attempt)

            # 412 carries the current value and its ETag, retry right away
            self.logging.debug("Transaction on '%s' lost a race (attempt %d), retrying.", path, attempt)

        raise StoreError(f"Transaction on '{path}' did not commit after {self._transaction_retries} attempts.")

    async def do_subscribe(self, path: str, callback: ChangeCallback) -> StoreSubscription:
        if self._client is None:
            raise StoreError("store client 'firebase' is not booted. Call boot() before making requests.")

        first_event = asyncio.Event()
        task = asyncio.create_task(self._listen(path, callback, first_event))
        self._listener_tasks.add(task)
        task.add_done_callback(self._on_listener_done)

        async def _cancel() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # wait for the initial snapshot so callers see the current value before returning
        waiter = asyncio.create_task(first_event.wait())
        done, _ = await asyncio.wait({waiter, task}, return_when=asyncio.FIRST_COMPLETED)
        if waiter not in done:
            waiter.cancel()
            # the listener ended before delivering anything: surface its failure
            task.result()
            raise StoreError(f"Subscription to '{path}' ended before the first snapshot.")
        return StoreSubscription(path=path, on_unsubscribe=_cancel)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        self.logging.error("Store subscription listener stopped: %s", task.exception())

    async def close(self) -> None:
        for task in list(self._listener_tasks):
            task.cancel()
        await super().close()

    ##########################################
    ########### EVENT STREAM #################
    ##########################################

    async def _listen(self, path: str, callback: ChangeCallback, first_event: asyncio.Event) -> None:
        snapshot: Any = None
        params = dict(self._get_auth_params())
        async with self._client.stream(
            "GET",
            self.build_url(self._get_endpoint_path(path)),
            params=params or None,
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(self.timeout, read=None),
        ) as response:
            if not response.is_success:
                await response.aread()
                self._check_response(response, "subscribe to", path)

            event_name: str | None = None
            async for line in response.aiter_lines():
                if line.startswith("event:"):
                    event_name = line[len("event:"):].strip()
                    continue
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()

                if event_name in ("put", "patch"):
                    payload = json.loads(data)
                    segments = split_path(payload.get("path", "/"))
                    if event_name == "put":
                        snapshot = set_at(snapshot, segments, payload.get("data"))
                    else:
                        snapshot = merge_at(snapshot, segments, payload.get("data") or {})
                    await invoke_callback(callback, get_at(snapshot, []))
                    first_event.set()
                elif event_name in ("cancel", "auth_revoked"):
                    self.logging.warning("Subscription to '%s' was closed by the store (%s).", path, event_name)
                    return
                event_name = None
