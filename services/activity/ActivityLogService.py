"""Per-user audit trail stored under ``users/{uid}/activityLogs``."""

from datetime import datetime, timezone
from typing import Callable

from shared.clients.auth.AuthClientInterface import AuthClientInterface
from shared.clients.auth.models.Session import SessionEvent
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ConfirmationRequiredError, NotFoundError, PermissionDeniedError, StoreError
from shared.models.user import ActivityLog
from services.aggregation.aggregation import to_datetime

ACTIVITY_COLLECTION = "activityLogs"
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class ActivityLogService:

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._unsubscribe_session: Callable[[], None] | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_logs_path(self, user_id: str, *parts: str) -> str:
        return self._store.normalize_path("users", user_id, ACTIVITY_COLLECTION, *parts)

    async def _get_username(self, user_id: str) -> str:
        name = await self._store.do_read(self._store.normalize_path("users", user_id, "name"))
        return name if isinstance(name, str) and name else "Unknown"

    ##########################################
    ############### SESSIONS #################
    ##########################################

    def attach(self, auth_client: AuthClientInterface) -> None:
        """Log every sign-in and sign-out reported by the identity provider."""
        self.detach()
        self._unsubscribe_session = auth_client.on_session_change(self._on_session_change)

    def detach(self) -> None:
        if self._unsubscribe_session is not None:
            self._unsubscribe_session()
            self._unsubscribe_session = None

    async def _on_session_change(self, event: SessionEvent) -> None:
        if event.signed_in:
            await self.try_log(event.uid, "Login", "User logged in")
        else:
            await self.try_log(event.uid, "Logout", "User logged out")

    ##########################################
    ################ CORE ####################
    ##########################################

    async def log(self, user_id: str, action: str, description: str) -> ActivityLog:
        """Append an entry to the user's activity log.

        Raises:
            StoreError: If the entry cannot be written.
        """
        entry = {
            "action": action,
            "description": description,
            "timestamp": self._clock().isoformat(),
            "username": await self._get_username(user_id),
            "userId": user_id,
        }
        key = await self._store.do_push(self._get_logs_path(user_id), entry)
        return ActivityLog.model_validate({**entry, "key": key})

    async def try_log(self, user_id: str, action: str, description: str) -> ActivityLog | None:
        """Like ``log`` but a failing store only produces a warning.

        Used after the primary operation already succeeded, which must not
        be reported as failed because its audit entry could not be written.
        """
        try:
            return await self.log(user_id, action, description)
        except (StoreError, PermissionDeniedError) as e:
            self.logging.warning("Failed to log activity '%s' of user %s: %s", action, user_id, e, color="yellow")
            return None

    async def list_logs(self, user_id: str) -> list[ActivityLog]:
        """Return one user's log entries, newest first."""
        data = await self._store.do_read(self._get_logs_path(user_id))
        username = await self._get_username(user_id)
        return self._sorted(self._parse(user_id, username, data))

    async def list_all_logs(self) -> list[ActivityLog]:
        """Return the log entries of every user, newest first."""
        users = await self._store.do_read("users") or {}
        logs: list[ActivityLog] = []
        for user_id, user_data in users.items():
            if not isinstance(user_data, dict):
                continue
            username = user_data.get("name") or "Unknown"
            logs.extend(self._parse(user_id, username, user_data.get(ACTIVITY_COLLECTION)))
        return self._sorted(logs)

    async def delete_log(self, user_id: str, key: str) -> None:
        """
        Raises:
            NotFoundError: If the entry does not exist.
        """
        path = self._get_logs_path(user_id, key)
        if await self._store.do_read(path) is None:
            raise NotFoundError(f"Activity log '{key}' of user '{user_id}' does not exist.")
        await self._store.do_delete(path)

    async def clear_logs(self, user_id: str | None = None, confirm: bool = False) -> None:
        """Delete the log entries of one user, or of every user when ``user_id`` is None.

        Raises:
            ConfirmationRequiredError: Unless ``confirm`` is set.
        """
        if not confirm:
            raise ConfirmationRequiredError("Clearing activity logs requires confirmation.")
        if user_id is not None:
            await self._store.do_delete(self._get_logs_path(user_id))
            self.logging.info("Cleared activity logs of user %s.", user_id)
            return

        users = await self._store.do_read("users") or {}
        updates = {f"{uid}/{ACTIVITY_COLLECTION}": None for uid, data in users.items() if isinstance(data, dict) and data.get(ACTIVITY_COLLECTION)}
        if updates:
            await self._store.do_update("users", updates)
        self.logging.info("Cleared activity logs of %d user(s).", len(updates))

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _parse(self, user_id: str, username: str, data) -> list[ActivityLog]:
        if not isinstance(data, dict):
            return []
        logs = []
        for key, value in data.items():
            if not isinstance(value, dict):
                continue
            logs.append(ActivityLog.model_validate({
                "username": username,
                "action": "Unknown",
                "description": "",
                "timestamp": "",
                **value,
                "key": key,
                "userId": user_id,
            }))
        return logs

    @staticmethod
    def _sorted(logs: list[ActivityLog]) -> list[ActivityLog]:
        # unparseable timestamps sort last
        return sorted(logs, key=lambda log: to_datetime(log.timestamp) or EPOCH, reverse=True)
