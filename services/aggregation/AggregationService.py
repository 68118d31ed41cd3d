"""Reporting views over the store: filtered rows, dashboard statistics and live row streams."""

from collections import Counter
from datetime import datetime, timezone
from typing import Awaitable, Callable

from services.aggregation.aggregation import (
    aggregate_top_counterparts,
    collect_rows,
    collect_user_rows,
    filter_rows,
    unique_types,
)
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.Subscription import StoreSubscription
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import PermissionDeniedError
from shared.models.record import DashboardStats, Direction, FilterCriteria, Row
from shared.models.user import UserProfile

TOP_COUNTERPARTS = 5

RowsCallback = Callable[[list[Row]], Awaitable[None]]


class AggregationService:

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._tz = helper_config.get_timezone()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_scope_path(self, actor: UserProfile, all_users: bool) -> str:
        """Store path the caller may read rows from.

        Raises:
            PermissionDeniedError: If a non-admin asks for every user's rows.
        """
        if all_users:
            if not actor.is_admin:
                raise PermissionDeniedError("Only administrators can view every user's records.")
            return "users"
        return self._store.normalize_path("users", actor.uid)

    def _rows_from_snapshot(self, actor: UserProfile, all_users: bool, snapshot, now: datetime) -> list[Row]:
        if all_users:
            return collect_rows(snapshot, now=now)
        return collect_user_rows(actor.uid, snapshot, now=now)

    ##########################################
    ################ CORE ####################
    ##########################################

    async def load_rows(self, actor: UserProfile, all_users: bool = False) -> list[Row]:
        """Normalize the caller's records, or every user's for admins, without filtering."""
        now = self._clock()
        snapshot = await self._store.do_read(self._get_scope_path(actor, all_users))
        return self._rows_from_snapshot(actor, all_users, snapshot, now)

    def filter(self, rows: list[Row], criteria: FilterCriteria | None = None) -> list[Row]:
        """Apply criteria relative to the current time in the configured timezone."""
        return filter_rows(rows, criteria, now=self._clock(), tz=self._tz)

    async def get_rows(
        self,
        actor: UserProfile,
        criteria: FilterCriteria | None = None,
        all_users: bool = False,
    ) -> list[Row]:
        """Filtered rows, newest first."""
        return self.filter(await self.load_rows(actor, all_users=all_users), criteria)

    def build_dashboard(self, rows: list[Row]) -> DashboardStats:
        sent = [row for row in rows if row.direction is Direction.SENT]
        received = [row for row in rows if row.direction is Direction.RECEIVED]
        return DashboardStats(
            total_sent=len(sent),
            total_received=len(received),
            by_type=dict(Counter(row.communication_type for row in rows)),
            top_senders=aggregate_top_counterparts(received, Direction.RECEIVED, limit=TOP_COUNTERPARTS),
            top_receivers=aggregate_top_counterparts(sent, Direction.SENT, limit=TOP_COUNTERPARTS),
            types=unique_types(rows),
        )

    async def get_dashboard(
        self,
        actor: UserProfile,
        criteria: FilterCriteria | None = None,
        all_users: bool = False,
    ) -> DashboardStats:
        """Totals, per-type counts and the top five senders and receivers of the filtered rows."""
        return self.build_dashboard(await self.get_rows(actor, criteria, all_users=all_users))

    async def subscribe_rows(
        self,
        actor: UserProfile,
        callback: RowsCallback,
        criteria: FilterCriteria | None = None,
        all_users: bool = False,
    ) -> StoreSubscription:
        """Deliver freshly filtered rows now and after every change in the caller's scope.

        The caller owns the returned subscription and must unsubscribe it.
        """
        path = self._get_scope_path(actor, all_users)

        async def _on_change(snapshot) -> None:
            now = self._clock()
            rows = self._rows_from_snapshot(actor, all_users, snapshot, now)
            await callback(filter_rows(rows, criteria, now=now, tz=self._tz))

        subscription = await self._store.do_subscribe(path, _on_change)
        self.logging.debug("User %s subscribed to rows at '%s'.", actor.uid, path)
        return subscription
