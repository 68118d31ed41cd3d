"""Per-user sequential record identifiers.

An identifier reads ``<PREFIX><NNNN>``: two letters derived from the user's
name plus the user's counter (``users/{uid}/lastMessageId``) padded to four
digits. The counter always holds the number the *next* record will get.

Allocation is split in two steps:
  preview / peek_next_id : read the counter (creating it with 1 on first use);
                           nothing is reserved.
  commit_allocation      : atomically increment the counter once the record
                           carrying the previewed identifier has been stored.
"""

import re
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel

from shared.clients.store.StoreClientInterface import ABORT_TRANSACTION, StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import PermissionDeniedError, StoreError

FALLBACK_PREFIX = "XX"
COUNTER_DIGITS = 4

_WORD_SEPARATORS = re.compile(r"[\s._\-]+")


def derive_prefix(identifier: str | None) -> str:
    """Build a two-letter prefix from a display name or an email address.

    The email domain is dropped, the rest is split into words. The prefix is
    the first letter of the first word plus the first letter of the second
    word (else the second letter of the first word, else "X").

    >>> derive_prefix("jane.doe@example.com")
    'JD'
    >>> derive_prefix("Al")
    'AL'
    >>> derive_prefix("")
    'XX'
    """
    if not identifier or not identifier.strip():
        return FALLBACK_PREFIX
    local_part = identifier.strip().split("@", 1)[0]
    words = [word for word in _WORD_SEPARATORS.split(local_part) if word]
    if not words:
        return FALLBACK_PREFIX

    first = words[0]
    if len(words) > 1:
        second = words[1][0]
    elif len(first) > 1:
        second = first[1]
    else:
        second = "X"
    return (first[0] + second).upper()


def format_id(prefix: str, counter: int) -> str:
    return f"{prefix}{counter:0{COUNTER_DIGITS}d}"


def temporary_id(now: datetime) -> str:
    """Stand-in identifier used while the counter store is unreachable."""
    millis = int(now.timestamp() * 1000)
    return FALLBACK_PREFIX + str(millis)[-COUNTER_DIGITS:].zfill(COUNTER_DIGITS)


def _initial_counter(current):
    # keep a valid counter untouched, create (or repair) it otherwise
    if isinstance(current, int) and not isinstance(current, bool) and current >= 1:
        return ABORT_TRANSACTION
    return 1


def _increment_counter(current) -> int:
    if isinstance(current, int) and not isinstance(current, bool) and current >= 1:
        return current + 1
    # a counter that was never previewed starts at 1, the commit moves it past that
    return 2


class IdPreview(BaseModel):
    """
    Attributes:
        id:        The identifier to show / write into the next record.
        counter:   The counter value the identifier was built from; None for temporary identifiers.
        temporary: True when the counter store could not be reached.
        warning:   User-facing explanation when ``temporary`` is set.
    """

    id: str
    counter: int | None = None
    temporary: bool = False
    warning: str | None = None


class IdAllocator:
    """Hands out readable, per-user sequential record identifiers."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_counter_path(self, user_id: str) -> str:
        return self._store.normalize_path("users", user_id, "lastMessageId")

    async def get_prefix(self, user_id: str) -> str:
        """Prefix from the stored display name, else from the stored email."""
        name = await self._store.do_read(self._store.normalize_path("users", user_id, "name"))
        if isinstance(name, str) and name.strip():
            return derive_prefix(name)
        email = await self._store.do_read(self._store.normalize_path("users", user_id, "email"))
        return derive_prefix(email if isinstance(email, str) else None)

    ##########################################
    ################ CORE ####################
    ##########################################

    async def preview(self, user_id: str) -> IdPreview:
        """Preview the next identifier of a user without reserving it.

        Creates the counter with value 1 on first use. Concurrent previews
        before a commit return the same identifier.

        If the store cannot be reached, a temporary identifier derived from
        the current time is returned together with a warning instead of
        raising, so record creation is never blocked by the allocator.
        """
        try:
            result = await self._store.do_transaction(self._get_counter_path(user_id), _initial_counter)
            counter = int(result.value)
            prefix = await self.get_prefix(user_id)
        except (StoreError, PermissionDeniedError) as e:
            temp_id = temporary_id(self._clock())
            self.logging.warning("ID counter of user %s unavailable (%s); using temporary ID %s.", user_id, e, temp_id, color="yellow")
            return IdPreview(
                id=temp_id,
                temporary=True,
                warning=f"Could not reach the ID counter. Using temporary ID {temp_id}.",
            )
        return IdPreview(id=format_id(prefix, counter), counter=counter)

    async def peek_next_id(self, user_id: str) -> str:
        """Return the next identifier of a user, e.g. "JD0007" (see ``preview``)."""
        return (await self.preview(user_id)).id

    async def commit_allocation(self, user_id: str) -> int:
        """Atomically advance the user's counter by one.

        Call only after a record carrying the previewed identifier has been
        stored. Concurrent commits never lose an increment.

        Returns:
            int: The new counter value, i.e. the number of the next identifier.

        Raises:
            StoreError: If the store is unreachable or the transaction cannot commit.
        """
        result = await self._store.do_transaction(self._get_counter_path(user_id), _increment_counter)
        self.logging.debug("Committed ID counter of user %s, next number is %s.", user_id, result.value)
        return int(result.value)
