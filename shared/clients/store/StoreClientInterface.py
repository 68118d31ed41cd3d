import inspect
from abc import abstractmethod
from typing import Any, Awaitable, Callable

from shared.clients.ClientInterface import ClientInterface
from shared.clients.store.models.Subscription import StoreSubscription
from shared.clients.store.models.Transaction import TransactionResult
from shared.clients.store.tree import join_path, split_path
from shared.helper.HelperConfig import HelperConfig

# returned by a transaction update function to leave the value untouched
ABORT_TRANSACTION = object()

UpdateFunction = Callable[[Any], Any]
ChangeCallback = Callable[[Any], Awaitable[None] | None]


async def invoke_callback(callback: ChangeCallback, value: Any) -> None:
    """Call a subscription callback that may be a plain function or a coroutine function."""
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class StoreClientInterface(ClientInterface):
    """Hierarchical key-path document store (realtime database semantics).

    Paths are slash separated ("users/{uid}/sentMessages/{key}"). Values are
    JSON compatible; writing None deletes, empty objects do not exist.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "store"

    def normalize_path(self, *parts: str) -> str:
        """Join and validate path parts.

        Raises:
            InvalidPathError: If a segment contains a forbidden character.
        """
        return join_path(*parts)

    def path_segments(self, path: str) -> list[str]:
        return split_path(path)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_read(self, path: str) -> Any:
        """
        Point read.

        Returns:
            Any: The value stored at the path, or None if nothing is stored there.

        Raises:
            StoreError: If the backend is unreachable or rejects the read.
        """
        pass

    @abstractmethod
    async def do_write(self, path: str, value: Any) -> None:
        """
        Overwrite the value at the path (None deletes).

        Raises:
            StoreError: If the backend is unreachable or rejects the write.
        """
        pass

    @abstractmethod
    async def do_update(self, path: str, fields: dict) -> None:
        """
        Merge ``fields`` into the object at the path. Keys may be relative paths.

        Raises:
            StoreError: If the backend is unreachable or rejects the update.
        """
        pass

    @abstractmethod
    async def do_delete(self, path: str) -> None:
        """
        Remove the whole subtree at the path.

        Raises:
            StoreError: If the backend is unreachable or rejects the delete.
        """
        pass

    @abstractmethod
    async def do_push(self, path: str, value: Any) -> str:
        """
        Append ``value`` as a new child of the path under a generated,
        chronologically ordered key.

        Returns:
            str: The generated child key.

        Raises:
            StoreError: If the backend is unreachable or rejects the write.
        """
        pass

    @abstractmethod
    async def do_transaction(self, path: str, update_fn: UpdateFunction) -> TransactionResult:
        """
        Atomic read-modify-write of a single path.

        ``update_fn`` receives the current value (None if absent) and returns
        the new value, or ``ABORT_TRANSACTION`` to leave it unchanged. It may
        be called several times when concurrent writers interfere, so it must
        be free of side effects.

        Raises:
            StoreError: If the backend is unreachable or the transaction cannot commit.
        """
        pass

    @abstractmethod
    async def do_subscribe(self, path: str, callback: ChangeCallback) -> StoreSubscription:
        """
        Continuous read: ``callback`` fires with the current value right away
        and again after every change below the path, until the returned
        subscription is unsubscribed.

        Raises:
            StoreError: If the backend is unreachable.
        """
        pass
