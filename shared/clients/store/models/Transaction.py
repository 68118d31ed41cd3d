"""Result model of an atomic read-modify-write on a single store path."""

from typing import Any

from pydantic import BaseModel


class TransactionResult(BaseModel):
    """
    Attributes:
        path:      The store path the transaction ran on.
        committed: False when the update function aborted (returned ABORT_TRANSACTION).
        value:     The value at the path after the transaction.
        attempts:  Number of compare-and-swap rounds needed.
    """

    path: str
    committed: bool
    value: Any = None
    attempts: int = 1
