"""
Blockchain confirmation oracle port.

The gateway never talks to a node directly from application code; it only asks
how deep a transaction is buried. Infrastructure provides the JSON-RPC adapter.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ConfirmationOracle(Protocol):
    """Returns the confirmation depth of a transaction (0 when not yet mined or unknown)."""

    async def get_confirmations(self, network: str, tx_hash: str) -> int: ...
