"""Wallet-connection signal and configured balance discovery."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable

from .config import WalletConfig
from .models import TokenBalance, WalletState

logger = logging.getLogger(__name__)

WalletListener = Callable[[WalletState], None]


class WalletSignal:
    """Observable wallet state fed by the wallet-connection collaborator."""

    def __init__(self, state: WalletState | None = None) -> None:
        self._state = state or WalletState()
        self._listeners: list[WalletListener] = []

    @property
    def state(self) -> WalletState:
        return self._state

    def subscribe(self, listener: WalletListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: Any) -> WalletState:
        self._state = replace(self._state, **changes)
        self.notify()
        return self._state

    def connect(self, address: str, chain_id: int = 1, balance: str = "0") -> WalletState:
        return self.update(
            address=address, is_connected=True, chain_id=chain_id, balance=balance
        )

    def disconnect(self) -> WalletState:
        return self.update(address=None, is_connected=False, balance="0")

    def notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)


class StaticBalanceResolver:
    """Balance discovery backed by the ``wallet.balances`` config section.

    Stands in for a chain-indexing service; every address resolves to the
    same configured contract balances.
    """

    def __init__(self, config: WalletConfig) -> None:
        self._balances = dict(config.balances)

    async def resolve_balances(self, address: str, chain_id: int) -> list[TokenBalance]:
        logger.debug(
            "Resolving %d configured balances for %s on chain %d",
            len(self._balances),
            address,
            chain_id,
        )
        return [
            TokenBalance(contract_address=contract, balance=amount)
            for contract, amount in self._balances.items()
        ]
