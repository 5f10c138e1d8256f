"""Application wiring: one client, store and view model per process."""
from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig
from .interfaces.storage import KeyValueStorage
from .market.coingecko import CoinGeckoClient, build_client
from .portfolio.store import PortfolioStore
from .services.view_model import PortfolioViewModel
from .storage import JsonFileStorage
from .wallet import StaticBalanceResolver, WalletSignal


@dataclass
class App:
    config: AppConfig
    client: CoinGeckoClient
    store: PortfolioStore
    wallet: WalletSignal
    view_model: PortfolioViewModel


def build_app(
    config: AppConfig,
    storage: KeyValueStorage | None = None,
    client: CoinGeckoClient | None = None,
) -> App:
    """Build the object graph from configuration.

    ``storage`` and ``client`` can be supplied to swap out the on-disk store
    or the network-backed client.
    """
    if client is None:
        client = build_client(config, StaticBalanceResolver(config.wallet))
    if storage is None:
        storage = JsonFileStorage(config.storage.path)

    store = PortfolioStore(client, storage, config.portfolio)
    wallet = WalletSignal()
    view_model = PortfolioViewModel(store, client, wallet, config.portfolio)
    return App(
        config=config,
        client=client,
        store=store,
        wallet=wallet,
        view_model=view_model,
    )
