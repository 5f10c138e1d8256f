"""EVM chain id to CoinGecko asset-platform mapping."""

CHAIN_NETWORKS: dict[int, str] = {
    1: "ethereum",
    137: "polygon-pos",
    42161: "arbitrum-one",
    10: "optimistic-ethereum",
    8453: "base",
    56: "binance-smart-chain",
    250: "fantom",
    43114: "avalanche",
}


def network_for_chain(chain_id: int) -> str:
    """Unknown chains fall back to ``ethereum``."""
    return CHAIN_NETWORKS.get(chain_id, "ethereum")
