"""Pure state transitions for the portfolio store.

Every function takes the current :class:`PortfolioState` plus a payload and
returns a new state. Transitions that touch tokens or holdings finish with
:func:`recompute`, so ``total`` always reflects the holdings it was derived
from.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from ..formatting import format_currency, parse_numeric
from ..models import DEFAULT_HOLDING, PortfolioState, Token


def portfolio_total(tokens: Iterable[Token], holdings: Mapping[str, str]) -> float:
    return sum(parse_numeric(holdings.get(t.id, "0")) * t.current_price for t in tokens)


def recompute(state: PortfolioState, now: datetime) -> PortfolioState:
    """Re-derive per-token holdings/value and the portfolio total.

    Tokens without a holdings entry display ``state.default_holding``.
    """
    tokens = tuple(
        replace(
            token,
            holdings=state.holdings.get(token.id, state.default_holding),
            value=format_currency(
                parse_numeric(state.holdings.get(token.id, "0")) * token.current_price
            ),
        )
        for token in state.tokens
    )
    return replace(
        state,
        tokens=tokens,
        total=portfolio_total(tokens, state.holdings),
        last_updated=now,
    )


# ---------------------------------------------------------------------------
# Async action lifecycle
# ---------------------------------------------------------------------------


def fetch_pending(state: PortfolioState) -> PortfolioState:
    return replace(state, is_loading=True, error=None)


def fetch_rejected(state: PortfolioState, message: str) -> PortfolioState:
    return replace(state, is_loading=False, error=message)


def tokens_fetched(
    state: PortfolioState, tokens: Sequence[Token], now: datetime
) -> PortfolioState:
    """Replace the whole token list with a fresh snapshot."""
    return recompute(
        replace(state, tokens=_unique(tokens), is_loading=False), now
    )


def tokens_added(
    state: PortfolioState,
    tokens: Sequence[Token],
    now: datetime,
    default_holding: str = DEFAULT_HOLDING,
) -> PortfolioState:
    """Insert genuinely new tokens at the front; existing ones stay as they are."""
    present = {t.id for t in state.tokens}
    new_tokens = tuple(t for t in _unique(tokens) if t.id not in present)

    holdings = dict(state.holdings)
    watchlist = list(state.watchlist)
    for token in new_tokens:
        if not holdings.get(token.id):
            holdings[token.id] = default_holding
        if token.id not in watchlist:
            watchlist.append(token.id)

    return recompute(
        replace(
            state,
            tokens=new_tokens + state.tokens,
            holdings=holdings,
            watchlist=tuple(watchlist),
            is_loading=False,
        ),
        now,
    )


def prices_refreshed(
    state: PortfolioState, tokens: Sequence[Token], now: datetime
) -> PortfolioState:
    """Swap in fresh market data for known tokens, keeping list order.

    Watchlist tokens that were not loaded yet are appended in watchlist order.
    """
    fresh = {t.id: t for t in tokens}
    updated = [fresh.get(t.id, t) for t in state.tokens]
    present = {t.id for t in updated}
    for token_id in state.watchlist:
        if token_id in fresh and token_id not in present:
            updated.append(fresh[token_id])
            present.add(token_id)
    return recompute(replace(state, tokens=tuple(updated), is_loading=False), now)


# ---------------------------------------------------------------------------
# Synchronous edits
# ---------------------------------------------------------------------------


def holding_updated(
    state: PortfolioState, token_id: str, amount: str, now: datetime
) -> PortfolioState:
    holdings = dict(state.holdings)
    holdings[token_id] = amount
    return recompute(replace(state, holdings=holdings), now)


def watchlist_added(
    state: PortfolioState,
    token_id: str,
    now: datetime,
    default_holding: str = DEFAULT_HOLDING,
) -> PortfolioState:
    if token_id in state.watchlist:
        return state
    holdings = dict(state.holdings)
    if not holdings.get(token_id):
        holdings[token_id] = default_holding
    return replace(
        state,
        watchlist=state.watchlist + (token_id,),
        holdings=holdings,
        last_updated=now,
    )


def watchlist_removed(
    state: PortfolioState, token_id: str, now: datetime
) -> PortfolioState:
    """Drop ``token_id`` from the watchlist, the token list and holdings."""
    holdings = {k: v for k, v in state.holdings.items() if k != token_id}
    return recompute(
        replace(
            state,
            watchlist=tuple(i for i in state.watchlist if i != token_id),
            tokens=tuple(t for t in state.tokens if t.id != token_id),
            holdings=holdings,
        ),
        now,
    )


def identity_loaded(
    state: PortfolioState,
    address: str | None,
    watchlist: Sequence[str],
    holdings: Mapping[str, str],
    now: datetime,
) -> PortfolioState:
    """Bind another identity's watchlist/holdings.

    The token list, loading flag and error survive only when the identity
    did not change.
    """
    same = address == state.address
    tokens = state.tokens if same else ()
    return recompute(
        replace(
            state,
            address=address,
            tokens=tokens,
            watchlist=tuple(watchlist),
            holdings=dict(holdings),
            is_loading=state.is_loading if same else False,
            error=state.error if same else None,
        ),
        now,
    )


def cleared(state: PortfolioState, now: datetime) -> PortfolioState:
    return replace(
        state,
        tokens=(),
        holdings={},
        watchlist=(),
        total=0.0,
        last_updated=now,
    )


def touched(state: PortfolioState, now: datetime) -> PortfolioState:
    return replace(state, last_updated=now)


def error_cleared(state: PortfolioState) -> PortfolioState:
    return replace(state, error=None)


def _unique(tokens: Iterable[Token]) -> tuple[Token, ...]:
    seen: set[str] = set()
    out: list[Token] = []
    for token in tokens:
        if token.id not in seen:
            seen.add(token.id)
            out.append(token)
    return tuple(out)
