"""
Domain records shared by the listener, evaluator and trader
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class PoolRecord:
    """A decoded Raydium v4 pool. Immutable once decoded."""
    id: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    market_id: Pubkey
    open_time: int  # unix seconds
    base_decimals: int
    base_vault: Pubkey
    status: int
    quote_decimals: int
    quote_vault: Pubkey
    lp_mint: Pubkey
    open_orders: Pubkey
    target_orders: Pubkey
    withdraw_queue: Pubkey
    lp_vault: Pubkey
    market_program_id: Pubkey


@dataclass(frozen=True)
class MarketRecord:
    """
    OpenBook market metadata

    A market decoded from a feed notification carries everything; one fetched
    lazily through the minimal slice only has bids, asks and event queue.
    """
    id: Pubkey
    bids: Pubkey
    asks: Pubkey
    event_queue: Pubkey
    base_mint: Optional[Pubkey] = None
    quote_mint: Optional[Pubkey] = None
    base_vault: Optional[Pubkey] = None
    quote_vault: Optional[Pubkey] = None
    vault_signer_nonce: Optional[int] = None


@dataclass
class TokenAccountRecord:
    """Wallet-side bookkeeping for one mint. Only ever enriched, never replaced."""
    mint: Pubkey
    address: Pubkey
    pool_keys: Optional[Any] = None
    market: Optional[MarketRecord] = None


class TradeSide(Enum):
    """Direction of a swap"""
    BUY = "buy"    # quote -> base
    SELL = "sell"  # base -> quote


@dataclass(frozen=True)
class TradeIntent:
    """What to swap and how much. Not persisted."""
    pool: PoolRecord
    amount_in: int  # raw units of the input token
    side: TradeSide
