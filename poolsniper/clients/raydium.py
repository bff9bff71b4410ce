"""
Raydium AMM v4 client helpers
Pool-key derivation, swapBaseIn instruction building and feed filters
"""

import struct
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List

import base58
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from poolsniper.clients.layouts import LIQUIDITY_STATE_LAYOUT_V4, MARKET_STATE_LAYOUT_V3
from poolsniper.core.models import MarketRecord, PoolRecord


RAYDIUM_LIQUIDITY_PROGRAM_ID_V4 = Pubkey.from_string("675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8")
OPENBOOK_PROGRAM_ID = Pubkey.from_string("srmqPvymJeFKQ4zGQed1GFppgkRHL9kaELCbyksJtPX")

AMM_AUTHORITY_SEED = b"amm authority"
SWAP_BASE_IN_INSTRUCTION = 9
LP_DECIMALS = 5

# Status value of a pool that was just initialized and is waiting to open
POOL_STATUS_INITIALIZED = 6


@dataclass(frozen=True)
class PoolKeys:
    """Every account a v4 swap touches"""
    id: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    lp_mint: Pubkey
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    version: int
    program_id: Pubkey
    authority: Pubkey
    open_orders: Pubkey
    target_orders: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    withdraw_queue: Pubkey
    lp_vault: Pubkey
    market_version: int
    market_program_id: Pubkey
    market_id: Pubkey
    market_authority: Pubkey
    market_base_vault: Pubkey
    market_quote_vault: Pubkey
    market_bids: Pubkey
    market_asks: Pubkey
    market_event_queue: Pubkey


@lru_cache(maxsize=None)
def derive_amm_authority(program_id: Pubkey = RAYDIUM_LIQUIDITY_PROGRAM_ID_V4) -> Pubkey:
    """AMM authority PDA shared by every pool of the program"""
    authority, _ = Pubkey.find_program_address([AMM_AUTHORITY_SEED], program_id)
    return authority


def derive_market_authority(market_id: Pubkey, market_program_id: Pubkey = OPENBOOK_PROGRAM_ID) -> Pubkey:
    """
    Market vault-signer PDA

    OpenBook derives it from the market id plus the first u64 nonce that
    yields an off-curve address.

    Raises:
        ValueError: If no nonce below 100 produces a valid address
    """
    seed = bytes(market_id)
    for nonce in range(100):
        try:
            return Pubkey.create_program_address(
                [seed, struct.pack('<Q', nonce)],
                market_program_id
            )
        except Exception:
            continue
    raise ValueError(f"Unable to find market authority for {market_id}")


def derive_pool_keys(pool: PoolRecord, market: MarketRecord) -> PoolKeys:
    """
    Build the swap account bundle for a pool

    The market vault slots reuse the pool vaults, which is what the v4
    program accepts since the order-book integration was switched off.
    """
    return PoolKeys(
        id=pool.id,
        base_mint=pool.base_mint,
        quote_mint=pool.quote_mint,
        lp_mint=pool.lp_mint,
        base_decimals=pool.base_decimals,
        quote_decimals=pool.quote_decimals,
        lp_decimals=LP_DECIMALS,
        version=4,
        program_id=RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
        authority=derive_amm_authority(),
        open_orders=pool.open_orders,
        target_orders=pool.target_orders,
        base_vault=pool.base_vault,
        quote_vault=pool.quote_vault,
        withdraw_queue=pool.withdraw_queue,
        lp_vault=pool.lp_vault,
        market_version=3,
        market_program_id=pool.market_program_id,
        market_id=pool.market_id,
        market_authority=derive_market_authority(pool.market_id, pool.market_program_id),
        market_base_vault=pool.base_vault,
        market_quote_vault=pool.quote_vault,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
    )


def make_swap_fixed_in_instruction(
    pool_keys: PoolKeys,
    token_account_in: Pubkey,
    token_account_out: Pubkey,
    owner: Pubkey,
    amount_in: int,
    min_amount_out: int = 0
) -> Instruction:
    """
    Build a swapBaseIn instruction (fixed input amount)

    Args:
        pool_keys: Derived pool keys
        token_account_in: Wallet account paying the input token
        token_account_out: Wallet account receiving the output token
        owner: Wallet owning both token accounts (signer)
        amount_in: Raw input amount
        min_amount_out: Raw minimum output, 0 disables slippage protection

    Returns:
        Instruction for the Raydium v4 program
    """
    data = struct.pack('<BQQ', SWAP_BASE_IN_INSTRUCTION, amount_in, min_amount_out)

    accounts = [
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pool_keys.id, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.authority, is_signer=False, is_writable=False),
        AccountMeta(pool_keys.open_orders, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.target_orders, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.base_vault, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.quote_vault, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_program_id, is_signer=False, is_writable=False),
        AccountMeta(pool_keys.market_id, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_bids, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_asks, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_event_queue, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_base_vault, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_quote_vault, is_signer=False, is_writable=True),
        AccountMeta(pool_keys.market_authority, is_signer=False, is_writable=False),
        AccountMeta(token_account_in, is_signer=False, is_writable=True),
        AccountMeta(token_account_out, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=True, is_writable=False),
    ]

    return Instruction(pool_keys.program_id, data, accounts)


def pool_feed_filters(quote_mint: Pubkey) -> List[Dict[str, Any]]:
    """programSubscribe filters matching freshly initialized pools for a quote mint"""
    status_bytes = struct.pack('<Q', POOL_STATUS_INITIALIZED)
    return [
        {"dataSize": LIQUIDITY_STATE_LAYOUT_V4.span},
        {"memcmp": {
            "offset": LIQUIDITY_STATE_LAYOUT_V4.offset_of("quote_mint"),
            "bytes": str(quote_mint)
        }},
        {"memcmp": {
            "offset": LIQUIDITY_STATE_LAYOUT_V4.offset_of("market_program_id"),
            "bytes": str(OPENBOOK_PROGRAM_ID)
        }},
        {"memcmp": {
            "offset": LIQUIDITY_STATE_LAYOUT_V4.offset_of("status"),
            "bytes": base58.b58encode(status_bytes).decode()
        }},
    ]


def market_feed_filters(quote_mint: Pubkey) -> List[Dict[str, Any]]:
    """programSubscribe filters matching OpenBook markets for a quote mint"""
    return [
        {"dataSize": MARKET_STATE_LAYOUT_V3.span},
        {"memcmp": {
            "offset": MARKET_STATE_LAYOUT_V3.offset_of("quote_mint"),
            "bytes": str(quote_mint)
        }},
    ]
