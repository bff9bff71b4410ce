"""
Binary account layouts for Raydium AMM v4, OpenBook v3 and SPL Token

Each layout is an ordered list of fixed-size fields. Offsets are computed once,
so subscription filters (memcmp offsets, dataSize) and decoding always agree.
"""

import struct
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from solders.pubkey import Pubkey

from poolsniper.core.errors import DecodeError


@dataclass(frozen=True)
class Field:
    """One fixed-size field of a layout"""
    name: str
    size: int
    parse: Callable[[bytes], Any]


def u8(name: str) -> Field:
    return Field(name, 1, lambda b: b[0])


def u32(name: str) -> Field:
    return Field(name, 4, lambda b: struct.unpack('<I', b)[0])


def u64(name: str) -> Field:
    return Field(name, 8, lambda b: struct.unpack('<Q', b)[0])


def u128(name: str) -> Field:
    return Field(name, 16, lambda b: int.from_bytes(b, 'little'))


def pubkey(name: str) -> Field:
    return Field(name, 32, lambda b: Pubkey.from_bytes(b))


def blob(size: int, name: str) -> Field:
    return Field(name, size, bytes)


class Layout:
    """
    Fixed binary layout

    Usage:
        state = LIQUIDITY_STATE_LAYOUT_V4.decode(raw_bytes)
        offset = LIQUIDITY_STATE_LAYOUT_V4.offset_of("quote_mint")
    """

    def __init__(self, name: str, fields: List[Field]):
        self.name = name
        self.fields = fields
        self._offsets: Dict[str, Tuple[int, Field]] = {}

        offset = 0
        for f in fields:
            self._offsets[f.name] = (offset, f)
            offset += f.size
        self.span = offset

    def offset_of(self, name: str) -> int:
        """Byte offset of a field"""
        return self._offsets[name][0]

    def decode(self, data: bytes) -> Dict[str, Any]:
        """
        Decode raw bytes into a field dict

        Raises:
            DecodeError: If the data length differs from the layout span
        """
        if data is None or len(data) != self.span:
            size = None if data is None else len(data)
            raise DecodeError(f"{self.name}: expected {self.span} bytes, got {size}")

        decoded = {}
        for name, (offset, f) in self._offsets.items():
            decoded[name] = f.parse(data[offset:offset + f.size])
        return decoded


_LIQUIDITY_U64_FIELDS = [
    "status", "nonce", "max_order", "depth", "base_decimal", "quote_decimal",
    "state", "reset_flag", "min_size", "vol_max_cut_ratio", "amount_wave_ratio",
    "base_lot_size", "quote_lot_size", "min_price_multiplier", "max_price_multiplier",
    "system_decimal_value", "min_separate_numerator", "min_separate_denominator",
    "trade_fee_numerator", "trade_fee_denominator", "pnl_numerator", "pnl_denominator",
    "swap_fee_numerator", "swap_fee_denominator", "base_need_take_pnl",
    "quote_need_take_pnl", "quote_total_pnl", "base_total_pnl", "pool_open_time",
    "punish_pc_amount", "punish_coin_amount", "orderbook_to_init_time",
]

LIQUIDITY_STATE_LAYOUT_V4 = Layout("LiquidityStateV4", [
    *[u64(name) for name in _LIQUIDITY_U64_FIELDS],
    u128("swap_base_in_amount"),
    u128("swap_quote_out_amount"),
    u64("swap_base2quote_fee"),
    u128("swap_quote_in_amount"),
    u128("swap_base_out_amount"),
    u64("swap_quote2base_fee"),
    pubkey("base_vault"),
    pubkey("quote_vault"),
    pubkey("base_mint"),
    pubkey("quote_mint"),
    pubkey("lp_mint"),
    pubkey("open_orders"),
    pubkey("market_id"),
    pubkey("market_program_id"),
    pubkey("target_orders"),
    pubkey("withdraw_queue"),
    pubkey("lp_vault"),
    pubkey("owner"),
    u64("lp_reserve"),
    blob(24, "padding"),
])

MARKET_STATE_LAYOUT_V3 = Layout("MarketStateV3", [
    blob(5, "head"),
    blob(8, "account_flags"),
    pubkey("own_address"),
    u64("vault_signer_nonce"),
    pubkey("base_mint"),
    pubkey("quote_mint"),
    pubkey("base_vault"),
    u64("base_deposits_total"),
    u64("base_fees_accrued"),
    pubkey("quote_vault"),
    u64("quote_deposits_total"),
    u64("quote_fees_accrued"),
    u64("quote_dust_threshold"),
    pubkey("request_queue"),
    pubkey("event_queue"),
    pubkey("bids"),
    pubkey("asks"),
    u64("base_lot_size"),
    u64("quote_lot_size"),
    u64("fee_rate_bps"),
    u64("referrer_rebates_accrued"),
    blob(7, "tail"),
])

# Contiguous slice of the market account holding event queue, bids and asks
MINIMAL_MARKET_STATE_LAYOUT_V3 = Layout("MinimalMarketStateV3", [
    pubkey("event_queue"),
    pubkey("bids"),
    pubkey("asks"),
])

MARKET_HEAD = b"serum"
MARKET_TAIL = b"padding"

MINT_LAYOUT = Layout("Mint", [
    u32("mint_authority_option"),
    pubkey("mint_authority"),
    u64("supply"),
    u8("decimals"),
    u8("is_initialized"),
    u32("freeze_authority_option"),
    pubkey("freeze_authority"),
])

ACCOUNT_LAYOUT = Layout("TokenAccount", [
    pubkey("mint"),
    pubkey("owner"),
    u64("amount"),
    u32("delegate_option"),
    pubkey("delegate"),
    u8("state"),
    u32("is_native_option"),
    u64("is_native"),
    u64("delegated_amount"),
    u32("close_authority_option"),
    pubkey("close_authority"),
])
