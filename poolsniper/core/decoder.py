"""
Account Decoder
Turns raw account bytes from the change feed into PoolRecord / MarketRecord
"""

import base64
import binascii
from typing import Any, Tuple

from solders.pubkey import Pubkey

from poolsniper.clients.layouts import (
    LIQUIDITY_STATE_LAYOUT_V4,
    MARKET_HEAD,
    MARKET_STATE_LAYOUT_V3,
    MARKET_TAIL,
    MINIMAL_MARKET_STATE_LAYOUT_V3,
)
from poolsniper.core.errors import DecodeError
from poolsniper.core.models import MarketRecord, PoolRecord


def decode_account_data(data: Any) -> bytes:
    """
    Extract raw bytes from an RPC account "data" field

    Accepts the ["<base64>", "base64"] pair returned with base64 encoding.

    Raises:
        DecodeError: On any other shape or invalid base64
    """
    if isinstance(data, (list, tuple)) and len(data) == 2 and data[1] == "base64":
        try:
            return base64.b64decode(data[0], validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecodeError(f"Invalid base64 account data: {e}")
    raise DecodeError(f"Unsupported account data encoding: {type(data).__name__}")


def parse_keyed_account(value: Any) -> Tuple[Pubkey, bytes]:
    """
    Split a programNotification value into (account id, raw bytes)

    Raises:
        DecodeError: If the notification is missing the pubkey or data
    """
    try:
        account_id = Pubkey.from_string(value["pubkey"])
        data = value["account"]["data"]
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"Malformed program notification: {e}")
    return account_id, decode_account_data(data)


class AccountDecoder:
    """Decodes pool and market accounts using the fixed on-chain layouts"""

    def decode_pool(self, account_id: Pubkey, data: bytes) -> PoolRecord:
        """
        Decode a Raydium v4 liquidity state account

        Raises:
            DecodeError: If the length does not match the v4 layout
        """
        state = LIQUIDITY_STATE_LAYOUT_V4.decode(data)

        return PoolRecord(
            id=account_id,
            base_mint=state["base_mint"],
            quote_mint=state["quote_mint"],
            market_id=state["market_id"],
            open_time=state["pool_open_time"],
            base_decimals=state["base_decimal"],
            base_vault=state["base_vault"],
            status=state["status"],
            quote_decimals=state["quote_decimal"],
            quote_vault=state["quote_vault"],
            lp_mint=state["lp_mint"],
            open_orders=state["open_orders"],
            target_orders=state["target_orders"],
            withdraw_queue=state["withdraw_queue"],
            lp_vault=state["lp_vault"],
            market_program_id=state["market_program_id"],
        )

    def decode_market(self, account_id: Pubkey, data: bytes) -> MarketRecord:
        """
        Decode a full OpenBook v3 market account

        Raises:
            DecodeError: If the length or the head/tail padding is wrong
        """
        state = MARKET_STATE_LAYOUT_V3.decode(data)
        if state["head"] != MARKET_HEAD or state["tail"] != MARKET_TAIL:
            raise DecodeError(f"MarketStateV3: bad head/tail padding for {account_id}")

        return MarketRecord(
            id=account_id,
            bids=state["bids"],
            asks=state["asks"],
            event_queue=state["event_queue"],
            base_mint=state["base_mint"],
            quote_mint=state["quote_mint"],
            base_vault=state["base_vault"],
            quote_vault=state["quote_vault"],
            vault_signer_nonce=state["vault_signer_nonce"],
        )

    def decode_minimal_market(self, market_id: Pubkey, data: bytes) -> MarketRecord:
        """Decode the event-queue/bids/asks slice of a market account"""
        state = MINIMAL_MARKET_STATE_LAYOUT_V3.decode(data)
        return MarketRecord(
            id=market_id,
            bids=state["bids"],
            asks=state["asks"],
            event_queue=state["event_queue"],
        )
