"""
Pytest configuration and shared fixtures
These fixtures are available to all test files
"""

import base64
import struct
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from poolsniper.clients.layouts import (
    LIQUIDITY_STATE_LAYOUT_V4,
    MARKET_HEAD,
    MARKET_STATE_LAYOUT_V3,
    MARKET_TAIL,
    MINT_LAYOUT,
    Layout,
)
from poolsniper.clients.raydium import OPENBOOK_PROGRAM_ID, POOL_STATUS_INITIALIZED
from poolsniper.core.config import QUOTE_TOKENS, TradingConfig, TransactionConfig
from poolsniper.core.metrics import get_metrics
from poolsniper.core.models import MarketRecord, PoolRecord
from poolsniper.core.rpc_manager import RPCManager
from poolsniper.core.wallet import Wallet


WSOL = QUOTE_TOKENS["WSOL"]

# Far enough in the future that every test pool passes the time gate by default
OPEN_TIME = 1_900_000_000
START_TIMESTAMP = 1_800_000_000


def pack_layout(layout: Layout, values: Dict[str, Any]) -> bytes:
    """
    Build raw account bytes for a layout

    Pubkeys are written as 32 bytes, bytes are written verbatim and ints as
    little-endian u64. Unset fields are zero.
    """
    buf = bytearray(layout.span)
    for name, value in values.items():
        offset = layout.offset_of(name)
        if isinstance(value, Pubkey):
            raw = bytes(value)
        elif isinstance(value, bytes):
            raw = value
        else:
            raw = struct.pack('<Q', value)
        buf[offset:offset + len(raw)] = raw
    return bytes(buf)


def pool_bytes(pool: PoolRecord) -> bytes:
    """Raw liquidity state account for a PoolRecord"""
    return pack_layout(LIQUIDITY_STATE_LAYOUT_V4, {
        "status": pool.status,
        "base_decimal": pool.base_decimals,
        "quote_decimal": pool.quote_decimals,
        "pool_open_time": pool.open_time,
        "base_vault": pool.base_vault,
        "quote_vault": pool.quote_vault,
        "base_mint": pool.base_mint,
        "quote_mint": pool.quote_mint,
        "lp_mint": pool.lp_mint,
        "open_orders": pool.open_orders,
        "market_id": pool.market_id,
        "market_program_id": pool.market_program_id,
        "target_orders": pool.target_orders,
        "withdraw_queue": pool.withdraw_queue,
        "lp_vault": pool.lp_vault,
    })


def market_bytes(market: MarketRecord, head: bytes = MARKET_HEAD, tail: bytes = MARKET_TAIL) -> bytes:
    """Raw OpenBook market account for a MarketRecord"""
    return pack_layout(MARKET_STATE_LAYOUT_V3, {
        "head": head,
        "own_address": market.id,
        "vault_signer_nonce": market.vault_signer_nonce or 0,
        "base_mint": market.base_mint,
        "quote_mint": market.quote_mint,
        "base_vault": market.base_vault,
        "quote_vault": market.quote_vault,
        "event_queue": market.event_queue,
        "bids": market.bids,
        "asks": market.asks,
        "tail": tail,
    })


def mint_bytes(mint_authority_option: int) -> bytes:
    """Raw SPL mint account with the given authority option"""
    return pack_layout(MINT_LAYOUT, {
        "mint_authority_option": struct.pack('<I', mint_authority_option),
        "decimals": bytes([6]),
        "is_initialized": bytes([1]),
    })


def notification(account_id: Pubkey, data: bytes) -> Dict[str, Any]:
    """programNotification result as delivered by the websocket feed"""
    return {
        "context": {"slot": 1},
        "value": {
            "pubkey": str(account_id),
            "account": {
                "data": [base64.b64encode(data).decode(), "base64"],
                "executable": False,
                "lamports": 1,
                "owner": str(OPENBOOK_PROGRAM_ID),
            },
        },
    }


@pytest.fixture(autouse=True)
def reset_metrics():
    """Global metrics start clean for every test"""
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture
def make_pool():
    """
    Factory for PoolRecords with unique accounts

    Usage:
        pool = make_pool(open_time=123)
    """
    def _make(**overrides) -> PoolRecord:
        values = dict(
            id=Pubkey.new_unique(),
            base_mint=Pubkey.new_unique(),
            quote_mint=WSOL.mint,
            market_id=Pubkey.new_unique(),
            open_time=OPEN_TIME,
            base_decimals=6,
            base_vault=Pubkey.new_unique(),
            status=POOL_STATUS_INITIALIZED,
            quote_decimals=9,
            quote_vault=Pubkey.new_unique(),
            lp_mint=Pubkey.new_unique(),
            open_orders=Pubkey.new_unique(),
            target_orders=Pubkey.new_unique(),
            withdraw_queue=Pubkey.new_unique(),
            lp_vault=Pubkey.new_unique(),
            market_program_id=OPENBOOK_PROGRAM_ID,
        )
        values.update(overrides)
        return PoolRecord(**values)

    return _make


@pytest.fixture
def make_market():
    """Factory for full MarketRecords"""
    def _make(base_mint: Pubkey = None, **overrides) -> MarketRecord:
        values = dict(
            id=Pubkey.new_unique(),
            bids=Pubkey.new_unique(),
            asks=Pubkey.new_unique(),
            event_queue=Pubkey.new_unique(),
            base_mint=base_mint or Pubkey.new_unique(),
            quote_mint=WSOL.mint,
            base_vault=Pubkey.new_unique(),
            quote_vault=Pubkey.new_unique(),
            vault_signer_nonce=1,
        )
        values.update(overrides)
        return MarketRecord(**values)

    return _make


@pytest.fixture
def mock_rpc():
    """
    RPC manager double with every network call mocked

    Defaults describe a renounced mint with 50% of supply in the pool.
    """
    rpc = MagicMock(spec=RPCManager)
    rpc.commitment = "confirmed"
    rpc.get_account_info = AsyncMock(return_value=mint_bytes(0))
    rpc.get_token_account_balance = AsyncMock(return_value=500_000_000_000)
    rpc.get_token_supply = AsyncMock(return_value=1_000_000.0)
    rpc.get_latest_blockhash = AsyncMock(return_value=Hash.default())
    rpc.get_token_accounts_by_owner = AsyncMock(return_value=[])
    rpc.send_raw_transaction = AsyncMock(return_value="5sig")
    return rpc


@pytest.fixture
def encode_pool():
    return pool_bytes


@pytest.fixture
def encode_market():
    return market_bytes


@pytest.fixture
def encode_mint():
    return mint_bytes


@pytest.fixture
def make_notification():
    return notification


@pytest.fixture
def start_timestamp() -> int:
    """Listener start time; default pools open after it"""
    return START_TIMESTAMP


@pytest.fixture
def keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def wallet(keypair) -> Wallet:
    """Wallet with its quote token account already located"""
    wallet = Wallet(keypair, WSOL)
    wallet.quote_token_account = Pubkey.new_unique()
    return wallet


@pytest.fixture
def trading_config() -> TradingConfig:
    return TradingConfig(
        quote_token=WSOL,
        quote_amount="0.01",
        auto_sell=True,
        sell_delay_ms=20000,
        max_tokens_to_buy=1,
        max_sell_retries=3,
        sell_retry_delay_s=5.0,
        check_mint_renounced=True
    )


@pytest.fixture
def transaction_config() -> TransactionConfig:
    return TransactionConfig()


@pytest.fixture
def no_sleep():
    """Sleep double that records requested delays and returns immediately"""
    return AsyncMock(return_value=None)


@pytest.fixture
def test_config_dict(keypair) -> Dict[str, Any]:
    """
    Sample configuration dictionary for testing

    Returns valid config that can be modified per test
    """
    import base58

    return {
        "rpc": {
            "url": "https://api.mainnet-beta.solana.com",
            "websocket_url": "wss://api.mainnet-beta.solana.com",
            "commitment": "confirmed",
        },
        "wallet": {
            "private_key": base58.b58encode(bytes(keypair)).decode(),
        },
        "trading": {
            "quote_mint": "WSOL",
            "quote_amount": "0.01",
            "auto_sell": True,
            "sell_delay_ms": 20000,
            "max_tokens_to_buy": 1,
            "max_sell_retries": 5,
            "check_mint_renounced": True,
        },
        "snipe_list": {
            "enabled": False,
            "path": "snipe-list.txt",
            "refresh_interval_ms": 30000,
        },
        "logging": {
            "level": "DEBUG",
            "format": "json",
            "output_file": None,
        },
    }


@pytest.fixture
def test_config_file(test_config_dict, tmp_path):
    """
    Create a temporary config file for testing

    Returns path to temporary YAML config file
    """
    config_file = tmp_path / "test_config.yml"
    with open(config_file, 'w') as f:
        yaml.dump(test_config_dict, f)

    return str(config_file)


def pytest_configure(config):
    """Register custom pytest markers"""
    config.addinivalue_line(
        "markers", "unit: fast tests with no network access"
    )
