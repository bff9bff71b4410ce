"""
Configuration Manager for Pool Sniper
Loads configuration from YAML files with environment variable support
"""

import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from solders.pubkey import Pubkey

from poolsniper.core.errors import ConfigError


COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")

_ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


@dataclass(frozen=True)
class QuoteToken:
    """Token the bot pays with and sells back into"""
    symbol: str
    mint: Pubkey
    decimals: int

    def to_raw(self, amount: str) -> int:
        """Convert a human amount ("0.01") to raw base units"""
        try:
            value = Decimal(str(amount))
            return int(value * (Decimal(10) ** self.decimals))
        except (InvalidOperation, ValueError, OverflowError):
            raise ConfigError(f"Invalid quote amount: {amount!r}")


QUOTE_TOKENS: Dict[str, QuoteToken] = {
    "WSOL": QuoteToken(
        symbol="WSOL",
        mint=Pubkey.from_string("So11111111111111111111111111111111111111112"),
        decimals=9
    ),
    "USDC": QuoteToken(
        symbol="USDC",
        mint=Pubkey.from_string("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"),
        decimals=6
    ),
}


def resolve_quote_token(symbol: str) -> QuoteToken:
    """
    Look up a supported quote token by symbol

    Raises:
        ConfigError: If the symbol is not WSOL or USDC
    """
    token = QUOTE_TOKENS.get(str(symbol).strip().upper())
    if token is None:
        raise ConfigError(
            f'Unsupported quote mint "{symbol}". Supported values are USDC and WSOL'
        )
    return token


@dataclass
class RPCConfig:
    """RPC endpoint configuration"""
    url: str
    websocket_url: str
    commitment: str = "confirmed"
    request_timeout_s: float = 10.0
    reconnect_backoff_base_ms: int = 100
    reconnect_backoff_max_ms: int = 5000


@dataclass
class WalletConfig:
    """Wallet configuration"""
    private_key: str = field(repr=False)


@dataclass
class TradingConfig:
    """Buy/sell behaviour"""
    quote_token: QuoteToken
    quote_amount: str
    auto_sell: bool = True
    sell_delay_ms: int = 20000
    max_tokens_to_buy: int = 1
    max_sell_retries: int = 5
    sell_retry_delay_s: float = 5.0
    check_mint_renounced: bool = True

    @property
    def quote_amount_raw(self) -> int:
        """Quote amount in raw base units"""
        return self.quote_token.to_raw(self.quote_amount)


@dataclass
class SnipeListConfig:
    """Snipe list (pool allow-list) configuration"""
    enabled: bool = False
    path: str = "snipe-list.txt"
    refresh_interval_ms: int = 30000


@dataclass
class TransactionConfig:
    """Transaction building and submission"""
    compute_unit_limit: int = 400_000
    compute_unit_price: int = 50_000
    max_retries: int = 3
    skip_preflight: bool = False


@dataclass
class LogConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "json"
    output_file: Optional[str] = None


@dataclass
class BotConfig:
    """Complete bot configuration"""
    rpc_config: RPCConfig
    wallet_config: WalletConfig
    trading_config: TradingConfig
    snipe_list_config: SnipeListConfig
    transaction_config: TransactionConfig
    log_config: LogConfig


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"{name} must be true or false, got {value!r}")


def _as_int(value: Any, name: str, minimum: Optional[int] = None) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if minimum is not None and number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def _as_float(value: Any, name: str) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")


def _require(section: Dict[str, Any], key: str, section_name: str) -> Any:
    value = section.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(f"Missing required setting {section_name}.{key}")
    return value


class ConfigurationManager:
    """Manages bot configuration from YAML files and environment variables"""

    def __init__(self, config_path: str):
        """
        Initialize configuration manager

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self._bot_config: Optional[BotConfig] = None

    def load_config(self) -> BotConfig:
        """
        Load and validate configuration from file

        Returns:
            BotConfig: Validated configuration object

        Raises:
            ConfigError: If the file is missing, malformed or invalid
        """
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {self.config_path}: {e}")

        config_data = self._substitute_env_vars(raw_config)
        self._bot_config = self.parse_config(config_data)

        return self._bot_config

    def _substitute_env_vars(self, config: Any) -> Any:
        """
        Recursively substitute environment variables in config

        Placeholders are ${VAR_NAME} or ${VAR_NAME:-default}. A placeholder
        without a default whose variable is unset is a ConfigError.
        """
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            def replace_var(match):
                var_name, default = match.group(1), match.group(2)
                value = os.getenv(var_name)
                if value is None:
                    if default is None:
                        raise ConfigError(f"Environment variable {var_name} not found")
                    return default
                return value

            return _ENV_PATTERN.sub(replace_var, config)
        else:
            return config

    @staticmethod
    def parse_config(config: Dict[str, Any]) -> BotConfig:
        """
        Parse raw configuration into typed objects

        Args:
            config: Raw configuration dictionary (env vars already substituted)

        Returns:
            BotConfig: Typed configuration object

        Raises:
            ConfigError: If configuration is invalid
        """
        rpc_data = config.get('rpc') or {}
        commitment = str(rpc_data.get('commitment', 'confirmed')).strip().lower()
        if commitment not in COMMITMENT_LEVELS:
            raise ConfigError(
                f"Unsupported commitment level {commitment!r}, expected one of {COMMITMENT_LEVELS}"
            )

        rpc_config = RPCConfig(
            url=_require(rpc_data, 'url', 'rpc'),
            websocket_url=_require(rpc_data, 'websocket_url', 'rpc'),
            commitment=commitment,
            request_timeout_s=_as_float(rpc_data.get('request_timeout_s', 10.0), 'rpc.request_timeout_s'),
            reconnect_backoff_base_ms=_as_int(rpc_data.get('reconnect_backoff_base_ms', 100), 'rpc.reconnect_backoff_base_ms', 1),
            reconnect_backoff_max_ms=_as_int(rpc_data.get('reconnect_backoff_max_ms', 5000), 'rpc.reconnect_backoff_max_ms', 1)
        )

        wallet_data = config.get('wallet') or {}
        wallet_config = WalletConfig(
            private_key=str(_require(wallet_data, 'private_key', 'wallet')).strip()
        )

        trading_data = config.get('trading') or {}
        quote_token = resolve_quote_token(_require(trading_data, 'quote_mint', 'trading'))
        quote_amount = str(_require(trading_data, 'quote_amount', 'trading')).strip()
        if quote_token.to_raw(quote_amount) <= 0:
            raise ConfigError(f"trading.quote_amount must be positive, got {quote_amount!r}")

        trading_config = TradingConfig(
            quote_token=quote_token,
            quote_amount=quote_amount,
            auto_sell=_as_bool(trading_data.get('auto_sell', True), 'trading.auto_sell'),
            sell_delay_ms=_as_int(trading_data.get('sell_delay_ms', 20000), 'trading.sell_delay_ms', 0),
            max_tokens_to_buy=_as_int(trading_data.get('max_tokens_to_buy', 1), 'trading.max_tokens_to_buy', 1),
            max_sell_retries=_as_int(trading_data.get('max_sell_retries', 5), 'trading.max_sell_retries', 1),
            sell_retry_delay_s=_as_float(trading_data.get('sell_retry_delay_s', 5.0), 'trading.sell_retry_delay_s'),
            check_mint_renounced=_as_bool(
                trading_data.get('check_mint_renounced', True), 'trading.check_mint_renounced'
            )
        )

        snipe_data = config.get('snipe_list') or {}
        snipe_list_config = SnipeListConfig(
            enabled=_as_bool(snipe_data.get('enabled', False), 'snipe_list.enabled'),
            path=str(snipe_data.get('path', 'snipe-list.txt')),
            refresh_interval_ms=_as_int(snipe_data.get('refresh_interval_ms', 30000), 'snipe_list.refresh_interval_ms', 1)
        )

        tx_data = config.get('transactions') or {}
        transaction_config = TransactionConfig(
            compute_unit_limit=_as_int(tx_data.get('compute_unit_limit', 400_000), 'transactions.compute_unit_limit', 1),
            compute_unit_price=_as_int(tx_data.get('compute_unit_price', 50_000), 'transactions.compute_unit_price', 0),
            max_retries=_as_int(tx_data.get('max_retries', 3), 'transactions.max_retries', 0),
            skip_preflight=_as_bool(tx_data.get('skip_preflight', False), 'transactions.skip_preflight')
        )

        log_data = config.get('logging') or {}
        log_config = LogConfig(
            level=str(log_data.get('level', 'INFO')),
            format=str(log_data.get('format', 'json')),
            output_file=log_data.get('output_file')
        )

        return BotConfig(
            rpc_config=rpc_config,
            wallet_config=wallet_config,
            trading_config=trading_config,
            snipe_list_config=snipe_list_config,
            transaction_config=transaction_config,
            log_config=log_config
        )
