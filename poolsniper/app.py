"""
Pool Sniper application
Wires configuration, wallet, RPC and the listener together and runs until interrupted
"""

import argparse
import asyncio
import signal
import sys
import time
from typing import Callable, List, Optional

from poolsniper.core.config import BotConfig, ConfigurationManager
from poolsniper.core.decoder import AccountDecoder
from poolsniper.core.eligibility import CycleState, EligibilityEvaluator
from poolsniper.core.errors import ConfigError
from poolsniper.core.listener import PoolListener
from poolsniper.core.logger import get_logger, setup_logging
from poolsniper.core.metrics import get_metrics
from poolsniper.core.rpc_manager import RPCManager
from poolsniper.core.scheduler import TaskScheduler
from poolsniper.core.snipe_list import SnipeListLoader
from poolsniper.core.state import SniperState
from poolsniper.core.token_accounts import TokenAccountCache
from poolsniper.core.trader import TradeExecutor
from poolsniper.core.tx_builder import TransactionBuilder
from poolsniper.core.wallet import Wallet, load_keypair


logger = get_logger(__name__)
metrics = get_metrics()


DEFAULT_CONFIG_PATH = "config/config.yml"


class SniperApp:
    """
    Owns every long-lived component of one sniper process

    Usage:
        app = SniperApp(config)
        await app.initialize()
        await app.run()
    """

    def __init__(self, config: BotConfig, clock: Callable[[], float] = time.time):
        """
        Args:
            config: Validated bot configuration
            clock: Wall clock in unix seconds, used for the listener start timestamp

        Raises:
            ConfigError: If the private key is invalid
        """
        self.config = config
        self.clock = clock

        self.keypair = load_keypair(config.wallet_config.private_key)
        self.wallet = Wallet(self.keypair, config.trading_config.quote_token)
        self.rpc = RPCManager(config.rpc_config)
        self.scheduler = TaskScheduler()
        self.decoder = AccountDecoder()

        self.snipe_list: Optional[SnipeListLoader] = None
        if config.snipe_list_config.enabled:
            self.snipe_list = SnipeListLoader(config.snipe_list_config.path)

        self.state: Optional[SniperState] = None
        self.listener: Optional[PoolListener] = None

    async def initialize(self) -> None:
        """
        Start RPC, locate the quote account, seed the cache and load the snipe list

        Raises:
            ConfigError: If the wallet has no quote token account
        """
        trading = self.config.trading_config

        await self.rpc.start()
        existing = await self.wallet.initialize(self.rpc)

        cache = TokenAccountCache(self.wallet.pubkey)
        seeded = cache.load_existing(existing)

        self.state = SniperState(
            cache=cache,
            cycle=CycleState(max_tokens_to_buy=trading.max_tokens_to_buy),
            start_timestamp=int(self.clock())
        )

        if self.snipe_list is not None:
            self.snipe_list.reload()
            self.scheduler.every(
                self.config.snipe_list_config.refresh_interval_ms / 1000,
                self.snipe_list.reload,
                name="snipe_list_refresh"
            )

        logger.info(
            "sniper_initialized",
            wallet=str(self.wallet.pubkey),
            quote_symbol=trading.quote_token.symbol,
            quote_amount=trading.quote_amount,
            token_accounts_cached=seeded,
            snipe_list_enabled=self.snipe_list is not None,
            auto_sell=trading.auto_sell
        )

        evaluator = EligibilityEvaluator(
            self.rpc,
            self.state.cycle,
            self.state.start_timestamp,
            check_mint_renounced=trading.check_mint_renounced,
            snipe_list=self.snipe_list
        )
        trader = TradeExecutor(
            self.rpc,
            self.wallet,
            cache,
            TransactionBuilder(self.config.transaction_config),
            trading,
            self.config.transaction_config,
            decoder=self.decoder,
            sleep=self.scheduler.sleep
        )
        self.listener = PoolListener(
            self.rpc,
            self.state,
            evaluator,
            trader,
            self.scheduler,
            trading,
            decoder=self.decoder
        )

    async def run(self) -> None:
        """Run the listener until the RPC manager is stopped"""
        if self.listener is None:
            raise RuntimeError("SniperApp.initialize() must be called before run()")
        await self.listener.run()

    async def shutdown(self) -> None:
        """Stop subscriptions, cancel background work and close the HTTP session"""
        logger.info("sniper_shutting_down", metrics=metrics.export_metrics())
        await self.rpc.stop()
        await self.scheduler.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Snipe newly created Raydium v4 liquidity pools"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config.yml (default: {DEFAULT_CONFIG_PATH})"
    )
    return parser.parse_args(argv)


async def run(config: BotConfig) -> None:
    """Initialize and run the sniper, stopping cleanly on SIGINT / SIGTERM"""
    app = SniperApp(config)

    loop = asyncio.get_running_loop()
    runner = asyncio.ensure_future(_initialize_and_run(app))

    def _stop():
        logger.info("shutdown_signal_received")
        runner.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    try:
        await runner
    except asyncio.CancelledError:
        pass
    finally:
        await app.shutdown()


async def _initialize_and_run(app: SniperApp) -> None:
    await app.initialize()
    await app.run()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Console entry point

    Returns:
        Process exit code (1 on configuration errors)
    """
    args = parse_args(argv)
    setup_logging(level="INFO", format="console")

    try:
        config = ConfigurationManager(args.config).load_config()
    except ConfigError as e:
        logger.error("config_invalid", path=args.config, error=str(e))
        return 1

    log_config = config.log_config
    setup_logging(level=log_config.level, format=log_config.format, output_file=log_config.output_file)

    try:
        asyncio.run(run(config))
    except ConfigError as e:
        logger.error("startup_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")

    return 0


if __name__ == "__main__":
    sys.exit(main())
