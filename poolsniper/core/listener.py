"""
Change-Feed Subscriber
Watches new Raydium pools and OpenBook markets and dispatches them to handlers

Each notification is deduplicated by account id before it is handed to its
own task, so a duplicate delivery never reaches the decoder. Failures inside
a handler are logged at the handler boundary and never end a subscription.
"""

import asyncio
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from poolsniper.clients.raydium import (
    OPENBOOK_PROGRAM_ID,
    RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
    market_feed_filters,
    pool_feed_filters,
)
from poolsniper.core.config import TradingConfig
from poolsniper.core.decoder import AccountDecoder, parse_keyed_account
from poolsniper.core.eligibility import EligibilityEvaluator
from poolsniper.core.errors import DecodeError, FetchError, SubmissionError
from poolsniper.core.logger import get_logger
from poolsniper.core.metrics import get_metrics
from poolsniper.core.rpc_manager import RPCManager
from poolsniper.core.scheduler import TaskScheduler
from poolsniper.core.state import SniperState
from poolsniper.core.trader import TradeExecutor


logger = get_logger(__name__)
metrics = get_metrics()


def notification_account_id(result: Dict[str, Any]) -> Optional[str]:
    """Account id of a programNotification result, without decoding the data"""
    value = result.get("value") if isinstance(result, dict) else None
    if not isinstance(value, dict):
        return None
    pubkey = value.get("pubkey")
    return pubkey if isinstance(pubkey, str) and pubkey else None


class PoolListener:
    """
    Owns the pool and market subscriptions

    Usage:
        listener = PoolListener(rpc, state, evaluator, trader, scheduler, trading_config)
        await listener.run()
    """

    def __init__(
        self,
        rpc: RPCManager,
        state: SniperState,
        evaluator: EligibilityEvaluator,
        trader: TradeExecutor,
        scheduler: TaskScheduler,
        trading_config: TradingConfig,
        decoder: Optional[AccountDecoder] = None
    ):
        self.rpc = rpc
        self.state = state
        self.evaluator = evaluator
        self.trader = trader
        self.scheduler = scheduler
        self.trading_config = trading_config
        self.decoder = decoder or AccountDecoder()

    @property
    def quote_mint(self) -> Pubkey:
        return self.trading_config.quote_token.mint

    async def run(self) -> None:
        """Consume both feeds until the RPC manager is stopped"""
        logger.info(
            "listener_started",
            quote_mint=str(self.quote_mint),
            start_timestamp=self.state.start_timestamp
        )
        await asyncio.gather(
            self._consume_pools(),
            self._consume_markets()
        )

    async def _consume_pools(self) -> None:
        async for result in self.rpc.program_subscribe(
            RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
            pool_feed_filters(self.quote_mint)
        ):
            self.on_pool_notification(result)

    async def _consume_markets(self) -> None:
        async for result in self.rpc.program_subscribe(
            OPENBOOK_PROGRAM_ID,
            market_feed_filters(self.quote_mint)
        ):
            self.on_market_notification(result)

    def on_pool_notification(self, result: Dict[str, Any]) -> Optional[asyncio.Task]:
        """
        Dedup a pool notification and dispatch it

        Returns:
            The handler task, or None if the notification was dropped
        """
        key = notification_account_id(result)
        if key is None:
            logger.warning("pool_notification_malformed")
            return None
        if not self.state.dedup.pools.check_and_mark(key):
            metrics.increment_counter("duplicate_notifications", labels={"feed": "pool"})
            return None

        metrics.increment_counter("notifications", labels={"feed": "pool"})
        return self.scheduler.spawn(self.handle_pool(result), name=f"pool:{key}")

    def on_market_notification(self, result: Dict[str, Any]) -> Optional[asyncio.Task]:
        """
        Dedup a market notification and dispatch it

        Returns:
            The handler task, or None if the notification was dropped
        """
        key = notification_account_id(result)
        if key is None:
            logger.warning("market_notification_malformed")
            return None
        if not self.state.dedup.markets.check_and_mark(key):
            metrics.increment_counter("duplicate_notifications", labels={"feed": "market"})
            return None

        metrics.increment_counter("notifications", labels={"feed": "market"})
        return self.scheduler.spawn(self.handle_market(result), name=f"market:{key}")

    async def handle_pool(self, result: Dict[str, Any]) -> None:
        """Decode, evaluate, buy and schedule the sell for one pool"""
        key = notification_account_id(result)
        try:
            account_id, data = parse_keyed_account(result["value"])
            pool = self.decoder.decode_pool(account_id, data)
            logger.info(
                "pool_detected",
                pool=str(pool.id),
                mint=str(pool.base_mint),
                open_time=pool.open_time
            )

            eligibility = await self.evaluator.evaluate(pool)
            if not eligibility.accepted:
                return

            bought_before = self.state.cycle.tokens_bought
            await self.trader.buy(pool)

            bought = self.state.cycle.record_buy()
            logger.info("tokens_bought", count=bought, mint=str(pool.base_mint))
            if not self.state.cycle.active:
                logger.info("cycle_ended", tokens_bought=bought)

            if self.trading_config.auto_sell:
                baseline = eligibility.base_vault_balance
                self.scheduler.schedule(
                    self.trading_config.sell_delay_ms / 1000,
                    lambda: self.trader.sell(pool, bought_before, baseline),
                    name=f"sell:{pool.base_mint}"
                )
        except DecodeError as e:
            metrics.increment_counter("decode_errors", labels={"feed": "pool"})
            logger.warning("pool_decode_failed", pool=key, error=str(e))
        except FetchError as e:
            logger.error("pool_fetch_failed", pool=key, error=str(e))
        except SubmissionError as e:
            metrics.increment_counter("buy_errors")
            logger.error("buy_failed", pool=key, error=str(e))
        except Exception as e:
            logger.error("pool_handler_failed", pool=key, error=str(e), error_type=type(e).__name__)

    async def handle_market(self, result: Dict[str, Any]) -> None:
        """Decode a market and cache its metadata under its base mint"""
        key = notification_account_id(result)
        try:
            account_id, data = parse_keyed_account(result["value"])
            market = self.decoder.decode_market(account_id, data)
        except DecodeError as e:
            metrics.increment_counter("decode_errors", labels={"feed": "market"})
            logger.warning("market_decode_failed", market=key, error=str(e))
            return

        self.state.cache.ensure(market.base_mint, market)
        logger.debug("market_cached", market=key, mint=str(market.base_mint))
