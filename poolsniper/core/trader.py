"""
Trade Executor
Builds, signs and submits Raydium v4 buy and sell swaps
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from poolsniper.clients.layouts import MARKET_STATE_LAYOUT_V3, MINIMAL_MARKET_STATE_LAYOUT_V3
from poolsniper.clients.raydium import derive_pool_keys, make_swap_fixed_in_instruction
from poolsniper.clients.spl_token import create_ata_idempotent_instruction
from poolsniper.core.config import TradingConfig, TransactionConfig
from poolsniper.core.decoder import AccountDecoder
from poolsniper.core.errors import DecodeError, FetchError, SubmissionError
from poolsniper.core.logger import get_logger
from poolsniper.core.metrics import LatencyTimer, get_metrics
from poolsniper.core.models import MarketRecord, PoolRecord, TokenAccountRecord, TradeIntent, TradeSide
from poolsniper.core.rpc_manager import RPCManager
from poolsniper.core.token_accounts import TokenAccountCache
from poolsniper.core.tx_builder import TransactionBuilder
from poolsniper.core.wallet import Wallet


logger = get_logger(__name__)
metrics = get_metrics()


SleepFunc = Callable[[float], Awaitable[None]]

NETWORK = "mainnet-beta"


def solscan_tx_url(signature: str) -> str:
    return f"https://solscan.io/tx/{signature}?cluster={NETWORK}"


def dexscreener_url(mint: Pubkey, maker: Optional[Pubkey] = None) -> str:
    url = f"https://dexscreener.com/solana/{mint}"
    if maker is not None:
        url += f"?maker={maker}"
    return url


class TradeExecutor:
    """
    Executes buys and the delayed sell retry loop

    Usage:
        trader = TradeExecutor(rpc, wallet, cache, builder, trading_config, transaction_config)
        signature = await trader.buy(pool)
        await trader.sell(pool, bought_count=0, baseline_balance=812_345.5)
    """

    def __init__(
        self,
        rpc: RPCManager,
        wallet: Wallet,
        cache: TokenAccountCache,
        builder: TransactionBuilder,
        trading_config: TradingConfig,
        transaction_config: TransactionConfig,
        decoder: Optional[AccountDecoder] = None,
        sleep: Optional[SleepFunc] = None
    ):
        """
        Args:
            rpc: RPC manager
            wallet: Trading wallet (quote token account must be initialized)
            cache: Token-account cache shared with the listener
            builder: Transaction builder
            trading_config: Quote amount, sell retry budget and delay
            transaction_config: Resend count and preflight settings
            decoder: Account decoder for lazily fetched markets
            sleep: Sleep used between sell attempts (asyncio.sleep by default)
        """
        self.rpc = rpc
        self.wallet = wallet
        self.cache = cache
        self.builder = builder
        self.trading_config = trading_config
        self.transaction_config = transaction_config
        self.decoder = decoder or AccountDecoder()

        self.sleep = sleep or asyncio.sleep

    async def buy(self, pool: PoolRecord) -> str:
        """
        Swap the configured quote amount into the pool's base token

        Market metadata that has not arrived on the market feed yet is
        fetched once through the minimal market slice.

        Returns:
            Transaction signature

        Raises:
            FetchError: If the market or blockhash can not be fetched
            SubmissionError: If the node rejects the transaction
        """
        intent = TradeIntent(pool=pool, amount_in=self.trading_config.quote_amount_raw, side=TradeSide.BUY)

        with LatencyTimer(metrics, "buy"):
            record = await self.cache.resolve_market(
                pool.base_mint,
                lambda: self._fetch_minimal_market(pool.market_id)
            )
            pool_keys = derive_pool_keys(pool, record.market)
            self.cache.attach_pool_keys(pool.base_mint, pool_keys)

            signature = await self._submit_swap(
                intent,
                record,
                token_account_in=self.wallet.quote_token_account,
                token_account_out=record.address
            )

        metrics.increment_counter("buys_submitted")
        logger.info(
            "buy",
            mint=str(pool.base_mint),
            signature=signature,
            url=solscan_tx_url(signature),
            dex_url=dexscreener_url(pool.base_mint, self.wallet.pubkey),
            dexscreener_url=dexscreener_url(pool.base_mint)
        )
        return signature

    async def sell(self, pool: PoolRecord, bought_count: int, baseline_balance: float) -> int:
        """
        Poll the token balance and sell it once it is non-zero

        Always runs max_sell_retries iterations with a fixed delay after each
        one. At most one sell is submitted; the sold flag is set before
        submission so a failed submission is not retried.

        Args:
            pool: Pool the tokens were bought from
            bought_count: Cycle buy count captured before the buy
            baseline_balance: Base vault balance seen when the pool was accepted

        Returns:
            Number of sell transactions submitted (0 or 1)
        """
        record = self.cache.get(pool.base_mint)
        if record is None:
            logger.error("sell_token_account_missing", mint=str(pool.base_mint))
            return 0

        sold = False
        submitted = 0

        for attempt in range(1, self.trading_config.max_sell_retries + 1):
            try:
                balance = await self.rpc.get_token_account_balance(record.address)
                if balance > 0 and not sold:
                    sold = True
                    logger.info("token_balance_found", mint=str(pool.base_mint), balance=balance, attempt=attempt)
                    signature = await self._sell_balance(pool, record, balance)
                    submitted += 1
                    logger.info(
                        "sell_transaction_sent",
                        mint=str(pool.base_mint),
                        signature=signature,
                        url=solscan_tx_url(signature),
                        tokens_bought_count=bought_count,
                        base_pool_balance_when_bought=baseline_balance
                    )
            except Exception as e:
                metrics.increment_counter("sell_errors")
                logger.error(
                    "sell_attempt_failed",
                    mint=str(pool.base_mint),
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__
                )

            await self.sleep(self.trading_config.sell_retry_delay_s)

        return submitted

    async def _sell_balance(self, pool: PoolRecord, record: TokenAccountRecord, balance: int) -> str:
        if record.market is None:
            record = await self.cache.resolve_market(
                pool.base_mint,
                lambda: self._fetch_minimal_market(pool.market_id)
            )
        pool_keys = derive_pool_keys(pool, record.market)
        self.cache.attach_pool_keys(pool.base_mint, pool_keys)

        intent = TradeIntent(pool=pool, amount_in=balance, side=TradeSide.SELL)
        with LatencyTimer(metrics, "sell"):
            signature = await self._submit_swap(
                intent,
                record,
                token_account_in=record.address,
                token_account_out=self.wallet.quote_token_account
            )
        metrics.increment_counter("sells_submitted")
        return signature

    async def _submit_swap(
        self,
        intent: TradeIntent,
        record: TokenAccountRecord,
        token_account_in: Pubkey,
        token_account_out: Pubkey
    ) -> str:
        owner = self.wallet.pubkey
        instructions: List[Instruction] = [
            create_ata_idempotent_instruction(owner, owner, intent.pool.base_mint),
            make_swap_fixed_in_instruction(
                record.pool_keys,
                token_account_in=token_account_in,
                token_account_out=token_account_out,
                owner=owner,
                amount_in=intent.amount_in,
                min_amount_out=0
            ),
        ]

        blockhash = await self.rpc.get_latest_blockhash()
        try:
            tx = self.builder.build_transaction(instructions, payer=self.wallet.keypair, recent_blockhash=blockhash)
        except ValueError as e:
            raise SubmissionError(f"Failed to build {intent.side.value} transaction: {e}") from e

        return await self.rpc.send_raw_transaction(
            bytes(tx),
            max_retries=self.transaction_config.max_retries,
            skip_preflight=self.transaction_config.skip_preflight
        )

    async def _fetch_minimal_market(self, market_id: Pubkey) -> MarketRecord:
        offset = MARKET_STATE_LAYOUT_V3.offset_of("event_queue")
        data = await self.rpc.get_account_info(
            market_id,
            data_slice=(offset, MINIMAL_MARKET_STATE_LAYOUT_V3.span)
        )
        if data is None:
            raise FetchError(f"Market account {market_id} not found")
        try:
            market = self.decoder.decode_minimal_market(market_id, data)
        except DecodeError as e:
            raise FetchError(f"Market account {market_id} undecodable: {e}") from e
        logger.debug("market_fetched", market=str(market_id))
        return market
