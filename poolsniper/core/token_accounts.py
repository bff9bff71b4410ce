"""
Token-Account Cache
In-memory mint -> TokenAccountRecord map for the trading wallet

Records are created on first reference (market notification, wallet scan at
startup, or lazily during a buy) and afterwards only enriched. Creation never
awaits, so two handlers can not both create a record for the same mint.
Lazy market fetches do await, they are serialized per mint.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Iterable, Optional

from solders.pubkey import Pubkey

from poolsniper.clients.spl_token import associated_token_address
from poolsniper.core.logger import get_logger
from poolsniper.core.models import MarketRecord, TokenAccountRecord


logger = get_logger(__name__)


class TokenAccountCache:
    """
    Mint-keyed cache of wallet token accounts

    Usage:
        cache = TokenAccountCache(wallet.pubkey())
        record = cache.ensure(mint, market)
        cache.attach_pool_keys(mint, keys)
    """

    def __init__(self, owner: Pubkey):
        """
        Args:
            owner: Wallet that owns the associated token accounts
        """
        self.owner = owner
        self._records: Dict[str, TokenAccountRecord] = {}
        self._market_locks: Dict[str, asyncio.Lock] = {}

    def get(self, mint: Pubkey) -> Optional[TokenAccountRecord]:
        return self._records.get(str(mint))

    def ensure(self, mint: Pubkey, market: Optional[MarketRecord] = None) -> TokenAccountRecord:
        """
        Get or create the record for a mint

        An existing record is kept; market metadata is attached only if the
        record has none yet.

        Args:
            mint: Token mint
            market: Market metadata to attach (optional)

        Returns:
            The single record for this mint
        """
        key = str(mint)
        record = self._records.get(key)

        if record is None:
            record = TokenAccountRecord(
                mint=mint,
                address=associated_token_address(self.owner, mint),
                market=market
            )
            self._records[key] = record
            logger.debug("token_account_cached", mint=key, has_market=market is not None)
        elif market is not None and record.market is None:
            record.market = market
            logger.debug("token_account_market_attached", mint=key, market=str(market.id))

        return record

    def attach_pool_keys(self, mint: Pubkey, pool_keys) -> None:
        """
        Attach a derived pool-keys bundle to an existing record

        Raises:
            KeyError: If the mint has no record
        """
        record = self._records.get(str(mint))
        if record is None:
            raise KeyError(f"No token account cached for mint {mint}")
        record.pool_keys = pool_keys

    async def resolve_market(
        self,
        mint: Pubkey,
        fetch_market: Callable[[], Awaitable[MarketRecord]]
    ) -> TokenAccountRecord:
        """
        Return the record for mint, fetching market metadata if it is missing

        Concurrent callers for the same mint wait on one lock, so the market
        is fetched at most once while a fetch is in flight.

        Args:
            mint: Token mint
            fetch_market: Coroutine factory loading the market (may raise FetchError)
        """
        record = self.get(mint)
        if record is not None and record.market is not None:
            return record

        lock = self._market_locks.setdefault(str(mint), asyncio.Lock())
        async with lock:
            record = self.get(mint)
            if record is not None and record.market is not None:
                return record

            market = await fetch_market()
            return self.ensure(mint, market)

    def load_existing(self, records: Iterable[TokenAccountRecord]) -> int:
        """
        Seed the cache with accounts the wallet already holds

        Returns:
            Number of records added
        """
        added = 0
        for record in records:
            key = str(record.mint)
            if key not in self._records:
                self._records[key] = record
                added += 1
        return added

    def __contains__(self, mint) -> bool:
        return str(mint) in self._records

    def __len__(self) -> int:
        return len(self._records)
