"""
Eligibility Evaluator
Decides whether a freshly decoded pool is worth buying

Gates run in a fixed order and the first failing gate ends the evaluation:

1. time        - pool opened at or after the listener started
2. snipe list  - pool id is on the allow-list (when enabled)
3. renounced   - mint authority removed (when enabled, fail-closed)
4. liquidity   - base vault holds >= 40% of total supply
5. cycle       - fewer than max_tokens_to_buy bought in the current cycle
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from poolsniper.clients.spl_token import is_mint_renounced
from poolsniper.core.errors import DecodeError, FetchError
from poolsniper.core.logger import get_logger
from poolsniper.core.metrics import get_metrics
from poolsniper.core.models import PoolRecord
from poolsniper.core.rpc_manager import RPCManager
from poolsniper.core.snipe_list import SnipeListLoader


logger = get_logger(__name__)
metrics = get_metrics()


# Inclusive lower bound on base vault balance as a share of total supply
MIN_POOL_BALANCE_PCT = 40.0


class Gate(Enum):
    """Eligibility gates, in evaluation order"""
    TIME = "time"
    SNIPE_LIST = "snipe_list"
    RENOUNCED = "renounced"
    LIQUIDITY = "liquidity"
    CYCLE = "cycle"


@dataclass
class EligibilityResult:
    """
    Outcome of evaluating one pool

    Attributes:
        accepted: Whether every gate passed
        gate: Gate that rejected the pool (None when accepted)
        reason: Human readable rejection reason
        base_vault_balance: Base vault balance in UI units (if the liquidity gate ran)
        total_supply: Mint supply in UI units (if fetched)
        pool_balance_pct: Base vault share of supply (if computed)
    """
    accepted: bool
    gate: Optional[Gate] = None
    reason: str = ""
    base_vault_balance: Optional[float] = None
    total_supply: Optional[float] = None
    pool_balance_pct: Optional[float] = None


@dataclass
class CycleState:
    """
    Per-cycle buy counter

    A cycle ends when tokens_bought reaches max_tokens_to_buy. The next
    evaluation that reaches the cycle gate starts a new cycle and resets the
    counter to zero.
    """
    max_tokens_to_buy: int
    tokens_bought: int = 0
    active: bool = False

    def start_new_cycle(self) -> None:
        self.tokens_bought = 0
        self.active = True

    def has_capacity(self) -> bool:
        return self.active and self.tokens_bought < self.max_tokens_to_buy

    def record_buy(self) -> int:
        """
        Count one successful buy, ending the cycle when the limit is hit

        Returns:
            tokens bought so far in this cycle
        """
        self.tokens_bought += 1
        if self.tokens_bought >= self.max_tokens_to_buy:
            self.active = False
        return self.tokens_bought


def pool_balance_percentage(raw_balance: int, decimals: int, total_supply: float) -> float:
    """
    Base vault balance as a percentage of total supply

    Args:
        raw_balance: Vault balance in base units
        decimals: Mint decimals
        total_supply: Supply in UI units (must be > 0)
    """
    ui_balance = raw_balance / (10 ** decimals)
    return ui_balance / total_supply * 100


class EligibilityEvaluator:
    """
    Runs the gate sequence for pool candidates

    Usage:
        evaluator = EligibilityEvaluator(rpc, cycle, start_timestamp, check_mint_renounced=True)
        result = await evaluator.evaluate(pool)
        if result.accepted:
            ...
    """

    def __init__(
        self,
        rpc: RPCManager,
        cycle: CycleState,
        start_timestamp: int,
        check_mint_renounced: bool = True,
        snipe_list: Optional[SnipeListLoader] = None
    ):
        """
        Args:
            rpc: RPC manager for mint / balance / supply reads
            cycle: Shared cycle counter
            start_timestamp: Unix seconds the listener started at
            check_mint_renounced: Enable the renouncement gate
            snipe_list: Allow-list; None disables the snipe-list gate
        """
        self.rpc = rpc
        self.cycle = cycle
        self.start_timestamp = start_timestamp
        self.check_mint_renounced = check_mint_renounced
        self.snipe_list = snipe_list

    async def evaluate(self, pool: PoolRecord) -> EligibilityResult:
        """Evaluate all gates in order and return the first rejection or an accept"""
        result = self._check_time(pool)
        if result is None:
            result = self._check_snipe_list(pool)
        if result is None and self.check_mint_renounced:
            result = await self._check_renounced(pool)

        liquidity = None
        if result is None:
            liquidity = await self._check_liquidity(pool)
            if not liquidity.accepted:
                result = liquidity

        if result is None:
            result = self._check_cycle(pool)

        if result is not None:
            metrics.increment_counter("pools_rejected", labels={"gate": result.gate.value})
            logger.info(
                "pool_rejected",
                pool=str(pool.id),
                mint=str(pool.base_mint),
                gate=result.gate.value,
                reason=result.reason
            )
            return result

        metrics.increment_counter("pools_accepted")
        return liquidity

    def _check_time(self, pool: PoolRecord) -> Optional[EligibilityResult]:
        if pool.open_time >= self.start_timestamp:
            return None
        return EligibilityResult(
            accepted=False,
            gate=Gate.TIME,
            reason=f"pool opened at {pool.open_time}, before listener start {self.start_timestamp}"
        )

    def _check_snipe_list(self, pool: PoolRecord) -> Optional[EligibilityResult]:
        if self.snipe_list is None or self.snipe_list.contains(pool.id):
            return None
        return EligibilityResult(accepted=False, gate=Gate.SNIPE_LIST, reason="pool not in snipe list")

    async def _check_renounced(self, pool: PoolRecord) -> Optional[EligibilityResult]:
        try:
            data = await self.rpc.get_account_info(pool.base_mint)
            if data is None:
                raise FetchError(f"mint account {pool.base_mint} not found")
            renounced = is_mint_renounced(data)
        except (FetchError, DecodeError) as e:
            logger.warning("mint_renounce_check_failed", mint=str(pool.base_mint), error=str(e))
            return EligibilityResult(
                accepted=False,
                gate=Gate.RENOUNCED,
                reason=f"failed to check if mint is renounced: {e}"
            )

        if renounced:
            return None

        logger.warning("mint_not_renounced", mint=str(pool.base_mint))
        return EligibilityResult(accepted=False, gate=Gate.RENOUNCED, reason="owner can mint tokens")

    async def _check_liquidity(self, pool: PoolRecord) -> EligibilityResult:
        try:
            raw_balance = await self.rpc.get_token_account_balance(pool.base_vault)
            total_supply = await self.rpc.get_token_supply(pool.base_mint)
        except FetchError as e:
            logger.warning("liquidity_fetch_failed", mint=str(pool.base_mint), error=str(e))
            return EligibilityResult(accepted=False, gate=Gate.LIQUIDITY, reason=f"fetch failed: {e}")

        ui_balance = raw_balance / (10 ** pool.base_decimals)

        if total_supply is None or total_supply <= 0:
            logger.error("total_supply_unavailable", mint=str(pool.base_mint), total_supply=total_supply)
            return EligibilityResult(
                accepted=False,
                gate=Gate.LIQUIDITY,
                reason="failed to retrieve total supply",
                base_vault_balance=ui_balance,
                total_supply=total_supply
            )

        pct = pool_balance_percentage(raw_balance, pool.base_decimals, total_supply)
        logger.info(
            "pool_balance_checked",
            mint=str(pool.base_mint),
            total_supply=total_supply,
            base_pool_balance=ui_balance,
            base_pool_balance_pct=round(pct, 2)
        )

        if pct >= MIN_POOL_BALANCE_PCT:
            return EligibilityResult(
                accepted=True,
                base_vault_balance=ui_balance,
                total_supply=total_supply,
                pool_balance_pct=pct
            )

        return EligibilityResult(
            accepted=False,
            gate=Gate.LIQUIDITY,
            reason=f"base pool balance {pct:.2f}% is below {MIN_POOL_BALANCE_PCT:.0f}%",
            base_vault_balance=ui_balance,
            total_supply=total_supply,
            pool_balance_pct=pct
        )

    def _check_cycle(self, pool: PoolRecord) -> Optional[EligibilityResult]:
        if not self.cycle.active:
            self.cycle.start_new_cycle()
            logger.info("cycle_started", max_tokens_to_buy=self.cycle.max_tokens_to_buy)

        if self.cycle.has_capacity():
            return None

        return EligibilityResult(
            accepted=False,
            gate=Gate.CYCLE,
            reason=f"bought {self.cycle.tokens_bought} of {self.cycle.max_tokens_to_buy} this cycle"
        )
