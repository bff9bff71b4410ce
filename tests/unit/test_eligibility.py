"""
Unit tests for Eligibility Evaluator (core/eligibility.py)

Tests:
- Gate ordering and short-circuiting
- Renouncement fail-closed behaviour
- Inclusive 40% liquidity boundary
- Cycle start / end transitions
"""

import pytest

from poolsniper.core.eligibility import (
    CycleState,
    EligibilityEvaluator,
    Gate,
    pool_balance_percentage,
)
from poolsniper.core.errors import FetchError
from poolsniper.core.metrics import get_metrics
from poolsniper.core.snipe_list import SnipeListLoader


@pytest.fixture
def cycle() -> CycleState:
    return CycleState(max_tokens_to_buy=2)


@pytest.fixture
def evaluator(mock_rpc, cycle, start_timestamp) -> EligibilityEvaluator:
    return EligibilityEvaluator(mock_rpc, cycle, start_timestamp, check_mint_renounced=True)


class TestPoolBalancePercentage:

    def test_exact_forty_percent(self):
        assert pool_balance_percentage(400_000_000_000, 9, 1000.0) == 40.0

    def test_just_below_forty_percent(self):
        assert pool_balance_percentage(399_999_999, 9, 1.0) < 40.0

    def test_exact_forty_percent_of_uneven_supply(self):
        # 9.2 of 23.0
        assert pool_balance_percentage(9_200_000, 6, 23.0) >= 40.0


class TestTimeGate:

    @pytest.mark.asyncio
    async def test_pool_opened_before_start_is_rejected_without_fetches(
        self, evaluator, mock_rpc, make_pool, start_timestamp
    ):
        result = await evaluator.evaluate(make_pool(open_time=start_timestamp - 1))

        assert result.accepted is False
        assert result.gate is Gate.TIME
        mock_rpc.get_account_info.assert_not_called()
        mock_rpc.get_token_account_balance.assert_not_called()
        mock_rpc.get_token_supply.assert_not_called()

    @pytest.mark.asyncio
    async def test_pool_opened_at_start_passes(self, evaluator, make_pool, start_timestamp):
        result = await evaluator.evaluate(make_pool(open_time=start_timestamp))

        assert result.accepted is True


class TestSnipeListGate:

    @pytest.mark.asyncio
    async def test_pool_not_listed_is_rejected(self, mock_rpc, cycle, start_timestamp, make_pool, tmp_path):
        path = tmp_path / "snipe-list.txt"
        path.write_text("")
        snipe_list = SnipeListLoader(str(path))
        snipe_list.reload()
        evaluator = EligibilityEvaluator(mock_rpc, cycle, start_timestamp, snipe_list=snipe_list)

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.SNIPE_LIST
        mock_rpc.get_account_info.assert_not_called()

    @pytest.mark.asyncio
    async def test_listed_pool_passes(self, mock_rpc, cycle, start_timestamp, make_pool, tmp_path):
        pool = make_pool()
        path = tmp_path / "snipe-list.txt"
        path.write_text(f"  {pool.id}  \n\n")
        snipe_list = SnipeListLoader(str(path))
        snipe_list.reload()
        evaluator = EligibilityEvaluator(mock_rpc, cycle, start_timestamp, snipe_list=snipe_list)

        result = await evaluator.evaluate(pool)

        assert result.accepted is True


class TestRenouncedGate:

    @pytest.mark.asyncio
    async def test_mint_with_authority_is_rejected(self, evaluator, mock_rpc, make_pool, encode_mint):
        mock_rpc.get_account_info.return_value = encode_mint(1)

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.RENOUNCED
        mock_rpc.get_token_account_balance.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_mint_account_fails_closed(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_account_info.return_value = None

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.RENOUNCED

    @pytest.mark.asyncio
    async def test_fetch_error_fails_closed(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_account_info.side_effect = FetchError("timeout")

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.RENOUNCED

    @pytest.mark.asyncio
    async def test_undecodable_mint_fails_closed(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_account_info.return_value = b"\x00" * 10

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.RENOUNCED

    @pytest.mark.asyncio
    async def test_gate_disabled(self, mock_rpc, cycle, start_timestamp, make_pool, encode_mint):
        mock_rpc.get_account_info.return_value = encode_mint(1)
        evaluator = EligibilityEvaluator(mock_rpc, cycle, start_timestamp, check_mint_renounced=False)

        result = await evaluator.evaluate(make_pool())

        assert result.accepted is True
        mock_rpc.get_account_info.assert_not_called()


class TestLiquidityGate:

    @pytest.mark.asyncio
    async def test_forty_percent_accepts(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_token_account_balance.return_value = 400_000_000_000
        mock_rpc.get_token_supply.return_value = 1000.0

        result = await evaluator.evaluate(make_pool(base_decimals=9))

        assert result.accepted is True
        assert result.pool_balance_pct == 40.0
        assert result.base_vault_balance == 400.0
        assert result.total_supply == 1000.0

    @pytest.mark.asyncio
    async def test_forty_percent_of_uneven_supply_accepts(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_token_account_balance.return_value = 9_200_000
        mock_rpc.get_token_supply.return_value = 23.0

        result = await evaluator.evaluate(make_pool(base_decimals=6))

        assert result.accepted is True
        assert result.gate is None

    @pytest.mark.asyncio
    async def test_below_forty_percent_rejects(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_token_account_balance.return_value = 399_999_999
        mock_rpc.get_token_supply.return_value = 1.0

        result = await evaluator.evaluate(make_pool(base_decimals=9))

        assert result.accepted is False
        assert result.gate is Gate.LIQUIDITY
        assert get_metrics().get_counter("pools_rejected", labels={"gate": "liquidity"}) == 1

    @pytest.mark.asyncio
    async def test_missing_supply_rejects(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_token_supply.return_value = None

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.LIQUIDITY
        assert "total supply" in result.reason

    @pytest.mark.asyncio
    async def test_balance_fetch_error_rejects(self, evaluator, mock_rpc, make_pool):
        mock_rpc.get_token_account_balance.side_effect = FetchError("no balance")

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.LIQUIDITY


class TestCycleGate:

    @pytest.mark.asyncio
    async def test_first_evaluation_starts_cycle(self, evaluator, cycle, make_pool):
        assert cycle.active is False

        result = await evaluator.evaluate(make_pool())

        assert result.accepted is True
        assert cycle.active is True
        assert cycle.tokens_bought == 0

    @pytest.mark.asyncio
    async def test_cycle_resets_after_max_buys(self, evaluator, cycle, make_pool):
        for _ in range(cycle.max_tokens_to_buy):
            result = await evaluator.evaluate(make_pool())
            assert result.accepted is True
            cycle.record_buy()

        assert cycle.active is False
        assert cycle.tokens_bought == 2

        result = await evaluator.evaluate(make_pool())

        assert result.accepted is True
        assert cycle.active is True
        assert cycle.tokens_bought == 0

    @pytest.mark.asyncio
    async def test_full_active_cycle_rejects(self, evaluator, make_pool):
        evaluator.cycle.active = True
        evaluator.cycle.tokens_bought = 2

        result = await evaluator.evaluate(make_pool())

        assert result.gate is Gate.CYCLE


class TestCycleState:

    def test_record_buy_ends_cycle_at_max(self):
        cycle = CycleState(max_tokens_to_buy=1)
        cycle.start_new_cycle()

        assert cycle.has_capacity() is True
        assert cycle.record_buy() == 1
        assert cycle.active is False
        assert cycle.has_capacity() is False
