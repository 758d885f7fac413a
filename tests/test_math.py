"""
Test Suite — Stillwater Formula Validation
==========================================

Tests every formula in the analytics core (tick_math, liquidity, pnl,
health) against known inputs and documented expected values.

Formula Sources:
  - Uniswap V3 Whitepaper §6.1 (tick ↔ price), §6.2 (liquidity → amounts)

Run:  python -m pytest tests/test_math.py -v
"""

from datetime import datetime, timezone
from decimal import Decimal, localcontext

import pytest

from stillwater.health import (
    WARNING_EDGE_RATIO,
    health_details,
    health_report,
    position_health,
)
from stillwater.liquidity import (
    position_composition,
    position_value,
    token_amounts_from_liquidity,
)
from stillwater.models import HealthStatus, Position, PositionPnL, Swap
from stillwater.pnl import (
    ASSUMED_POOL_SHARE,
    FEE_RATE,
    fees_earned,
    impermanent_loss,
    net_pnl,
    position_pnl,
)
from stillwater.tick_math import (
    MATH_CONTEXT,
    distance_to_range_edge,
    has_tick,
    is_in_range,
    price_to_tick,
    range_width_percent,
    tick_to_price,
    tick_to_sqrt_price,
)


# ── Helpers ──────────────────────────────────────────────────────────────

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_position(tick_lower=-1000, tick_upper=1000, liquidity=10 ** 18) -> Position:
    return Position(
        nft_id="1",
        owner="0x" + "a" * 40,
        pool_id="0x" + "b" * 40,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        liquidity=liquidity,
        created_at=NOW,
    )


def make_swap(amount0: int, amount1: int) -> Swap:
    return Swap(
        tx_hash="0x" + "c" * 64,
        pool_id="0x" + "b" * 40,
        amount0=amount0,
        amount1=amount1,
        timestamp=NOW,
    )


def make_pnl(net: str) -> PositionPnL:
    return PositionPnL(
        fees_earned=Decimal("0"),
        impermanent_loss=Decimal("0"),
        gas_spent=Decimal("0"),
        net_pnl=Decimal(net),
    )


def rel_close(a: Decimal, b: Decimal, tol: str = "1e-30") -> bool:
    if b == 0:
        return abs(a) <= Decimal(tol)
    return abs(a - b) / abs(b) <= Decimal(tol)


# ── Tick ↔ Price (Whitepaper §6.1) ──────────────────────────────────────

class TestTickPrice:
    """p(i) = 1.0001^i  ↔  i = round(ln p / ln 1.0001)"""

    def test_tick_zero_is_price_one(self):
        assert tick_to_price(0) == Decimal(1)
        assert tick_to_sqrt_price(0) == Decimal(1)

    def test_tick_one(self):
        assert abs(tick_to_price(1) - Decimal("1.0001")) < Decimal("1e-15")

    def test_negative_tick_is_reciprocal(self):
        product = tick_to_price(1000) * tick_to_price(-1000)
        assert abs(product - 1) < Decimal("1e-25")

    def test_returns_decimal(self):
        assert isinstance(tick_to_price(12345), Decimal)

    @pytest.mark.parametrize("tick", [-887272, -200000, -1000, -1, 0, 1, 1000, 200000, 887272])
    def test_roundtrip_within_one_tick(self, tick: int):
        assert abs(price_to_tick(tick_to_price(tick)) - tick) <= 1

    @pytest.mark.parametrize("price,expected", [
        ("1", 0),
        ("1.0001", 1),
        (Decimal("0.9999"), -1),
        (1, 0),
    ])
    def test_known_ticks(self, price, expected):
        assert price_to_tick(price) == expected

    def test_tick_increases_with_price(self):
        assert price_to_tick("1000") < price_to_tick("2000") < price_to_tick("3000")

    @pytest.mark.parametrize("price", ["0", "-1", "-0.5", "NaN"])
    def test_non_positive_price_maps_to_zero(self, price):
        assert price_to_tick(price) == 0

    def test_tick_outside_int32_maps_to_zero(self):
        assert price_to_tick(Decimal("1e100000")) == 0
        assert price_to_tick(Decimal("1e-100000")) == 0

    def test_has_tick(self):
        assert has_tick("1.0")
        assert has_tick("2000")
        assert not has_tick("0")
        assert not has_tick("-3")
        assert not has_tick("Infinity")
        assert not has_tick(Decimal("1e100000"))

    def test_float_input_rejected(self):
        with pytest.raises(TypeError):
            price_to_tick(1.5)


class TestSqrtPriceClamp:
    """exp() exponent beyond ±100 clamps instead of overflowing."""

    def test_huge_positive_tick(self):
        assert tick_to_sqrt_price(3_000_000) == Decimal("1000000")

    def test_huge_negative_tick(self):
        assert tick_to_sqrt_price(-3_000_000) == Decimal("0.000001")

    def test_max_valid_tick_not_clamped(self):
        sqrt_price = tick_to_sqrt_price(887272)
        assert Decimal("1e18") < sqrt_price < Decimal("1e20")


# ── Range Predicates ────────────────────────────────────────────────────

class TestRangePredicates:
    @pytest.mark.parametrize("tick,expected", [
        (-1001, False),
        (-1000, True),   # lower bound inclusive
        (0, True),
        (999, True),
        (1000, False),   # upper bound exclusive
        (5000, False),
    ])
    def test_is_in_range(self, tick, expected):
        assert is_in_range(tick, -1000, 1000) is expected

    @pytest.mark.parametrize("tick,expected", [
        (0, 1000),
        (-900, 100),
        (950, 50),
        (-1000, 0),
        (1000, 0),     # out of range
        (-5000, 0),    # out of range
    ])
    def test_distance_to_edge(self, tick, expected):
        assert distance_to_range_edge(tick, -1000, 1000) == expected

    def test_range_width_one_tick(self):
        width = range_width_percent(0, 1)
        assert abs(width - Decimal("0.01")) < Decimal("1e-15")

    def test_range_width_grows_with_range(self):
        assert range_width_percent(-100, 100) < range_width_percent(-1000, 1000)

    def test_range_width_clamped_lower_still_finite(self):
        assert range_width_percent(-3_000_000, 0) > 0


# ── Liquidity → Token Amounts (Whitepaper §6.2) ─────────────────────────

class TestTokenAmounts:
    L = 10 ** 6

    def test_zero_liquidity(self):
        assert token_amounts_from_liquidity(0, 0, -1000, 1000) == (0, 0)

    def test_below_range_all_token0(self):
        amount0, amount1 = token_amounts_from_liquidity(self.L, -2000, -1000, 1000)
        assert amount0 > 0
        assert amount1 == 0

    def test_above_range_all_token1(self):
        amount0, amount1 = token_amounts_from_liquidity(self.L, 2000, -1000, 1000)
        assert amount0 == 0
        assert amount1 > 0

    def test_at_upper_tick_counts_as_above(self):
        amount0, amount1 = token_amounts_from_liquidity(self.L, 1000, -1000, 1000)
        assert amount0 == 0
        assert amount1 > 0

    def test_at_lower_tick_is_in_range(self):
        amount0, amount1 = token_amounts_from_liquidity(self.L, -1000, -1000, 1000)
        assert amount0 > 0
        assert amount1 == 0

    def test_symmetric_range_at_tick_zero_is_balanced(self):
        """At p = 1 on a symmetric range: x = L(1 − 1/√Pb) = y = L(1 − √Pa)."""
        amount0, amount1 = token_amounts_from_liquidity(self.L, 0, -1000, 1000)
        assert rel_close(amount0, amount1)

    def test_below_and_above_mirror_on_symmetric_range(self):
        below0, _ = token_amounts_from_liquidity(self.L, -2000, -1000, 1000)
        _, above1 = token_amounts_from_liquidity(self.L, 2000, -1000, 1000)
        assert rel_close(below0, above1)

    def test_known_value_above_range(self):
        """y = L(√Pb − √Pa) with √P(±1000) = exp(±500 · ln 1.0001)."""
        _, amount1 = token_amounts_from_liquidity(self.L, 2000, -1000, 1000)
        expected = self.L * (tick_to_sqrt_price(1000) - tick_to_sqrt_price(-1000))
        assert rel_close(amount1, expected, "1e-25")
        assert abs(amount1 - Decimal("100036.666")) < Decimal("0.001")

    def test_liquidity_beyond_64_bits(self):
        amount0, amount1 = token_amounts_from_liquidity(2 ** 200, 0, -1000, 1000)
        assert amount0 > 2 ** 190
        assert amount1 > 2 ** 190

    def test_decimal_liquidity_accepted(self):
        from_int = token_amounts_from_liquidity(self.L, 10, -1000, 1000)
        from_dec = token_amounts_from_liquidity(Decimal(self.L), 10, -1000, 1000)
        assert from_int == from_dec

    def test_position_composition_matches(self):
        position = make_position(liquidity=self.L)
        assert position_composition(position, 250) == token_amounts_from_liquidity(
            self.L, 250, -1000, 1000
        )


class TestPositionValue:
    def test_value_formula(self):
        assert position_value(2, 3, 5) == Decimal(13)

    def test_zero_price_leaves_token1(self):
        assert position_value(Decimal("7.5"), Decimal("4"), 0) == Decimal(4)

    def test_string_inputs(self):
        assert position_value("1.5", "0.5", "2") == Decimal("3.5")


# ── Fees ────────────────────────────────────────────────────────────────

class TestFees:
    def test_constants(self):
        assert FEE_RATE == Decimal("0.003")
        assert ASSUMED_POOL_SHARE == Decimal("0.01")

    def test_known_volume(self):
        """6000 units of volume × 0.3% × 1% = 0.18."""
        swaps = [make_swap(1000, -2000), make_swap(-1500, 1500)]
        assert fees_earned(make_position(), swaps) == Decimal("0.18")

    def test_empty_swaps(self):
        assert fees_earned(make_position(), []) == 0

    def test_sign_does_not_matter(self):
        position = make_position()
        assert fees_earned(position, [make_swap(-1000, 0)]) == fees_earned(
            position, [make_swap(1000, 0)]
        )

    def test_huge_amounts_do_not_overflow(self):
        swaps = [make_swap(2 ** 250, -(2 ** 250))]
        expected = Decimal(2 ** 251) * FEE_RATE * ASSUMED_POOL_SHARE
        assert rel_close(fees_earned(make_position(), swaps), expected, "1e-25")

    def test_accepts_generator(self):
        swaps = (make_swap(1000, 1000) for _ in range(3))
        assert fees_earned(make_position(), swaps) == Decimal("0.18")


# ── Impermanent Loss ────────────────────────────────────────────────────

class TestImpermanentLoss:
    def test_no_price_change(self):
        assert impermanent_loss(make_position(), "1.0", "1.0") == 0

    def test_change_below_tolerance(self):
        assert impermanent_loss(make_position(), "1.0", "1.0000005") == 0

    @pytest.mark.parametrize("initial,current", [("0", "1.1"), ("1.0", "0"), ("-1", "1.1")])
    def test_non_positive_price(self, initial, current):
        assert impermanent_loss(make_position(), initial, current) == 0

    def test_zero_liquidity(self):
        assert impermanent_loss(make_position(liquidity=0), "1.0", "1.1") == 0

    @pytest.mark.parametrize("initial,current", [
        ("1.0", "1e999999"),
        ("1e999999", "1.0"),
        ("1.0", "1e-999999"),
        ("1.0", "NaN"),
        ("1.0", "Infinity"),
    ])
    def test_price_without_tick_is_zero(self, initial, current):
        assert impermanent_loss(make_position(), initial, current) == 0

    def test_position_pnl_with_extreme_price(self):
        pnl = position_pnl(make_position(), [make_swap(10, -10)], "1.0", "1e999999", "0")
        assert pnl.impermanent_loss == 0
        assert pnl.net_pnl == pnl.fees_earned

    def test_known_scenario(self):
        """[-1000, 1000], 1.0 → 1.1 (tick 953, still in range): IL ≈ 2.33%."""
        il = impermanent_loss(make_position(), "1.0", "1.1")
        assert Decimal("0.02") < il < Decimal("0.03")

    def test_never_negative(self):
        position = make_position()
        for current in ["0.5", "0.9", "0.99", "1.01", "1.1", "2", "10"]:
            assert impermanent_loss(position, "1.0", current) >= 0

    def test_price_drop_also_loses(self):
        assert impermanent_loss(make_position(), "1.0", "0.95") > 0

    def test_grows_with_divergence(self):
        position = make_position()
        il_small = impermanent_loss(position, "1.0", "1.02")
        il_large = impermanent_loss(position, "1.0", "1.05")
        assert 0 < il_small < il_large

    def test_narrower_range_loses_more(self):
        narrow = impermanent_loss(make_position(-1000, 1000), "1.0", "1.05")
        wide = impermanent_loss(make_position(-5000, 5000), "1.0", "1.05")
        assert narrow > wide > 0

    def test_independent_of_liquidity_scale(self):
        small = impermanent_loss(make_position(liquidity=10 ** 6), "1.0", "1.1")
        large = impermanent_loss(make_position(liquidity=2 ** 200), "1.0", "1.1")
        assert rel_close(small, large, "1e-25")


# ── Net P&L ─────────────────────────────────────────────────────────────

class TestNetPnl:
    def test_formula(self):
        assert net_pnl(100, 20, 10) == Decimal(70)

    def test_can_go_negative(self):
        assert net_pnl("1", "2", "3") == Decimal(-4)

    def test_position_pnl_composes(self):
        swaps = [make_swap(1000, -2000), make_swap(-1500, 1500)]
        pnl = position_pnl(make_position(), swaps, "1.0", "1.0", "0.05")
        assert pnl.fees_earned == Decimal("0.18")
        assert pnl.impermanent_loss == 0
        assert pnl.gas_spent == Decimal("0.05")
        assert pnl.net_pnl == Decimal("0.13")

    def test_position_pnl_identity(self):
        swaps = [make_swap(10 ** 6, -(10 ** 6))]
        pnl = position_pnl(make_position(), swaps, "1.0", "1.2", "1")
        assert pnl.net_pnl == net_pnl(pnl.fees_earned, pnl.impermanent_loss, pnl.gas_spent)
        with localcontext(MATH_CONTEXT):
            assert pnl.net_pnl == pnl.fees_earned - pnl.impermanent_loss - pnl.gas_spent
        assert pnl.fees_earned >= 0
        assert pnl.impermanent_loss >= 0


# ── Health Classifier ───────────────────────────────────────────────────

class TestHealth:
    """[-1000, 1000]: half-width 1000 ticks, warning within 100 ticks of an edge."""

    position = make_position()
    positive = make_pnl("1")
    negative = make_pnl("-0.01")

    def test_ratio(self):
        assert WARNING_EDGE_RATIO == Decimal("0.10")

    def test_centered_is_healthy(self):
        assert position_health(self.position, 0, self.positive) is HealthStatus.HEALTHY

    def test_zero_pnl_is_not_critical(self):
        assert position_health(self.position, 0, make_pnl("0")) is HealthStatus.HEALTHY

    @pytest.mark.parametrize("tick", [-1001, 1000, 5000, -50000])
    def test_out_of_range_is_critical(self, tick):
        assert position_health(self.position, tick, self.positive) is HealthStatus.CRITICAL

    def test_negative_pnl_is_critical(self):
        assert position_health(self.position, 0, self.negative) is HealthStatus.CRITICAL

    @pytest.mark.parametrize("tick", [950, 900, -900, -1000, 999])
    def test_near_edge_is_warning(self, tick):
        assert position_health(self.position, tick, self.positive) is HealthStatus.WARNING

    def test_threshold_boundary(self):
        """Distance exactly 100 ticks → WARNING; 101 ticks → HEALTHY."""
        assert position_health(self.position, 900, self.positive) is HealthStatus.WARNING
        assert position_health(self.position, 899, self.positive) is HealthStatus.HEALTHY
        assert position_health(self.position, -899, self.positive) is HealthStatus.HEALTHY

    def test_odd_width_range(self):
        position = make_position(0, 15)   # half-width 7.5 → threshold 0.75
        assert position_health(position, 0, self.positive) is HealthStatus.WARNING
        assert position_health(position, 7, self.positive) is HealthStatus.HEALTHY

    def test_negative_pnl_beats_warning(self):
        assert position_health(self.position, 950, self.negative) is HealthStatus.CRITICAL


class TestHealthDetails:
    position = make_position()

    def test_critical_names_every_trigger(self):
        details = health_details(self.position, -2000, make_pnl("-5"))
        assert "below the range" in details
        assert "net P&L is negative" in details

    def test_critical_above(self):
        details = health_details(self.position, 1000, make_pnl("1"))
        assert "above the range" in details
        assert "net P&L is negative" not in details

    def test_critical_pnl_only(self):
        details = health_details(self.position, 0, make_pnl("-1"))
        assert "net P&L is negative" in details
        assert "below the range" not in details
        assert "above the range" not in details

    def test_warning_mentions_edge_and_threshold(self):
        details = health_details(self.position, 950, make_pnl("1"))
        assert "upper" in details
        assert "50 ticks" in details
        assert "threshold 100.0" in details
        assert "range width" in details

    def test_warning_lower_edge(self):
        details = health_details(self.position, -950, make_pnl("1"))
        assert "lower" in details

    def test_healthy_restates_description(self):
        details = health_details(self.position, 0, make_pnl("1"))
        assert details.startswith(HealthStatus.HEALTHY.description)
        assert "1000 ticks" in details

    def test_report_bundles_status_and_details(self):
        report = health_report(self.position, 950, make_pnl("1"))
        assert report.status is HealthStatus.WARNING
        assert report.details == health_details(self.position, 950, make_pnl("1"))
        assert report.to_dict()["status"] == "Warning"
