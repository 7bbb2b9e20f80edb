"""Unit tests for subscription pricing and platform fee math."""

from decimal import Decimal

import pytest

from app.billing.exceptions import ConfigurationError, ValidationError
from app.billing.fees import (
    FeeSchedule,
    calculate_platform_fees,
    calculate_subscription_total,
    from_cents,
    to_cents,
)


class TestCentHelpers:
    def test_to_cents_rounds_half_up(self):
        assert to_cents("0.005") == 1
        assert to_cents("0.004") == 0
        assert to_cents(Decimal("12.345")) == 1235

    def test_to_cents_float_goes_through_str(self):
        # 0.1 + 0.2 would be 0.30000000000000004 in binary
        assert to_cents(0.1) + to_cents(0.2) == 30

    def test_from_cents_two_places(self):
        assert from_cents(5399) == Decimal("53.99")
        assert str(from_cents(800)) == "8.00"

    def test_to_cents_rejects_non_finite(self):
        with pytest.raises(ValueError):
            to_cents("Infinity")


class TestCalculateSubscriptionTotal:
    """base + per_condo * condo_count, clamped at zero condominiums."""

    def test_three_condominiums(self, fee_schedule: FeeSchedule):
        pricing = calculate_subscription_total(3, fee_schedule)
        assert pricing.total == Decimal("53.99")
        assert pricing.condo_count == 3
        assert pricing.base == Decimal("29.99")
        assert pricing.per_condo == Decimal("8.00")

    def test_zero_condominiums_is_base_fee(self, fee_schedule: FeeSchedule):
        assert calculate_subscription_total(0, fee_schedule).total == Decimal("29.99")

    @pytest.mark.parametrize("count", [-1, -50])
    def test_negative_count_behaves_like_zero(self, fee_schedule: FeeSchedule, count: int):
        pricing = calculate_subscription_total(count, fee_schedule)
        assert pricing.condo_count == 0
        assert pricing.total == calculate_subscription_total(0, fee_schedule).total

    @pytest.mark.parametrize("count", [1, 7, 120, 10_000])
    def test_total_matches_formula(self, fee_schedule: FeeSchedule, count: int):
        pricing = calculate_subscription_total(count, fee_schedule)
        assert pricing.total == fee_schedule.base_fee + fee_schedule.per_condo_fee * count
        assert pricing.total >= 0

    def test_total_cents(self, fee_schedule: FeeSchedule):
        assert calculate_subscription_total(3, fee_schedule).total_cents == 5399

    def test_alternate_schedule_is_injected(self):
        schedule = FeeSchedule(
            base_fee=Decimal("10"),
            per_condo_fee=Decimal("2.5"),
            platform_fee_percent=Decimal("2"),
            processor_fee_percent=Decimal("1"),
        )
        assert calculate_subscription_total(4, schedule).total == Decimal("20.00")


class TestCalculatePlatformFees:
    """Platform fee, processor fee and net margin on a gross amount."""

    def test_thousand_euro_payment(self, fee_schedule: FeeSchedule):
        fees = calculate_platform_fees(Decimal("1000.00"), fee_schedule)
        assert fees.platform_fee == Decimal("10.00")
        assert fees.processor_fee == Decimal("2.50")
        assert fees.net == Decimal("7.50")
        assert fees.platform_fee_percent == Decimal("1")
        assert fees.processor_fee_percent == Decimal("0.25")

    def test_zero_amount_returns_zero_fees(self, fee_schedule: FeeSchedule):
        fees = calculate_platform_fees(0, fee_schedule)
        assert fees.platform_fee == Decimal("0.00")
        assert fees.processor_fee == Decimal("0.00")
        assert fees.net == Decimal("0.00")

    def test_negative_amount_clamps_to_zero(self, fee_schedule: FeeSchedule):
        fees = calculate_platform_fees(-250, fee_schedule)
        assert fees.amount == Decimal("0.00")
        assert fees.net == Decimal("0.00")

    @pytest.mark.parametrize("amount", ["0.01", "0.99", "33.33", "149.95", "1234567.89"])
    def test_net_is_exact_difference(self, fee_schedule: FeeSchedule, amount: str):
        fees = calculate_platform_fees(amount, fee_schedule)
        assert fees.net == fees.platform_fee - fees.processor_fee
        assert fees.net_cents == fees.platform_fee_cents - fees.processor_fee_cents

    def test_each_fee_rounds_half_up_to_cent(self, fee_schedule: FeeSchedule):
        # 1% of 150.50 = 1.505 -> 1.51; 0.25% = 0.37625 -> 0.38
        fees = calculate_platform_fees("150.50", fee_schedule)
        assert fees.platform_fee == Decimal("1.51")
        assert fees.processor_fee == Decimal("0.38")
        assert fees.net == Decimal("1.13")

    def test_net_may_be_negative(self):
        schedule = FeeSchedule(
            base_fee=Decimal("29.99"),
            per_condo_fee=Decimal("8"),
            platform_fee_percent=Decimal("0.5"),
            processor_fee_percent=Decimal("1.4"),
        )
        fees = calculate_platform_fees(100, schedule)
        assert fees.net == Decimal("-0.90")

    def test_float_input(self, fee_schedule: FeeSchedule):
        assert calculate_platform_fees(1000.0, fee_schedule).platform_fee == Decimal("10.00")

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "abc"])
    def test_non_numeric_input_raises(self, fee_schedule: FeeSchedule, amount: str):
        with pytest.raises(ValidationError):
            calculate_platform_fees(amount, fee_schedule)

    def test_as_dict(self, fee_schedule: FeeSchedule):
        data = calculate_platform_fees(200, fee_schedule).as_dict()
        assert data["platform_fee"] == Decimal("2.00")
        assert data["processor_fee"] == Decimal("0.50")
        assert data["net"] == Decimal("1.50")


class TestFeeSchedule:
    def test_money_constants_quantized(self):
        schedule = FeeSchedule(
            base_fee="29.994",
            per_condo_fee=8,
            platform_fee_percent="1",
            processor_fee_percent=0.25,
        )
        assert schedule.base_fee == Decimal("29.99")
        assert schedule.per_condo_fee == Decimal("8.00")
        assert schedule.processor_fee_percent == Decimal("0.25")

    def test_currency_lowercased(self):
        schedule = FeeSchedule(
            base_fee=1, per_condo_fee=1, platform_fee_percent=1, processor_fee_percent=1, currency="EUR"
        )
        assert schedule.currency == "eur"

    @pytest.mark.parametrize("bad", ["-1", "NaN", "Infinity", "twelve"])
    def test_invalid_constant_raises(self, bad: str):
        with pytest.raises(ConfigurationError) as exc_info:
            FeeSchedule(
                base_fee=bad,
                per_condo_fee=8,
                platform_fee_percent=1,
                processor_fee_percent=0.25,
            )
        assert exc_info.value.status_code == 503

    def test_is_immutable(self, fee_schedule: FeeSchedule):
        with pytest.raises(AttributeError):
            fee_schedule.base_fee = Decimal("1")  # type: ignore[misc]
