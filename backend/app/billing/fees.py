"""Fee calculator — subscription totals and marketplace fee splits.

Pure functions, no I/O. Every amount that is persisted or sent to Stripe is
computed in integer cents and exposed as a two-place ``Decimal``; floats are
only ever produced for JSON display by the response schemas.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache

from app.billing.exceptions import ConfigurationError, ValidationError
from app.config import Settings, settings

CENT = Decimal("0.01")
_HUNDRED = Decimal(100)

Number = Decimal | int | float | str


def to_decimal(value: Number) -> Decimal:
    """Convert a numeric input to Decimal, going through ``str`` for floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("booleans are not amounts")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"not a number: {value!r}") from e


def to_cents(amount: Number) -> int:
    """Round a monetary amount half-up to integer minor units."""
    value = to_decimal(amount)
    if not value.is_finite():
        raise ValueError(f"non-finite amount: {amount!r}")
    return int((value * _HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer minor units back to a two-place Decimal."""
    return (Decimal(cents) / _HUNDRED).quantize(CENT)


def _percent_of_cents(cents: int, percent: Decimal) -> int:
    return int((Decimal(cents) * percent / _HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeSchedule:
    """Immutable pricing constants injected into every billing component.

    Monetary constants are normalised to cents precision; percentages are
    kept as given. Non-finite or negative constants raise ``ConfigurationError``.
    """

    base_fee: Decimal
    per_condo_fee: Decimal
    platform_fee_percent: Decimal
    processor_fee_percent: Decimal
    supplier_pro_price: Decimal = Decimal("9.99")
    currency: str = "eur"

    def __post_init__(self) -> None:
        for name in (
            "base_fee",
            "per_condo_fee",
            "platform_fee_percent",
            "processor_fee_percent",
            "supplier_pro_price",
        ):
            raw = getattr(self, name)
            try:
                value = to_decimal(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"{name} must be numeric, got {raw!r}", status_code=503
                ) from e
            if not value.is_finite() or value < 0:
                raise ConfigurationError(
                    f"{name} must be a finite non-negative number, got {raw!r}",
                    status_code=503,
                )
            if name in ("base_fee", "per_condo_fee", "supplier_pro_price"):
                value = value.quantize(CENT, rounding=ROUND_HALF_UP)
            object.__setattr__(self, name, value)
        object.__setattr__(self, "currency", (self.currency or "eur").lower())

    @classmethod
    def from_settings(cls, config: Settings) -> "FeeSchedule":
        return cls(
            base_fee=config.base_fee,
            per_condo_fee=config.per_condo_fee,
            platform_fee_percent=config.platform_fee_percent,
            processor_fee_percent=config.stripe_card_fee_percent,
            supplier_pro_price=config.supplier_pro_price,
            currency=config.stripe_default_currency,
        )


@lru_cache
def get_fee_schedule() -> FeeSchedule:
    """Return the process-wide schedule built from settings (FastAPI dependency)."""
    return FeeSchedule.from_settings(settings)


@dataclass(frozen=True)
class SubscriptionPricing:
    """Monthly admin subscription price for a given condominium count."""

    base: Decimal
    per_condo: Decimal
    condo_count: int
    total: Decimal

    @property
    def total_cents(self) -> int:
        return to_cents(self.total)

    def as_dict(self) -> dict:
        return {
            "base": self.base,
            "per_condo": self.per_condo,
            "condo_count": self.condo_count,
            "total": self.total,
        }


@dataclass(frozen=True)
class PlatformFees:
    """Platform commission and estimated processor cost for one transaction."""

    amount: Decimal
    platform_fee_percent: Decimal
    platform_fee: Decimal
    processor_fee_percent: Decimal
    processor_fee: Decimal
    net: Decimal

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)

    @property
    def platform_fee_cents(self) -> int:
        return to_cents(self.platform_fee)

    @property
    def processor_fee_cents(self) -> int:
        return to_cents(self.processor_fee)

    @property
    def net_cents(self) -> int:
        return to_cents(self.net)

    def as_dict(self) -> dict:
        return {
            "amount": self.amount,
            "platform_fee_percent": self.platform_fee_percent,
            "platform_fee": self.platform_fee,
            "processor_fee_percent": self.processor_fee_percent,
            "processor_fee": self.processor_fee,
            "net": self.net,
        }


def calculate_subscription_total(condo_count: int, schedule: FeeSchedule) -> SubscriptionPricing:
    """Compute ``base + per_condo * condo_count``; negative counts clamp to 0."""
    count = max(int(condo_count), 0)
    base_cents = to_cents(schedule.base_fee)
    per_condo_cents = to_cents(schedule.per_condo_fee)
    return SubscriptionPricing(
        base=from_cents(base_cents),
        per_condo=from_cents(per_condo_cents),
        condo_count=count,
        total=from_cents(base_cents + per_condo_cents * count),
    )


def calculate_platform_fees(amount: Number, schedule: FeeSchedule) -> PlatformFees:
    """Split a gross amount into platform fee, processor fee and net margin.

    Negative amounts clamp to 0. Each fee is rounded half-up to the cent and
    ``net = platform_fee - processor_fee`` exactly; net may be negative.
    Non-finite input raises ``ValidationError``.
    """
    try:
        value = to_decimal(amount)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Amount must be numeric, got {amount!r}") from e
    if not value.is_finite():
        raise ValidationError(f"Amount must be finite, got {amount!r}")

    amount_cents = max(to_cents(value), 0)
    platform_cents = _percent_of_cents(amount_cents, schedule.platform_fee_percent)
    processor_cents = _percent_of_cents(amount_cents, schedule.processor_fee_percent)
    return PlatformFees(
        amount=from_cents(amount_cents),
        platform_fee_percent=schedule.platform_fee_percent,
        platform_fee=from_cents(platform_cents),
        processor_fee_percent=schedule.processor_fee_percent,
        processor_fee=from_cents(processor_cents),
        net=from_cents(platform_cents - processor_cents),
    )
