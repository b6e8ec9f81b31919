"""Plan, pricing quote, and endowment lock models.

The per-GB rates shipped in ``PricingConfig`` are illustrative demo values
with no stated derivation.  Deployments inject their own.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Plan(str, Enum):
    """Permanence plans a vault can be built under."""

    PERMANENCE = "Permanence"
    PERMANENCE_PLUS = "Permanence+"
    HEIRLOOM = "Heirloom"

    @classmethod
    def parse(cls, value: str) -> Plan:
        """Accept the display value or a case-insensitive member name."""
        for member in cls:
            if value.lower() == member.value.lower():
                return member
            if value.replace("-", "_").upper() == member.name:
                return member
        if value.lower() in ("permanenceplus", "permanence-plus", "plus"):
            return cls.PERMANENCE_PLUS
        raise ValueError(f"Unknown plan: {value!r}")


ESCROW_YEAR_CHOICES: tuple[int, ...] = (3, 5, 10)


class PricingConfig(BaseModel):
    """Injectable pricing parameters (USD)."""

    model_config = ConfigDict(frozen=True)

    tokenization_per_gb: float = Field(default=0.1, ge=0)
    permanence_storage_per_gb: float = Field(default=0.6, ge=0)
    permanence_annual_eas: float = Field(default=20.0, ge=0)
    permanence_plus_storage_per_gb_base: float = Field(default=0.5, ge=0)
    permanence_plus_per_year_adder_per_gb: float = Field(default=0.2, ge=0)
    heirloom_storage_per_gb: float = Field(default=1.2, ge=0)
    heirloom_guarantee_years: int = Field(default=100, ge=1)
    default_escrow_years: int = 3
    escrow_year_choices: tuple[int, ...] = ESCROW_YEAR_CHOICES

    @model_validator(mode="after")
    def _default_escrow_is_a_choice(self) -> PricingConfig:
        if self.default_escrow_years not in self.escrow_year_choices:
            raise ValueError(
                f"default_escrow_years={self.default_escrow_years} is not one of "
                f"{list(self.escrow_year_choices)}"
            )
        return self


class PricingQuote(BaseModel):
    """A derived price for a plan and a byte total.

    Components are kept un-rounded; the ``display_*`` properties round to
    cents for presentation only.
    """

    model_config = ConfigDict(frozen=True)

    plan: Plan
    escrow_years: int | None = None
    total_bytes: int = Field(ge=0)
    billed_gb: int = Field(ge=1)
    tokenization_fee: float
    storage_fee: float
    subtotal: float
    notes: str = ""

    @property
    def display_tokenization_fee(self) -> float:
        return round(self.tokenization_fee, 2)

    @property
    def display_storage_fee(self) -> float:
        return round(self.storage_fee, 2)

    @property
    def display_subtotal(self) -> float:
        return round(self.subtotal, 2)


class EndowmentLock(BaseModel):
    """USD endowment converted at a rate captured once, at commit time.

    Frozen: a later change of the live rate never touches an existing lock.
    """

    model_config = ConfigDict(frozen=True)

    usd: float = Field(ge=0)
    usd_per_unit: float = Field(gt=0)
    derived_units: float = Field(ge=0)
    unit: str = "ETH"
    locked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("usd", "usd_per_unit", "derived_units")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return value

    @classmethod
    def lock(cls, usd: float, usd_per_unit: float, *, unit: str = "ETH") -> EndowmentLock:
        """Create a lock, deriving units from the supplied rate."""
        if not math.isfinite(usd_per_unit) or usd_per_unit <= 0:
            raise ValueError(f"usd_per_unit must be a positive finite number, got {usd_per_unit!r}")
        return cls(
            usd=usd,
            usd_per_unit=usd_per_unit,
            derived_units=usd / usd_per_unit,
            unit=unit,
        )
