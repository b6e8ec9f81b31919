"""Pricing quotes and endowment locks.

Quotes are recomputed from scratch whenever the byte total or plan
changes; nothing is rounded until display, so repeated recomputation never
compounds rounding error.

An endowment rate is read exactly once, when pricing is accepted, and
frozen into an ``EndowmentLock``.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Protocol, runtime_checkable

from permavault.errors import InvalidInput
from permavault.models.pricing import (
    EndowmentLock,
    Plan,
    PricingConfig,
    PricingQuote,
)

logger = logging.getLogger(__name__)

GIB = 1024**3


def billed_gb(total_bytes: int) -> int:
    """Whole GiB billed for *total_bytes*: ceiling, never less than 1."""
    if total_bytes < 0:
        raise InvalidInput(f"total_bytes must be >= 0, got {total_bytes}")
    return max(1, math.ceil(total_bytes / GIB))


def calculate_quote(
    plan: Plan,
    total_bytes: int,
    *,
    escrow_years: int | None = None,
    pricing: PricingConfig | None = None,
) -> PricingQuote:
    """Price *total_bytes* under *plan*.

    ``escrow_years`` only applies to ``Permanence+`` and defaults to the
    configured default there; it is ignored for other plans.
    """
    pricing = pricing or PricingConfig()
    gb = billed_gb(total_bytes)
    tokenization = gb * pricing.tokenization_per_gb

    if plan is Plan.PERMANENCE:
        storage = gb * pricing.permanence_storage_per_gb
        years = None
        notes = (
            "Requires annual Evidence of Active Stewardship (EAS): "
            f"${pricing.permanence_annual_eas:.2f}/yr"
        )
    elif plan is Plan.PERMANENCE_PLUS:
        years = escrow_years if escrow_years is not None else pricing.default_escrow_years
        if years not in pricing.escrow_year_choices:
            raise InvalidInput(
                f"escrow_years must be one of {list(pricing.escrow_year_choices)}, got {years}"
            )
        per_gb = (
            pricing.permanence_plus_storage_per_gb_base
            + years * pricing.permanence_plus_per_year_adder_per_gb
        )
        storage = gb * per_gb
        notes = f"{years}-year escrow window with grace; annual EAS still required."
    else:
        storage = gb * pricing.heirloom_storage_per_gb
        years = None
        notes = (
            f"{pricing.heirloom_guarantee_years}-year guarantee. "
            "No annual EAS required."
        )

    return PricingQuote(
        plan=plan,
        escrow_years=years,
        total_bytes=total_bytes,
        billed_gb=gb,
        tokenization_fee=tokenization,
        storage_fee=storage,
        subtotal=tokenization + storage,
        notes=notes,
    )


def load_pricing(path: Path | None) -> PricingConfig:
    """Load pricing overrides from a JSON file, or the defaults."""
    if path is None:
        return PricingConfig()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    logger.info("Loaded pricing overrides from %s", path)
    return PricingConfig.model_validate(data)


# ---------------------------------------------------------------------------
# Endowment
# ---------------------------------------------------------------------------


@runtime_checkable
class RateSource(Protocol):
    """Anything that can quote the current USD price of one unit."""

    def usd_per_unit(self) -> float:
        ...


class StaticRateSource:
    """A fixed rate, settable at runtime (demo and tests)."""

    def __init__(self, usd_per_unit: float) -> None:
        self.rate = usd_per_unit

    def usd_per_unit(self) -> float:
        return self.rate


def parse_endowment_usd(raw: str | float | None) -> float | None:
    """Parse an optional USD amount.  Blank means no endowment.

    Raises ``InvalidInput`` for anything that is not a finite, non-negative
    number.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError as exc:
            raise InvalidInput(f"Endowment must be a USD amount, got {raw!r}") from exc
    else:
        value = float(raw)
    if not math.isfinite(value) or value < 0:
        raise InvalidInput(
            f"Endowment must be a non-negative finite USD amount, got {raw!r}"
        )
    return value


def lock_endowment(
    usd: float, rate_source: RateSource, *, unit: str = "ETH"
) -> EndowmentLock:
    """Read the rate once and freeze it together with *usd*."""
    amount = parse_endowment_usd(usd)
    if amount is None:
        raise InvalidInput("Endowment amount is required to create a lock")
    rate = rate_source.usd_per_unit()
    if not math.isfinite(rate) or rate <= 0:
        raise InvalidInput(f"Conversion rate must be positive and finite, got {rate!r}")
    lock = EndowmentLock.lock(amount, rate, unit=unit)
    logger.info(
        "Endowment locked: $%.2f at $%.2f/%s = %.6f %s",
        lock.usd,
        lock.usd_per_unit,
        unit,
        lock.derived_units,
        unit,
    )
    return lock
