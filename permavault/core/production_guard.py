"""Production configuration guard.

Runs once when a ``VaultBuilder`` or the HTTP app is created and fails hard
(``ProductionConfigError``) when a production deployment is missing
something it cannot safely run without.  Outside production it does
nothing.
"""

from __future__ import annotations

import logging

from permavault.config import VaultConfig

logger = logging.getLogger(__name__)

PRODUCTION_REQUIRED_SETTINGS: list[str] = [
    "signing_key",
    "storage_bucket",
]


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process should exit rather than catch this.
    """


def enforce_production_constraints(config: VaultConfig) -> None:
    """Validate all production-critical settings at once.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. A stable manifest signing key must be configured, otherwise every
       restart would sign with a new ephemeral key.
    3. A storage bucket must be configured.

    Raises
    ------
    ProductionConfigError
        Listing every violated constraint.
    """
    if not config.is_production:
        return

    violations: list[str] = []

    if config.debug:
        violations.append(
            "debug=True is not allowed in production. Set PERMAVAULT_DEBUG=false."
        )

    for name in PRODUCTION_REQUIRED_SETTINGS:
        if not getattr(config, name, ""):
            violations.append(
                f"Setting '{name}' is required in production but not configured. "
                f"Set PERMAVAULT_{name.upper()}."
            )

    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")
