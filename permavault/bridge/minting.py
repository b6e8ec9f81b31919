"""Token minting bridge.

Minting is an external collaborator: anything with
``mint(manifest_ref, destination) -> MintReceipt`` satisfies
``TokenMinter``.  A minter signals failure by raising ``MintingError``;
the manifest already written stays valid either way.

``SimulatedMinter`` fabricates token ids and transaction hashes locally.
It makes no network calls and is meant for demos and tests.
"""

from __future__ import annotations

import logging
import secrets
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from permavault.errors import MintingError

logger = logging.getLogger(__name__)


class MintReceipt(BaseModel):
    """What a minter returns on success."""

    model_config = ConfigDict(frozen=True)

    token_id: str
    transaction_reference: str
    network: str = ""
    contract: str = ""


@runtime_checkable
class TokenMinter(Protocol):
    """Protocol for token minting backends."""

    def mint(self, manifest_ref: str, destination: str) -> MintReceipt:
        """Mint a token referencing *manifest_ref* to *destination*.

        Raises
        ------
        MintingError
            If the token could not be minted.
        """
        ...


class SimulatedMinter:
    """Local stand-in for an on-chain minter.

    Parameters
    ----------
    network:
        Network label recorded on receipts.
    contract:
        Contract address recorded on receipts; random when omitted.
    """

    def __init__(self, network: str = "simulated", contract: str = "") -> None:
        self.network = network
        self.contract = contract or f"0x{secrets.token_hex(20)}"
        self.minted: list[tuple[str, str, MintReceipt]] = []

    def mint(self, manifest_ref: str, destination: str) -> MintReceipt:
        if not manifest_ref:
            raise MintingError("Cannot mint without a manifest reference")
        receipt = MintReceipt(
            token_id=f"0x{secrets.token_hex(32)}",
            transaction_reference=f"0x{secrets.token_hex(32)}",
            network=self.network,
            contract=self.contract,
        )
        self.minted.append((manifest_ref, destination, receipt))
        logger.info(
            "Simulated mint of %s for %s: token %s",
            manifest_ref,
            destination or "(unspecified)",
            receipt.token_id[:18],
        )
        return receipt
