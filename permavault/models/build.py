"""Build stage models — forward-only transitions for one vault build."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BuildStage(str, Enum):
    """Client-observable stages of a single vault build."""

    SELECT_PLAN = "select_plan"
    UPLOAD = "upload"
    PRICING = "pricing"
    MANIFEST = "manifest"
    MINTING = "minting"
    VAULT = "vault"


# Valid forward transitions, enforced by BuildMachine.
# MINTING -> MANIFEST records a failed mint; the written manifest stands.
# VAULT is terminal; only reset() leaves it.
VALID_TRANSITIONS: dict[BuildStage, set[BuildStage]] = {
    BuildStage.SELECT_PLAN: {BuildStage.UPLOAD},
    BuildStage.UPLOAD: {BuildStage.PRICING},
    BuildStage.PRICING: {BuildStage.MANIFEST},
    BuildStage.MANIFEST: {BuildStage.MINTING, BuildStage.VAULT},
    BuildStage.MINTING: {BuildStage.VAULT, BuildStage.MANIFEST},
    BuildStage.VAULT: set(),
}


class StageTransition(BaseModel):
    """Records a single stage transition for the build history."""

    model_config = ConfigDict(frozen=True)

    from_stage: BuildStage
    to_stage: BuildStage
    reason: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
