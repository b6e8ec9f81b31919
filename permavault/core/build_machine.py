"""Forward-only build stage machine.

Enforces:
- Valid transitions only (``VALID_TRANSITIONS`` table)
- Every transition recorded as a frozen ``StageTransition``
- ``reset()`` as the only way back to ``select_plan``
"""

from __future__ import annotations

import logging

from permavault.errors import InvalidTransitionError
from permavault.models.build import VALID_TRANSITIONS, BuildStage, StageTransition

logger = logging.getLogger(__name__)


class BuildMachine:
    """Tracks the stage of one vault build.

    Parameters
    ----------
    build_id:
        Label used in log lines and error messages.
    """

    def __init__(self, build_id: str = "") -> None:
        self.build_id = build_id
        self._stage = BuildStage.SELECT_PLAN
        self._history: list[StageTransition] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def stage(self) -> BuildStage:
        return self._stage

    @property
    def history(self) -> tuple[StageTransition, ...]:
        return tuple(self._history)

    def available_transitions(self) -> set[BuildStage]:
        """Return the set of valid target stages from the current one."""
        return set(VALID_TRANSITIONS.get(self._stage, set()))

    def require(self, *stages: BuildStage) -> None:
        """Raise unless the build is currently in one of *stages*."""
        if self._stage not in stages:
            raise InvalidTransitionError(
                f"Build {self.build_id or '(unnamed)'} is at {self._stage.value}; "
                f"expected {' or '.join(s.value for s in stages)}"
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def advance(self, target: BuildStage, *, reason: str = "") -> StageTransition:
        """Move to *target*, recording the transition.

        Raises
        ------
        InvalidTransitionError
            If *target* is not reachable from the current stage.
        """
        allowed = VALID_TRANSITIONS.get(self._stage, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot move build {self.build_id or '(unnamed)'} from "
                f"{self._stage.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        transition = StageTransition(from_stage=self._stage, to_stage=target, reason=reason)
        self._history.append(transition)
        self._stage = target
        logger.debug(
            "Build %s: %s -> %s %s",
            self.build_id,
            transition.from_stage.value,
            target.value,
            reason,
        )
        return transition

    def reset(self, *, reason: str = "reset") -> None:
        """Return to ``select_plan``.  The history is cleared as well."""
        if self._stage is not BuildStage.SELECT_PLAN:
            logger.info("Build %s reset from %s (%s)", self.build_id, self._stage.value, reason)
        self._stage = BuildStage.SELECT_PLAN
        self._history.clear()
