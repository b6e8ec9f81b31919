"""Tests for the BuildMachine — forward-only stage transitions."""

from __future__ import annotations

import pytest

from permavault.core.build_machine import BuildMachine
from permavault.errors import InvalidTransitionError
from permavault.models.build import BuildStage

_HAPPY_PATH = [
    BuildStage.UPLOAD,
    BuildStage.PRICING,
    BuildStage.MANIFEST,
    BuildStage.MINTING,
    BuildStage.VAULT,
]


class TestBuildMachine:
    def test_starts_at_select_plan(self):
        assert BuildMachine().stage is BuildStage.SELECT_PLAN

    def test_happy_path_recorded(self):
        machine = BuildMachine("b1")
        for stage in _HAPPY_PATH:
            machine.advance(stage)
        assert machine.stage is BuildStage.VAULT
        assert [t.to_stage for t in machine.history] == _HAPPY_PATH
        assert machine.history[0].from_stage is BuildStage.SELECT_PLAN

    def test_skip_rejected(self):
        machine = BuildMachine()
        with pytest.raises(InvalidTransitionError):
            machine.advance(BuildStage.MANIFEST)
        assert machine.stage is BuildStage.SELECT_PLAN
        assert machine.history == ()

    def test_backwards_rejected(self):
        machine = BuildMachine()
        machine.advance(BuildStage.UPLOAD)
        machine.advance(BuildStage.PRICING)
        with pytest.raises(InvalidTransitionError):
            machine.advance(BuildStage.UPLOAD)

    def test_manifest_to_vault_without_minting(self):
        machine = BuildMachine()
        for stage in _HAPPY_PATH[:3]:
            machine.advance(stage)
        machine.advance(BuildStage.VAULT)
        assert machine.stage is BuildStage.VAULT

    def test_failed_mint_returns_to_manifest(self):
        machine = BuildMachine()
        for stage in _HAPPY_PATH[:4]:
            machine.advance(stage)
        machine.advance(BuildStage.MANIFEST, reason="mint failed")
        assert machine.stage is BuildStage.MANIFEST
        assert machine.history[-1].reason == "mint failed"

    def test_vault_is_terminal(self):
        machine = BuildMachine()
        for stage in _HAPPY_PATH:
            machine.advance(stage)
        assert machine.available_transitions() == set()
        with pytest.raises(InvalidTransitionError):
            machine.advance(BuildStage.MINTING)

    def test_reset(self):
        machine = BuildMachine()
        machine.advance(BuildStage.UPLOAD)
        machine.reset()
        assert machine.stage is BuildStage.SELECT_PLAN
        assert machine.history == ()

    def test_require(self):
        machine = BuildMachine("b2")
        machine.require(BuildStage.SELECT_PLAN)
        with pytest.raises(InvalidTransitionError, match="b2"):
            machine.require(BuildStage.PRICING, BuildStage.MANIFEST)
