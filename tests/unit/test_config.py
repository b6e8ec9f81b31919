"""Tests for runtime config — env-driven settings."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from permavault.config import VaultConfig


class TestVaultConfig:
    def test_defaults(self):
        config = VaultConfig(_env_file=None)
        assert config.environment == "development"
        assert config.grant_ttl_seconds == 900
        assert config.hash_chunk_size == 8 * 1024 * 1024
        assert config.max_concurrent_uploads == 1
        assert config.key_namespace == "vaults"
        assert config.usd_per_unit == 2500.0
        assert config.manifest_dir == Path(".permavault/manifests")

    def test_is_production(self):
        assert VaultConfig(_env_file=None).is_production is False
        assert VaultConfig(_env_file=None, environment="production").is_production is True

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PERMAVAULT_STORAGE_BUCKET", "family-vaults")
        monkeypatch.setenv("PERMAVAULT_GRANT_TTL_SECONDS", "1800")
        config = VaultConfig(_env_file=None)
        assert config.storage_bucket == "family-vaults"
        assert config.grant_ttl_seconds == 1800

    @pytest.mark.parametrize("ttl", [0, 59, 3601])
    def test_ttl_range(self, ttl: int):
        with pytest.raises(pydantic.ValidationError):
            VaultConfig(_env_file=None, grant_ttl_seconds=ttl)

    def test_upload_concurrency_capped(self):
        with pytest.raises(pydantic.ValidationError):
            VaultConfig(_env_file=None, max_concurrent_uploads=9)

    def test_namespace_stripped(self):
        assert VaultConfig(_env_file=None, key_namespace="/archive/").key_namespace == "archive"

    def test_namespace_required(self):
        with pytest.raises(pydantic.ValidationError):
            VaultConfig(_env_file=None, key_namespace=" / ")
