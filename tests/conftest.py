"""Shared test fixtures for PermaVault."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from permavault.bridge.crypto_bridge import ManifestSigner, generate_keypair
from permavault.bridge.storage import IssuedCredential, StorageError
from permavault.config import VaultConfig
from permavault.core.collector import collect_path
from permavault.core.session_manager import UploadSessionManager
from permavault.models.files import LogicalFile

UPLOAD_HOST = "https://uploads.test"

VAULT_LAYOUT: dict[str, bytes] = {
    "readme.txt": b"hello vault\n",
    "photos/a.jpg": b"\xff\xd8\xff\xe0jpeg-a" * 10,
    "photos/b.png": b"\x89PNG\r\n\x1a\npng-b",
    "docs/notes/n.md": b"# notes\n",
}


class FakeIssuer:
    """In-memory ``CredentialIssuer`` that records every request.

    Requests for keys containing ``fail_on`` raise ``StorageError``.
    """

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[tuple[str, str, str, int]] = []
        self._lock = threading.Lock()

    def issue(self, bucket: str, key: str, content_type: str, ttl_seconds: int) -> IssuedCredential:
        with self._lock:
            self.calls.append((bucket, key, content_type, ttl_seconds))
        if self.fail_on and self.fail_on in key:
            raise StorageError(f"AccessDenied for {key}")
        return IssuedCredential(
            upload_url=f"{UPLOAD_HOST}/{bucket}/{key}?X-Amz-Signature=deadbeef",
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds),
        )


def write_tree(root: Path, layout: dict[str, bytes]) -> Path:
    """Write *layout* (relative path -> bytes) under *root*."""
    for rel, data in layout.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return root


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    """A small folder named ``album`` with nested files."""
    return write_tree(tmp_path / "album", VAULT_LAYOUT)


@pytest.fixture
def logical_files(vault_dir: Path) -> list[LogicalFile]:
    """The collected files of ``vault_dir``."""
    return collect_path(vault_dir)


@pytest.fixture
def fake_issuer() -> FakeIssuer:
    return FakeIssuer()


@pytest.fixture
def session_manager(fake_issuer: FakeIssuer) -> UploadSessionManager:
    """Session manager against the fake issuer, bucket ``test-bucket``."""
    return UploadSessionManager(fake_issuer, "test-bucket", namespace="vaults", ttl_seconds=900)


@pytest.fixture
def signer() -> ManifestSigner:
    """A manifest signer with a stable (non-ephemeral) key."""
    private_key, _ = generate_keypair()
    return ManifestSigner(private_key)


@pytest.fixture
def vault_config(tmp_path: Path) -> VaultConfig:
    """Development config writing manifests under the temp directory."""
    return VaultConfig(
        _env_file=None,
        environment="development",
        manifest_dir=tmp_path / "manifests",
        storage_bucket="",
        hash_chunk_size=16,
        usd_per_unit=2500.0,
    )
