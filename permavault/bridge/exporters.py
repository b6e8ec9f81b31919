"""Manifest exporters — local files or object storage next to the uploads.

Each exporter returns a reference (a path or an ``s3://`` URI) that can be
handed to a token minter.  Revisions never overwrite earlier revisions.

Layouts::

    local:  {base}/{archive_id}.manifest.json
            {base}/{archive_id}.r{n}.manifest.json
    s3:     {namespace}/{session_id}/manifest.json
            {namespace}/{session_id}/manifest.r{n}.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from permavault.bridge.storage import S3ObjectWriter, make_s3_client
from permavault.config import VaultConfig
from permavault.core.paths import join_key
from permavault.models.manifest import Manifest

logger = logging.getLogger(__name__)


def manifest_document(manifest: Manifest) -> bytes:
    """The self-contained JSON document for a manifest (pretty-printed)."""
    return json.dumps(manifest.model_dump(mode="json"), indent=2, sort_keys=True).encode(
        "utf-8"
    )


@runtime_checkable
class ManifestExporter(Protocol):
    """Protocol for manifest export targets."""

    def export(self, manifest: Manifest) -> str:
        """Write *manifest* and return a reference to it."""
        ...


class LocalManifestExporter:
    """Writes manifests as JSON files in a local directory.

    Parameters
    ----------
    base_path:
        Output directory.  Created on first use.
    """

    def __init__(self, base_path: Path | str) -> None:
        self._base = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base

    def export(self, manifest: Manifest) -> str:
        self._base.mkdir(parents=True, exist_ok=True)
        target = self._base / manifest.manifest_filename
        if target.exists():
            raise FileExistsError(f"Manifest revision already written: {target}")
        target.write_bytes(manifest_document(manifest))
        logger.info("Manifest r%d written to %s", manifest.revision, target)
        return str(target)

    def write_json(self, filename: str, payload: dict[str, Any]) -> str:
        """Write an auxiliary JSON document (e.g. token metadata)."""
        self._base.mkdir(parents=True, exist_ok=True)
        target = self._base / filename
        target.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return str(target)


class ObjectStoreManifestExporter:
    """Writes manifests into the session prefix of the uploaded objects.

    A manifest without an upload session has no prefix to live under.  Such
    manifests go to *fallback* when one is given; otherwise ``export``
    raises ``ValueError``.
    """

    def __init__(
        self,
        writer: S3ObjectWriter,
        namespace: str = "vaults",
        *,
        fallback: ManifestExporter | None = None,
    ) -> None:
        self._writer = writer
        self._namespace = namespace
        self._fallback = fallback

    @classmethod
    def from_config(
        cls, config: VaultConfig, *, fallback: ManifestExporter | None = None
    ) -> ObjectStoreManifestExporter:
        writer = S3ObjectWriter(make_s3_client(config), config.storage_bucket)
        return cls(writer, namespace=config.key_namespace, fallback=fallback)

    @property
    def fallback(self) -> ManifestExporter | None:
        return self._fallback

    def key_for(self, manifest: Manifest) -> str:
        session_id = manifest.storage_policy.session_id
        if not session_id:
            raise ValueError(
                f"Manifest {manifest.archive_id} has no upload session; "
                "export it locally instead"
            )
        name = "manifest.json" if manifest.revision == 1 else f"manifest.r{manifest.revision}.json"
        return join_key(self._namespace, session_id, name)

    def export(self, manifest: Manifest) -> str:
        if not manifest.storage_policy.session_id and self._fallback is not None:
            logger.info(
                "Manifest %s has no upload session, exporting through fallback",
                manifest.archive_id,
            )
            return self._fallback.export(manifest)
        return self._writer.put(self.key_for(manifest), manifest_document(manifest))
