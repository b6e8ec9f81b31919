"""Upload session manager — one time-bounded grant per file, all or nothing.

For every requested file the manager sanitizes the relative path, derives
``<namespace>/<session_id>/<sanitized path>`` as the object key and asks the
``CredentialIssuer`` for a grant.  Requests run in parallel on a bounded
thread pool.  If any single request fails, requests that have not started
are cancelled, grants already issued are discarded, and
``CredentialIssuanceError`` is raised; a partial session would leave
orphaned keys behind.

The manager keeps no state between calls.  A grant's expiry is its only
validity boundary, so the caller holds on to the returned plan.
"""

from __future__ import annotations

import logging
import re
import secrets
from collections.abc import Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait

from permavault.bridge.storage import CredentialIssuer, StorageError, storage_uri
from permavault.config import VaultConfig
from permavault.core.paths import join_key, sanitize_relative_path
from permavault.errors import CredentialIssuanceError, InvalidInput
from permavault.models.files import DEFAULT_CONTENT_TYPE, FileRequest
from permavault.models.sessions import UploadGrant, UploadSession

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{6,128}$")


def resolve_session_id(hint: str | None) -> str:
    """Use *hint* when it matches the allow-list pattern, else generate one."""
    if hint and SESSION_ID_PATTERN.fullmatch(hint):
        return hint
    if hint:
        logger.info("Rejected session id hint %r; generating a new one", hint)
    return secrets.token_hex(8)


def derive_object_key(namespace: str, session_id: str, relative_path: str) -> str:
    """Build the object key for a file.  The path must already be sanitized."""
    return join_key(namespace, session_id, relative_path)


class UploadSessionManager:
    """Plans upload sessions against a storage credential issuer.

    Parameters
    ----------
    issuer:
        Any ``CredentialIssuer`` implementation.
    bucket:
        Destination bucket for every grant.
    namespace:
        Top-level key prefix (``vaults`` by default).
    ttl_seconds:
        Lifetime of each grant.
    max_workers:
        Upper bound on concurrent grant requests.
    """

    def __init__(
        self,
        issuer: CredentialIssuer,
        bucket: str,
        *,
        namespace: str = "vaults",
        ttl_seconds: int = 900,
        max_workers: int = 8,
    ) -> None:
        if not bucket:
            raise InvalidInput("UploadSessionManager requires a bucket")
        if ttl_seconds <= 0:
            raise InvalidInput(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._issuer = issuer
        self._bucket = bucket
        self._namespace = namespace.strip("/")
        self._ttl = ttl_seconds
        self._max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, issuer: CredentialIssuer, config: VaultConfig) -> UploadSessionManager:
        return cls(
            issuer,
            config.storage_bucket,
            namespace=config.key_namespace,
            ttl_seconds=config.grant_ttl_seconds,
            max_workers=config.max_concurrent_grants,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def namespace(self) -> str:
        return self._namespace

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_session(
        self, session_id_hint: str | None, files: Sequence[FileRequest]
    ) -> UploadSession:
        """Allocate keys and issue one grant per file.

        Raises
        ------
        InvalidInput
            If *files* is empty, a path is empty after sanitization, or two
            files collapse onto the same key.  No grant is requested.
        CredentialIssuanceError
            If any grant request fails.  The whole session is discarded.
        """
        if not files:
            raise InvalidInput("Upload session requires at least one file")

        session_id = resolve_session_id(session_id_hint)
        planned = self._plan_keys(session_id, files)

        grants = self._issue_all(planned)
        logger.info(
            "Upload session %s: %d grants issued (ttl=%ds, bucket=%s)",
            session_id,
            len(grants),
            self._ttl,
            self._bucket,
        )
        return UploadSession(session_id=session_id, items=tuple(grants))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _plan_keys(
        self, session_id: str, files: Sequence[FileRequest]
    ) -> list[tuple[str, str, str]]:
        """Return ``(relative_path, object_key, content_type)`` per file."""
        planned: list[tuple[str, str, str]] = []
        seen: dict[str, str] = {}
        for request in files:
            safe = sanitize_relative_path(request.rel_path)
            if not safe:
                raise InvalidInput(f"Relative path {request.rel_path!r} is empty after sanitization")
            if safe in seen:
                raise InvalidInput(
                    f"Relative paths {seen[safe]!r} and {request.rel_path!r} "
                    f"both map to {safe!r}"
                )
            seen[safe] = request.rel_path
            key = derive_object_key(self._namespace, session_id, safe)
            planned.append((safe, key, request.content_type or DEFAULT_CONTENT_TYPE))
        return planned

    def _issue_one(self, relative_path: str, key: str, content_type: str) -> UploadGrant:
        try:
            credential = self._issuer.issue(self._bucket, key, content_type, self._ttl)
        except StorageError as exc:
            raise CredentialIssuanceError(
                f"Grant refused for {relative_path}: {exc}", relative_path=relative_path
            ) from exc
        return UploadGrant(
            relative_path=relative_path,
            object_key=key,
            storage_uri=storage_uri(self._bucket, key),
            upload_url=credential.upload_url,
            content_type=content_type,
            expires_at=credential.expires_at,
        )

    def _issue_all(self, planned: list[tuple[str, str, str]]) -> list[UploadGrant]:
        workers = min(self._max_workers, len(planned))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="grant") as pool:
            futures: list[Future[UploadGrant]] = [
                pool.submit(self._issue_one, rel, key, ctype)
                for rel, key, ctype in planned
            ]
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            failure = next(
                (f for f in futures if f in done and f.exception() is not None), None
            )
            if failure is not None:
                for future in not_done:
                    future.cancel()
                issued = sum(1 for f in done if f.exception() is None)
                exc = failure.exception()
                logger.error(
                    "Upload session aborted: %s (%d issued grants discarded)", exc, issued
                )
                if isinstance(exc, CredentialIssuanceError):
                    raise exc
                raise CredentialIssuanceError(
                    f"Grant request failed: {exc}"
                ) from exc
        # Plan order, not completion order.
        return [f.result() for f in futures]
