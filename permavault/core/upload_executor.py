"""Upload executor — stream each file to its granted destination.

Plan items are matched to local files by relative path; plan items with no
local counterpart are marked ``skipped``.  Transfers run on a bounded pool
(at most 8 in flight).  The first rejected transfer stops the batch: items
not yet started stay ``pending`` and ``UploadFailed`` is raised with the
partial ``UploadResult`` attached.  Nothing is retried here; resuming is
the caller's decision.

Progress callbacks always run on the calling thread and never go
backwards, so they can drive a progress bar directly.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone

import httpx

from permavault.core.hasher import iter_chunks
from permavault.errors import UploadCancelled, UploadFailed
from permavault.models.files import LogicalFile
from permavault.models.sessions import (
    ItemStatus,
    UploadGrant,
    UploadItemResult,
    UploadProgress,
    UploadResult,
    UploadSession,
)

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 8
DEFAULT_TRANSFER_CHUNK = 1024 * 1024
_BODY_PREVIEW_LIMIT = 4096

ProgressCallback = Callable[[UploadProgress], None]


def redact_url(url: str) -> str:
    """Drop the query string (the signature) from a grant URL."""
    return str(httpx.URL(url).copy_with(query=None))


def classify_status(status_code: int) -> str:
    """Map a response status to a failure category."""
    if status_code in (401, 403):
        return "credential"
    if status_code >= 500:
        return "server"
    return "request"


class UploadExecutor:
    """Transfers the files of an upload session.

    Parameters
    ----------
    client:
        Optional ``httpx.Client``.  When omitted a client is created for
        each ``execute`` call and closed afterwards.
    max_concurrency:
        Transfers in flight at once, between 1 and 8.  The default of 1
        keeps every item after a failed one ``pending``.  With more slots,
        items are still admitted in plan order and none start after a
        failure, but transfers already in flight run to completion.
    chunk_size:
        Read size for streaming request bodies.
    timeout_seconds:
        Per-request timeout when the executor owns the client.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        max_concurrency: int = 1,
        chunk_size: int = DEFAULT_TRANSFER_CHUNK,
        timeout_seconds: float = 300.0,
        poll_interval: float = 0.05,
    ) -> None:
        if not 1 <= max_concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"max_concurrency must be between 1 and {MAX_CONCURRENCY}, got {max_concurrency}"
            )
        self._client = client
        self._max_concurrency = max_concurrency
        self._chunk_size = chunk_size
        self._timeout = timeout_seconds
        self._poll_interval = poll_interval

        self._cancel = threading.Event()
        self._abort = threading.Event()
        self._lock = threading.Lock()
        self._bytes_sent = 0
        self._completed = 0
        self._current_path = ""
        self._failure: UploadFailed | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Abandon the running batch.  In-flight transfers are dropped.

        A cancel issued before ``execute`` stops the next batch.  Once that
        batch has ended the executor accepts new batches again.
        """
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def execute(
        self,
        session: UploadSession,
        local_files: Sequence[LogicalFile],
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Upload every planned file that has a local counterpart.

        Raises
        ------
        UploadFailed
            On the first non-2xx response, transport error, or expired
            grant.  ``exc.result`` holds the partial batch state.
        UploadCancelled
            If ``cancel()`` was called before the batch finished.
        """
        try:
            return self._execute(session, local_files, on_progress)
        finally:
            self._cancel.clear()

    def _execute(
        self,
        session: UploadSession,
        local_files: Sequence[LogicalFile],
        on_progress: ProgressCallback | None,
    ) -> UploadResult:
        self._reset()
        by_path = {f.relative_path: f for f in local_files}
        results: list[UploadItemResult] = []
        work: list[tuple[int, UploadGrant, LogicalFile]] = []
        for grant in session.items:
            local = by_path.get(grant.relative_path)
            if local is None:
                logger.info("No local file for planned item %s; skipping", grant.relative_path)
                results.append(
                    UploadItemResult(
                        relative_path=grant.relative_path,
                        object_key=grant.object_key,
                        status=ItemStatus.SKIPPED,
                    )
                )
                continue
            work.append((len(results), grant, local))
            results.append(
                UploadItemResult(relative_path=grant.relative_path, object_key=grant.object_key)
            )
        total_bytes = sum(f.size_bytes for _, _, f in work)

        owns_client = self._client is None
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            self._run(client, work, results, total_bytes, on_progress)
        finally:
            if owns_client:
                client.close()

        result = UploadResult(
            session_id=session.session_id,
            items=tuple(results),
            bytes_sent=self._bytes_sent,
            total_bytes=total_bytes,
        )

        if self._failure is not None:
            failure = self._failure
            failure.result = result
            logger.error(
                "Upload batch %s aborted at %s: %d completed, %d not attempted",
                session.session_id,
                failure.relative_path,
                len(result.completed),
                len(result.pending),
            )
            raise failure
        if self._cancel.is_set() and result.pending:
            raise UploadCancelled(
                f"Upload batch {session.session_id} cancelled with "
                f"{len(result.pending)} item(s) not uploaded"
            )
        logger.info(
            "Upload batch %s complete: %d uploaded, %d skipped, %d bytes",
            session.session_id,
            len(result.completed),
            len(result.skipped),
            result.bytes_sent,
        )
        return result

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self._abort.clear()
        self._bytes_sent = 0
        self._completed = 0
        self._current_path = ""
        self._failure = None

    def _run(
        self,
        client: httpx.Client,
        work: list[tuple[int, UploadGrant, LogicalFile]],
        results: list[UploadItemResult],
        total_bytes: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        if not work:
            return
        last: tuple[int, int] | None = None

        def emit() -> None:
            nonlocal last
            if on_progress is None:
                return
            with self._lock:
                snapshot = UploadProgress(
                    completed_items=self._completed,
                    total_items=len(work),
                    bytes_sent=self._bytes_sent,
                    total_bytes=total_bytes,
                    relative_path=self._current_path,
                )
            key = (snapshot.completed_items, snapshot.bytes_sent)
            if key != last:
                last = key
                on_progress(snapshot)

        workers = min(self._max_concurrency, len(work))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as pool:
            futures: list[Future[None]] = [
                pool.submit(self._transfer_slot, client, index, grant, local, results)
                for index, grant, local in work
            ]
            pending = set(futures)
            while pending:
                _, pending = wait(
                    pending, timeout=self._poll_interval, return_when=FIRST_COMPLETED
                )
                emit()
        emit()
        for future in futures:
            future.result()

    def _transfer_slot(
        self,
        client: httpx.Client,
        index: int,
        grant: UploadGrant,
        local: LogicalFile,
        results: list[UploadItemResult],
    ) -> None:
        """Run one transfer unless the batch has already stopped."""
        if self._abort.is_set() or self._cancel.is_set():
            return
        try:
            sent, status = self._transfer(client, grant, local)
        except UploadFailed as exc:
            results[index] = UploadItemResult(
                relative_path=grant.relative_path,
                object_key=grant.object_key,
                status=ItemStatus.FAILED,
                http_status=exc.status_code,
                error=str(exc),
            )
            with self._lock:
                if self._failure is None:
                    self._failure = exc
            self._abort.set()
            return
        except UploadCancelled:
            return
        results[index] = UploadItemResult(
            relative_path=grant.relative_path,
            object_key=grant.object_key,
            status=ItemStatus.COMPLETED,
            bytes_sent=sent,
            http_status=status,
        )
        with self._lock:
            self._completed += 1

    # ------------------------------------------------------------------
    # One transfer
    # ------------------------------------------------------------------

    def _body(self, local: LogicalFile, counter: list[int]) -> Iterator[bytes]:
        with local.open() as stream:
            for chunk in iter_chunks(stream, self._chunk_size, name=local.relative_path):
                if self._cancel.is_set():
                    raise UploadCancelled(f"Transfer of {local.relative_path} cancelled")
                counter[0] += len(chunk)
                with self._lock:
                    self._bytes_sent += len(chunk)
                    self._current_path = local.relative_path
                yield chunk

    def _transfer(
        self, client: httpx.Client, grant: UploadGrant, local: LogicalFile
    ) -> tuple[int, int]:
        destination = redact_url(grant.upload_url)
        if grant.is_expired(datetime.now(timezone.utc)):
            raise UploadFailed(
                f"Upload grant for {grant.relative_path} expired at "
                f"{grant.expires_at.isoformat()}",
                relative_path=grant.relative_path,
                object_key=grant.object_key,
                destination=destination,
                reason="grant expired",
                category="credential",
            )

        try:
            size = local.source.stat().st_size
        except OSError as exc:
            raise UploadFailed(
                f"Cannot read {grant.relative_path}: {exc}",
                relative_path=grant.relative_path,
                object_key=grant.object_key,
                destination=destination,
                reason=str(exc),
                category="local",
            ) from exc

        counter = [0]
        headers = {"Content-Type": grant.content_type, "Content-Length": str(size)}
        try:
            response = client.put(
                grant.upload_url, content=self._body(local, counter), headers=headers
            )
        except UploadCancelled:
            raise
        except httpx.HTTPError as exc:
            if self._cancel.is_set():
                raise UploadCancelled(f"Transfer of {grant.relative_path} cancelled") from exc
            raise UploadFailed(
                f"Upload failed: {grant.relative_path} ({type(exc).__name__}: {exc})",
                relative_path=grant.relative_path,
                object_key=grant.object_key,
                destination=destination,
                reason=str(exc),
                category="network",
            ) from exc
        except OSError as exc:
            raise UploadFailed(
                f"Upload failed: {grant.relative_path} (local read error: {exc})",
                relative_path=grant.relative_path,
                object_key=grant.object_key,
                destination=destination,
                reason=str(exc),
                category="local",
            ) from exc

        if not response.is_success:
            body = response.text[:_BODY_PREVIEW_LIMIT]
            logger.error(
                "PUT failed path=%s status=%d reason=%s destination=%s body=%s",
                grant.relative_path,
                response.status_code,
                response.reason_phrase,
                destination,
                body,
            )
            raise UploadFailed(
                f"Upload failed: {grant.relative_path} (HTTP {response.status_code})",
                relative_path=grant.relative_path,
                object_key=grant.object_key,
                destination=destination,
                status_code=response.status_code,
                reason=response.reason_phrase,
                body=body,
                category=classify_status(response.status_code),
            )

        # Transports that never read the body still count the file as sent.
        unread = size - counter[0]
        if unread > 0:
            with self._lock:
                self._bytes_sent += unread
        logger.debug("Uploaded %s (%d bytes) -> %s", grant.relative_path, size, destination)
        return size, response.status_code
