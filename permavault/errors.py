"""Error taxonomy for the vault build pipeline.

Every error raised across a component boundary derives from
``VaultBuildError`` so callers can catch the whole family at once, while
the concrete subclasses tell them whether a retry makes sense:

- ``InvalidInput``            — malformed request, nothing was done
- ``CredentialIssuanceError`` — storage refused a grant, whole session aborted
- ``UploadFailed``            — one transfer rejected, batch aborted
- ``ValidationError``         — manifest cannot be assembled
- ``MintingError``            — minting failed, manifest still valid
- ``StorageError``            — object store call failed
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from permavault.models.sessions import UploadResult


class VaultBuildError(RuntimeError):
    """Base class for all vault build pipeline errors."""


class InvalidInput(VaultBuildError, ValueError):
    """Raised when a request is malformed.  No side effects have occurred."""


class CredentialIssuanceError(VaultBuildError):
    """Raised when the storage backend refuses to issue an upload grant.

    The whole session is discarded; no partially granted session escapes.
    """

    def __init__(self, message: str, *, relative_path: str = "") -> None:
        super().__init__(message)
        self.relative_path = relative_path


class UploadFailed(VaultBuildError):
    """Raised when a single transfer is rejected and the batch is aborted.

    Carries enough context to tell a credential problem (401/403, expired
    grant) from a network or server failure.  ``result`` holds the partial
    batch state so the caller can inspect which items completed.
    """

    def __init__(
        self,
        message: str,
        *,
        relative_path: str,
        object_key: str = "",
        destination: str = "",
        status_code: int | None = None,
        reason: str = "",
        body: str = "",
        category: str = "server",
        result: UploadResult | None = None,
    ) -> None:
        super().__init__(message)
        self.relative_path = relative_path
        self.object_key = object_key
        self.destination = destination
        self.status_code = status_code
        self.reason = reason
        self.body = body
        self.category = category
        self.result = result

    @property
    def is_credential_problem(self) -> bool:
        """``True`` when the grant was denied or has expired."""
        return self.category == "credential"


class UploadCancelled(VaultBuildError):
    """Raised when the caller abandons an in-flight upload batch."""


class ValidationError(VaultBuildError):
    """Raised when required manifest fields are missing or invalid."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__(
            "Manifest validation failed:\n"
            + "\n".join(f"  - {p}" for p in self.problems)
        )


class MintingError(VaultBuildError):
    """Raised by a token minting collaborator.  The manifest stays valid."""


class InvalidTransitionError(VaultBuildError):
    """Raised when a build stage transition is not allowed."""
