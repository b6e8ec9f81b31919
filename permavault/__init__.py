"""PermaVault: bundle a folder into a content-addressed, signed vault.

- Path-aware SHA-256 archive digest with bounded memory
- All-or-nothing presigned upload sessions (boto3)
- Concurrent streamed uploads with fail-fast diagnostics (httpx)
- Plan pricing and a frozen endowment conversion
- Ed25519-signed, immutable manifests with token revisions (PyNaCl)
"""

__version__ = "0.1.0"

from permavault.core.builder import VaultBuilder
from permavault.cli.app import app as cli

__all__ = ["VaultBuilder", "cli", "__version__"]
