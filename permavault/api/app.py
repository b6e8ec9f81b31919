"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from permavault import __version__
from permavault.api import routes
from permavault.bridge.storage import S3CredentialIssuer
from permavault.config import VaultConfig
from permavault.core.production_guard import enforce_production_constraints
from permavault.core.session_manager import UploadSessionManager


def create_app(
    session_manager: UploadSessionManager | None = None,
    *,
    config: VaultConfig | None = None,
) -> FastAPI:
    """Build the app.  Without a session manager one is made from *config*."""
    config = config or VaultConfig()
    enforce_production_constraints(config)
    if session_manager is None:
        session_manager = UploadSessionManager.from_config(
            S3CredentialIssuer.from_config(config), config
        )

    app = FastAPI(title="PermaVault", version=__version__, debug=config.debug)
    app.state.session_manager = session_manager
    app.include_router(routes.router)
    return app
