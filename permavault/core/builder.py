"""Vault builder — drives one vault build from plan selection to token.

The builder wires the collector, session manager, upload executor,
pricing, hasher, manifest assembler, exporter and minter into a single
forward-only flow guarded by a ``BuildMachine``::

    select_plan -> upload -> pricing -> manifest -> [minting] -> vault

It is the single writer of the build's in-memory state.  Nothing is
persisted until ``write_manifest``; ``cancel`` or ``reset`` before that
point leaves no manifest behind.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from pathlib import Path

from permavault.bridge.crypto_bridge import ManifestSigner
from permavault.bridge.exporters import (
    LocalManifestExporter,
    ManifestExporter,
    ObjectStoreManifestExporter,
)
from permavault.bridge.minting import MintReceipt, SimulatedMinter, TokenMinter
from permavault.bridge.storage import S3CredentialIssuer
from permavault.config import VaultConfig
from permavault.core.build_machine import BuildMachine
from permavault.core.collector import collect, collect_path
from permavault.core.hasher import ArchiveDigest, HashProgress, archive_digest
from permavault.core.manifest import ManifestAssembler
from permavault.core.pricing import (
    RateSource,
    StaticRateSource,
    calculate_quote,
    load_pricing,
    lock_endowment,
    parse_endowment_usd,
)
from permavault.core.production_guard import enforce_production_constraints
from permavault.core.session_manager import UploadSessionManager
from permavault.core.upload_executor import ProgressCallback, UploadExecutor
from permavault.errors import InvalidInput, InvalidTransitionError
from permavault.models.build import BuildStage
from permavault.models.files import LogicalFile
from permavault.models.manifest import (
    HeritagePolicy,
    Manifest,
    TokenDescriptor,
    TokenReference,
    Visibility,
)
from permavault.models.pricing import EndowmentLock, Plan, PricingConfig, PricingQuote
from permavault.models.sessions import UploadResult, UploadSession

logger = logging.getLogger(__name__)


class VaultBuilder:
    """Runs a single vault build at a time.

    Parameters
    ----------
    config:
        Runtime configuration.  Uses defaults if not provided.
    session_manager:
        Plans upload sessions.  Without one, ``upload`` is unavailable and
        builds stay local (manifest only).
    exporter:
        Where manifests are written.  Defaults to ``config.manifest_dir``.
    minter:
        Token minting collaborator.  Defaults to a ``SimulatedMinter``.
    signer:
        Manifest signer.  Defaults to ``config.signing_key``.
    rate_source:
        Quotes USD per endowment unit.  Defaults to ``config.usd_per_unit``.
    pricing:
        Pricing parameters.  Defaults to ``config.pricing_path`` or the
        built-in demo values.
    """

    def __init__(
        self,
        config: VaultConfig | None = None,
        *,
        session_manager: UploadSessionManager | None = None,
        exporter: ManifestExporter | None = None,
        minter: TokenMinter | None = None,
        signer: ManifestSigner | None = None,
        rate_source: RateSource | None = None,
        pricing: PricingConfig | None = None,
        upload_executor: UploadExecutor | None = None,
    ) -> None:
        self.config = config or VaultConfig()
        enforce_production_constraints(self.config)

        self.session_manager = session_manager
        self.exporter = exporter or LocalManifestExporter(self.config.manifest_dir)
        self.minter = minter or SimulatedMinter(
            network=self.config.token_network, contract=self.config.token_contract
        )
        self.rate_source = rate_source or StaticRateSource(self.config.usd_per_unit)
        self.pricing = pricing or load_pricing(self.config.pricing_path)
        self.assembler = ManifestAssembler(
            signer or ManifestSigner(self.config.signing_key),
            rate_source=self.rate_source,
            endowment_unit=self.config.endowment_unit,
        )
        self._executor_override = upload_executor

        self.build_id = ""
        self.machine = BuildMachine()
        self._clear()

    @classmethod
    def from_config(cls, config: VaultConfig, **overrides) -> VaultBuilder:
        """Builder backed by object storage when a bucket is configured.

        Uploads go through an S3 session manager and manifests are written
        next to the uploaded objects.  Manifests of builds that skipped the
        upload are written to ``config.manifest_dir``, or to the ``exporter``
        override when one is given.
        """
        if config.storage_bucket:
            if "session_manager" not in overrides:
                overrides["session_manager"] = UploadSessionManager.from_config(
                    S3CredentialIssuer.from_config(config), config
                )
            local = overrides.get("exporter")
            if not isinstance(local, ObjectStoreManifestExporter):
                overrides["exporter"] = ObjectStoreManifestExporter.from_config(
                    config, fallback=local or LocalManifestExporter(config.manifest_dir)
                )
        return cls(config, **overrides)

    # ------------------------------------------------------------------
    # Build state (read-only views)
    # ------------------------------------------------------------------

    @property
    def stage(self) -> BuildStage:
        return self.machine.stage

    @property
    def plan(self) -> Plan | None:
        return self._plan

    @property
    def files(self) -> tuple[LogicalFile, ...]:
        return tuple(self._files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self._files)

    @property
    def session(self) -> UploadSession | None:
        return self._session

    @property
    def upload_result(self) -> UploadResult | None:
        return self._upload_result

    @property
    def digest(self) -> ArchiveDigest | None:
        return self._digest

    @property
    def endowment(self) -> EndowmentLock | None:
        return self._endowment

    @property
    def manifest(self) -> Manifest | None:
        return self._manifest

    @property
    def manifest_ref(self) -> str:
        return self._manifest_ref

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def select_plan(self, plan: Plan | str, *, escrow_years: int | None = None) -> None:
        """Choose the plan and open the upload stage."""
        self.machine.require(BuildStage.SELECT_PLAN)
        try:
            chosen = plan if isinstance(plan, Plan) else Plan.parse(plan)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc
        if chosen is Plan.PERMANENCE_PLUS:
            years = escrow_years if escrow_years is not None else self.pricing.default_escrow_years
            if years not in self.pricing.escrow_year_choices:
                raise InvalidInput(
                    f"escrow_years must be one of {list(self.pricing.escrow_year_choices)}, "
                    f"got {years}"
                )
            self._escrow_years = years
        self._plan = chosen
        self.build_id = uuid.uuid4().hex[:12]
        self.machine.build_id = self.build_id
        self.machine.advance(BuildStage.UPLOAD, reason=f"plan {chosen.value}")
        logger.info("Build %s started with plan %s", self.build_id, chosen.value)

    def collect(self, *sources: Path | str | Iterable[LogicalFile]) -> tuple[LogicalFile, ...]:
        """Add files from local paths or ``LogicalFile`` iterables.

        May be called repeatedly; later files replace earlier ones with the
        same relative path.
        """
        self.machine.require(BuildStage.UPLOAD)
        resolved: list[Iterable[LogicalFile]] = [self._files]
        for source in sources:
            if isinstance(source, (str, Path)):
                resolved.append(collect_path(Path(source)))
            else:
                resolved.append(source)
        self._files = collect(*resolved)
        self._session = None
        self._upload_result = None
        logger.info(
            "Build %s: %d files, %d bytes collected",
            self.build_id,
            len(self._files),
            self.total_bytes,
        )
        return self.files

    def upload(
        self,
        session_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Plan an upload session for the collected files and transfer them.

        Raises
        ------
        CredentialIssuanceError
            If any grant could not be issued.
        UploadFailed
            On the first rejected transfer; ``exc.result`` holds the
            partial state.
        UploadCancelled
            If ``cancel()`` was called meanwhile.
        """
        self.machine.require(BuildStage.UPLOAD)
        if self.session_manager is None:
            raise InvalidTransitionError(
                f"Build {self.build_id}: no storage is configured, cannot upload"
            )
        if not self._files:
            raise InvalidInput(f"Build {self.build_id}: no files collected")

        session = self.session_manager.start_session(
            session_id, [f.to_request() for f in self._files]
        )
        self._session = session
        self._executor = self._executor_override or UploadExecutor(
            max_concurrency=self.config.max_concurrent_uploads,
            timeout_seconds=self.config.upload_timeout_seconds,
        )
        try:
            result = self._executor.execute(session, self._files, on_progress)
        finally:
            self._executor = None
        self._upload_result = result
        return result

    def quote(self) -> PricingQuote:
        """Price the collected files, entering the pricing stage if needed.

        Recomputed from scratch on every call.
        """
        if self.machine.stage is BuildStage.UPLOAD:
            if not self._files:
                raise InvalidInput(f"Build {self.build_id}: no files collected")
            if self._session is not None and (
                self._upload_result is None or not self._upload_result.ok
            ):
                raise InvalidTransitionError(
                    f"Build {self.build_id}: upload session {self._session.session_id} "
                    "has not completed"
                )
            self.machine.advance(BuildStage.PRICING, reason=f"{len(self._files)} files")
        self.machine.require(BuildStage.PRICING)
        if self._plan is None:
            raise InvalidTransitionError(f"Build {self.build_id}: no plan selected")
        self._quote = calculate_quote(
            self._plan,
            self.total_bytes,
            escrow_years=self._escrow_years,
            pricing=self.pricing,
        )
        return self._quote

    def accept_pricing(
        self,
        endowment_usd: str | float | None = None,
        *,
        on_hash_progress: Callable[[HashProgress], None] | None = None,
    ) -> ArchiveDigest:
        """Accept the current quote, lock the endowment and hash the archive.

        The conversion rate is read once here; later rate changes never
        reach the lock.
        """
        self.machine.require(BuildStage.PRICING)
        quote = self.quote()
        amount = parse_endowment_usd(endowment_usd)
        self._endowment = (
            lock_endowment(amount, self.rate_source, unit=self.config.endowment_unit)
            if amount is not None
            else None
        )
        self._digest = archive_digest(
            self._files,
            chunk_size=self.config.hash_chunk_size,
            on_progress=on_hash_progress,
        )
        self._accepted = True
        self.machine.advance(BuildStage.MANIFEST, reason=f"accepted ${quote.display_subtotal:.2f}")
        logger.info(
            "Build %s: pricing accepted, archive %s", self.build_id, self._digest.digest[:16]
        )
        return self._digest

    def write_manifest(
        self,
        name: str,
        visibility: Visibility | str | None,
        *,
        statement: str = "",
        owner: str | None = None,
        heritage_policy: HeritagePolicy | None = None,
        token_descriptor: TokenDescriptor | None = None,
    ) -> Manifest:
        """Assemble, sign and export the manifest.  Allowed exactly once."""
        self.machine.require(BuildStage.MANIFEST)
        if self._manifest is not None:
            raise InvalidTransitionError(
                f"Build {self.build_id}: manifest {self._manifest.archive_id} already written"
            )
        manifest = self.assembler.assemble(
            self._files,
            self._digest,
            self._quote,
            self._endowment,
            heritage_policy,
            token_descriptor,
            name=name,
            visibility=visibility,
            accepted_pricing=self._accepted,
            statement=statement,
            owner=owner,
            session=self._session,
            bucket=self.session_manager.bucket if self._session and self.session_manager else "",
            namespace=(
                self.session_manager.namespace if self._session and self.session_manager else ""
            ),
        )
        self._manifest_ref = self.exporter.export(manifest)
        self._manifest = manifest
        return manifest

    def mint(self, destination: str | None = None) -> Manifest:
        """Mint a token for the written manifest and record it in a new revision.

        If minting or recording the revision fails, the build returns to the
        manifest stage and the error is re-raised; the exported manifest
        stays valid and minting may be retried or the build completed.
        """
        self.machine.require(BuildStage.MANIFEST)
        if self._manifest is None:
            raise InvalidTransitionError(f"Build {self.build_id}: no manifest to mint")
        target = destination if destination is not None else self.config.mint_destination
        self.machine.advance(BuildStage.MINTING, reason=self._manifest_ref)
        receipt: MintReceipt | None = None
        try:
            receipt = self.minter.mint(self._manifest_ref, target)
            token = TokenReference(
                network=receipt.network or self.config.token_network,
                contract=receipt.contract or self.config.token_contract,
                token_id=receipt.token_id,
                transaction_reference=receipt.transaction_reference,
                manifest_ref=self._manifest_ref,
                destination=target,
            )
            revision = self.assembler.attach_token(self._manifest, token)
            revision_ref = self.exporter.export(revision)
        except Exception as exc:
            if receipt is None:
                logger.error("Build %s: minting failed: %s", self.build_id, exc)
            else:
                logger.error(
                    "Build %s: token %s minted but its revision was not recorded: %s",
                    self.build_id,
                    receipt.token_id,
                    exc,
                )
            self.machine.advance(BuildStage.MANIFEST, reason=f"mint failed: {exc}")
            raise

        self._manifest_ref = revision_ref
        self._manifest = revision
        self.machine.advance(BuildStage.VAULT, reason=f"token {receipt.token_id[:18]}")
        return revision

    def complete(self) -> Manifest:
        """Finish the build without minting."""
        self.machine.require(BuildStage.MANIFEST)
        if self._manifest is None:
            raise InvalidTransitionError(f"Build {self.build_id}: manifest not written yet")
        self.machine.advance(BuildStage.VAULT, reason="completed without token")
        return self._manifest

    def reset(self) -> None:
        """Discard every in-memory field and return to plan selection."""
        self.machine.reset()
        self._clear()

    def cancel(self) -> None:
        """Abort any in-flight upload and reset the build."""
        executor = self._executor
        if executor is not None:
            executor.cancel()
        logger.info("Build %s cancelled at %s", self.build_id, self.machine.stage.value)
        self.reset()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _clear(self) -> None:
        self.build_id = ""
        self.machine.build_id = ""
        self._plan: Plan | None = None
        self._escrow_years: int | None = None
        self._files: list[LogicalFile] = []
        self._session: UploadSession | None = None
        self._upload_result: UploadResult | None = None
        self._executor: UploadExecutor | None = None
        self._quote: PricingQuote | None = None
        self._accepted = False
        self._endowment: EndowmentLock | None = None
        self._digest: ArchiveDigest | None = None
        self._manifest: Manifest | None = None
        self._manifest_ref = ""

