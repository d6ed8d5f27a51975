"""Export pipeline: decide, fetch, normalize, render, fall back."""
import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from ..config import settings
from ..errors import (
    NotOwnerError,
    PaymentRequiredError,
    SessionNotFoundError,
    TooEarlyError,
    UpstreamUnavailableError,
)
from ..models import CanonicalItem, ExportFormat, Pack, PreviewResponse, Session
from ..utils.logger import audit_event, logger, request_logger
from .access_gate import AccessDecision, AccessGate, AccessRequest, DeferredEffect, DenyReason, GrantBasis
from .export_renderer import ExportRenderer
from .normalizer import RecordNormalizer
from .pack_catalog import PackCatalog
from .provider_client import ProviderClient
from .session_manager import SessionManager, session_manager
from .tokens import legacy_token_matches, token_grants_session


DENIAL_ERRORS = {
    DenyReason.NOT_FOUND: SessionNotFoundError,
    DenyReason.PAYMENT_REQUIRED: PaymentRequiredError,
    DenyReason.NOT_OWNER: NotOwnerError,
    DenyReason.TOO_EARLY: TooEarlyError,
}

PREVIEW_SIZE = 3


def new_request_id() -> str:
    """Short correlation id attached to logs and error bodies."""
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class ExportRequest:
    """One download request, as received at the boundary."""

    session_id: str
    export_format: ExportFormat = ExportFormat.EXCEL
    token: Optional[str] = None
    user_id: Optional[str] = None
    request_id: str = ""


@dataclass(frozen=True)
class ExportResult:
    """A rendered file ready for response assembly."""

    content: bytes
    filename: str
    export_format: ExportFormat
    pack: Pack
    is_demo: bool
    item_count: int
    cleanup_dataset_id: Optional[str] = None

    @property
    def media_type(self) -> str:
        return self.export_format.media_type


class ExportService:
    """Runs the export flow for one request at a time.

    Access denials propagate as ``ExportError`` subclasses. Anything that
    goes wrong after access was granted degrades to a pack-sized demo file.
    """

    def __init__(
        self,
        sessions: SessionManager,
        gate: AccessGate,
        normalizer: RecordNormalizer,
        renderer: ExportRenderer,
        capability_secret: str = "",
        fetch_timeout: float = 30.0,
        cleanup_after_export: bool = True,
        provider_factory: Callable[[], ProviderClient] = ProviderClient,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the export service.

        Args:
            sessions: Session store
            gate: Access decision gate
            normalizer: Raw record normalizer
            renderer: File renderer (also owns the pack catalogue)
            capability_secret: Secret verifying signed capability tokens
            fetch_timeout: Upper bound for a whole dataset fetch, in seconds
            cleanup_after_export: Delete the provider dataset after a real export
            provider_factory: Builds a provider client (async context manager)
            clock: Time source for filenames
        """
        self.sessions = sessions
        self.gate = gate
        self.normalizer = normalizer
        self.renderer = renderer
        self.capability_secret = capability_secret
        self.fetch_timeout = fetch_timeout
        self.cleanup_after_export = cleanup_after_export
        self.provider_factory = provider_factory
        self.clock = clock

    @property
    def catalog(self) -> PackCatalog:
        return self.renderer.catalog

    async def export(self, request: ExportRequest) -> ExportResult:
        """Produce the export file for a request.

        Args:
            request: Download request

        Returns:
            Rendered file (real data or demo fallback)

        Raises:
            ExportError: If access is denied
        """
        request_id = request.request_id or new_request_id()
        log = request_logger(request_id)
        log.info(f"Export requested for session {request.session_id} ({request.export_format.value})")

        decision = await self.authorize(request, request_id)
        session = decision.session
        trial_reserved = decision.basis is GrantBasis.TRIAL

        try:
            if DeferredEffect.PERSIST_TEMPORARY_SESSION in decision.effects:
                await self._run_effect(DeferredEffect.PERSIST_TEMPORARY_SESSION, session, request_id)

            pack = self.catalog.resolve(session.pack_id)

            try:
                items = await self._load_items(session, pack, request_id)
                content = self.renderer.render(items, pack, request.export_format)
                is_demo = False
                item_count = min(len(items), pack.row_limit)
            except Exception as e:
                log.warning(f"Serving demo data for session {session.id}: {e}")
                audit_event("export.fallback", request_id, sessionId=session.id, error=type(e).__name__)
                content = self.renderer.render_demo(pack, request.export_format)
                is_demo = True
                item_count = pack.row_limit

            # The legacy token was already claimed atomically when it was the grant
            if (
                DeferredEffect.CLEAR_LEGACY_TOKEN in decision.effects
                and decision.basis is not GrantBasis.LEGACY_TOKEN
            ):
                await self._run_effect(DeferredEffect.CLEAR_LEGACY_TOKEN, session, request_id)
            # A demo file is not the dataset the trial was granted for
            if DeferredEffect.CONSUME_TRIAL in decision.effects and not is_demo:
                await self._run_effect(DeferredEffect.CONSUME_TRIAL, session, request_id)
        finally:
            if trial_reserved:
                await self.sessions.release_trial(session.id)

        cleanup_dataset_id = None
        if not is_demo and self.cleanup_after_export and session.dataset_id:
            cleanup_dataset_id = session.dataset_id

        result = ExportResult(
            content=content,
            filename=self._filename(session.id, request.export_format, is_demo),
            export_format=request.export_format,
            pack=pack,
            is_demo=is_demo,
            item_count=item_count,
            cleanup_dataset_id=cleanup_dataset_id,
        )
        audit_event(
            "export.completed",
            request_id,
            sessionId=session.id,
            packId=pack.id,
            format=request.export_format.value,
            demo=is_demo,
            items=item_count,
            bytes=len(content),
        )
        log.info(f"Export ready: {result.filename} ({len(content)} bytes, demo={is_demo})")
        return result

    async def authorize(self, request: ExportRequest, request_id: str) -> AccessDecision:
        """Verify the request signals and run the access gate.

        Args:
            request: Download request
            request_id: Correlation id

        Returns:
            An allowing decision. A trial grant comes with a trial
            reservation that the caller must release.

        Raises:
            ExportError: If access is denied
        """
        log = request_logger(request_id)
        session = await self.sessions.get_session(request.session_id)

        has_signed = token_grants_session(request.token, request.session_id, self.capability_secret)
        has_legacy = (
            not has_signed
            and session is not None
            and legacy_token_matches(session.download_token, request.token)
        )
        access = AccessRequest(
            session_id=request.session_id,
            has_valid_signed_token=has_signed,
            has_valid_legacy_token=has_legacy,
            requesting_user_id=request.user_id,
        )

        decision = self.gate.decide(session, access)
        if not decision.allowed:
            self._deny(request, request_id, decision.reason)

        if decision.basis is GrantBasis.LEGACY_TOKEN and not await self._claim_legacy_token(request, request_id):
            self._deny(request, request_id, DenyReason.PAYMENT_REQUIRED)
        # One export at a time per trial; the caller releases the reservation
        if decision.basis is GrantBasis.TRIAL and not await self._reserve_trial(request, request_id):
            self._deny(request, request_id, DenyReason.PAYMENT_REQUIRED)

        log.info(f"Access granted for session {request.session_id} via {decision.basis.value}")
        audit_event(
            "export.allowed",
            request_id,
            sessionId=request.session_id,
            basis=decision.basis.value,
            userId=request.user_id,
        )
        return decision

    async def preview(self, session_id: str, limit: int = PREVIEW_SIZE) -> PreviewResponse:
        """First normalized items of a paid or temporary session.

        Provider trouble yields an empty preview rather than an error.

        Raises:
            SessionNotFoundError: If the session is unknown and not temporary
            PaymentRequiredError: If the session is neither paid nor temporary
        """
        session = await self.sessions.get_session(session_id)
        temporary = self.gate.is_temporary(session_id)
        if session is None:
            if not temporary:
                raise SessionNotFoundError()
            session = self.gate.placeholder_session(session_id)
        if not session.is_paid and not temporary:
            raise PaymentRequiredError()

        pack = self.catalog.resolve(session.pack_id)
        items: List[CanonicalItem] = []
        if session.dataset_id:
            try:
                async with self.provider_factory() as client:
                    records = await asyncio.wait_for(
                        client.list_records(session.dataset_id, limit=limit), timeout=self.fetch_timeout
                    )
                items = self.normalizer.normalize_many(records[:limit])
            except Exception as e:
                logger.warning(f"Preview unavailable for session {session_id}: {e}")

        return PreviewResponse(
            session_id=session.id,
            items=items,
            total_items=session.total_items,
            pack_id=pack.id,
        )

    async def cleanup_dataset(self, dataset_id: str, request_id: str = "") -> None:
        """Delete a provider dataset after the response was sent. Never raises."""
        log = request_logger(request_id or new_request_id())
        try:
            async with self.provider_factory() as client:
                await client.delete_dataset(dataset_id)
        except Exception as e:
            log.warning(f"Dataset cleanup failed for {dataset_id}: {e}")

    async def _load_items(self, session: Session, pack: Pack, request_id: str) -> List[CanonicalItem]:
        if not session.dataset_id:
            raise UpstreamUnavailableError(f"Session {session.id} has no dataset")

        try:
            async with self.provider_factory() as client:
                records = await asyncio.wait_for(
                    client.list_records(session.dataset_id, limit=pack.row_limit), timeout=self.fetch_timeout
                )
        except asyncio.TimeoutError:
            raise UpstreamUnavailableError(
                f"Dataset {session.dataset_id} not fetched within {self.fetch_timeout}s"
            )

        if not records:
            raise UpstreamUnavailableError(f"Dataset {session.dataset_id} is empty")

        request_logger(request_id).info(f"Fetched {len(records)} records from dataset {session.dataset_id}")
        return self.normalizer.normalize_many(records)

    async def _claim_legacy_token(self, request: ExportRequest, request_id: str) -> bool:
        try:
            return await self.sessions.claim_download_token(request.session_id, request.token)
        except Exception as e:
            # Storage trouble must not block an already verified download
            request_logger(request_id).error(f"Could not consume legacy token for {request.session_id}: {e}")
            return True

    async def _reserve_trial(self, request: ExportRequest, request_id: str) -> bool:
        try:
            return await self.sessions.reserve_trial(request.session_id)
        except Exception as e:
            request_logger(request_id).error(f"Could not reserve trial for {request.session_id}: {e}")
            return True

    async def _run_effect(self, effect: DeferredEffect, session: Session, request_id: str) -> None:
        log = request_logger(request_id)
        try:
            if effect is DeferredEffect.PERSIST_TEMPORARY_SESSION:
                await self.sessions.create_session(session.model_dump())
            elif effect is DeferredEffect.CLEAR_LEGACY_TOKEN:
                await self.sessions.clear_download_token(session.id)
            elif effect is DeferredEffect.CONSUME_TRIAL:
                await self.sessions.consume_trial(session.id)
            log.info(f"Applied {effect.value} to session {session.id}")
        except Exception as e:
            log.error(f"Failed to apply {effect.value} to session {session.id}: {e}")

    def _deny(self, request: ExportRequest, request_id: str, reason: DenyReason) -> None:
        request_logger(request_id).warning(f"Access denied for session {request.session_id}: {reason.value}")
        audit_event(
            "export.denied",
            request_id,
            sessionId=request.session_id,
            reason=reason.value,
            userId=request.user_id,
        )
        raise DENIAL_ERRORS[reason](request_id=request_id)

    def _filename(self, session_id: str, export_format: ExportFormat, is_demo: bool) -> str:
        prefix = "demo_data" if is_demo else "marketplace_data"
        return f"{prefix}_{session_id}_{self.clock().strftime('%Y%m%d_%H%M%S')}{export_format.extension}"


def build_export_service(sessions: Optional[SessionManager] = None) -> ExportService:
    """Wire an export service from the application settings."""
    catalog = PackCatalog(settings.packs, settings.default_pack_id)
    return ExportService(
        sessions=sessions or session_manager,
        gate=AccessGate(settings.temporary_session_prefix, settings.default_pack_id),
        normalizer=RecordNormalizer(settings.normalizer_config()),
        renderer=ExportRenderer(catalog, author=settings.export_author, demo_currency=settings.local_currency),
        capability_secret=settings.capability_token_secret,
        fetch_timeout=settings.provider_fetch_timeout,
        cleanup_after_export=settings.provider_cleanup_after_export,
    )


# Global export service instance
export_service = build_export_service()
