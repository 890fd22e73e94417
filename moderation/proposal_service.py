"""
Price Proposal Lifecycle Service.

============================================================
PURPOSE
============================================================
User-submitted price corrections and their evaluation.

STATE MODEL:
- pending -> accepted | rejected (terminal)
- Admins evaluate synchronously through change_status()
- The expiration sweep rejects proposals left pending too long

Both evaluation paths go through the same rejection logic:
conditional status update, statistics counter, then (after
commit) best-effort notification and PriceProposalEvaluated.
The sweep leaves reviewed_by empty and publishes the event
without an evaluating admin.

============================================================
"""

import base64
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from http import HTTPStatus
from pathlib import PurePath
from typing import Optional, Union

from sqlalchemy.orm import sessionmaker

from cache.service import CacheExpiry, CacheKeys, CacheService, generate_paged_key
from core.clock import ClockProtocol, naive_utc
from core.constants import (
    ADMIN_ROLE,
    ALLOWED_PHOTO_TYPES,
    MAX_PHOTO_BYTES,
    PROPOSAL_MAX_PENDING_AGE,
    PROPOSAL_TOKEN_BYTES,
)
from core.exceptions import BadRequestError, ConflictError, NotFoundError
from core.result import Result
from database.engine import transaction_scope
from database.models import PriceProposal, ProposalStatus
from database.persistence import (
    claim_proposal_transition,
    find_proposal_by_token,
    insert_price_proposal,
    list_pending_proposals,
    record_evaluation,
    select_stale_proposal_ids,
)
from events.dispatcher import EventDispatcher
from events.types import PriceProposalEvaluated, ProposalSnapshot
from integrations.interfaces import (
    Account,
    AccountDirectory,
    FuelTypeCatalog,
    FuelTypeRef,
    NotificationSender,
    PhotoStorage,
    StationDirectory,
)
from scheduler.sweeper import SweepReport

from .base import LifecycleService, parse_request
from .schemas import PagedResult, PhotoUpload, ProposalResponse, SubmitProposalRequest


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def generate_token(num_bytes: int = PROPOSAL_TOKEN_BYTES) -> str:
    """Opaque URL-safe token (base64 without padding)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).rstrip(b"=").decode("ascii")


class ProposalService(LifecycleService):
    """Price proposal state machine: submit, evaluate, expire."""

    def __init__(
        self,
        session_factory: sessionmaker,
        accounts: AccountDirectory,
        notifier: NotificationSender,
        dispatcher: EventDispatcher,
        cache: CacheService,
        stations: StationDirectory,
        fuel_types: FuelTypeCatalog,
        photos: PhotoStorage,
        clock: Optional[ClockProtocol] = None,
        admin_role: str = ADMIN_ROLE,
        max_photo_bytes: int = MAX_PHOTO_BYTES,
        max_pending_age: timedelta = PROPOSAL_MAX_PENDING_AGE,
    ):
        super().__init__(accounts, clock=clock, admin_role=admin_role)
        self._session_factory = session_factory
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._cache = cache
        self._stations = stations
        self._fuel_types = fuel_types
        self._photos = photos
        self._max_photo_bytes = max_photo_bytes
        self._max_pending_age = max_pending_age

    # =========================================================
    # SUBMIT
    # =========================================================

    def submit(
        self,
        user_email: str,
        request: Union[SubmitProposalRequest, dict],
    ) -> Result[ProposalResponse]:
        """Create a pending price proposal with its photo."""
        return self._execute("submit price proposal", self._submit, user_email, request)

    def _submit(self, user_email: str, request) -> Result[ProposalResponse]:
        user = self._resolve_caller(user_email)
        request = parse_request(SubmitProposalRequest, request)

        extension = self._validate_photo(request.photo)
        fuel_type = self._resolve_fuel_type(request.fuel_type_code)

        station = self._call(
            "stations",
            "find_station",
            self._stations.find_station,
            request.brand_name,
            request.street,
            request.house_number,
            request.city,
        )
        if station is None:
            raise NotFoundError(
                "Station not found",
                resource="station",
                identifier=f"{request.brand_name}, {request.street} {request.house_number}, {request.city}",
            )

        now = self._clock.utcnow()
        proposal_id = str(uuid.uuid4())
        photo_url = self._call(
            "photos",
            "upload",
            self._photos.upload,
            request.photo.content,
            f"{proposal_id}{extension}",
            request.photo.content_type,
            now.strftime("%Y/%m/%d"),
        )

        try:
            with transaction_scope(self._session_factory) as session:
                proposal = insert_price_proposal(
                    session,
                    token=generate_token(),
                    user_id=user.id,
                    user_email=user.email,
                    user_name=user.user_name,
                    station_id=station.id,
                    station_label=station.label,
                    fuel_type_id=fuel_type.id,
                    fuel_type_code=fuel_type.code,
                    proposed_price=request.proposed_price,
                    photo_url=photo_url,
                    created_at=now,
                    proposal_id=proposal_id,
                )
                response = ProposalResponse.model_validate(proposal)
        except Exception:
            self._best_effort(f"Photo cleanup of {photo_url}", self._photos.delete, photo_url)
            raise

        logger.info(
            f"Price proposal submitted: token={response.token[:8]}... user={user.email} "
            f"station={station.id} fuel={fuel_type.code} price={request.proposed_price}"
        )
        self._cache.invalidate_proposal_lists()
        return Result.good("Price proposal submitted", data=response, status_code=HTTPStatus.CREATED)

    def _validate_photo(self, photo: PhotoUpload) -> str:
        """Check extension, declared type and size. Returns the lower-cased extension."""
        extension = PurePath(photo.file_name or "").suffix.lower()
        expected_type = ALLOWED_PHOTO_TYPES.get(extension)

        if expected_type is None:
            raise BadRequestError(
                "Invalid file type. Allowed: " + ", ".join(sorted(ALLOWED_PHOTO_TYPES)),
                field="photo",
            )
        if (photo.content_type or "").lower() != expected_type:
            raise BadRequestError(
                f"Content type {photo.content_type} does not match {extension}",
                field="photo",
            )
        if photo.size == 0:
            raise BadRequestError("Photo is empty", field="photo")
        if photo.size > self._max_photo_bytes:
            raise BadRequestError(
                f"Photo exceeds {self._max_photo_bytes} bytes",
                field="photo",
            )
        return extension

    def _resolve_fuel_type(self, code: str) -> FuelTypeRef:
        """Match code case-insensitively and return the catalog entry."""
        codes = self._call("fuel_types", "list_codes", self._fuel_types.list_codes)
        match = next((c for c in codes if c.lower() == code.lower()), None)
        if match is None:
            raise BadRequestError(f"Invalid fuel type code: {code}", field="fuel_type_code")

        fuel_type = self._call("fuel_types", "find_by_code", self._fuel_types.find_by_code, match)
        if fuel_type is None:
            raise NotFoundError("Fuel type not found", resource="fuel_type", identifier=match)
        return fuel_type

    # =========================================================
    # CHANGE STATUS
    # =========================================================

    def change_status(self, admin_email: str, token: str, accepted: bool) -> Result[ProposalResponse]:
        """Accept or reject a pending proposal."""
        return self._execute("change proposal status", self._change_status, admin_email, token, accepted)

    def _change_status(self, admin_email: str, token: str, accepted: bool) -> Result[ProposalResponse]:
        admin = self._resolve_admin(admin_email)

        if not token or not token.strip():
            raise BadRequestError("Proposal token is required", field="token")

        now = self._clock.utcnow()

        with transaction_scope(self._session_factory) as session:
            proposal = find_proposal_by_token(session, token.strip())
            if proposal is None:
                raise NotFoundError("Price proposal not found", resource="proposal", identifier=token)
            if not proposal.is_pending:
                raise ConflictError(
                    f"Price proposal was already {proposal.status}",
                    current_state=proposal.status,
                )

            snapshot = self._evaluate(session, proposal, accepted, now, reviewed_by=admin.id)

        logger.info(
            f"Price proposal {'accepted' if accepted else 'rejected'}: "
            f"token={snapshot.token[:8]}... admin={admin.email}"
        )
        self._after_evaluation(snapshot, accepted, admin)

        return Result.good(
            f"Price proposal {'accepted' if accepted else 'rejected'}",
            data=ProposalResponse.model_validate(snapshot),
        )

    def _evaluate(
        self,
        session,
        proposal: PriceProposal,
        accepted: bool,
        now: datetime,
        reviewed_by: Optional[str],
    ) -> ProposalSnapshot:
        """Apply the transition inside the caller's unit of work."""
        status = ProposalStatus.ACCEPTED if accepted else ProposalStatus.REJECTED
        if not claim_proposal_transition(session, proposal.id, status, now, reviewed_by):
            raise ConflictError("Price proposal was evaluated concurrently", current_state="evaluated")
        session.refresh(proposal)

        if accepted:
            self._call(
                "stations",
                "apply_price",
                self._stations.apply_price,
                proposal.station_id,
                proposal.fuel_type_id,
                Decimal(proposal.proposed_price),
                now,
            )

        record_evaluation(session, proposal.user_id, proposal.user_name, accepted, now)
        return ProposalSnapshot.from_model(proposal)

    def _after_evaluation(
        self,
        snapshot: ProposalSnapshot,
        accepted: bool,
        admin: Optional[Account],
    ) -> None:
        submitter = Account(
            id=snapshot.user_id,
            email=snapshot.user_email,
            user_name=snapshot.user_name or snapshot.user_email,
        )
        self._best_effort(
            f"Proposal status notification for {snapshot.user_email}",
            self._notifier.send_proposal_status_notification,
            submitter,
            accepted,
            snapshot.station_label or snapshot.station_id,
            snapshot.proposed_price,
        )
        self._dispatcher.publish(
            PriceProposalEvaluated(proposal=snapshot, accepted=accepted, evaluating_admin=admin)
        )

    # =========================================================
    # QUERIES
    # =========================================================

    def get_proposal(self, token: str) -> Result[ProposalResponse]:
        return self._execute("get price proposal", self._get_proposal, token)

    def _get_proposal(self, token: str) -> Result[ProposalResponse]:
        if not token or not token.strip():
            raise BadRequestError("Proposal token is required", field="token")

        with transaction_scope(self._session_factory) as session:
            proposal = find_proposal_by_token(session, token.strip())
            if proposal is None:
                raise NotFoundError("Price proposal not found", resource="proposal", identifier=token)
            response = ProposalResponse.model_validate(proposal)

        return Result.good("Price proposal retrieved", data=response)

    def list_pending(self, page_number: int = 1, page_size: int = 20) -> Result[PagedResult]:
        """Pending proposals, newest first, one page at a time."""
        return self._execute("list pending proposals", self._list_pending, page_number, page_size)

    def _list_pending(self, page_number: int, page_size: int) -> Result[PagedResult]:
        if page_number < 1:
            raise BadRequestError("Page number must be at least 1", field="page_number")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise BadRequestError(f"Page size must be between 1 and {MAX_PAGE_SIZE}", field="page_size")

        def load():
            with transaction_scope(self._session_factory) as session:
                items, total = list_pending_proposals(
                    session, (page_number - 1) * page_size, page_size
                )
                return PagedResult(
                    items=[ProposalResponse.model_validate(p) for p in items],
                    page_number=page_number,
                    page_size=page_size,
                    total_count=total,
                ).model_dump(mode="json")

        key = generate_paged_key(CacheKeys.PROPOSAL_LIST, page_number, page_size)
        data = self._cache.get_or_set(key, load, CacheExpiry.SHORT)
        return Result.good("Pending proposals retrieved", data=PagedResult.model_validate(data))

    # =========================================================
    # EXPIRATION SWEEP
    # =========================================================

    def expire_proposals(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Reject every proposal pending since at least max_pending_age.

        Each proposal is its own unit of work.
        """
        now = naive_utc(now) if now is not None else self._clock.utcnow()
        cutoff = now - self._max_pending_age
        report = SweepReport(name="proposal-expiration", started_at=now)

        with transaction_scope(self._session_factory) as session:
            proposal_ids = select_stale_proposal_ids(session, cutoff)

        report.selected = len(proposal_ids)
        if not proposal_ids:
            logger.debug("No stale proposals to process")
            report.finished_at = self._clock.utcnow()
            return report

        for proposal_id in proposal_ids:
            try:
                if self._expire_proposal(proposal_id, now):
                    report.processed += 1
            except ConflictError:
                logger.debug(f"Proposal {proposal_id} was evaluated concurrently, skipping")
            except Exception as e:
                report.failed += 1
                logger.error(f"Failed to expire proposal {proposal_id}: {e}", exc_info=True)

        report.finished_at = self._clock.utcnow()
        logger.info(f"Proposal expiration complete: {report.summary()}")
        return report

    def _expire_proposal(self, proposal_id: str, now: datetime) -> bool:
        with transaction_scope(self._session_factory) as session:
            proposal = session.get(PriceProposal, proposal_id)
            if proposal is None or not proposal.is_pending:
                return False
            snapshot = self._evaluate(session, proposal, False, now, reviewed_by=None)

        logger.info(f"Price proposal auto-rejected: token={snapshot.token[:8]}... created_at={snapshot.created_at}")
        self._after_evaluation(snapshot, False, None)
        return True


__all__ = ["ProposalService", "generate_token"]
