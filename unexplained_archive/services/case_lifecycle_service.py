"""
Case Lifecycle Coordinator

Drives a case through OPEN → INVESTIGATING → PENDING_REVIEW → RESOLVED and the
dispute/vote branch. Every operation follows the same shape:

    guard (local, no remote call on refusal)
    → one authoritative remote call
    → reload the canonical case
    → return it with the user-facing message

Nothing is mutated locally before the backend confirms. Escrow and reputation
side effects happen inside the backend procedures; this module only reports
them.
"""
import logging
import mimetypes
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from unexplained_archive.config.feature_flags import feature_flags
from unexplained_archive.config.settings import settings
from unexplained_archive.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from unexplained_archive.schemas.case import (
    Case,
    CaseActionResult,
    CaseDraft,
    CaseListFilters,
    CaseStatus,
    DisputeDecision,
)
from unexplained_archive.services.backend_client import BackendClient, unwrap_result
from unexplained_archive.session import Session
from unexplained_archive.state_machines.case_lifecycle import (
    CaseAction,
    DisputeVote,
    SentimentVote,
    VoteIntent,
    guard_admin_decision,
    guard_assign,
    guard_evidence_edit,
    guard_investigator_edit,
    guard_submitter_review,
    resolve_vote_intent,
    target_state,
)

logger = logging.getLogger(__name__)

# Reputation points per star of the submitter's rating
REPUTATION_PER_STAR = 5

# Backend status values written by this module
STATUS_VALUES = {
    CaseStatus.OPEN: "open",
    CaseStatus.INVESTIGATING: "investigating",
    CaseStatus.PENDING_REVIEW: "pending_review",
    CaseStatus.RESOLVED: "resolved",
    CaseStatus.DISPUTED: "disputed",
    CaseStatus.VOTING: "voting",
    CaseStatus.CLOSED: "closed",
}

# Legacy rows use "pending" for an open case
OPEN_STATUS_VALUES = ["open", "pending", "OPEN"]


class CaseLifecycleService:
    """
    Coordinator for case status transitions.
    All writes go through the backend; the returned case is always a fresh read.
    """

    # (action, case_id) pairs with a remote call in flight
    _in_flight: Set[Tuple[str, str]] = set()

    @classmethod
    @contextmanager
    def _single_flight(cls, action: str, case_id: str):
        key = (action, case_id)
        if key in cls._in_flight:
            raise ConflictError("Action already in progress")
        cls._in_flight.add(key)
        try:
            yield
        finally:
            cls._in_flight.discard(key)

    # ================= READS =================

    @staticmethod
    async def load_case(backend: BackendClient, case_id: str) -> Case:
        row = await backend.select_one("cases", {"id": case_id})
        if row is None:
            raise NotFoundError("Case", case_id)
        return Case.from_row(row)

    @staticmethod
    async def list_cases(backend: BackendClient, filters: Optional[CaseListFilters] = None) -> List[Case]:
        filters = filters or CaseListFilters()
        query: Dict[str, Any] = {}
        if filters.status is not None:
            if filters.status == CaseStatus.OPEN:
                query["status"] = ("in", OPEN_STATUS_VALUES)
            else:
                query["status"] = STATUS_VALUES[filters.status]
        if filters.category is not None:
            query["category"] = filters.category.value
        if filters.submitted_by:
            query["user_id"] = filters.submitted_by
        if filters.assigned_investigator:
            query["assigned_investigator_id"] = filters.assigned_investigator

        or_filter = None
        if filters.search:
            term = filters.search.replace(",", " ").strip()
            or_filter = f"title.ilike.*{term}*,description.ilike.*{term}*"

        rows = await backend.select(
            "cases",
            query,
            order="created_at.desc",
            limit=filters.limit,
            offset=filters.offset,
            or_filter=or_filter,
        )
        return [Case.from_row(row) for row in rows]

    @staticmethod
    async def cases_in_bounds(
        backend: BackendClient,
        north: float,
        south: float,
        east: float,
        west: float,
    ) -> List[Dict[str, Any]]:
        """Geolocated cases inside a map viewport."""
        return await backend.select(
            "cases",
            {"latitude": ("not.is", None), "longitude": ("not.is", None)},
            columns="id,title,category,latitude,longitude,status,created_at",
            and_filter=(
                f"latitude.gte.{south},latitude.lte.{north},"
                f"longitude.gte.{west},longitude.lte.{east}"
            ),
        )

    @staticmethod
    async def record_view(backend: BackendClient, case_id: str) -> None:
        """Bump the view counter. Analytics only, failures are not surfaced."""
        try:
            await backend.rpc("increment_case_views", {"case_id": case_id})
        except Exception as e:
            logger.warning(f"Failed to record view for case {case_id}: {str(e)}")

    # ================= CREATION =================

    @classmethod
    async def create_case(cls, backend: BackendClient, session: Session, draft: CaseDraft) -> Case:
        """Submit a new case. It starts OPEN and unassigned; reward is the pledge or 0."""
        row = {
            "user_id": session.user_id,
            "title": draft.title,
            "description": draft.description,
            "detailed_description": draft.detailed_description,
            "category": draft.category.value,
            "location": draft.location,
            "latitude": draft.latitude,
            "longitude": draft.longitude,
            "date_occurred": draft.incident_date,
            "media_urls": draft.media_urls,
            "reward_amount": str(draft.reward),
            "status": STATUS_VALUES[CaseStatus.OPEN],
            "assigned_investigator_id": None,
            "evidence_files": [],
        }
        created = await backend.insert("cases", row)
        if not created:
            raise ConflictError("Case could not be created")

        case_id = str(created[0]["id"])
        logger.info(f"Case {case_id} submitted by {session.user_id}")
        return await cls.load_case(backend, case_id)

    # ================= INVESTIGATION =================

    @classmethod
    async def assign(cls, backend: BackendClient, session: Session, case_id: str) -> CaseActionResult:
        """
        Assign the case to the calling investigator.
        Transitions: OPEN → INVESTIGATING

        The update is conditional on the case still being open and unassigned,
        so a concurrent assignment elsewhere surfaces as a conflict.
        """
        # Approval is checked before anything touches the backend
        session.require_approved_investigator()

        with cls._single_flight("assign", case_id):
            case = await cls.load_case(backend, case_id)
            guard_assign(session, case)
            new_status = target_state(CaseAction.ASSIGN, case.status)

            updated = await backend.update(
                "cases",
                {
                    "assigned_investigator_id": session.user_id,
                    "status": STATUS_VALUES[new_status],
                },
                {
                    "id": case_id,
                    "status": ("in", OPEN_STATUS_VALUES),
                    "assigned_investigator_id": ("is", None),
                },
            )
            if not updated:
                raise ConflictError("This case has already been assigned to an investigator")

            logger.info(f"Case {case_id} assigned to investigator {session.user_id}")
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(message="Case assigned to you!", case=case)

    @classmethod
    async def save_notes(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        notes: str,
        proposal: Optional[str] = None,
    ) -> Case:
        """Save draft notes/proposal. No status change."""
        case = await cls.load_case(backend, case_id)
        guard_investigator_edit(session, case)

        values: Dict[str, Any] = {"investigator_notes": notes}
        if proposal is not None:
            values["resolution_proposal"] = proposal

        await backend.update("cases", values, {"id": case_id, "assigned_investigator_id": session.user_id})
        return await cls.load_case(backend, case_id)

    @classmethod
    async def submit_resolution(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        notes: str,
        proposal: str,
    ) -> CaseActionResult:
        """
        Submit findings for the submitter's review.
        Transitions: INVESTIGATING → PENDING_REVIEW, DISPUTED → PENDING_REVIEW

        No money moves here.
        """
        if not proposal or not proposal.strip():
            raise ValidationFailedError("Resolution proposal is required")

        with cls._single_flight("submit_resolution", case_id):
            case = await cls.load_case(backend, case_id)
            guard_investigator_edit(session, case)
            new_status = target_state(CaseAction.SUBMIT_RESOLUTION, case.status)

            updated = await backend.update(
                "cases",
                {
                    "investigator_notes": notes,
                    "resolution_proposal": proposal.strip(),
                    "status": STATUS_VALUES[new_status],
                },
                {
                    "id": case_id,
                    "assigned_investigator_id": session.user_id,
                    "status": ("in", [STATUS_VALUES[CaseStatus.INVESTIGATING], STATUS_VALUES[CaseStatus.DISPUTED]]),
                },
            )
            if not updated:
                raise ConflictError("Case changed before the resolution could be submitted. Please reload.")

            logger.info(f"Resolution submitted for case {case_id} by {session.user_id}")
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(message="Resolution submitted for review!", case=case)

    # ================= REVIEW =================

    @classmethod
    async def accept_resolution(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        rating: int,
        feedback: Optional[str] = None,
    ) -> CaseActionResult:
        """
        Submitter accepts the proposed resolution.
        Transitions: PENDING_REVIEW → RESOLVED

        The backend credits `rating * 5` reputation and releases escrow (split
        per team contribution, else 100% to the assignee).
        """
        if rating < 1 or rating > 5:
            raise ValidationFailedError("Rating must be between 1 and 5")

        with cls._single_flight("review", case_id):
            case = await cls.load_case(backend, case_id)
            guard_submitter_review(session, case)
            target_state(CaseAction.ACCEPT_RESOLUTION, case.status)

            result = await backend.rpc("process_case_resolution", {
                "p_case_id": case_id,
                "p_investigator_id": case.assigned_investigator,
                "p_submitter_id": session.user_id,
                "p_user_rating": rating,
                "p_resolution_accepted": True,
                "p_user_feedback": feedback,
            })
            unwrap_result(result, "Failed to accept resolution")

            reputation = rating * REPUTATION_PER_STAR
            logger.info(
                f"Case {case_id} resolved: investigator {case.assigned_investigator} "
                f"+{reputation} reputation, escrow {case.reward} released"
            )
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(
            message=(
                f"Case resolved! Investigator received {reputation} reputation points "
                "and escrow funds released."
            ),
            case=case,
            reputation_awarded=reputation,
            escrow="released",
        )

    @classmethod
    async def reject_resolution(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        feedback: Optional[str] = None,
    ) -> CaseActionResult:
        """
        Submitter rejects the proposed resolution.
        Transitions: PENDING_REVIEW → DISPUTED

        The rating sent follows REJECTION_RATING_POLICY. No money moves.
        """
        policy = feature_flags.REJECTION_RATING_POLICY

        with cls._single_flight("review", case_id):
            case = await cls.load_case(backend, case_id)
            guard_submitter_review(session, case)
            target_state(CaseAction.REJECT_RESOLUTION, case.status)

            result = await backend.rpc("process_case_resolution", {
                "p_case_id": case_id,
                "p_investigator_id": case.assigned_investigator,
                "p_submitter_id": session.user_id,
                "p_user_rating": policy.rating,
                "p_resolution_accepted": False,
                "p_user_feedback": feedback,
            })
            unwrap_result(result, "Failed to reject resolution")

            logger.info(f"Case {case_id} disputed by submitter {session.user_id}")
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(
            message="Case marked as DISPUTED. Admin or community can review.",
            case=case,
        )

    # ================= DISPUTE =================

    @classmethod
    async def admin_resolve_dispute(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        decision: DisputeDecision,
    ) -> CaseActionResult:
        """
        Admin decision on a disputed case.
        Transitions: DISPUTED → RESOLVED (RELEASE), CLOSED (REFUND), VOTING (VOTE)
        """
        action = {
            DisputeDecision.RELEASE: CaseAction.ADMIN_RELEASE,
            DisputeDecision.REFUND: CaseAction.ADMIN_REFUND,
            DisputeDecision.VOTE: CaseAction.OPEN_VOTE,
        }[decision]
        if decision == DisputeDecision.VOTE and not feature_flags.FEATURE_COMMUNITY_VOTING:
            raise ValidationFailedError("Community voting is disabled")

        with cls._single_flight("dispute", case_id):
            case = await cls.load_case(backend, case_id)
            guard_admin_decision(session, case)
            target_state(action, case.status)

            result = await backend.rpc("admin_resolve_dispute", {
                "p_case_id": case_id,
                "p_admin_decision": decision.value,
                "p_admin_id": session.user_id,
            })
            unwrap_result(result, "Failed to resolve dispute")

            logger.info(f"Dispute on case {case_id} decided by admin {session.user_id}: {decision.value}")
            case = await cls.load_case(backend, case_id)

        messages = {
            DisputeDecision.RELEASE: ("Dispute resolved! Funds released to investigator.", "released"),
            DisputeDecision.REFUND: ("Dispute resolved! Escrow refunded to donors.", "refunded"),
            DisputeDecision.VOTE: ("Dispute sent to community vote.", None),
        }
        message, escrow = messages[decision]
        return CaseActionResult(message=message, case=case, escrow=escrow)

    # ================= VOTING =================

    @classmethod
    async def vote(cls, backend: BackendClient, session: Session, case_id: str, agree: bool) -> CaseActionResult:
        """Resolve what an agree/disagree click means for this case and dispatch it."""
        case = await cls.load_case(backend, case_id)
        intent = resolve_vote_intent(case.status, agree)
        return await cls.cast(backend, session, case, intent)

    @classmethod
    async def cast(cls, backend: BackendClient, session: Session, case: Case, intent: VoteIntent) -> CaseActionResult:
        if isinstance(intent, DisputeVote):
            return await cls.cast_dispute_vote(backend, session, case.id, intent.agree)
        if isinstance(intent, SentimentVote):
            return await cls.cast_sentiment_vote(backend, session, case.id, intent.agree)
        raise TypeError(f"Unknown vote intent: {intent!r}")

    @classmethod
    async def cast_dispute_vote(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        agree: bool,
    ) -> CaseActionResult:
        """
        Binding community vote.
        Transitions: VOTING → RESOLVED (agree, escrow released), VOTING → CLOSED (disagree, refunded)
        """
        with cls._single_flight("vote", case_id):
            case = await cls.load_case(backend, case_id)
            if case.status != CaseStatus.VOTING:
                raise InvalidTransitionError(f"Voting is not open for a case with status {case.status.value}")
            target_state(CaseAction.COMMUNITY_APPROVES if agree else CaseAction.COMMUNITY_REJECTS, case.status)

            result = await backend.rpc("process_voting_outcome", {
                "p_case_id": case_id,
                "p_community_approves": agree,
            })
            unwrap_result(result, "Failed to process vote")

            logger.info(f"Voting outcome on case {case_id} by {session.user_id}: approves={agree}")
            case = await cls.load_case(backend, case_id)

        if agree:
            return CaseActionResult(
                message="Community approved! Escrow released to investigator.", case=case, escrow="released"
            )
        return CaseActionResult(
            message="Community rejected! Escrow refunded to donors.", case=case, escrow="refunded"
        )

    @classmethod
    async def cast_sentiment_vote(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        agree: bool,
    ) -> CaseActionResult:
        """Non-binding agree/disagree counter on a finished case. Status never changes."""
        with cls._single_flight("vote", case_id):
            case = await cls.load_case(backend, case_id)
            if case.status not in (CaseStatus.RESOLVED, CaseStatus.CLOSED):
                raise InvalidTransitionError(f"Cannot record sentiment on a case with status {case.status.value}")

            result = await backend.rpc("cast_case_sentiment_vote", {
                "p_case_id": case_id,
                "p_user_id": session.user_id,
                "p_agree": agree,
            })
            unwrap_result(result, "Failed to record vote")
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(message="Thanks for your feedback!", case=case)

    # ================= EVIDENCE =================

    @staticmethod
    def _evidence_kind(content_type: str) -> str:
        if content_type.startswith("image/"):
            return "image"
        if content_type.startswith("video/"):
            return "video"
        return "document"

    @classmethod
    async def upload_evidence(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        files: List[Tuple[str, bytes, Optional[str]]],
    ) -> CaseActionResult:
        """
        Upload evidence files and append them to the case.

        `files` is a list of (filename, content, content_type).
        """
        if not files:
            raise ValidationFailedError("No files to upload")

        with cls._single_flight("evidence", case_id):
            case = await cls.load_case(backend, case_id)
            guard_evidence_edit(session, case)

            uploaded = []
            for filename, content, content_type in files:
                content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
                ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
                path = f"evidence/{case_id}/{int(datetime.now(timezone.utc).timestamp() * 1000)}-{uuid.uuid4().hex}.{ext}"
                url = await backend.upload(settings.STORAGE_BUCKET, path, content, content_type)
                uploaded.append({
                    "url": url,
                    "name": filename,
                    "type": cls._evidence_kind(content_type),
                    "uploaded_at": datetime.now(timezone.utc).isoformat(),
                    "uploaded_by": session.username or session.user_id,
                })

            evidence = [f.model_dump(mode="json") for f in case.evidence_files] + uploaded
            await backend.update("cases", {"evidence_files": evidence}, {"id": case_id})
            logger.info(f"{len(uploaded)} evidence file(s) added to case {case_id}")
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(message=f"{len(uploaded)} file(s) uploaded successfully!", case=case)

    @classmethod
    async def remove_evidence(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        url: str,
    ) -> CaseActionResult:
        with cls._single_flight("evidence", case_id):
            case = await cls.load_case(backend, case_id)
            guard_evidence_edit(session, case)

            remaining = [f.model_dump(mode="json") for f in case.evidence_files if f.url != url]
            if len(remaining) == len(case.evidence_files):
                raise NotFoundError("Evidence file")

            await backend.update("cases", {"evidence_files": remaining}, {"id": case_id})
            case = await cls.load_case(backend, case_id)

        return CaseActionResult(message="Evidence file removed", case=case)
