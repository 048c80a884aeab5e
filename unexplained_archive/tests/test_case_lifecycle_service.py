"""
Case Lifecycle Coordinator Tests

End-to-end scenarios against the in-memory backend: the happy path, the
dispute and vote branch, and the refusals that must never reach the backend.
"""
import pytest

from unexplained_archive.config.feature_flags import RejectionRatingPolicy, feature_flags
from unexplained_archive.exceptions import (
    ConflictError,
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationFailedError,
)
from unexplained_archive.schemas.case import CaseDraft, CaseListFilters, CaseStatus, DisputeDecision
from unexplained_archive.services.case_lifecycle_service import CaseLifecycleService

from conftest import INVESTIGATOR_ID, SUBMITTER_ID, case_row, set_case_status


# ==========================================
# Happy path
# ==========================================

@pytest.mark.asyncio
async def test_case_happy_path(backend, submitter, investigator):
    backend.seed("cases", case_row())
    backend.rpc_handlers["process_case_resolution"] = set_case_status(backend, "case-1", "resolved")

    result = await CaseLifecycleService.assign(backend, investigator, "case-1")
    assert result.message == "Case assigned to you!"
    assert result.case.status == CaseStatus.INVESTIGATING
    assert result.case.assigned_investigator == INVESTIGATOR_ID

    result = await CaseLifecycleService.submit_resolution(
        backend, investigator, "case-1", "Flares from a military exercise.", "Military flares"
    )
    assert result.message == "Resolution submitted for review!"
    assert result.case.status == CaseStatus.PENDING_REVIEW
    assert result.case.resolution_proposal == "Military flares"

    result = await CaseLifecycleService.accept_resolution(backend, submitter, "case-1", 4, "Convincing")
    assert result.case.status == CaseStatus.RESOLVED
    assert result.reputation_awarded == 20
    assert result.escrow == "released"
    assert result.message == (
        "Case resolved! Investigator received 20 reputation points and escrow funds released."
    )

    (_, _, params), = backend.calls_to("rpc", "process_case_resolution")
    assert params["p_user_rating"] == 4
    assert params["p_resolution_accepted"] is True
    assert params["p_investigator_id"] == INVESTIGATOR_ID
    assert params["p_submitter_id"] == SUBMITTER_ID


@pytest.mark.asyncio
async def test_create_case_starts_open_and_unassigned(backend, submitter):
    draft = CaseDraft(title="  Shadow figure  ", description="Seen at the lighthouse", reward="25")

    case = await CaseLifecycleService.create_case(backend, submitter, draft)

    assert case.status == CaseStatus.OPEN
    assert case.assigned_investigator is None
    assert case.submitted_by == SUBMITTER_ID
    assert case.title == "Shadow figure"
    assert str(case.reward) == "25"


@pytest.mark.asyncio
async def test_list_cases_treats_legacy_pending_as_open(backend):
    backend.seed(
        "cases",
        case_row(id="a", status="pending"),
        case_row(id="b", status="open"),
        case_row(id="c", status="investigating"),
    )
    cases = await CaseLifecycleService.list_cases(backend, CaseListFilters(status=CaseStatus.OPEN))
    assert sorted(c.id for c in cases) == ["a", "b"]


# ==========================================
# Dispute and vote
# ==========================================

@pytest.mark.asyncio
async def test_dispute_vote_path(backend, submitter, admin, investigator):
    backend.seed("cases", case_row(status="pending_review", assigned_investigator_id=INVESTIGATOR_ID))
    backend.rpc_handlers["process_case_resolution"] = set_case_status(backend, "case-1", "disputed")
    backend.rpc_handlers["admin_resolve_dispute"] = set_case_status(backend, "case-1", "voting")
    backend.rpc_handlers["process_voting_outcome"] = set_case_status(backend, "case-1", "resolved")
    backend.rpc_handlers["cast_case_sentiment_vote"] = {"success": True}

    result = await CaseLifecycleService.reject_resolution(backend, submitter, "case-1", "Not convinced")
    assert result.case.status == CaseStatus.DISPUTED
    assert result.message == "Case marked as DISPUTED. Admin or community can review."
    (_, _, params), = backend.calls_to("rpc", "process_case_resolution")
    assert params["p_resolution_accepted"] is False
    assert params["p_user_rating"] == 1

    result = await CaseLifecycleService.admin_resolve_dispute(backend, admin, "case-1", DisputeDecision.VOTE)
    assert result.case.status == CaseStatus.VOTING
    (_, _, params), = backend.calls_to("rpc", "admin_resolve_dispute")
    assert params == {"p_case_id": "case-1", "p_admin_decision": "VOTE", "p_admin_id": admin.user_id}

    result = await CaseLifecycleService.vote(backend, investigator, "case-1", True)
    assert result.case.status == CaseStatus.RESOLVED
    assert result.escrow == "released"
    assert result.message == "Community approved! Escrow released to investigator."

    # Once resolved, the same button records sentiment only
    result = await CaseLifecycleService.vote(backend, submitter, "case-1", False)
    assert result.message == "Thanks for your feedback!"
    assert result.case.status == CaseStatus.RESOLVED
    (_, _, params), = backend.calls_to("rpc", "cast_case_sentiment_vote")
    assert params == {"p_case_id": "case-1", "p_user_id": SUBMITTER_ID, "p_agree": False}


@pytest.mark.asyncio
async def test_community_rejection_refunds(backend, investigator):
    backend.seed("cases", case_row(status="voting", assigned_investigator_id=INVESTIGATOR_ID))
    backend.rpc_handlers["process_voting_outcome"] = set_case_status(backend, "case-1", "closed")

    result = await CaseLifecycleService.vote(backend, investigator, "case-1", False)

    assert result.case.status == CaseStatus.CLOSED
    assert result.escrow == "refunded"
    (_, _, params), = backend.calls_to("rpc", "process_voting_outcome")
    assert params["p_community_approves"] is False


@pytest.mark.asyncio
async def test_admin_refund_closes_case(backend, admin):
    backend.seed("cases", case_row(status="disputed", assigned_investigator_id=INVESTIGATOR_ID))
    backend.rpc_handlers["admin_resolve_dispute"] = set_case_status(backend, "case-1", "closed")

    result = await CaseLifecycleService.admin_resolve_dispute(backend, admin, "case-1", DisputeDecision.REFUND)

    assert result.case.status == CaseStatus.CLOSED
    assert result.escrow == "refunded"


@pytest.mark.asyncio
async def test_investigator_can_resubmit_after_dispute(backend, investigator):
    backend.seed("cases", case_row(status="disputed", assigned_investigator_id=INVESTIGATOR_ID))

    result = await CaseLifecycleService.submit_resolution(backend, investigator, "case-1", "More notes", "Revised")

    assert result.case.status == CaseStatus.PENDING_REVIEW


@pytest.mark.asyncio
async def test_rejection_rating_can_be_omitted(backend, submitter, monkeypatch):
    monkeypatch.setattr(feature_flags, "REJECTION_RATING_POLICY", RejectionRatingPolicy.omit())
    backend.seed("cases", case_row(status="pending_review", assigned_investigator_id=INVESTIGATOR_ID))
    backend.rpc_handlers["process_case_resolution"] = set_case_status(backend, "case-1", "disputed")

    await CaseLifecycleService.reject_resolution(backend, submitter, "case-1")

    (_, _, params), = backend.calls_to("rpc", "process_case_resolution")
    assert params["p_user_rating"] is None


def test_rejection_policy_parsing():
    assert RejectionRatingPolicy.parse("fixed:3").rating == 3
    assert RejectionRatingPolicy.parse("omit").omits_rating
    with pytest.raises(ValueError):
        RejectionRatingPolicy.parse("fixed:9")


# ==========================================
# Refusals that never reach the backend
# ==========================================

@pytest.mark.asyncio
async def test_unapproved_investigator_cannot_assign(backend, pending_investigator):
    backend.seed("cases", case_row())

    with pytest.raises(PermissionDeniedError) as exc:
        await CaseLifecycleService.assign(backend, pending_investigator, "case-1")

    assert "approved by administrators" in exc.value.message
    assert backend.calls == []


@pytest.mark.asyncio
async def test_second_assignment_conflicts(backend, investigator, second_investigator):
    backend.seed("cases", case_row())
    await CaseLifecycleService.assign(backend, investigator, "case-1")

    with pytest.raises(ConflictError) as exc:
        await CaseLifecycleService.assign(backend, second_investigator, "case-1")

    assert exc.value.message == "This case has already been assigned to an investigator"
    assert backend.row("cases", "case-1")["assigned_investigator_id"] == INVESTIGATOR_ID
    assert len(backend.calls_to("update", "cases")) == 1


@pytest.mark.asyncio
async def test_assignment_lost_to_concurrent_writer(backend, investigator, second_investigator, monkeypatch):
    backend.seed("cases", case_row())
    original_update = backend.update

    async def racing_update(table, values, filters):
        # Another investigator's assignment lands between our read and write
        backend.row("cases", "case-1").update(
            {"assigned_investigator_id": second_investigator.user_id, "status": "investigating"}
        )
        return await original_update(table, values, filters)

    monkeypatch.setattr(backend, "update", racing_update)

    with pytest.raises(ConflictError):
        await CaseLifecycleService.assign(backend, investigator, "case-1")
    assert backend.row("cases", "case-1")["assigned_investigator_id"] == second_investigator.user_id


@pytest.mark.asyncio
async def test_vote_on_open_case_is_refused(backend, investigator):
    backend.seed("cases", case_row())

    with pytest.raises(InvalidTransitionError):
        await CaseLifecycleService.vote(backend, investigator, "case-1", True)

    assert backend.writes() == []


@pytest.mark.asyncio
async def test_accept_requires_valid_rating(backend, submitter):
    backend.seed("cases", case_row(status="pending_review", assigned_investigator_id=INVESTIGATOR_ID))

    with pytest.raises(ValidationFailedError):
        await CaseLifecycleService.accept_resolution(backend, submitter, "case-1", 0)

    assert backend.calls == []


@pytest.mark.asyncio
async def test_only_submitter_reviews(backend, investigator):
    backend.seed("cases", case_row(status="pending_review", assigned_investigator_id=INVESTIGATOR_ID))

    with pytest.raises(PermissionDeniedError):
        await CaseLifecycleService.accept_resolution(backend, investigator, "case-1", 5)

    assert backend.writes() == []


@pytest.mark.asyncio
async def test_backend_failure_message_is_surfaced(backend, submitter):
    backend.seed("cases", case_row(status="pending_review", assigned_investigator_id=INVESTIGATOR_ID))
    backend.rpc_handlers["process_case_resolution"] = {"success": False, "error": "Escrow is locked"}

    with pytest.raises(ConflictError) as exc:
        await CaseLifecycleService.accept_resolution(backend, submitter, "case-1", 5)

    assert exc.value.message == "Escrow is locked"
    assert backend.row("cases", "case-1")["status"] == "pending_review"


@pytest.mark.asyncio
async def test_duplicate_action_while_in_flight(backend, submitter):
    backend.seed("cases", case_row(status="pending_review", assigned_investigator_id=INVESTIGATOR_ID))

    with CaseLifecycleService._single_flight("review", "case-1"):
        with pytest.raises(ConflictError) as exc:
            await CaseLifecycleService.accept_resolution(backend, submitter, "case-1", 5)

    assert exc.value.message == "Action already in progress"
    assert backend.writes() == []


@pytest.mark.asyncio
async def test_admin_vote_requires_community_voting(backend, admin, monkeypatch):
    monkeypatch.setattr(feature_flags, "FEATURE_COMMUNITY_VOTING", False)
    backend.seed("cases", case_row(status="disputed"))

    with pytest.raises(ValidationFailedError):
        await CaseLifecycleService.admin_resolve_dispute(backend, admin, "case-1", DisputeDecision.VOTE)

    assert backend.writes() == []


# ==========================================
# Evidence
# ==========================================

@pytest.mark.asyncio
async def test_upload_and_remove_evidence(backend, investigator):
    backend.seed("cases", case_row(status="investigating", assigned_investigator_id=INVESTIGATOR_ID))

    result = await CaseLifecycleService.upload_evidence(backend, investigator, "case-1", [
        ("marsh.jpg", b"\xff\xd8\xff", "image/jpeg"),
        ("notes.pdf", b"%PDF-1.4", None),
    ])

    assert result.message == "2 file(s) uploaded successfully!"
    assert [f.type for f in result.case.evidence_files] == ["image", "document"]
    uploads = backend.calls_to("upload")
    assert len(uploads) == 2
    assert all(call[2]["path"].startswith("evidence/case-1/") for call in uploads)

    url = result.case.evidence_files[0].url
    result = await CaseLifecycleService.remove_evidence(backend, investigator, "case-1", url)
    assert [f.name for f in result.case.evidence_files] == ["notes.pdf"]


@pytest.mark.asyncio
async def test_outsider_cannot_upload_evidence(backend, second_investigator):
    backend.seed("cases", case_row(status="investigating", assigned_investigator_id=INVESTIGATOR_ID))

    with pytest.raises(PermissionDeniedError):
        await CaseLifecycleService.upload_evidence(
            backend, second_investigator, "case-1", [("a.png", b"x", "image/png")]
        )

    assert backend.calls_to("upload") == []
