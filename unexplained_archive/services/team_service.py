"""
Team Coordination Service

Multi-investigator teams on a case: claiming leadership, invitations,
membership changes, reward split and team chat. Team state is authoritative in
the backend; every mutation is followed by a fresh read of the team.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from unexplained_archive.config.feature_flags import feature_flags
from unexplained_archive.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from unexplained_archive.schemas.team import (
    InvestigatorSummary,
    InvitationStatus,
    RewardSplit,
    RewardSplitResult,
    TeamInvitation,
    TeamMember,
    TeamMessage,
)
from unexplained_archive.services import fees
from unexplained_archive.services.backend_client import BackendClient, BackendError, unwrap_result
from unexplained_archive.services.case_lifecycle_service import CaseLifecycleService
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)


class TeamService:
    """Client for the team RPCs and tables."""

    @staticmethod
    def _ensure_enabled() -> None:
        if not feature_flags.FEATURE_TEAMS:
            raise ValidationFailedError("Team investigations are disabled")

    # ================= READS =================

    @staticmethod
    async def get_case_team(backend: BackendClient, case_id: str) -> List[TeamMember]:
        """Active team members, ordered by join date."""
        rows = await backend.rpc("get_case_team", {"p_case_id": case_id}) or []
        members = [TeamMember.from_row(row) for row in rows]
        return sorted(members, key=lambda m: (m.joined_at is None, m.joined_at or 0))

    @classmethod
    async def _require_leader(cls, backend: BackendClient, session: Session, case_id: str) -> List[TeamMember]:
        team = await cls.get_case_team(backend, case_id)
        if not any(m.is_leader and m.investigator_id == session.user_id for m in team):
            raise PermissionDeniedError("Only the team leader can manage this team")
        return team

    @staticmethod
    async def get_my_invitations(backend: BackendClient, session: Session) -> List[TeamInvitation]:
        rows = await backend.select(
            "team_invitations",
            {"to_investigator_id": session.user_id, "status": InvitationStatus.PENDING.value},
            columns="*,case:case_id(id,title),from_investigator:profiles!from_investigator_id(username,avatar_url)",
            order="created_at.desc",
        )
        return [TeamInvitation.from_row(row) for row in rows]

    @staticmethod
    async def get_case_invitations(backend: BackendClient, case_id: str) -> List[TeamInvitation]:
        rows = await backend.select("team_invitations", {"case_id": case_id}, order="created_at.desc")
        return [TeamInvitation.from_row(row) for row in rows]

    @staticmethod
    async def get_reward_split(backend: BackendClient, case_id: str) -> List[RewardSplit]:
        rows = await backend.select(
            "case_team_members",
            {"case_id": case_id, "status": "active", "contribution_percentage": ("not.is", None)},
            columns="investigator_id,contribution_percentage",
        )
        return [
            RewardSplit(investigator_id=str(row["investigator_id"]), percentage=int(row["contribution_percentage"]))
            for row in rows
        ]

    @staticmethod
    async def search_investigators(
        backend: BackendClient,
        query: str,
        exclude_ids: Sequence[str] = (),
    ) -> List[InvestigatorSummary]:
        """Approved investigators matching `query`, best reputation first."""
        filters: Dict[str, Any] = {"role": "investigator", "investigator_status": "approved"}
        if exclude_ids:
            filters["id"] = ("not.in", "(" + ",".join(exclude_ids) + ")")

        term = query.replace(",", " ").strip()
        rows = await backend.select(
            "profiles",
            filters,
            columns="id,username,full_name,avatar_url,reputation",
            or_filter=f"username.ilike.*{term}*,full_name.ilike.*{term}*" if term else None,
            order="reputation.desc",
            limit=10,
        )
        return [
            InvestigatorSummary(
                id=str(row["id"]),
                username=row.get("username"),
                full_name=row.get("full_name"),
                avatar_url=row.get("avatar_url"),
                reputation=int(row.get("reputation") or 0),
            )
            for row in rows
        ]

    # ================= LEADERSHIP =================

    @classmethod
    async def claim_case_as_leader(cls, backend: BackendClient, session: Session, case_id: str) -> List[TeamMember]:
        """The assigned investigator becomes leader of a new team."""
        cls._ensure_enabled()
        session.require_approved_investigator()

        case = await CaseLifecycleService.load_case(backend, case_id)
        if case.assigned_investigator != session.user_id:
            raise PermissionDeniedError("Only the assigned investigator can lead a team on this case")

        result = await backend.rpc("claim_case_as_leader", {
            "p_case_id": case_id,
            "p_investigator_id": session.user_id,
        })
        unwrap_result(result, "Failed to claim case")
        logger.info(f"Investigator {session.user_id} leads team on case {case_id}")
        return await cls.get_case_team(backend, case_id)

    # ================= INVITATIONS =================

    @classmethod
    async def invite_team_member(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        invitee_id: str,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        cls._ensure_enabled()
        if invitee_id == session.user_id:
            raise ValidationFailedError("You cannot invite yourself")

        team = await cls._require_leader(backend, session, case_id)
        if any(m.investigator_id == invitee_id for m in team):
            raise ConflictError("This investigator is already on the team")

        try:
            result = await backend.rpc("invite_team_member", {
                "p_case_id": case_id,
                "p_from_investigator_id": session.user_id,
                "p_to_investigator_id": invitee_id,
                "p_message": message or None,
            })
        except BackendError as e:
            if e.is_unique_violation:
                raise ConflictError("This investigator has already been invited to this case") from e
            raise

        result = unwrap_result(result, "Failed to send invitation")
        logger.info(f"Team invitation on case {case_id}: {session.user_id} -> {invitee_id}")
        return {
            "success": True,
            "invitation_id": result.get("invitation_id") if isinstance(result, dict) else None,
            "message": "Invitation sent!",
        }

    @classmethod
    async def accept_invitation(cls, backend: BackendClient, session: Session, invitation_id: str) -> List[TeamMember]:
        cls._ensure_enabled()
        session.require_approved_investigator()

        result = await backend.rpc("accept_team_invitation", {
            "p_invitation_id": invitation_id,
            "p_investigator_id": session.user_id,
        })
        result = unwrap_result(result, "Failed to accept invitation")

        case_id = result.get("case_id") if isinstance(result, dict) else None
        if not case_id:
            row = await backend.select_one("team_invitations", {"id": invitation_id}, columns="case_id")
            if row is None:
                raise NotFoundError("Invitation", invitation_id)
            case_id = row["case_id"]

        logger.info(f"Investigator {session.user_id} joined team on case {case_id}")
        return await cls.get_case_team(backend, str(case_id))

    @staticmethod
    async def reject_invitation(backend: BackendClient, session: Session, invitation_id: str) -> None:
        result = await backend.rpc("reject_team_invitation", {
            "p_invitation_id": invitation_id,
            "p_investigator_id": session.user_id,
        })
        unwrap_result(result, "Failed to reject invitation")

    @staticmethod
    async def cancel_invitation(backend: BackendClient, session: Session, invitation_id: str) -> None:
        """Sender withdraws a pending invitation."""
        updated = await backend.update(
            "team_invitations",
            {"status": InvitationStatus.CANCELLED.value},
            {
                "id": invitation_id,
                "from_investigator_id": session.user_id,
                "status": InvitationStatus.PENDING.value,
            },
        )
        if not updated:
            raise ConflictError("Invitation is no longer pending")

    # ================= MEMBERSHIP =================

    @classmethod
    async def remove_team_member(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        member_id: str,
        reason: Optional[str] = None,
    ) -> List[TeamMember]:
        team = await cls._require_leader(backend, session, case_id)
        if member_id == session.user_id:
            raise ValidationFailedError("The team leader cannot be removed")
        if not any(m.investigator_id == member_id for m in team):
            raise NotFoundError("Team member", member_id)

        result = await backend.rpc("remove_team_member", {
            "p_case_id": case_id,
            "p_leader_id": session.user_id,
            "p_member_id": member_id,
            "p_reason": reason or None,
        })
        unwrap_result(result, "Failed to remove team member")
        logger.info(f"Member {member_id} removed from team on case {case_id}")
        return await cls.get_case_team(backend, case_id)

    @classmethod
    async def leave_team(cls, backend: BackendClient, session: Session, case_id: str) -> None:
        team = await cls.get_case_team(backend, case_id)
        me = next((m for m in team if m.investigator_id == session.user_id), None)
        if me is None:
            raise NotFoundError("Team membership")
        if me.is_leader and len(team) > 1:
            raise ConflictError("The team leader cannot leave while other members remain")

        result = await backend.rpc("leave_team", {
            "p_case_id": case_id,
            "p_investigator_id": session.user_id,
        })
        unwrap_result(result, "Failed to leave team")
        logger.info(f"Investigator {session.user_id} left team on case {case_id}")

    # ================= REWARD SPLIT =================

    @classmethod
    async def set_reward_split(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        splits: List[RewardSplit],
    ) -> RewardSplitResult:
        """
        Leader sets contribution percentages. Validated locally first: a split
        that does not sum to 100, or that does not name every active member
        exactly, never reaches the backend.
        """
        fees.validate_split(splits)

        team = await cls._require_leader(backend, session, case_id)
        member_ids = {m.investigator_id for m in team if m.status == "active"}
        split_ids = {s.investigator_id for s in splits}
        unknown = sorted(split_ids - member_ids)
        if unknown:
            raise ValidationFailedError("Every split must reference a current team member", details={"unknown": unknown})
        missing = sorted(member_ids - split_ids)
        if missing:
            raise ValidationFailedError("Every current team member must be included in the split", details={"missing": missing})

        result = await backend.rpc("set_reward_split", {
            "p_case_id": case_id,
            "p_leader_id": session.user_id,
            "p_splits": [s.model_dump() for s in splits],
        })
        unwrap_result(result, "Failed to set reward split")

        case = await CaseLifecycleService.load_case(backend, case_id)
        saved = await cls.get_reward_split(backend, case_id)
        return RewardSplitResult(
            message="Reward split updated",
            payouts=fees.payout_preview(case.reward, saved or splits),
        )

    @classmethod
    async def equal_split(cls, backend: BackendClient, case_id: str) -> List[RewardSplit]:
        return fees.equal_split(await cls.get_case_team(backend, case_id))

    # ================= TEAM CHAT =================

    @staticmethod
    async def get_team_messages(backend: BackendClient, session: Session, case_id: str) -> List[TeamMessage]:
        rows = await backend.select(
            "case_team_messages",
            {"case_id": case_id},
            columns="*,sender:profiles!case_team_messages_sender_id_fkey(username,avatar_url)",
            order="created_at.asc",
        )
        try:
            await backend.rpc("mark_team_messages_read", {"p_case_id": case_id, "p_user_id": session.user_id})
        except Exception as e:
            logger.warning(f"Failed to mark team messages read on case {case_id}: {str(e)}")
        return [TeamMessage.from_row(row) for row in rows]

    @classmethod
    async def send_team_message(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        message: str,
    ) -> List[TeamMessage]:
        text = message.strip()
        if not text:
            raise ValidationFailedError("Message cannot be empty")

        team = await cls.get_case_team(backend, case_id)
        if not any(m.investigator_id == session.user_id for m in team):
            raise PermissionDeniedError("Only team members can post in the team chat")

        await backend.insert("case_team_messages", {
            "case_id": case_id,
            "sender_id": session.user_id,
            "message": text,
        })
        return await cls.get_team_messages(backend, session, case_id)
