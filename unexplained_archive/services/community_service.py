"""
Community Service

Comments, theories, likes, follows and saved cases.

Two consistency tiers exist in this application:

- AUTHORITATIVE: money and case status. Always written through and reread;
  never updated locally. Everything in case_lifecycle_service, wallet_service,
  boost_service and team_service is this tier.
- OPTIMISTIC: small social counters (comment likes, theory votes, follows).
  Each toggle starts from a fresh read of the counter. The counter shown
  to the user is updated before the backend answers and restored if the
  backend call fails.

Each operation here is tagged with its tier.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from unexplained_archive.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from unexplained_archive.schemas.community import Comment, Theory, VoteState
from unexplained_archive.services.backend_client import BackendClient, unwrap_result
from unexplained_archive.services.case_lifecycle_service import CaseLifecycleService
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)


class ConsistencyTier(str, Enum):
    AUTHORITATIVE = "authoritative"
    OPTIMISTIC = "optimistic"


def consistency_tier(tier: ConsistencyTier) -> Callable:
    """Tag an operation with the consistency tier it follows."""
    def decorator(func):
        target = func.__func__ if isinstance(func, (staticmethod, classmethod)) else func
        target.consistency_tier = tier
        return func
    return decorator


# (kind, target_id, user_id)
BoardKey = Tuple[str, str, str]


class VoteBoard:
    """
    Counters shown while a like/vote/follow is settling.

    An entry lives for one request only. `claim` marks the (kind, target,
    user) key in flight before the fresh read, so a second click cannot start
    until the first settles, and drops whatever was shown once it exits.
    """

    def __init__(self):
        self._pending: Dict[BoardKey, VoteState] = {}
        self._in_flight: Set[BoardKey] = set()

    def get(self, key: BoardKey) -> Optional[VoteState]:
        return self._pending.get(key)

    def is_in_flight(self, key: BoardKey) -> bool:
        return key in self._in_flight

    @contextmanager
    def claim(self, key: BoardKey):
        if key in self._in_flight:
            raise ConflictError("Action already in progress")

        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)
            self._pending.pop(key, None)

    @contextmanager
    def optimistic(self, key: BoardKey, current: VoteState, new_state: VoteState):
        """
        Show `new_state` while the block runs. If the block raises, `current`
        is shown again and the exception propagates.
        """
        self._pending[key] = new_state
        try:
            yield new_state
        except Exception:
            self._pending[key] = current
            logger.warning(f"Rolled back optimistic update for {key[0]} {key[1]}")
            raise


# Process-wide board used by the HTTP routes
vote_board = VoteBoard()

# kind -> (table, target column)
VOTE_TABLES = {
    "comment_like": ("evidence_likes", "comment_id"),
    "theory_vote": ("theory_votes", "theory_id"),
}


def _toggled(state: VoteState) -> VoteState:
    if state.user_voted:
        return VoteState(count=max(0, state.count - 1), user_voted=False)
    return VoteState(count=state.count + 1, user_voted=True)


class CommunityService:

    # ================= COMMENTS =================

    @staticmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def list_comments(backend: BackendClient, case_id: str) -> List[Comment]:
        rows = await backend.select(
            "comments",
            {"case_id": case_id},
            columns="*,profiles(id,username,avatar_url,role)",
            order="created_at.asc",
        )
        return [Comment.from_row(row) for row in rows]

    @staticmethod
    async def _get_comment(backend: BackendClient, comment_id: str) -> Comment:
        row = await backend.select_one("comments", {"id": comment_id})
        if row is None:
            raise NotFoundError("Comment", comment_id)
        return Comment.from_row(row)

    @classmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def post_comment(cls, backend: BackendClient, session: Session, case_id: str, content: str) -> List[Comment]:
        text = content.strip()
        if not text:
            raise ValidationFailedError("Comment cannot be empty")
        await backend.insert("comments", {"case_id": case_id, "user_id": session.user_id, "content": text})
        return await cls.list_comments(backend, case_id)

    @classmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def reply_to_comment(
        cls,
        backend: BackendClient,
        session: Session,
        parent_id: str,
        content: str,
    ) -> List[Comment]:
        """Replies are one level deep: replying to a reply is refused."""
        text = content.strip()
        if not text:
            raise ValidationFailedError("Reply cannot be empty")

        parent = await cls._get_comment(backend, parent_id)
        if parent.is_reply:
            raise ValidationFailedError("You can only reply to top-level comments")

        await backend.insert("comments", {
            "case_id": parent.case_id,
            "user_id": session.user_id,
            "content": text,
            "parent_id": parent.id,
        })
        return await cls.list_comments(backend, parent.case_id)

    @classmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def edit_comment(cls, backend: BackendClient, session: Session, comment_id: str, content: str) -> List[Comment]:
        text = content.strip()
        if not text:
            raise ValidationFailedError("Comment cannot be empty")

        comment = await cls._get_comment(backend, comment_id)
        if comment.user_id != session.user_id:
            raise PermissionDeniedError("You can only edit your own comments")

        await backend.update(
            "comments",
            {"content": text, "updated_at": datetime.now(timezone.utc).isoformat()},
            {"id": comment_id, "user_id": session.user_id},
        )
        return await cls.list_comments(backend, comment.case_id)

    @classmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def delete_comment(cls, backend: BackendClient, session: Session, comment_id: str) -> List[Comment]:
        """The author or the case submitter may delete a comment."""
        comment = await cls._get_comment(backend, comment_id)
        if comment.user_id != session.user_id:
            case = await CaseLifecycleService.load_case(backend, comment.case_id)
            if case.submitted_by != session.user_id:
                raise PermissionDeniedError("You can only delete your own comments")

        await backend.delete("comments", {"id": comment_id})
        return await cls.list_comments(backend, comment.case_id)

    # ================= LIKES / VOTES =================

    @staticmethod
    async def _load_vote_state(
        backend: BackendClient,
        table: str,
        column: str,
        target_id: str,
        user_id: str,
    ) -> VoteState:
        count = await backend.count(table, {column: target_id})
        mine = await backend.select_one(table, {column: target_id, "user_id": user_id}, columns=column)
        return VoteState(count=count, user_voted=mine is not None)

    @classmethod
    async def get_vote_state(
        cls,
        backend: BackendClient,
        session: Session,
        kind: str,
        target_id: str,
    ) -> VoteState:
        """Current like/vote counter as the backend sees it."""
        table, column = VOTE_TABLES[kind]
        return await cls._load_vote_state(backend, table, column, target_id, session.user_id)

    @classmethod
    async def _toggle(
        cls,
        backend: BackendClient,
        session: Session,
        board: VoteBoard,
        kind: str,
        target_id: str,
    ) -> VoteState:
        table, column = VOTE_TABLES[kind]
        key = (kind, target_id, session.user_id)
        with board.claim(key):
            current = await cls._load_vote_state(backend, table, column, target_id, session.user_id)
            with board.optimistic(key, current, _toggled(current)) as new_state:
                if new_state.user_voted:
                    await backend.insert(table, {"user_id": session.user_id, column: target_id})
                else:
                    await backend.delete(table, {"user_id": session.user_id, column: target_id})
        return new_state

    @classmethod
    @consistency_tier(ConsistencyTier.OPTIMISTIC)
    async def toggle_comment_like(
        cls,
        backend: BackendClient,
        session: Session,
        comment_id: str,
        board: Optional[VoteBoard] = None,
    ) -> VoteState:
        return await cls._toggle(
            backend, session, board or vote_board, "comment_like", comment_id
        )

    @classmethod
    @consistency_tier(ConsistencyTier.OPTIMISTIC)
    async def toggle_theory_vote(
        cls,
        backend: BackendClient,
        session: Session,
        theory_id: str,
        board: Optional[VoteBoard] = None,
    ) -> VoteState:
        return await cls._toggle(
            backend, session, board or vote_board, "theory_vote", theory_id
        )

    # ================= THEORIES =================

    @staticmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def list_theories(backend: BackendClient, case_id: str) -> List[Theory]:
        rows = await backend.select(
            "case_theories",
            {"case_id": case_id},
            columns="*,profiles(id,username,avatar_url)",
            order="vote_count.desc",
        )
        return [Theory.from_row(row) for row in rows]

    @classmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def submit_theory(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        title: str,
        description: str,
        theory_type: str = "other",
    ) -> List[Theory]:
        if not title.strip() or not description.strip():
            raise ValidationFailedError("Please provide both a title and description")

        await backend.insert("case_theories", {
            "case_id": case_id,
            "user_id": session.user_id,
            "theory_type": theory_type,
            "title": title.strip(),
            "description": description.strip(),
        })
        return await cls.list_theories(backend, case_id)

    # ================= FOLLOWING =================

    @staticmethod
    async def follower_count(backend: BackendClient, case_id: str) -> int:
        return await backend.count("case_followers", {"case_id": case_id})

    @staticmethod
    async def is_following(backend: BackendClient, session: Session, case_id: str) -> bool:
        row = await backend.select_one(
            "case_followers", {"case_id": case_id, "user_id": session.user_id}, columns="case_id"
        )
        return row is not None

    @classmethod
    async def _follow_state(cls, backend: BackendClient, session: Session, case_id: str) -> VoteState:
        return VoteState(
            count=await cls.follower_count(backend, case_id),
            user_voted=await cls.is_following(backend, session, case_id),
        )

    @classmethod
    @consistency_tier(ConsistencyTier.OPTIMISTIC)
    async def follow_case(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        board: Optional[VoteBoard] = None,
    ) -> VoteState:
        board = board or vote_board
        key = ("follow", case_id, session.user_id)
        with board.claim(key):
            current = await cls._follow_state(backend, session, case_id)
            if current.user_voted:
                return current

            with board.optimistic(key, current, _toggled(current)) as new_state:
                result = await backend.rpc("follow_case", {"p_case_id": case_id, "p_user_id": session.user_id})
                unwrap_result(result, "Failed to follow case")
        return new_state

    @classmethod
    @consistency_tier(ConsistencyTier.OPTIMISTIC)
    async def unfollow_case(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        board: Optional[VoteBoard] = None,
    ) -> VoteState:
        board = board or vote_board
        key = ("follow", case_id, session.user_id)
        with board.claim(key):
            current = await cls._follow_state(backend, session, case_id)
            if not current.user_voted:
                return current

            with board.optimistic(key, current, _toggled(current)) as new_state:
                result = await backend.rpc("unfollow_case", {
                    "p_case_id": case_id,
                    "p_user_id": session.user_id,
                    "p_guest_email": None,
                })
                unwrap_result(result, "Failed to unfollow case")
        return new_state

    @staticmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def follow_case_guest(backend: BackendClient, case_id: str, email: str) -> int:
        """Email-only follow for visitors without an account. Returns the fresh count."""
        result = await backend.rpc("follow_case_guest", {"p_case_id": case_id, "p_guest_email": email.strip().lower()})
        unwrap_result(result, "Failed to follow case")
        return await backend.count("case_followers", {"case_id": case_id})

    # ================= SAVED CASES =================

    @staticmethod
    @consistency_tier(ConsistencyTier.AUTHORITATIVE)
    async def toggle_saved_case(backend: BackendClient, session: Session, case_id: str) -> bool:
        """Save or unsave a case. Returns whether it is saved afterwards."""
        existing = await backend.select_one(
            "user_saved_cases", {"user_id": session.user_id, "case_id": case_id}, columns="case_id"
        )
        if existing:
            await backend.delete("user_saved_cases", {"user_id": session.user_id, "case_id": case_id})
            return False
        await backend.insert("user_saved_cases", {"user_id": session.user_id, "case_id": case_id})
        return True

    @staticmethod
    async def list_saved_cases(backend: BackendClient, session: Session) -> List[str]:
        rows = await backend.select(
            "user_saved_cases", {"user_id": session.user_id}, columns="case_id", order="created_at.desc"
        )
        return [str(row["case_id"]) for row in rows]
