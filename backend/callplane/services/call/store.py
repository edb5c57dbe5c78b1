"""
Session Store - persistence for CallSession records.

The database is the single source of truth for session state; nothing is
cached in memory. Status changes that race with each other (end vs. end,
accept vs. cancel) go through conditional updates.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from callplane.config.constants import DB_READ_ATTEMPTS, OPEN_CALL_STATUSES
from callplane.models.call_session import CallSession, CallStatus, AdmissionState
from callplane.models.database import utcnow
from callplane.services.exceptions import PersistenceError

logger = logging.getLogger(__name__)

read_retry = retry(
    stop=stop_after_attempt(DB_READ_ATTEMPTS),
    wait=wait_exponential(multiplier=0.1, max=1),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)


class SessionStore:
    """SQLAlchemy-backed store for CallSession rows and their participants."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def create(self, session: CallSession) -> CallSession:
        try:
            async with self._session_factory() as db:
                db.add(session)
                await db.commit()
                return session
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] Create failed for call {session.call_id}: {e}")
            raise PersistenceError("Could not create call session") from e

    @read_retry
    async def _fetch(self, call_id: str) -> Optional[CallSession]:
        async with self._session_factory() as db:
            result = await db.execute(select(CallSession).where(CallSession.call_id == call_id))
            return result.scalar_one_or_none()

    async def get(self, call_id: str) -> Optional[CallSession]:
        try:
            return await self._fetch(call_id)
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] Read failed for call {call_id}: {e}")
            raise PersistenceError("Could not load call session") from e

    async def save(
        self,
        session: CallSession,
        expected_status: Optional[str] = None,
        hold_reservation: bool = False,
    ) -> Optional[CallSession]:
        """
        Write a modified session back.

        With `expected_status`, the write only happens if the stored status
        still equals it; otherwise nothing is written and None is returned.

        The stored admission_state is kept as is, since only `claim_release`
        may move it off `reserved`. `hold_reservation` marks the session as
        holding a freshly reserved slot.
        """
        try:
            async with self._session_factory() as db:
                row = (await db.execute(
                    select(CallSession.status, CallSession.admission_state)
                    .where(CallSession.call_id == session.call_id)
                    .with_for_update()
                )).one_or_none()
                if expected_status is not None and (row is None or row.status != expected_status):
                    logger.info(
                        f"[SessionStore] Call {session.call_id} moved to "
                        f"'{row.status if row else None}', expected '{expected_status}'"
                    )
                    return None
                if hold_reservation:
                    session.admission_state = AdmissionState.RESERVED.value
                elif row is not None:
                    session.admission_state = row.admission_state
                merged = await db.merge(session)
                await db.commit()
                return merged
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] Save failed for call {session.call_id}: {e}")
            raise PersistenceError("Could not save call session") from e

    async def _execute_update(self, stmt, call_id: str, action: str) -> int:
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt.execution_options(synchronize_session=False))
                await db.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] {action} failed for call {call_id}: {e}")
            raise PersistenceError("Could not update call session") from e

    async def claim_termination(
        self,
        call_id: str,
        status: str,
        ended_at: datetime,
        ended_by: Optional[str],
        from_statuses: Iterable[str],
    ) -> bool:
        """Move the session to a terminal status iff it is still in one of `from_statuses`."""
        stmt = (
            update(CallSession)
            .where(
                CallSession.call_id == call_id,
                CallSession.status.in_(list(from_statuses)),
            )
            .values(status=status, ended_at=ended_at, ended_by=ended_by, updated_at=utcnow())
        )
        return await self._execute_update(stmt, call_id, "Claim termination") == 1

    async def claim_release(self, call_id: str) -> bool:
        """Flip a held reservation to released; true for exactly one caller."""
        stmt = (
            update(CallSession)
            .where(
                CallSession.call_id == call_id,
                CallSession.admission_state == AdmissionState.RESERVED.value,
            )
            .values(admission_state=AdmissionState.RELEASED.value, updated_at=utcnow())
        )
        return await self._execute_update(stmt, call_id, "Claim release") == 1

    @read_retry
    async def _list_active(self, agent_id: str, limit: int) -> List[CallSession]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CallSession)
                .where(
                    CallSession.agent_id == agent_id,
                    CallSession.status.in_(OPEN_CALL_STATUSES),
                )
                .order_by(CallSession.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_active(self, agent_id: str, limit: int) -> List[CallSession]:
        try:
            return await self._list_active(agent_id, limit)
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] Active query failed for agent {agent_id}: {e}")
            raise PersistenceError("Could not load active calls") from e

    @read_retry
    async def _list_history(
        self, agent_id: str, limit: int, offset: int
    ) -> Tuple[List[CallSession], int]:
        async with self._session_factory() as db:
            criteria = (
                CallSession.agent_id == agent_id,
                CallSession.status == CallStatus.ENDED.value,
            )
            total = await db.scalar(select(func.count(CallSession.id)).where(*criteria))
            result = await db.execute(
                select(CallSession)
                .where(*criteria)
                .order_by(CallSession.ended_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), total or 0

    async def list_history(
        self, agent_id: str, limit: int, offset: int
    ) -> Tuple[List[CallSession], int]:
        try:
            return await self._list_history(agent_id, limit, offset)
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] History query failed for agent {agent_id}: {e}")
            raise PersistenceError("Could not load call history") from e

    @read_retry
    async def _list_stale(self, statuses: List[str], older_than: datetime) -> List[CallSession]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CallSession)
                .where(
                    CallSession.status.in_(statuses),
                    CallSession.created_at < older_than,
                )
                .order_by(CallSession.created_at)
            )
            return list(result.scalars().all())

    async def list_stale(self, statuses: Iterable[str], older_than: datetime) -> List[CallSession]:
        """Sessions still in one of `statuses` that were created before `older_than`."""
        try:
            return await self._list_stale(list(statuses), older_than)
        except SQLAlchemyError as e:
            logger.error(f"[SessionStore] Stale query failed: {e}")
            raise PersistenceError("Could not load stale calls") from e
