"""
Quota Store - persistence for per-project call quotas.

Every usage mutation is a single conditional UPDATE executed by the database,
so concurrent admissions for the same project cannot overshoot the limits.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from callplane.config.constants import DB_READ_ATTEMPTS
from callplane.models.database import utcnow
from callplane.models.project_quota import ProjectQuota, SETTINGS_FIELDS
from callplane.services.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Per-type toggle consulted by admission
TYPE_TOGGLES = {
    "audio": ProjectQuota.audio_calls,
    "video": ProjectQuota.video_calls,
    "screen_share": ProjectQuota.screen_sharing,
}


class QuotaStore:
    """SQLAlchemy-backed store for ProjectQuota rows."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @retry(
        stop=stop_after_attempt(DB_READ_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def _fetch(self, project_id: str) -> Optional[ProjectQuota]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ProjectQuota).where(ProjectQuota.project_id == project_id)
            )
            return result.scalar_one_or_none()

    async def get(self, project_id: str) -> Optional[ProjectQuota]:
        try:
            return await self._fetch(project_id)
        except SQLAlchemyError as e:
            logger.error(f"[QuotaStore] Read failed for project {project_id}: {e}")
            raise PersistenceError("Could not load project quota") from e

    async def create(self, project_id: str, plan: str, settings: dict) -> ProjectQuota:
        """Insert a quota row; if another request created it first, return that one."""
        quota = ProjectQuota(project_id=project_id, plan=plan, **settings)
        try:
            async with self._session_factory() as db:
                db.add(quota)
                await db.commit()
                return quota
        except IntegrityError:
            logger.info(f"[QuotaStore] Quota for project {project_id} created concurrently")
            existing = await self.get(project_id)
            if existing is None:
                raise PersistenceError("Could not create project quota")
            return existing
        except SQLAlchemyError as e:
            logger.error(f"[QuotaStore] Create failed for project {project_id}: {e}")
            raise PersistenceError("Could not create project quota") from e

    async def _execute_update(self, stmt, project_id: str, action: str) -> int:
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt.execution_options(synchronize_session=False))
                await db.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"[QuotaStore] {action} failed for project {project_id}: {e}")
            raise PersistenceError("Could not update project quota") from e

    async def try_reserve(self, project_id: str, call_type: str) -> bool:
        """Increment concurrent and monthly counters iff every limit still has room."""
        toggle = TYPE_TOGGLES.get(call_type)
        if toggle is None:
            return False
        stmt = (
            update(ProjectQuota)
            .where(
                ProjectQuota.project_id == project_id,
                ProjectQuota.enabled.is_(True),
                toggle.is_(True),
                ProjectQuota.concurrent_calls_now < ProjectQuota.max_concurrent_calls,
                or_(
                    ProjectQuota.monthly_call_limit <= 0,
                    ProjectQuota.calls_this_month < ProjectQuota.monthly_call_limit,
                ),
            )
            .values(
                concurrent_calls_now=ProjectQuota.concurrent_calls_now + 1,
                calls_this_month=ProjectQuota.calls_this_month + 1,
                updated_at=utcnow(),
            )
        )
        return await self._execute_update(stmt, project_id, "Reserve") == 1

    async def decrement_concurrent(self, project_id: str) -> bool:
        """Release one concurrent slot; a counter already at zero stays at zero."""
        stmt = (
            update(ProjectQuota)
            .where(
                ProjectQuota.project_id == project_id,
                ProjectQuota.concurrent_calls_now > 0,
            )
            .values(
                concurrent_calls_now=ProjectQuota.concurrent_calls_now - 1,
                updated_at=utcnow(),
            )
        )
        return await self._execute_update(stmt, project_id, "Release") == 1

    async def add_minutes(self, project_id: str, minutes: int) -> bool:
        stmt = (
            update(ProjectQuota)
            .where(ProjectQuota.project_id == project_id)
            .values(
                total_call_minutes=ProjectQuota.total_call_minutes + minutes,
                updated_at=utcnow(),
            )
        )
        return await self._execute_update(stmt, project_id, "Record minutes") == 1

    async def reset_usage(self, project_id: str, reset_at: datetime) -> bool:
        stmt = (
            update(ProjectQuota)
            .where(ProjectQuota.project_id == project_id)
            .values(
                calls_this_month=0,
                total_call_minutes=0,
                last_reset_date=reset_at,
                updated_at=utcnow(),
            )
        )
        return await self._execute_update(stmt, project_id, "Reset usage") == 1

    async def update_settings(
        self,
        project_id: str,
        values: dict,
        plan: Optional[str] = None,
    ) -> Optional[ProjectQuota]:
        """Write settings columns only; usage columns are never touched here."""
        unknown = set(values) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Not settings fields: {sorted(unknown)}")
        changes = dict(values)
        if plan is not None:
            changes["plan"] = plan
        if changes:
            changes["updated_at"] = utcnow()
            stmt = update(ProjectQuota).where(ProjectQuota.project_id == project_id).values(**changes)
            await self._execute_update(stmt, project_id, "Update settings")
        return await self.get(project_id)
