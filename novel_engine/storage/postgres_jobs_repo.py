"""Postgres-backed repository for novel jobs using SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import delete, func, select, update

from novel_engine.core.database import get_session_factory
from novel_engine.core.errors import StaleJobError
from novel_engine.jobs.models import ACTIVE_STATUSES, NovelJob, utc_now
from novel_engine.schema.jobs import NovelJobRow
from novel_engine.storage.jobs_repo import JobsRepository


class PostgresJobsRepository(JobsRepository):
  """Persist job documents to Postgres with version-guarded updates."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, job: NovelJob) -> None:
    async with self._session_factory() as session:
      row = NovelJobRow(job_id=job.job_id, status=job.status, current_phase=job.current_phase, version=job.version, document=job.model_dump(mode="json"), created_at=job.created_at, updated_at=job.updated_at)
      session.add(row)
      await session.commit()

  async def get_job(self, job_id: str) -> NovelJob | None:
    async with self._session_factory() as session:
      row = await session.get(NovelJobRow, job_id)
      if row is None:
        return None
      return self._row_to_job(row)

  async def save_job(self, job: NovelJob, *, expected_version: int) -> NovelJob:
    updated = NovelJob.model_validate(job.model_dump() | {"version": expected_version + 1, "updated_at": utc_now()})
    async with self._session_factory() as session:
      # Compare-and-set on the version column; zero affected rows means another writer won.
      stmt = (
        update(NovelJobRow)
        .where(NovelJobRow.job_id == job.job_id, NovelJobRow.version == expected_version)
        .values(status=updated.status, current_phase=updated.current_phase, version=updated.version, document=updated.model_dump(mode="json"), updated_at=updated.updated_at)
      )
      result = await session.execute(stmt)
      if result.rowcount == 0:
        await session.rollback()
        actual_version = await session.scalar(select(NovelJobRow.version).where(NovelJobRow.job_id == job.job_id))
        raise StaleJobError(job.job_id, expected_version, actual_version)
      await session.commit()
    return updated

  async def list_jobs(self, limit: int) -> list[NovelJob]:
    async with self._session_factory() as session:
      stmt = select(NovelJobRow).order_by(NovelJobRow.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._row_to_job(row) for row in rows]

  async def count_active(self) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count(NovelJobRow.job_id)).where(NovelJobRow.status.in_(sorted(ACTIVE_STATUSES)))
      return int(await session.scalar(stmt) or 0)

  async def delete_job(self, job_id: str) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(delete(NovelJobRow).where(NovelJobRow.job_id == job_id))
      await session.commit()
      return result.rowcount > 0

  @staticmethod
  def _row_to_job(row: NovelJobRow) -> NovelJob:
    # The version column is authoritative over the copy inside the document.
    return NovelJob.model_validate(dict(row.document) | {"version": row.version})
