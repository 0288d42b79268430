from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from novel_engine.core.database import Base


class NovelJobRow(Base):
  """Persisted novel job: indexed scalar columns plus the full document."""

  __tablename__ = "novel_jobs"
  __table_args__ = (Index("ix_novel_jobs_status_created", "status", "created_at"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  current_phase: Mapped[str] = mapped_column(String, nullable=False)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  document: Mapped[dict] = mapped_column(JSONB, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
