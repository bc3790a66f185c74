"""Persistence helpers for sync job log events."""
from __future__ import annotations

from typing import Any, Iterable

from sqlmodel import Session, select

from ..models import JobLogRecord
from ..schemas import JobLogCreate, JobLogModel


class JobLogStore:
    """Store and retrieve structured log events for sync jobs."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def append(self, job_id: str, payload: JobLogCreate) -> JobLogModel:
        record = JobLogRecord(
            job_id=job_id,
            level=payload.level,
            message=payload.message,
            context=payload.context,
        )
        with Session(self._engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def record(self, job_id: str, level: str, message: str, **context: Any) -> JobLogModel:
        """Shorthand for :meth:`append` with keyword context."""

        return self.append(
            job_id, JobLogCreate(level=level, message=message, context=context or None)
        )

    def list_for_job(self, job_id: str, *, limit: int = 100) -> list[JobLogModel]:
        """Return log events of a job, oldest first."""

        statement = (
            select(JobLogRecord)
            .where(JobLogRecord.job_id == job_id)
            .order_by(JobLogRecord.created_at.asc(), JobLogRecord.id.asc())
            .limit(limit)
        )
        with Session(self._engine) as session:
            records: Iterable[JobLogRecord] = session.exec(statement)
            return [_to_model(record) for record in records]


def _to_model(record: JobLogRecord) -> JobLogModel:
    return JobLogModel.model_validate(record, from_attributes=True)
