"""Record access for catalog videos."""
from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import Iterable

from sqlalchemy import and_, exists, func, or_, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..models import EpisodeRecord, VideoRecord
from ..schemas import (
    STATUS_HIDDEN,
    STATUS_VISIBLE,
    VideoCreate,
    VideoListModel,
    VideoMetricsModel,
    VideoModel,
)

logger = logging.getLogger(__name__)

PENDING_STATUS = "pending"

# Columns a full-row update may rewrite; identity and natural key never change.
_MUTABLE_FIELDS = (
    "type",
    "title",
    "cover_url",
    "description",
    "runtime",
    "imdb_id",
    "release_date",
    "country_json",
    "director_json",
    "actors_json",
    "tags_json",
    "score",
    "episode_count",
    "status",
    "is_completed",
    "is_fresh",
)


def _needs_enrichment():
    return (
        VideoRecord.release_date.is_(None),
        or_(VideoRecord.country_json.is_(None), VideoRecord.country_json == "[]"),
    )


class VideoStore:
    """Thread-safe accessor for ``videos`` rows."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def find_by_natural_key(self, source: str, source_id: int) -> VideoModel | None:
        statement = select(VideoRecord).where(
            VideoRecord.source == source, VideoRecord.source_id == source_id
        )
        with Session(self._engine) as session:
            record = session.exec(statement).first()
            return _to_model(record) if record else None

    def find_by_id(self, video_id: int) -> VideoModel | None:
        with Session(self._engine) as session:
            record = session.get(VideoRecord, video_id)
            return _to_model(record) if record else None

    def find_needing_enrichment(self, video_type: str, limit: int) -> list[VideoModel]:
        """Return up to ``limit`` videos of ``video_type`` still lacking detail data."""

        statement = (
            select(VideoRecord)
            .where(VideoRecord.type == video_type)
            .where(VideoRecord.source_id.is_not(None), VideoRecord.source_id != 0)
            .where(*_needs_enrichment())
            .order_by(VideoRecord.created_at.asc(), VideoRecord.id.asc())
            .limit(limit)
        )
        with Session(self._engine) as session:
            records: Iterable[VideoRecord] = session.exec(statement)
            return [_to_model(record) for record in records]

    def find_pending_episode_match(self) -> list[VideoModel]:
        """Return titled videos whose playback state is not settled yet.

        Pending videos have never been shown. Visible series stay pending
        until their episode list is complete so new episodes keep merging.
        Hidden videos are never matched.
        """

        statement = (
            select(VideoRecord)
            .where(VideoRecord.title != "")
            .where(
                or_(
                    VideoRecord.status.is_(None),
                    and_(
                        VideoRecord.status == STATUS_VISIBLE,
                        VideoRecord.type != "movie",
                        VideoRecord.is_completed == False,  # noqa: E712
                    ),
                )
            )
            .order_by(VideoRecord.created_at.asc(), VideoRecord.id.asc())
        )
        with Session(self._engine) as session:
            records: Iterable[VideoRecord] = session.exec(statement)
            return [_to_model(record) for record in records]

    def create(self, payload: VideoCreate) -> VideoModel | None:
        """Insert a stub video unless its natural key is already stored.

        Returns ``None`` when another row with the same ``(source, source_id)``
        won the race. Any other integrity violation, such as a reused primary
        key, is re-raised.
        """

        record = VideoRecord(**payload.model_dump())
        with self._lock, Session(self._engine) as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.exec(
                    select(VideoRecord.id).where(
                        VideoRecord.source == payload.source,
                        VideoRecord.source_id == payload.source_id,
                    )
                ).first()
                if existing is None:
                    raise
                logger.info(
                    "Video %s/%s already stored; skipping insert",
                    payload.source,
                    payload.source_id,
                )
                return None
            session.refresh(record)
            return _to_model(record)

    def update(self, video: VideoModel) -> VideoModel:
        """Rewrite every mutable column of an existing row."""

        with self._lock, Session(self._engine) as session:
            record = session.get(VideoRecord, video.id)
            if record is None:
                raise LookupError(f"Video {video.id} not found")
            for name in _MUTABLE_FIELDS:
                setattr(record, name, getattr(video, name))
            record.updated_at = datetime.utcnow()
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_model(record)

    def set_status(self, video_id: int, status: str | None) -> None:
        if status not in (None, STATUS_VISIBLE, STATUS_HIDDEN):
            raise ValueError(f"Unsupported video status: {status}")
        self._set_columns(video_id, status=status)

    def set_flags(
        self,
        video_id: int,
        *,
        is_fresh: bool | None = None,
        is_completed: bool | None = None,
    ) -> None:
        """Persist derived flags; ``None`` leaves a flag unchanged."""

        values = {}
        if is_fresh is not None:
            values["is_fresh"] = is_fresh
        if is_completed is not None:
            values["is_completed"] = is_completed
        if values:
            self._set_columns(video_id, **values)

    def mark_visible_with_episodes(self) -> int:
        """Set every video owning at least one episode to visible."""

        has_episode = exists().where(EpisodeRecord.video_id == VideoRecord.id)
        statement = (
            update(VideoRecord)
            .where(has_episode)
            .where(or_(VideoRecord.status.is_(None), VideoRecord.status != STATUS_VISIBLE))
            .values(status=STATUS_VISIBLE)
            .execution_options(synchronize_session=False)
        )
        with self._lock, Session(self._engine) as session:
            result = session.exec(statement)
            session.commit()
            return result.rowcount or 0

    def list(
        self,
        *,
        video_type: str | None = None,
        status: str | None = None,
        query: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> VideoListModel:
        """Return a page of videos, newest first."""

        filters = []
        if video_type:
            filters.append(VideoRecord.type == video_type)
        if status == PENDING_STATUS:
            filters.append(VideoRecord.status.is_(None))
        elif status:
            filters.append(VideoRecord.status == status)
        if query:
            filters.append(func.lower(VideoRecord.title).like(f"%{query.lower()}%"))

        count_statement = select(func.count()).select_from(VideoRecord)
        items_statement = select(VideoRecord)
        for condition in filters:
            count_statement = count_statement.where(condition)
            items_statement = items_statement.where(condition)

        items_statement = (
            items_statement.order_by(VideoRecord.updated_at.desc(), VideoRecord.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        with Session(self._engine) as session:
            total = session.exec(count_statement).one()
            items = [_to_model(record) for record in session.exec(items_statement)]

        return VideoListModel(items=items, total=total, page=page, page_size=page_size)

    def metrics(self) -> VideoMetricsModel:
        """Return aggregate catalog statistics."""

        with Session(self._engine) as session:
            total = session.exec(select(func.count()).select_from(VideoRecord)).one()

            type_rows = session.exec(
                select(VideoRecord.type, func.count())
                .group_by(VideoRecord.type)
                .order_by(VideoRecord.type)
            ).all()
            type_counts = {video_type: count for video_type, count in type_rows}

            status_rows = session.exec(
                select(VideoRecord.status, func.count()).group_by(VideoRecord.status)
            ).all()
            status_counts: dict[str, int] = {}
            for status, count in status_rows:
                status_counts[status or PENDING_STATUS] = count

            pending_enrichment = session.exec(
                select(func.count()).select_from(VideoRecord).where(*_needs_enrichment())
            ).one()
            completed = session.exec(
                select(func.count()).select_from(VideoRecord).where(VideoRecord.is_completed == True)  # noqa: E712
            ).one()
            fresh = session.exec(
                select(func.count()).select_from(VideoRecord).where(VideoRecord.is_fresh == True)  # noqa: E712
            ).one()
            episodes = session.exec(select(func.count()).select_from(EpisodeRecord)).one()

        return VideoMetricsModel(
            total=total,
            type_counts=type_counts,
            status_counts=status_counts,
            pending_enrichment=pending_enrichment,
            completed=completed,
            fresh=fresh,
            episodes=episodes,
        )

    def _set_columns(self, video_id: int, **values) -> None:
        with self._lock, Session(self._engine) as session:
            record = session.get(VideoRecord, video_id)
            if record is None:
                raise LookupError(f"Video {video_id} not found")
            for name, value in values.items():
                setattr(record, name, value)
            session.add(record)
            session.commit()


def _to_model(record: VideoRecord) -> VideoModel:
    """Convert a video record into the public model."""

    return VideoModel.model_validate(record, from_attributes=True)
