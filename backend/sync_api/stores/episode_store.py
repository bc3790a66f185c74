"""Record access for video episodes."""
from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..models import EpisodeRecord, VideoRecord
from ..schemas import EpisodeCreate, EpisodeModel

logger = logging.getLogger(__name__)


class EpisodeStore:
    """Append-only accessor for ``episodes`` rows."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def count_for_video(self, video_id: int) -> int:
        statement = (
            select(func.count())
            .select_from(EpisodeRecord)
            .where(EpisodeRecord.video_id == video_id)
        )
        with Session(self._engine) as session:
            return session.exec(statement).one()

    def last_for_video(self, video_id: int) -> EpisodeModel | None:
        """Return the most recently created episode of a video."""

        statement = (
            select(EpisodeRecord)
            .where(EpisodeRecord.video_id == video_id)
            .order_by(EpisodeRecord.created_at.desc(), EpisodeRecord.id.desc())
            .limit(1)
        )
        with Session(self._engine) as session:
            record = session.exec(statement).first()
            return _to_model(record) if record else None

    def exists_for_video(self, video_id: int) -> bool:
        statement = select(EpisodeRecord.id).where(EpisodeRecord.video_id == video_id).limit(1)
        with Session(self._engine) as session:
            return session.exec(statement).first() is not None

    def list_for_video(self, video_id: int) -> list[EpisodeModel]:
        statement = (
            select(EpisodeRecord)
            .where(EpisodeRecord.video_id == video_id)
            .order_by(EpisodeRecord.episode_number.asc())
        )
        with Session(self._engine) as session:
            records: Iterable[EpisodeRecord] = session.exec(statement)
            return [_to_model(record) for record in records]

    def append(self, video_id: int, episodes: Sequence[EpisodeCreate]) -> int:
        """Insert ``episodes`` and touch the parent video in one transaction.

        Returns the number of rows written. A unique-key collision means a
        concurrent run already appended the same numbers; the whole batch is
        rolled back and reported as ``0``.
        """

        if not episodes:
            return 0

        now = datetime.utcnow()
        with self._lock, Session(self._engine) as session:
            video = session.get(VideoRecord, video_id)
            if video is None:
                raise LookupError(f"Video {video_id} not found")
            for episode in episodes:
                session.add(
                    EpisodeRecord(
                        video_id=video_id,
                        episode_number=episode.episode_number,
                        channel=episode.channel,
                        name=episode.name,
                        play_urls=episode.play_urls,
                        created_at=now,
                        updated_at=now,
                    )
                )
            video.updated_at = now
            session.add(video)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info(
                    "Episodes for video %s already stored; skipping %d rows",
                    video_id,
                    len(episodes),
                )
                return 0
        return len(episodes)


def _to_model(record: EpisodeRecord) -> EpisodeModel:
    return EpisodeModel.model_validate(record, from_attributes=True)
