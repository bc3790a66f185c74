"""Read-only catalog endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_episode_store, get_video_store
from ..schemas import EpisodeModel, VideoListModel, VideoMetricsModel, VideoModel, VideoType
from ..stores.episode_store import EpisodeStore
from ..stores.video_store import VideoStore

router = APIRouter(prefix="/videos", tags=["videos"])


@router.get("", response_model=VideoListModel)
def list_videos(
    video_type: VideoType | None = Query(default=None, alias="type"),
    status: str | None = Query(
        default=None,
        pattern="^(pending|visible|hidden)$",
        description="Filter by visibility; 'pending' selects videos without a status.",
    ),
    query: str | None = Query(default=None, min_length=1, description="Case-insensitive title search."),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    store: VideoStore = Depends(get_video_store),
) -> VideoListModel:
    return store.list(
        video_type=video_type,
        status=status,
        query=query,
        page=page,
        page_size=page_size,
    )


@router.get("/metrics", response_model=VideoMetricsModel)
def video_metrics(store: VideoStore = Depends(get_video_store)) -> VideoMetricsModel:
    """Return aggregate catalog statistics."""

    return store.metrics()


@router.get("/{video_id}", response_model=VideoModel)
def get_video(video_id: int, store: VideoStore = Depends(get_video_store)) -> VideoModel:
    video = store.find_by_id(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


@router.get("/{video_id}/episodes", response_model=list[EpisodeModel])
def list_episodes(
    video_id: int,
    videos: VideoStore = Depends(get_video_store),
    episodes: EpisodeStore = Depends(get_episode_store),
) -> list[EpisodeModel]:
    """Return the episodes of a video ordered by episode number."""

    if videos.find_by_id(video_id) is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return episodes.list_for_video(video_id)
