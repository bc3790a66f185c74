"""Identifier diagnostics."""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_settings
from ..schemas import IdentifierModel
from ..services.idgen import parse_identifier
from ..settings import SyncSettings

router = APIRouter(prefix="/ids", tags=["ids"])


def describe_identifier(value: int, epoch_ms: int) -> IdentifierModel:
    parts = parse_identifier(value, epoch_ms=epoch_ms)
    return IdentifierModel(
        id=value,
        timestamp_ms=parts.timestamp_ms,
        issued_at=datetime.fromtimestamp(parts.timestamp_ms / 1000, tz=timezone.utc),
        shard=parts.shard,
        sequence=parts.sequence,
    )


@router.get("/{value}", response_model=IdentifierModel)
def parse_id(value: int, settings: SyncSettings = Depends(get_settings)) -> IdentifierModel:
    """Decode a generated identifier into issuance time, shard and sequence."""

    if value < 0:
        raise HTTPException(status_code=422, detail="Identifiers are non-negative")
    return describe_identifier(value, settings.id_epoch_ms)
