# Pydantic v2 models for the persisted gallery blob.
#
# Layout (camelCase keys, one JSON document under a fixed key):
#
#   { people:  [ {id, name, fullName?, code?, sampleCount, createdAt} ],
#     vectors: [ {id, personId, data: number[D], brightness, contrast, capturedAt} ],
#     logs:    [ {id, personId|null, distance, similarity, isMatch, timestamp} ] }
#
# An infinite log distance (attempt against an empty gallery) is written
# as null and read back as +inf.

from __future__ import annotations

import math
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from core.gallery.models import FeatureVector, GalleryState, Identity, MatchAttempt


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PersonRecord(_Record):
    id: str
    name: str
    full_name: Optional[str] = Field(None, alias="fullName")
    code: Optional[str] = None
    sample_count: int = Field(0, alias="sampleCount", ge=0)
    created_at: int = Field(0, alias="createdAt")


class VectorRecord(_Record):
    id: str
    person_id: str = Field(..., alias="personId")
    data: List[float]
    brightness: float
    contrast: float
    captured_at: int = Field(0, alias="capturedAt")


class LogRecord(_Record):
    id: str
    person_id: Optional[str] = Field(None, alias="personId")
    distance: Optional[float] = None
    similarity: float = 0.0
    is_match: bool = Field(False, alias="isMatch")
    timestamp: int = 0


class GalleryDocument(_Record):
    people: List[PersonRecord] = Field(default_factory=list)
    vectors: List[VectorRecord] = Field(default_factory=list)
    logs: List[LogRecord] = Field(default_factory=list)


# ============================================================
# Conversion helpers
# ============================================================

def document_from_state(state: GalleryState) -> GalleryDocument:
    return GalleryDocument(
        people=[
            PersonRecord(
                id=p.id,
                name=p.name,
                full_name=p.full_name,
                code=p.code,
                sample_count=p.sample_count,
                created_at=p.created_at,
            )
            for p in state.identities
        ],
        vectors=[
            VectorRecord(
                id=v.id,
                person_id=v.person_id,
                data=v.data.tolist(),
                brightness=v.brightness,
                contrast=v.contrast,
                captured_at=v.captured_at,
            )
            for v in state.vectors
        ],
        logs=[
            LogRecord(
                id=a.id,
                person_id=a.person_id,
                distance=a.distance if math.isfinite(a.distance) else None,
                similarity=a.similarity,
                is_match=a.is_match,
                timestamp=a.timestamp,
            )
            for a in state.attempts
        ],
    )


def _frozen_array(values) -> np.ndarray:
    data = np.array(values, dtype=np.float32)
    data.setflags(write=False)
    return data


def state_from_document(doc: GalleryDocument) -> GalleryState:
    return GalleryState(
        identities=[
            Identity(
                id=p.id,
                name=p.name,
                full_name=p.full_name,
                code=p.code,
                sample_count=p.sample_count,
                created_at=p.created_at,
            )
            for p in doc.people
        ],
        vectors=[
            FeatureVector(
                id=v.id,
                person_id=v.person_id,
                data=_frozen_array(v.data),
                brightness=v.brightness,
                contrast=v.contrast,
                captured_at=v.captured_at,
            )
            for v in doc.vectors
        ],
        attempts=[
            MatchAttempt(
                id=r.id,
                person_id=r.person_id,
                distance=r.distance if r.distance is not None else math.inf,
                similarity=r.similarity,
                is_match=r.is_match,
                timestamp=r.timestamp,
            )
            for r in doc.logs
        ],
    )


def encode_state(state: GalleryState) -> bytes:
    """Serialise a GalleryState to the camelCase JSON blob."""
    return document_from_state(state).model_dump_json(by_alias=True).encode("utf-8")


def decode_state(blob: bytes) -> GalleryState:
    """
    Parse a JSON blob into a GalleryState.

    Raises:
        pydantic.ValidationError: If the blob is not valid JSON or does not
                                  match the layout (a ValueError subclass).
    """
    return state_from_document(GalleryDocument.model_validate_json(blob))
