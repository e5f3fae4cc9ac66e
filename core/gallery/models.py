# ============================================================
# Vector Face ID
# core/gallery/models.py
# ============================================================
# Domain records held by the gallery:
#
#   Identity: one enrolled person
#   FeatureVector: one captured sample, owned by an Identity
#   MatchAttempt: one recognition decision (audit log entry)
#   GalleryState: the aggregate of all three; unit of persistence
# ============================================================

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Identity:
    """
    One enrolled person.

    Attributes:
        name:          Display name.
        id:            UUID string assigned at enrollment; never reused.
        code:          Optional external code (e.g. a numeric staff ID).
        full_name:     Explicit full name; mirrors *name* for new records.
        sample_count:  Number of FeatureVectors owned by this identity.
        created_at:    Enrollment time in epoch milliseconds.
    """

    name: str
    id: str = field(default_factory=new_id)
    code: Optional[str] = None
    full_name: Optional[str] = None
    sample_count: int = 0
    created_at: int = field(default_factory=now_ms)

    @property
    def display_name(self) -> str:
        return self.full_name or self.name

    def __repr__(self) -> str:
        return (
            f"Identity(name={self.display_name!r}, "
            f"code={self.code!r}, "
            f"samples={self.sample_count}, "
            f"id={self.id[:8]}...)"
        )


@dataclass(eq=False)
class FeatureVector:
    """
    One captured sample.

    Attributes:
        person_id:    ID of the owning Identity.
        data:         (D,) float32 array of normalised intensities in [0, 1].
        brightness:   Mean intensity of *data*.
        contrast:     Population standard deviation of *data*.
        id:           UUID string.
        captured_at:  Capture time in epoch milliseconds.
    """

    person_id: str
    data: np.ndarray
    brightness: float
    contrast: float
    id: str = field(default_factory=new_id)
    captured_at: int = field(default_factory=now_ms)

    @property
    def dim(self) -> int:
        return int(self.data.shape[0])

    def __repr__(self) -> str:
        return (
            f"FeatureVector(person={self.person_id[:8]}..., "
            f"dim={self.dim}, "
            f"brightness={self.brightness:.3f}, "
            f"contrast={self.contrast:.3f})"
        )


@dataclass(frozen=True)
class MatchAttempt:
    """
    An immutable record of one recognition decision.

    Attributes:
        person_id:   Matched identity ID, or None when nothing matched.
        distance:    Decision distance (smoothed in live mode, raw otherwise).
                     ``inf`` when the gallery was empty.
        similarity:  Display percentage derived from *distance*.
        is_match:    Whether the decision accepted the best candidate.
        timestamp:   Decision time in epoch milliseconds.
        id:          UUID string.
    """

    person_id: Optional[str]
    distance: float
    similarity: float
    is_match: bool
    timestamp: int = field(default_factory=now_ms)
    id: str = field(default_factory=new_id)


@dataclass
class GalleryState:
    """All identities, vectors and attempts: the whole persisted aggregate."""

    identities: List[Identity] = field(default_factory=list)
    vectors: List[FeatureVector] = field(default_factory=list)
    attempts: List[MatchAttempt] = field(default_factory=list)

    def find_identity(self, identity_id: Optional[str]) -> Optional[Identity]:
        if identity_id is None:
            return None
        for identity in self.identities:
            if identity.id == identity_id:
                return identity
        return None

    def identity_index(self) -> Dict[str, Identity]:
        return {identity.id: identity for identity in self.identities}

    def copy(self) -> "GalleryState":
        """
        Copy for a load-mutate-save unit.

        Identities are copied because ``sample_count`` is mutated in place;
        vectors and attempts are never mutated after creation and are shared.
        """
        return GalleryState(
            identities=[dataclasses.replace(i) for i in self.identities],
            vectors=list(self.vectors),
            attempts=list(self.attempts),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.identities or self.vectors or self.attempts)
