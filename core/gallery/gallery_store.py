# ============================================================
# Vector Face ID
# core/gallery/gallery_store.py
# ============================================================
# Repository for enrolled identities, their feature vectors and
# the recognition log.
#
# Features:
#   - Enrollment (duplicates allowed; dedup is a caller concern)
#   - Atomic sample append + sample_count increment
#   - Whole-blob persistence through an injected StorageBackend
#   - Corrupt / missing blob → empty state, store re-initialised
#   - Gallery view for the matcher with orphan → "Unknown" fallback
#   - Roster export as id,name,value records
# ============================================================

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, List, NamedTuple, Optional

import numpy as np
from pydantic import ValidationError

from core.gallery.models import FeatureVector, GalleryState, Identity, MatchAttempt
from core.gallery.schema import decode_state, encode_state
from core.gallery.storage import FileBackend, InMemoryBackend, StorageBackend
from utils.csv_records import RecordItem
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_STORE_KEY = "faceRecDB_v1"
DEFAULT_MAX_LOG_ENTRIES = 200


class IdentityNotFoundError(KeyError):
    """Raised when an operation references an identity that does not exist."""

    def __init__(self, identity_id: str) -> None:
        self.identity_id = identity_id
        super().__init__(f"Identity not found: {identity_id!r}")


class GalleryEntry(NamedTuple):
    """One gallery vector as seen by the matcher."""

    identity_id: Optional[str]
    display_name: str
    vector: FeatureVector


class GalleryStore:
    """
    Load-mutate-save repository for the whole gallery aggregate.

    Every mutation runs inside ``transaction()``: the current state is
    copied, mutated and written back as one blob. A mutation that raises
    leaves both the backend and the in-process view untouched.

    Quick usage::

        store = GalleryStore(FileBackend("data"))
        alice = store.enroll("1", "Alice")
        store.add_sample(alice.id, sample.vector, sample.brightness, sample.contrast)
        store.list_identities()[0].sample_count   # 1

    Args:
        backend:          Byte store holding the blob (in-memory by default).
        key:              Fixed key of the blob inside the backend.
        max_log_entries:  Cap on retained recognition attempts.
        feature_dim:      Required vector length. When None, the length of
                          the first stored vector becomes the requirement.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        key: str = DEFAULT_STORE_KEY,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        feature_dim: Optional[int] = None,
    ) -> None:
        if max_log_entries < 1:
            raise ValueError(f"max_log_entries must be >= 1, got {max_log_entries}.")
        self.backend = backend if backend is not None else InMemoryBackend()
        self.key = key
        self.max_log_entries = int(max_log_entries)
        self.feature_dim = int(feature_dim) if feature_dim is not None else None

        self._state: Optional[GalleryState] = None
        self._lock = threading.RLock()

        logger.debug(f"GalleryStore created | backend={self.backend!r} | key={key!r}")

    @classmethod
    def from_settings(cls, gallery_settings=None, feature_dim: Optional[int] = None) -> "GalleryStore":
        """Build a store from ``settings.gallery`` (file or in-memory backend)."""
        if gallery_settings is None:
            from config.settings import settings
            gallery_settings = settings.gallery

        if gallery_settings.backend == "memory":
            backend: StorageBackend = InMemoryBackend()
        else:
            backend = FileBackend(gallery_settings.store_dir)
        return cls(
            backend=backend,
            key=gallery_settings.store_key,
            max_log_entries=gallery_settings.max_log_entries,
            feature_dim=feature_dim,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def reload(self) -> GalleryState:
        """
        Read the blob from the backend, replacing the in-process view.

        An absent or unparsable blob yields an empty state, which is
        written back immediately.
        """
        with self._lock:
            raw = self.backend.get(self.key)
            state: Optional[GalleryState] = None
            if raw is not None:
                try:
                    state = decode_state(raw)
                except (ValidationError, ValueError, UnicodeDecodeError) as exc:
                    logger.warning(f"Gallery blob {self.key!r} is corrupt, re-initialising: {exc}")
            if state is None:
                state = GalleryState()
                self.backend.put(self.key, encode_state(state))
                logger.info(f"Gallery store initialised under key {self.key!r}")
            self._state = state
            return state

    def _current(self) -> GalleryState:
        if self._state is None:
            return self.reload()
        return self._state

    @contextmanager
    def transaction(self) -> Iterator[GalleryState]:
        """
        Yield a mutable copy of the state and persist it on clean exit.
        """
        with self._lock:
            working = self._current().copy()
            yield working
            self.backend.put(self.key, encode_state(working))
            self._state = working

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def enroll(self, code: Optional[str], display_name: str) -> Identity:
        """
        Create a new identity.

        No uniqueness check is made on *code* or *display_name*; enrolling
        the same person twice creates two distinct identities.

        Raises:
            ValueError: If *display_name* is empty.
        """
        name = (display_name or "").strip()
        if not name:
            raise ValueError("Display name must not be empty.")
        code = code.strip() if code else None

        identity = Identity(name=name, full_name=name, code=code or None)
        with self.transaction() as state:
            state.identities.append(identity)

        logger.info(f"Enrolled identity {name!r} (code={code!r}, id={identity.id[:8]}...)")
        return replace(identity)

    def add_sample(
        self,
        identity_id: str,
        vector: np.ndarray,
        brightness: float,
        contrast: float,
    ) -> FeatureVector:
        """
        Append one feature vector and bump the owner's sample count.

        Raises:
            IdentityNotFoundError: If *identity_id* is not enrolled.
            ValueError:            If the vector is malformed.
        """
        data = self._validate_vector(vector)

        with self.transaction() as state:
            identity = state.find_identity(identity_id)
            if identity is None:
                raise IdentityNotFoundError(identity_id)
            required = self.feature_dim or (state.vectors[0].dim if state.vectors else None)
            if required is not None and data.shape[0] != required:
                raise ValueError(
                    f"Vector length {data.shape[0]} does not match gallery dimension {required}."
                )
            fv = FeatureVector(
                person_id=identity.id,
                data=data,
                brightness=float(brightness),
                contrast=float(contrast),
            )
            state.vectors.append(fv)
            identity.sample_count += 1

        logger.debug(f"Sample #{identity.sample_count} added to {identity.display_name!r}")
        return replace(fv)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_identities(self) -> List[Identity]:
        with self._lock:
            return [replace(i) for i in self._current().identities]

    def list_vectors(self) -> List[FeatureVector]:
        """Copies of the stored vectors; their ``data`` arrays are read-only."""
        with self._lock:
            return [replace(v) for v in self._current().vectors]

    def list_attempts(self) -> List[MatchAttempt]:
        """Recognition attempts, most recent first (ties: latest recorded first)."""
        with self._lock:
            attempts = list(reversed(self._current().attempts))
        return sorted(attempts, key=lambda a: a.timestamp, reverse=True)

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        with self._lock:
            identity = self._current().find_identity(identity_id)
            return replace(identity) if identity is not None else None

    def gallery_entries(self, unknown_label: str = "Unknown") -> List[GalleryEntry]:
        """
        Join every vector with its owner's display name.

        Vectors whose owner does not exist (externally edited blob) are
        reported with identity_id None and *unknown_label*.
        """
        with self._lock:
            state = self._current()
            index = state.identity_index()
            entries: List[GalleryEntry] = []
            for v in state.vectors:
                owner = index.get(v.person_id)
                if owner is None:
                    entries.append(GalleryEntry(None, unknown_label, v))
                else:
                    entries.append(GalleryEntry(owner.id, owner.display_name, v))
            return entries

    def roster_records(self) -> List[RecordItem]:
        """
        Export identities as ``id,name,value`` records.

        id is the numeric code when there is one, otherwise the 1-based
        enrollment position; value is the sample count.
        """
        records = []
        for pos, identity in enumerate(self.list_identities(), start=1):
            code = identity.code or ""
            rid = int(code) if code.isdigit() else pos
            records.append(RecordItem(id=rid, name=identity.display_name, value=identity.sample_count))
        return records

    @property
    def identity_count(self) -> int:
        with self._lock:
            return len(self._current().identities)

    @property
    def vector_count(self) -> int:
        with self._lock:
            return len(self._current().vectors)

    @property
    def attempt_count(self) -> int:
        with self._lock:
            return len(self._current().attempts)

    @property
    def is_empty(self) -> bool:
        return self.vector_count == 0

    def stats(self) -> dict:
        """Summary counts for the gallery."""
        with self._lock:
            state = self._current()
            counts = [i.sample_count for i in state.identities]
            return {
                "identities":       len(state.identities),
                "vectors":          len(state.vectors),
                "attempts":         len(state.attempts),
                "avg_samples":      round(sum(counts) / len(counts), 2) if counts else 0.0,
                "max_log_entries":  self.max_log_entries,
            }

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Wipe every identity, vector and attempt."""
        with self.transaction() as state:
            removed = len(state.identities)
            state.identities.clear()
            state.vectors.clear()
            state.attempts.clear()
        logger.warning(f"Gallery cleared ({removed} identities removed).")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_vector(vector: np.ndarray) -> np.ndarray:
        if not isinstance(vector, np.ndarray):
            vector = np.asarray(vector)
        if not np.issubdtype(vector.dtype, np.number):
            raise ValueError(f"Vector must be numeric, got dtype {vector.dtype}.")
        data = vector.astype(np.float32).reshape(-1)
        if vector.ndim != 1:
            raise ValueError(f"Vector must be 1-D, got shape {vector.shape}.")
        if data.size == 0:
            raise ValueError("Vector is empty.")
        if not np.isfinite(data).all():
            raise ValueError("Vector contains NaN or Inf values.")
        if data.min() < 0.0 or data.max() > 1.0:
            raise ValueError("Vector values must lie in [0, 1].")
        data.setflags(write=False)
        return data

    def __len__(self) -> int:
        return self.identity_count

    def __repr__(self) -> str:
        return (
            f"GalleryStore("
            f"identities={self.identity_count}, "
            f"vectors={self.vector_count}, "
            f"backend={self.backend!r})"
        )
