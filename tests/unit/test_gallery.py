# Unit tests for:
#   - Identity / FeatureVector / MatchAttempt / GalleryState models
#   - InMemoryBackend / FileBackend
#   - Persisted schema (encode_state / decode_state)
#   - GalleryStore (enroll, add_sample, queries, persistence, recovery)
#   - RecognitionLog (cap, ordering, summary)

from __future__ import annotations

import json
import math

import numpy as np
import pytest

from config.settings import GallerySettings
from core.gallery.gallery_store import GalleryStore, IdentityNotFoundError
from core.gallery.models import FeatureVector, GalleryState, Identity, MatchAttempt
from core.gallery.recognition_log import RecognitionLog, RecognitionStats
from core.gallery.schema import decode_state, encode_state
from core.gallery.storage import FileBackend, InMemoryBackend

DIM = 16


def _vec(value: float = 0.5, dim: int = DIM) -> np.ndarray:
    return np.full(dim, value, dtype=np.float32)


def _rand_vec(dim: int = DIM, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.random(dim).astype(np.float32)


@pytest.fixture
def alice(store) -> Identity:
    return store.enroll("1", "Alice")


@pytest.fixture
def populated_store(store) -> GalleryStore:
    """Alice with 2 samples, Bob with 1, and two log entries."""
    a = store.enroll("1", "Alice")
    b = store.enroll("2", "Bob")
    store.add_sample(a.id, _rand_vec(seed=1), 0.4, 0.1)
    store.add_sample(a.id, _rand_vec(seed=2), 0.5, 0.2)
    store.add_sample(b.id, _rand_vec(seed=3), 0.6, 0.3)
    log = RecognitionLog(store)
    log.record(a.id, 3.5, 96.5, True, timestamp=1_000)
    log.record(None, math.inf, 0.0, False, timestamp=2_000)
    return store


class TestModels:

    def test_identity_defaults(self):
        identity = Identity(name="Alice")
        assert len(identity.id) == 36
        assert identity.sample_count == 0
        assert identity.created_at > 0

    def test_identity_display_name_prefers_full_name(self):
        assert Identity(name="al", full_name="Alice Smith").display_name == "Alice Smith"
        assert Identity(name="al").display_name == "al"

    def test_ids_are_unique(self):
        assert Identity(name="a").id != Identity(name="a").id

    def test_feature_vector_dim(self):
        fv = FeatureVector(person_id="p", data=_vec(), brightness=0.5, contrast=0.0)
        assert fv.dim == DIM

    def test_match_attempt_is_immutable(self):
        attempt = MatchAttempt(person_id=None, distance=1.0, similarity=99.0, is_match=True)
        with pytest.raises(Exception):
            attempt.distance = 2.0

    def test_state_copy_isolates_identities(self):
        state = GalleryState(identities=[Identity(name="a")])
        copy = state.copy()
        copy.identities[0].sample_count = 5
        copy.identities.append(Identity(name="b"))
        assert state.identities[0].sample_count == 0
        assert len(state.identities) == 1

    def test_state_find_identity(self):
        identity = Identity(name="a")
        state = GalleryState(identities=[identity])
        assert state.find_identity(identity.id) is identity
        assert state.find_identity("missing") is None
        assert state.find_identity(None) is None

    def test_state_is_empty(self):
        assert GalleryState().is_empty


class TestBackends:

    def test_memory_roundtrip(self, memory_backend):
        memory_backend.put("k", b"data")
        assert memory_backend.get("k") == b"data"
        assert "k" in memory_backend
        assert memory_backend.keys() == ["k"]

    def test_memory_delete(self, memory_backend):
        memory_backend.put("k", b"data")
        assert memory_backend.delete("k") is True
        assert memory_backend.delete("k") is False
        assert memory_backend.get("k") is None

    def test_file_roundtrip(self, tmp_path):
        backend = FileBackend(tmp_path / "store")
        backend.put("faceRecDB_v1", b"{}")
        assert (tmp_path / "store" / "faceRecDB_v1.json").read_bytes() == b"{}"
        assert backend.get("faceRecDB_v1") == b"{}"
        assert backend.keys() == ["faceRecDB_v1"]

    def test_file_missing_key(self, tmp_path):
        backend = FileBackend(tmp_path)
        assert backend.get("absent") is None
        assert "absent" not in backend
        assert backend.delete("absent") is False

    def test_file_overwrite_leaves_no_temp_files(self, tmp_path):
        backend = FileBackend(tmp_path)
        backend.put("k", b"one")
        backend.put("k", b"two")
        assert backend.get("k") == b"two"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k.json"]

    def test_file_keys_on_missing_dir(self, tmp_path):
        assert FileBackend(tmp_path / "nowhere").keys() == []

    def test_file_rejects_unsafe_key(self, tmp_path):
        with pytest.raises(ValueError):
            FileBackend(tmp_path).put("../escape", b"x")


class TestSchema:

    def test_camel_case_layout(self, populated_store):
        doc = json.loads(encode_state(populated_store.reload()))
        assert set(doc) == {"people", "vectors", "logs"}
        person = doc["people"][0]
        assert {"id", "name", "fullName", "code", "sampleCount", "createdAt"} <= set(person)
        assert {"id", "personId", "data", "brightness", "contrast", "capturedAt"} <= set(doc["vectors"][0])
        assert {"id", "personId", "distance", "similarity", "isMatch", "timestamp"} <= set(doc["logs"][0])

    def test_infinite_distance_written_as_null(self, populated_store):
        doc = json.loads(encode_state(populated_store.reload()))
        assert doc["logs"][1]["distance"] is None
        assert doc["logs"][1]["personId"] is None

    def test_null_distance_read_as_inf(self):
        blob = json.dumps({
            "people": [],
            "vectors": [],
            "logs": [{"id": "x", "personId": None, "distance": None,
                      "similarity": 0, "isMatch": False, "timestamp": 5}],
        }).encode()
        state = decode_state(blob)
        assert math.isinf(state.attempts[0].distance)

    def test_roundtrip_is_lossless(self, populated_store):
        state = populated_store.reload()
        restored = decode_state(encode_state(state))

        assert [(i.id, i.name, i.full_name, i.code, i.sample_count, i.created_at)
                for i in restored.identities] == \
               [(i.id, i.name, i.full_name, i.code, i.sample_count, i.created_at)
                for i in state.identities]
        for a, b in zip(restored.vectors, state.vectors):
            assert (a.id, a.person_id, a.captured_at) == (b.id, b.person_id, b.captured_at)
            assert a.brightness == b.brightness
            assert a.contrast == b.contrast
            np.testing.assert_array_equal(a.data, b.data)
        assert restored.attempts == state.attempts

    def test_unknown_fields_ignored(self):
        blob = b'{"people": [], "vectors": [], "logs": [], "version": 3}'
        assert decode_state(blob).is_empty

    def test_missing_sections_default_empty(self):
        assert decode_state(b"{}").is_empty

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError):
            decode_state(b"{not json")


class TestGalleryStoreEnroll:

    def test_enroll_returns_identity(self, store):
        identity = store.enroll("42", "Alice")
        assert identity.name == "Alice"
        assert identity.full_name == "Alice"
        assert identity.code == "42"
        assert identity.sample_count == 0
        assert store.list_identities()[0].id == identity.id

    def test_enroll_without_code(self, store):
        assert store.enroll(None, "Alice").code is None
        assert store.enroll("", "Bob").code is None

    def test_enroll_strips_name(self, store):
        assert store.enroll("1", "  Alice  ").name == "Alice"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_enroll_empty_name_raises(self, store, name):
        with pytest.raises(ValueError):
            store.enroll("1", name)
        assert store.identity_count == 0

    def test_duplicate_enrollment_creates_distinct_identities(self, store):
        a = store.enroll("1", "Alice")
        b = store.enroll("1", "Alice")
        assert a.id != b.id
        assert store.identity_count == 2

    def test_first_access_initialises_blob(self, store, memory_backend):
        assert memory_backend.get(store.key) is None
        store.list_identities()
        assert decode_state(memory_backend.get(store.key)).is_empty


class TestGalleryStoreSamples:

    def test_add_sample_increments_count(self, store, alice):
        store.add_sample(alice.id, _vec(), 0.5, 0.0)
        store.add_sample(alice.id, _vec(0.2), 0.2, 0.0)
        assert store.get_identity(alice.id).sample_count == 2
        assert store.vector_count == 2

    def test_add_sample_returns_vector(self, store, alice):
        fv = store.add_sample(alice.id, _vec(), 0.5, 0.0)
        assert fv.person_id == alice.id
        assert fv.data.dtype == np.float32
        np.testing.assert_array_equal(fv.data, _vec())

    def test_sample_count_matches_vectors(self, populated_store):
        for identity in populated_store.list_identities():
            owned = [v for v in populated_store.list_vectors() if v.person_id == identity.id]
            assert identity.sample_count == len(owned)

    def test_unknown_identity_raises_and_writes_nothing(self, store, alice, memory_backend):
        before = memory_backend.get(store.key)
        with pytest.raises(IdentityNotFoundError):
            store.add_sample("missing-id", _vec(), 0.5, 0.0)
        assert store.vector_count == 0
        assert memory_backend.get(store.key) == before

    def test_identity_not_found_is_key_error(self, store):
        with pytest.raises(KeyError):
            store.add_sample("missing-id", _vec(), 0.5, 0.0)

    @pytest.mark.parametrize("bad", [
        np.zeros((4, 4), dtype=np.float32),
        np.array([0.5, np.nan], dtype=np.float32),
        np.array([0.5, 1.5], dtype=np.float32),
        np.array([-0.1, 0.5], dtype=np.float32),
        np.array([], dtype=np.float32),
        np.array(["a", "b"]),
    ])
    def test_invalid_vector_raises(self, store, alice, bad):
        with pytest.raises(ValueError):
            store.add_sample(alice.id, bad, 0.5, 0.0)
        assert store.get_identity(alice.id).sample_count == 0

    def test_length_must_match_existing_vectors(self, store, alice):
        store.add_sample(alice.id, _vec(dim=DIM), 0.5, 0.0)
        with pytest.raises(ValueError):
            store.add_sample(alice.id, _vec(dim=DIM + 1), 0.5, 0.0)

    def test_configured_feature_dim_enforced(self, memory_backend):
        store = GalleryStore(memory_backend, feature_dim=DIM)
        identity = store.enroll("1", "Alice")
        with pytest.raises(ValueError):
            store.add_sample(identity.id, _vec(dim=DIM * 2), 0.5, 0.0)

    def test_list_vectors_keeps_insertion_order(self, populated_store):
        vectors = populated_store.list_vectors()
        assert [v.brightness for v in vectors] == [0.4, 0.5, 0.6]


class TestGalleryStoreQueries:

    def test_list_identities_returns_copies(self, store, alice):
        store.list_identities()[0].sample_count = 99
        assert store.get_identity(alice.id).sample_count == 0

    def test_list_vectors_cannot_alter_gallery(self, store, alice):
        store.add_sample(alice.id, _vec(), 0.5, 0.0)
        listed = store.list_vectors()[0]
        with pytest.raises(ValueError):
            listed.data[:] = 2.0
        listed.brightness = 9.0
        stored = store.list_vectors()[0]
        assert stored.brightness == 0.5
        np.testing.assert_array_equal(stored.data, _vec())

    def test_add_sample_result_is_read_only(self, store, alice):
        fv = store.add_sample(alice.id, _vec(), 0.5, 0.0)
        with pytest.raises(ValueError):
            fv.data[0] = 2.0
        assert store.gallery_entries()[0].vector.data.max() <= 1.0

    def test_reloaded_vectors_are_read_only(self, store, alice, memory_backend):
        store.add_sample(alice.id, _vec(), 0.5, 0.0)
        reopened = GalleryStore(memory_backend)
        assert not reopened.list_vectors()[0].data.flags.writeable

    def test_get_identity_missing(self, store):
        assert store.get_identity("nope") is None

    def test_gallery_entries(self, populated_store):
        entries = populated_store.gallery_entries()
        assert [e.display_name for e in entries] == ["Alice", "Alice", "Bob"]
        assert all(e.identity_id is not None for e in entries)

    def test_orphaned_vector_resolves_to_unknown(self, store):
        with store.transaction() as state:
            state.vectors.append(
                FeatureVector(person_id="ghost", data=_vec(), brightness=0.5, contrast=0.0)
            )
        entry = store.gallery_entries()[0]
        assert entry.identity_id is None
        assert entry.display_name == "Unknown"
        assert store.gallery_entries(unknown_label="?")[0].display_name == "?"

    def test_list_attempts_most_recent_first(self, store):
        log = RecognitionLog(store)
        first = log.record(None, 10.0, 90.0, True, timestamp=100)
        tie_old = log.record(None, 11.0, 89.0, True, timestamp=300)
        middle = log.record(None, 12.0, 88.0, True, timestamp=200)
        tie_new = log.record(None, 13.0, 87.0, True, timestamp=300)
        ids = [a.id for a in store.list_attempts()]
        assert ids == [tie_new.id, tie_old.id, middle.id, first.id]

    def test_stats(self, populated_store):
        stats = populated_store.stats()
        assert stats["identities"] == 2
        assert stats["vectors"] == 3
        assert stats["attempts"] == 2
        assert stats["avg_samples"] == pytest.approx(1.5)

    def test_roster_records(self, store):
        a = store.enroll("7", "Alice")
        store.enroll(None, "Bob")
        store.add_sample(a.id, _vec(), 0.5, 0.0)
        records = store.roster_records()
        assert [(r.id, r.name, r.value) for r in records] == [(7, "Alice", 1), (2, "Bob", 0)]

    def test_len_and_repr(self, populated_store):
        assert len(populated_store) == 2
        assert "identities=2" in repr(populated_store)
        assert "vectors=3" in repr(populated_store)


class TestGalleryStorePersistence:

    def test_state_survives_new_store_instance(self, populated_store, memory_backend):
        other = GalleryStore(memory_backend)
        assert [i.id for i in other.list_identities()] == \
               [i.id for i in populated_store.list_identities()]
        for a, b in zip(other.list_vectors(), populated_store.list_vectors()):
            np.testing.assert_array_equal(a.data, b.data)
        assert other.list_attempts() == populated_store.list_attempts()

    def test_file_backend_roundtrip(self, tmp_path):
        store = GalleryStore(FileBackend(tmp_path))
        identity = store.enroll("1", "Alice")
        data = _rand_vec(dim=10_000, seed=9)
        store.add_sample(identity.id, data, float(data.mean()), float(data.std()))

        reopened = GalleryStore(FileBackend(tmp_path))
        assert reopened.get_identity(identity.id).sample_count == 1
        np.testing.assert_array_equal(reopened.list_vectors()[0].data, data)

    def test_infinite_attempt_survives_reload(self, populated_store, memory_backend):
        attempts = GalleryStore(memory_backend).list_attempts()
        assert math.isinf(attempts[0].distance)

    @pytest.mark.parametrize("blob", [b"not json", b'{"people": 5}', b"\xff\xfe\x00"])
    def test_corrupt_blob_resets_to_empty(self, memory_backend, blob):
        memory_backend.put("faceRecDB_v1", blob)
        store = GalleryStore(memory_backend)
        assert store.list_identities() == []
        assert store.list_vectors() == []
        assert decode_state(memory_backend.get("faceRecDB_v1")).is_empty

    def test_corrupt_blob_store_remains_usable(self, memory_backend):
        memory_backend.put("faceRecDB_v1", b"garbage")
        store = GalleryStore(memory_backend)
        identity = store.enroll("1", "Alice")
        assert GalleryStore(memory_backend).get_identity(identity.id) is not None

    def test_transaction_rolls_back_on_error(self, populated_store, memory_backend):
        before = memory_backend.get(populated_store.key)
        with pytest.raises(RuntimeError):
            with populated_store.transaction() as state:
                state.identities.clear()
                raise RuntimeError("abort")
        assert populated_store.identity_count == 2
        assert memory_backend.get(populated_store.key) == before

    def test_custom_key(self, memory_backend):
        store = GalleryStore(memory_backend, key="other")
        store.enroll("1", "Alice")
        assert memory_backend.keys() == ["other"]

    def test_clear(self, populated_store, memory_backend):
        populated_store.clear()
        assert populated_store.identity_count == 0
        assert populated_store.vector_count == 0
        assert populated_store.attempt_count == 0
        assert GalleryStore(memory_backend).is_empty

    def test_invalid_max_log_entries(self, memory_backend):
        with pytest.raises(ValueError):
            GalleryStore(memory_backend, max_log_entries=0)

    def test_from_settings_memory(self):
        store = GalleryStore.from_settings(GallerySettings(backend="memory", max_log_entries=10))
        assert isinstance(store.backend, InMemoryBackend)
        assert store.max_log_entries == 10

    def test_from_settings_file(self, tmp_path):
        store = GalleryStore.from_settings(
            GallerySettings(backend="file", store_dir=tmp_path, store_key="gallery")
        )
        store.enroll("1", "Alice")
        assert (tmp_path / "gallery.json").exists()


class TestRecognitionLog:

    def test_record_fields(self, store):
        attempt = RecognitionLog(store).record("pid", 12.5, 87.5, True, timestamp=123)
        assert attempt.person_id == "pid"
        assert attempt.distance == pytest.approx(12.5)
        assert attempt.similarity == pytest.approx(87.5)
        assert attempt.is_match is True
        assert attempt.timestamp == 123

    def test_default_timestamp_is_epoch_ms(self, store):
        attempt = RecognitionLog(store).record(None, 1.0, 99.0, True)
        assert attempt.timestamp > 1_600_000_000_000

    def test_cap_keeps_most_recent(self, store):
        log = RecognitionLog(store)
        for i in range(250):
            log.record(None, float(i), 0.0, False, timestamp=10_000 + i)
        attempts = store.list_attempts()
        assert len(attempts) == 200
        assert sorted(a.timestamp for a in attempts) == list(range(10_050, 10_250))

    def test_custom_cap(self, store):
        log = RecognitionLog(store, max_entries=3)
        for i in range(5):
            log.record(None, float(i), 0.0, False, timestamp=i)
        assert [a.timestamp for a in log.recent()] == [4, 3, 2]
        assert len(log) == 3

    def test_store_cap_used_by_default(self, memory_backend):
        log = RecognitionLog(GalleryStore(memory_backend, max_log_entries=5))
        assert log.max_entries == 5

    def test_invalid_cap(self, store):
        with pytest.raises(ValueError):
            RecognitionLog(store, max_entries=0)

    def test_recent_limit(self, store):
        log = RecognitionLog(store)
        for i in range(5):
            log.record(None, 1.0, 99.0, True, timestamp=i)
        assert [a.timestamp for a in log.recent(2)] == [4, 3]

    def test_summary_empty(self, store):
        stats = RecognitionLog(store).summary()
        assert stats == RecognitionStats(people=0, samples=0, attempts=0, matches=0, success_rate=0.0)

    def test_summary_counts(self, populated_store):
        stats = RecognitionLog(populated_store).summary()
        assert stats.people == 2
        assert stats.samples == 3
        assert stats.attempts == 2
        assert stats.matches == 1
        assert stats.success_rate == pytest.approx(50.0)

    def test_summary_uses_recent_window(self, store):
        log = RecognitionLog(store)
        for i in range(30):
            # Oldest five are the only matches
            log.record(None, 1.0, 99.0, i < 5, timestamp=i)
        stats = log.summary(window=25)
        assert stats.attempts == 25
        assert stats.matches == 0
        assert stats.success_rate == 0.0

    def test_summary_defaults_to_configured_window(self, store):
        log = RecognitionLog(store, stats_window=4)
        for i in range(10):
            log.record(None, 1.0, 99.0, i >= 8, timestamp=i)
        stats = log.summary()
        assert stats.attempts == 4
        assert stats.success_rate == pytest.approx(50.0)
        assert log.summary(window=10).attempts == 10

    def test_invalid_stats_window(self, store):
        with pytest.raises(ValueError):
            RecognitionLog(store, stats_window=0)

    def test_repr(self, store):
        assert "max=200" in repr(RecognitionLog(store))
