# Unit tests for:
#   - FaceBox dataclass
#   - face_box_from_xywh / coerce_face_box helpers
#   - BaseFaceLocator abstract class
#   - AvailableLocator / UnavailableLocator
#   - HaarCascadeLocator (cascade mocked where detections are needed)

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest

from core.detector.base_detector import (
    AvailableLocator,
    BaseFaceLocator,
    FaceBox,
    UnavailableLocator,
    coerce_face_box,
    face_box_from_xywh,
)
from core.detector.haar_detector import HaarCascadeLocator


class TestFaceBox:

    def test_width_height(self, sample_face_box):
        assert sample_face_box.width == 200
        assert sample_face_box.height == 240

    def test_as_tuple(self, sample_face_box):
        assert sample_face_box.as_tuple == (100, 80, 300, 320)

    def test_inverted_box_is_empty(self):
        box = FaceBox(x1=50, y1=50, x2=10, y2=10)
        assert box.width == 0
        assert box.is_empty

    def test_zero_height_is_empty(self):
        assert FaceBox(x1=0, y1=5, x2=10, y2=5).is_empty
        assert not FaceBox(x1=0, y1=0, x2=1, y2=1).is_empty

    def test_frozen(self, sample_face_box):
        with pytest.raises(Exception):
            sample_face_box.x1 = 0

    def test_repr(self, sample_face_box):
        r = repr(sample_face_box)
        assert "100,80,300,320" in r
        assert "200x240" in r
        assert "0.920" in r


class TestFaceBoxHelpers:

    def test_from_xywh(self):
        box = face_box_from_xywh(10, 20, 30, 40, confidence=0.7)
        assert box.as_tuple == (10, 20, 40, 60)
        assert box.confidence == pytest.approx(0.7)

    def test_from_xywh_rounds(self):
        box = face_box_from_xywh(10.4, 20.6, 30.0, 40.0)
        assert box.as_tuple == (10, 21, 40, 61)

    def test_coerce_none(self):
        assert coerce_face_box(None) is None

    def test_coerce_face_box_passthrough(self, sample_face_box):
        assert coerce_face_box(sample_face_box) is sample_face_box

    @pytest.mark.parametrize("value", [(5, 6, 7, 8), [5, 6, 7, 8], np.array([5, 6, 7, 8])])
    def test_coerce_sequences(self, value):
        assert coerce_face_box(value).as_tuple == (5, 6, 12, 14)

    def test_coerce_empty_box_is_none(self):
        assert coerce_face_box((10, 10, 0, 20)) is None

    def test_coerce_wrong_length_raises(self):
        with pytest.raises(TypeError):
            coerce_face_box((1, 2, 3))

    def test_coerce_wrong_type_raises(self):
        with pytest.raises(TypeError):
            coerce_face_box("face")


class TestLocators:

    def test_base_is_abstract(self):
        with pytest.raises(TypeError):
            BaseFaceLocator()

    def test_available_locator_delegates(self, blank_image):
        fn = MagicMock(return_value=(1, 2, 3, 4))
        locator = AvailableLocator(fn)
        assert locator.is_available
        assert locator.locate(blank_image).as_tuple == (1, 2, 4, 6)
        fn.assert_called_once_with(blank_image)

    def test_available_locator_none(self, blank_image):
        assert AvailableLocator(lambda img: None).locate(blank_image) is None

    def test_available_locator_propagates_errors(self, blank_image):
        def boom(img):
            raise RuntimeError("no detector")

        with pytest.raises(RuntimeError):
            AvailableLocator(boom).locate(blank_image)

    def test_available_locator_requires_callable(self):
        with pytest.raises(TypeError):
            AvailableLocator("detect")

    def test_unavailable_locator(self, random_image):
        locator = UnavailableLocator()
        assert locator.is_available is False
        assert locator.locate(random_image) is None

    def test_repr(self):
        assert "available=False" in repr(UnavailableLocator())


class TestHaarCascadeLocator:

    def test_lazy_load(self):
        locator = HaarCascadeLocator()
        assert "loaded=False" in repr(locator)

    def test_bad_cascade_path_raises(self, tmp_path):
        locator = HaarCascadeLocator(cascade_path=str(tmp_path / "missing.xml"))
        with pytest.raises(RuntimeError):
            locator.load()

    def test_blank_image_has_no_face(self, blank_image):
        assert HaarCascadeLocator().locate(blank_image) is None

    def test_largest_detection_wins(self, blank_image):
        locator = HaarCascadeLocator()
        locator._cascade = MagicMock()
        locator._cascade.detectMultiScale.return_value = np.array(
            [[0, 0, 10, 10], [5, 5, 50, 40], [100, 100, 20, 20]]
        )
        box = locator.locate(blank_image)
        assert box.as_tuple == (5, 5, 55, 45)

    def test_no_detections(self, blank_image):
        locator = HaarCascadeLocator()
        locator._cascade = MagicMock()
        locator._cascade.detectMultiScale.return_value = ()
        assert locator.locate(blank_image) is None

    def test_grey_input_passed_to_cascade(self, random_image):
        locator = HaarCascadeLocator(min_size=(30, 30))
        locator._cascade = MagicMock()
        locator._cascade.detectMultiScale.return_value = ()
        locator.locate(random_image)
        gray = locator._cascade.detectMultiScale.call_args.args[0]
        assert gray.shape == random_image.shape[:2]
        assert locator._cascade.detectMultiScale.call_args.kwargs["minSize"] == (30, 30)
