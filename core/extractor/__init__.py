from core.extractor.feature_extractor import (
    DEFAULT_CANONICAL_SIZE,
    FeatureExtractor,
    FeatureSample,
    vectorize_gray,
)

__all__ = [
    "DEFAULT_CANONICAL_SIZE",
    "FeatureExtractor",
    "FeatureSample",
    "vectorize_gray",
]
