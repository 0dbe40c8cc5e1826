"""Rendering, feature extraction and similarity scoring."""

from .baseline import BaselineManager
from .features import FeatureExtractor
from .similarity import SimilarityEngine, SimilaritySettings

__all__ = [
    "BaselineManager",
    "FeatureExtractor",
    "SimilarityEngine",
    "SimilaritySettings",
]
