"""Similarity scoring between the baseline and a rendered target."""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

import numpy as np
from PIL import Image
from sklearn.feature_extraction.text import TfidfVectorizer

from ..errors import SimilarityComputeFailure
from .models import Baseline, DomCounts, FeatureSet, Raster, SimilarityResult, Snapshot, ThreatLevel

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: dict[str, float] = {
    "text": 0.30,
    "visual": 0.30,
    "dom": 0.20,
    "keyword": 0.20,
}

# Largest possible YIQ delta between two colours (pixelmatch metric).
MAX_YIQ_DELTA = 35215.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


@dataclass(frozen=True)
class SimilaritySettings:
    """Calibration knobs for the similarity engine."""

    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    high_threshold: int = 75
    medium_threshold: int = 50
    visual_pixel_tolerance: float = 0.1
    visual_mismatch_score: int = 50

    def __post_init__(self):
        missing = set(DEFAULT_WEIGHTS) - set(self.weights)
        unknown = set(self.weights) - set(DEFAULT_WEIGHTS)
        if missing or unknown:
            raise ValueError(
                f"weights must define exactly {sorted(DEFAULT_WEIGHTS)} "
                f"(missing={sorted(missing)}, unknown={sorted(unknown)})"
            )
        if any(w < 0 for w in self.weights.values()):
            raise ValueError("weights must be non-negative")
        if not math.isclose(sum(self.weights.values()), 1.0, abs_tol=1e-6):
            raise ValueError(f"weights must sum to 1.0, got {sum(self.weights.values()):.4f}")
        if not 0 <= self.medium_threshold <= self.high_threshold <= 100:
            raise ValueError("thresholds must satisfy 0 <= medium <= high <= 100")
        if not 0.0 <= self.visual_pixel_tolerance <= 1.0:
            raise ValueError("visual_pixel_tolerance must be within [0, 1]")
        if not 0 <= self.visual_mismatch_score <= 100:
            raise ValueError("visual_mismatch_score must be within [0, 100]")
        # frozen settings are shared across checks
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


def _decode_rgba(raster: Raster) -> np.ndarray:
    try:
        with Image.open(io.BytesIO(raster.png)) as img:
            rgba = img.convert("RGBA")
            return np.asarray(rgba, dtype=np.float64)
    except Exception as exc:
        raise SimilarityComputeFailure(f"cannot decode screenshot: {exc}") from exc


def _blend_white(rgba: np.ndarray) -> np.ndarray:
    alpha = rgba[..., 3:4] / 255.0
    return 255.0 + (rgba[..., :3] - 255.0) * alpha


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


# 3x3 neighbourhood, column by column
_NEIGHBOURS = [(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)]


def _edge_bonus(ys: np.ndarray, xs: np.ndarray, height: int, width: int) -> np.ndarray:
    return ((xs == 0) | (xs == width - 1) | (ys == 0) | (ys == height - 1)).astype(np.int64)


def _many_siblings(rgba: np.ndarray) -> np.ndarray:
    """Pixels with more than two identical neighbours (image border counts as one)."""
    height, width = rgba.shape[:2]
    padded = np.pad(rgba, ((1, 1), (1, 1), (0, 0)), constant_values=np.nan)
    ys, xs = np.indices((height, width))
    count = _edge_bonus(ys, xs, height, width)
    for dx, dy in _NEIGHBOURS:
        shifted = padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]
        count += np.all(shifted == rgba, axis=2)
    return count > 2


def _antialiased(
    brightness: np.ndarray,
    siblings: np.ndarray,
    other_siblings: np.ndarray,
    ys: np.ndarray,
    xs: np.ndarray,
) -> np.ndarray:
    """pixelmatch's anti-aliasing test for the candidate pixels (ys, xs).

    A pixel is anti-aliased when it has both a darker and a brighter
    neighbour, few equal neighbours, and the darkest or brightest neighbour
    sits in a flat region in both images.
    """
    height, width = brightness.shape
    padded = np.pad(brightness, 1, constant_values=np.nan)
    center = brightness[ys, xs]
    zeroes = _edge_bonus(ys, xs, height, width)
    low = np.zeros(len(ys))
    high = np.zeros(len(ys))
    low_y, low_x = ys.copy(), xs.copy()
    high_y, high_x = ys.copy(), xs.copy()

    for dx, dy in _NEIGHBOURS:
        delta = center - padded[ys + 1 + dy, xs + 1 + dx]
        valid = ~np.isnan(delta)
        zero = valid & (delta == 0)
        zeroes += zero
        darker = valid & ~zero & (delta < low)
        brighter = valid & ~zero & (delta > high)
        low[darker] = delta[darker]
        low_y[darker], low_x[darker] = ys[darker] + dy, xs[darker] + dx
        high[brighter] = delta[brighter]
        high_y[brighter], high_x[brighter] = ys[brighter] + dy, xs[brighter] + dx

    candidate = (zeroes <= 2) & (low != 0) & (high != 0)
    flat_low = siblings[low_y, low_x] & other_siblings[low_y, low_x]
    flat_high = siblings[high_y, high_x] & other_siblings[high_y, high_x]
    return candidate & (flat_low | flat_high)


def count_differing_pixels(
    a: np.ndarray, b: np.ndarray, tolerance: float, include_antialiased: bool = False
) -> int:
    """Count pixels whose perceptual colour distance exceeds the tolerance.

    Anti-aliased edge pixels are not counted unless include_antialiased is set,
    matching pixelmatch's default.
    """
    y1, i1, q1 = _yiq(_blend_white(a))
    y2, i2, q2 = _yiq(_blend_white(b))
    delta = 0.5053 * (y1 - y2) ** 2 + 0.299 * (i1 - i2) ** 2 + 0.1957 * (q1 - q2) ** 2
    max_delta = MAX_YIQ_DELTA * tolerance * tolerance
    differing = delta > max_delta
    if include_antialiased or not differing.any():
        return int(np.count_nonzero(differing))

    ys, xs = np.nonzero(differing)
    siblings_a = _many_siblings(a)
    siblings_b = _many_siblings(b)
    antialiased = _antialiased(y1, siblings_a, siblings_b, ys, xs) | _antialiased(
        y2, siblings_b, siblings_a, ys, xs
    )
    return int(np.count_nonzero(~antialiased))


class SimilarityEngine:
    """Pure computation of the four sub-scores, composite and threat level."""

    def __init__(self, settings: SimilaritySettings | None = None):
        self.settings = settings or SimilaritySettings()

    def text_similarity(self, baseline_text: str, target_text: str) -> int:
        """TF-IDF cosine similarity over the two-document corpus."""
        vectorizer = TfidfVectorizer(stop_words="english", norm=None)
        try:
            matrix = vectorizer.fit_transform([baseline_text or "", target_text or ""])
        except ValueError:
            # Empty vocabulary: both documents blank or stop words only.
            return 0
        vectors = matrix.toarray()
        mag_a = float(np.linalg.norm(vectors[0]))
        mag_b = float(np.linalg.norm(vectors[1]))
        if mag_a == 0 or mag_b == 0:
            return 0
        cosine = float(np.dot(vectors[0], vectors[1])) / (mag_a * mag_b)
        return clamp_score(cosine * 100)

    def visual_similarity(self, baseline: Raster, target: Raster) -> int:
        try:
            a = _decode_rgba(baseline)
            b = _decode_rgba(target)
        except SimilarityComputeFailure as exc:
            logger.warning("Visual similarity unavailable: %s", exc)
            return 0

        if a.shape != b.shape:
            return self.settings.visual_mismatch_score

        total = a.shape[0] * a.shape[1]
        if total == 0:
            return 0
        diff = count_differing_pixels(a, b, self.settings.visual_pixel_tolerance)
        return clamp_score((1 - diff / total) * 100)

    def dom_similarity(self, baseline: DomCounts, target: DomCounts) -> int:
        total = 0.0
        for metric in DomCounts.METRICS:
            a = getattr(baseline, metric)
            b = getattr(target, metric)
            if a == 0 and b == 0:
                total += 100
            elif a == 0 or b == 0:
                continue
            else:
                total += max(0.0, (1 - abs(a - b) / max(a, b)) * 100)
        return clamp_score(total / len(DomCounts.METRICS))

    def keyword_similarity(self, baseline: dict[str, int], target: dict[str, int]) -> int:
        terms = [term for term, count in baseline.items() if count > 0]
        if not terms:
            return 0
        matches = sum(1 for term in terms if target.get(term, 0) > 0)
        return clamp_score(matches / len(terms) * 100)

    def composite(self, text: int, visual: int, dom: int, keyword: int) -> int:
        w = self.settings.weights
        return clamp_score(
            text * w["text"] + visual * w["visual"] + dom * w["dom"] + keyword * w["keyword"]
        )

    def threat_level(self, composite: int) -> ThreatLevel:
        if composite >= self.settings.high_threshold:
            return ThreatLevel.HIGH
        if composite >= self.settings.medium_threshold:
            return ThreatLevel.MEDIUM
        return ThreatLevel.LOW

    def score(
        self,
        baseline_snapshot: Snapshot,
        baseline_features: FeatureSet,
        target_snapshot: Snapshot,
        target_features: FeatureSet,
    ) -> SimilarityResult:
        text = self.text_similarity(baseline_snapshot.visible_text, target_snapshot.visible_text)
        visual = self.visual_similarity(baseline_snapshot.screenshot, target_snapshot.screenshot)
        dom = self.dom_similarity(baseline_features.dom_counts, target_features.dom_counts)
        keyword = self.keyword_similarity(
            baseline_features.brand_keywords, target_features.brand_keywords
        )
        composite = self.composite(text, visual, dom, keyword)
        return SimilarityResult(
            text_similarity=text,
            visual_similarity=visual,
            dom_similarity=dom,
            keyword_similarity=keyword,
            composite=composite,
            threat_level=self.threat_level(composite),
        )

    def score_baseline(
        self, baseline: Baseline, snapshot: Snapshot, features: FeatureSet
    ) -> SimilarityResult:
        return self.score(baseline.snapshot, baseline.features, snapshot, features)
