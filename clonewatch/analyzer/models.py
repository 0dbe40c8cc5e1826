"""Snapshot, feature and result models."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

from PIL import Image


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Raster:
    """Fixed-size screenshot encoded as PNG."""

    width: int
    height: int
    png: bytes = field(repr=False)

    @classmethod
    def from_png(cls, png: bytes) -> "Raster":
        """Wrap PNG bytes, reading the dimensions from the image header."""
        with Image.open(io.BytesIO(png)) as img:
            width, height = img.size
        return cls(width=width, height=height, png=png)


@dataclass(frozen=True)
class Snapshot:
    """Rendered page captured for one URL at one point in time."""

    source_url: str
    html: str = field(repr=False)
    visible_text: str = field(repr=False)
    screenshot: Raster
    captured_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class DomCounts:
    """Structural element counts of a parsed document."""

    METRICS: ClassVar[tuple[str, ...]] = (
        "meta_tags",
        "links",
        "images",
        "forms",
        "inputs",
        "buttons",
    )

    meta_tags: int = 0
    links: int = 0
    images: int = 0
    forms: int = 0
    inputs: int = 0
    buttons: int = 0

    def as_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in self.METRICS}

    @classmethod
    def from_dict(cls, data: dict) -> "DomCounts":
        values = {}
        for name in cls.METRICS:
            try:
                values[name] = max(0, int(data.get(name) or 0))
            except (TypeError, ValueError):
                values[name] = 0
        return cls(**values)


@dataclass(frozen=True)
class FormField:
    type: str
    name: str
    placeholder: str

    def as_dict(self) -> dict[str, str]:
        return {"type": self.type, "name": self.name, "placeholder": self.placeholder}


@dataclass(frozen=True)
class FeatureSet:
    """Comparable attributes derived from a Snapshot."""

    brand_keywords: dict[str, int] = field(default_factory=dict)
    dom_counts: DomCounts = field(default_factory=DomCounts)
    form_fields: tuple[FormField, ...] = ()
    title: str = ""

    def as_dict(self) -> dict:
        return {
            "brand_keywords": dict(self.brand_keywords),
            "dom_counts": self.dom_counts.as_dict(),
            "form_fields": [f.as_dict() for f in self.form_fields],
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeatureSet":
        keywords = {
            str(term): int(count)
            for term, count in (data.get("brand_keywords") or {}).items()
        }
        fields = tuple(
            FormField(
                type=str(f.get("type") or "text"),
                name=str(f.get("name") or ""),
                placeholder=str(f.get("placeholder") or ""),
            )
            for f in (data.get("form_fields") or [])
        )
        return cls(
            brand_keywords=keywords,
            dom_counts=DomCounts.from_dict(data.get("dom_counts") or {}),
            form_fields=fields,
            title=str(data.get("title") or ""),
        )


@dataclass(frozen=True)
class Baseline:
    """The trusted snapshot of the legitimate site."""

    snapshot: Snapshot
    features: FeatureSet
    created_at: datetime = field(default_factory=utcnow)


class ThreatLevel(str, Enum):
    """Threat classification derived from the composite score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _THREAT_RANK[self]


_THREAT_RANK = {ThreatLevel.LOW: 0, ThreatLevel.MEDIUM: 1, ThreatLevel.HIGH: 2}


@dataclass(frozen=True)
class SimilarityResult:
    text_similarity: int
    visual_similarity: int
    dom_similarity: int
    keyword_similarity: int
    composite: int
    threat_level: ThreatLevel

    def as_dict(self) -> dict:
        return {
            "text_similarity": self.text_similarity,
            "visual_similarity": self.visual_similarity,
            "dom_similarity": self.dom_similarity,
            "keyword_similarity": self.keyword_similarity,
            "composite": self.composite,
            "threat_level": self.threat_level.value,
        }


@dataclass(frozen=True)
class CheckRecord:
    """One completed check of a watched domain."""

    domain: str
    result: SimilarityResult
    screenshot_ref: str
    checked_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class WatchedDomain:
    """A watchlist entry and its latest known state."""

    domain: str
    current_similarity: int = 0
    last_checked_at: Optional[datetime] = None
    current_screenshot_ref: Optional[str] = None
    current_threat_level: Optional[ThreatLevel] = None
    added_at: Optional[datetime] = None
