"""Feature extraction from rendered pages."""

from __future__ import annotations

import logging
import re
from html.parser import HTMLParser
from typing import Iterable

from ..errors import FeatureExtractionFailure
from .models import DomCounts, FeatureSet, FormField, Snapshot

logger = logging.getLogger(__name__)

# tag -> DomCounts field
STRUCTURAL_TAGS = {
    "meta": "meta_tags",
    "a": "links",
    "img": "images",
    "form": "forms",
    "input": "inputs",
    "button": "buttons",
}


class _StructureParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.counts: dict[str, int] = {name: 0 for name in DomCounts.METRICS}
        self.form_fields: list[FormField] = []
        self.title = ""
        self._form_depth = 0
        self._in_title = False
        self._title_seen = False
        self._title_chunks: list[str] = []

    def handle_starttag(self, tag: str, attrs) -> None:  # type: ignore[override]
        metric = STRUCTURAL_TAGS.get(tag)
        if metric:
            self.counts[metric] += 1
        if tag == "form":
            self._form_depth += 1
        elif tag == "input" and self._form_depth:
            values = {k.lower(): (v or "") for k, v in attrs}
            self.form_fields.append(
                FormField(
                    type=(values.get("type") or "text").lower(),
                    name=values.get("name") or values.get("id") or "",
                    placeholder=values.get("placeholder") or "",
                )
            )
        elif tag == "title" and not self._title_seen:
            self._in_title = True

    def handle_startendtag(self, tag: str, attrs) -> None:  # type: ignore[override]
        self.handle_starttag(tag, attrs)
        if tag == "form" and self._form_depth:
            self._form_depth -= 1

    def handle_endtag(self, tag: str) -> None:  # type: ignore[override]
        if tag == "form" and self._form_depth:
            self._form_depth -= 1
        elif tag == "title" and self._in_title:
            self._in_title = False
            self._title_seen = True
            self.title = " ".join("".join(self._title_chunks).split())

    def handle_data(self, data: str) -> None:  # type: ignore[override]
        if self._in_title:
            self._title_chunks.append(data)

    def finish_title(self) -> None:
        """Keep an unterminated title as whatever text followed it."""
        if self._in_title and not self._title_seen:
            self.title = " ".join("".join(self._title_chunks).split())


def count_keywords(text: str, vocabulary: Iterable[str]) -> dict[str, int]:
    """Count case-insensitive occurrences of each vocabulary term in text."""
    lowered = (text or "").lower()
    counts: dict[str, int] = {}
    for term in vocabulary:
        needle = (term or "").strip().lower()
        if not needle or needle in counts:
            continue
        found = len(re.findall(re.escape(needle), lowered))
        if found:
            counts[needle] = found
    return counts


def parse_structure(html: str) -> tuple[DomCounts, tuple[FormField, ...], str]:
    """Parse markup into element counts, form fields and title.

    The standard-library parser is lenient; if it still chokes on a fragment,
    whatever was counted before the failure is kept and the rest counts as 0.
    """
    parser = _StructureParser()
    try:
        parser.feed(html or "")
        parser.close()
    except Exception as exc:
        logger.debug("HTML parse stopped early: %s", exc)
    parser.finish_title()
    return DomCounts(**parser.counts), tuple(parser.form_fields), parser.title


class FeatureExtractor:
    """Derives a FeatureSet from a Snapshot using a fixed brand vocabulary."""

    def __init__(self, brand_keywords: Iterable[str]):
        self.brand_keywords = [k.strip().lower() for k in brand_keywords if k and k.strip()]

    def extract(self, snapshot: Snapshot) -> FeatureSet:
        if not isinstance(snapshot.html, str) or not isinstance(snapshot.visible_text, str):
            raise FeatureExtractionFailure(
                f"snapshot for {snapshot.source_url} has no textual content"
            )
        dom_counts, form_fields, title = parse_structure(snapshot.html)
        return FeatureSet(
            brand_keywords=count_keywords(snapshot.visible_text, self.brand_keywords),
            dom_counts=dom_counts,
            form_fields=form_fields,
            title=title,
        )
