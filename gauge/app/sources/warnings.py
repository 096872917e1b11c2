"""
BOM flood warnings client.

Reads the Queensland warnings feed plus the Fitzroy-basin product feeds and
reduces them to ``FloodWarning`` records:

    IDQ60000  Queensland warnings summary (state feed)
    IDQ20825  Fitzroy River basin flood warning
    IDQ20800  Queensland flood summary
    IDQ20705  Central Coast and Whitsundays flood warning

BOM publishes several XML dialects (AMOC product documents, CAP alerts,
plain ``<warning>`` lists). Fields are looked up by local name with a chain
of fallbacks so any of them yields a usable record.
"""

from __future__ import annotations

import asyncio
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from gauge.app.sources.base import (
    FetchStatus,
    HttpProvider,
    ProviderError,
    ProviderResult,
)
from gauge.app.sources.timestamps import parse_iso

logger = logging.getLogger(__name__)

BASIN_PRODUCTS = ("IDQ20825", "IDQ20800", "IDQ20705")

BASIN_KEYWORDS = (
    "fitzroy",
    "mackenzie",
    "isaac",
    "nogoa",
    "dawson",
    "comet",
    "connors",
    "clermont",
    "emerald",
    "rockhampton",
    "central queensland",
    "central highlands",
)

SUMMARY_PHRASES = (
    "flooding",
    "flood warning",
    "river level",
    "water level",
    "rising",
    "falling",
    "expected",
    "forecast",
    "peak",
)

SEVERITY = {"major": 3, "moderate": 2, "minor": 1}
SUMMARY_MAX_LENGTH = 200
DEFAULT_SUMMARY = "Flood warning in effect. Check BOM for details."
WARNINGS_PAGE = "http://www.bom.gov.au/qld/flood/"

_RECORD_TAGS = {"amoc", "warning", "alert"}
_PRODUCT_PATTERN = re.compile(r"IDQ\d+")
_SENTENCE_SPLIT = re.compile(r"[.!]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FloodWarning:
    id: str
    title: str
    area: str
    level: str  # minor | moderate | major
    issue_time: datetime
    summary: str
    url: str = WARNINGS_PAGE
    product_id: str = ""

    @property
    def severity(self) -> int:
        return SEVERITY.get(self.level, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "area": self.area,
            "level": self.level,
            "issue_time": self.issue_time.isoformat(),
            "summary": self.summary,
            "url": self.url,
        }


@dataclass
class WarningsReport:
    warnings: List[FloodWarning]
    last_checked: datetime
    source: str = "bom"

    @property
    def active(self) -> bool:
        return bool(self.warnings)

    @property
    def highest_level(self) -> str:
        if not self.warnings:
            return "none"
        return max(self.warnings, key=lambda w: w.severity).level

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "warnings": [w.to_dict() for w in self.warnings],
            "last_checked": self.last_checked.isoformat(),
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def warning_level(title: str, text: str) -> str:
    combined = f"{title} {text}".lower()
    if "major flood" in combined:
        return "major"
    if "moderate flood" in combined:
        return "moderate"
    return "minor"


def extract_summary(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    """Pick the first two sentences describing the flood situation."""
    cleaned = _WHITESPACE.sub(" ", re.sub(r"<[^>]*>", " ", text)).strip()
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(cleaned) if s.strip()]
    relevant = [s for s in sentences if any(p in s.lower() for p in SUMMARY_PHRASES)]
    if relevant:
        cleaned = ". ".join(relevant[:2]) + "."
    if len(cleaned) > max_length:
        cleaned = cleaned[: max_length - 3] + "..."
    return cleaned or DEFAULT_SUMMARY


def is_relevant(title: str, area: str, text: str, product_id: str) -> bool:
    haystack = f"{title} {area} {text}".lower()
    return product_id in BASIN_PRODUCTS or any(k in haystack for k in BASIN_KEYWORDS)


# ---------------------------------------------------------------------------
# XML parsing
# ---------------------------------------------------------------------------

def _localname(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.split("}", 1)[1].lower() if "}" in tag else tag.lower()


def _field(element: ET.Element, *names: str) -> Optional[str]:
    """First non-empty child text, then attribute, matching any of ``names``."""
    for name in names:
        for el in element.iter():
            if el is not element and _localname(el.tag) == name.lower():
                text = "".join(el.itertext()).strip()
                if text:
                    return text
        for el in element.iter():
            for attr, value in el.attrib.items():
                if _localname(attr) == name.lower() and value.strip():
                    return value.strip()
    return None


def _element_text(element: ET.Element) -> str:
    return _WHITESPACE.sub(" ", " ".join(element.itertext())).strip()


def parse_warnings(
    xml_text: str, now: datetime, *, product_hint: str = "", relevant_only: bool = False,
) -> List[FloodWarning]:
    """
    Parse every warning-like record in a BOM XML document.

    With ``relevant_only`` records that mention no basin keyword and come
    from no basin product are skipped.

    Raises ``ProviderError`` when the payload is not XML.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ProviderError(FetchStatus.UPSTREAM_ERROR, f"bom warnings returned invalid XML: {e}") from e

    document_product = _PRODUCT_PATTERN.search(xml_text)
    warnings: List[FloodWarning] = []
    seen = set()

    records = [el for el in root.iter() if _localname(el.tag) in _RECORD_TAGS]
    for record in records:
        identifier = _field(record, "identifier", "id") or f"warning-{len(warnings)}"
        title = _field(record, "headline", "title", "event") or "Flood Warning"
        area = _field(record, "areaDesc", "area", "zone") or "Queensland"
        issued = _field(record, "sent", "issue-time-utc", "effective")
        text = _field(record, "description", "text", "instruction") or _element_text(record)

        product = _PRODUCT_PATTERN.search(identifier) or document_product
        product_id = product.group(0) if product else product_hint
        seen.add(identifier)
        if relevant_only and not is_relevant(title, area, text, product_id):
            continue
        warnings.append(_build(identifier, title, area, issued, text, product_id, now))

    # CAP <info> blocks
    for info in (el for el in root.iter() if _localname(el.tag) == "info"):
        if "flood" not in _element_text(info).lower():
            continue
        identifier = _field(root, "identifier") or f"cap-{len(warnings)}"
        if identifier in seen:
            continue
        title = _field(info, "headline", "event") or "Flood Warning"
        area = _field(info, "areaDesc") or "Queensland"
        text = _field(info, "description") or ""
        seen.add(identifier)
        if relevant_only and not is_relevant(title, area, text, product_hint):
            continue
        warnings.append(_build(identifier, title, area, _field(root, "sent"), text, product_hint, now))

    return warnings


def _build(
    identifier: str,
    title: str,
    area: str,
    issued: Optional[str],
    text: str,
    product_id: str,
    now: datetime,
) -> FloodWarning:
    issue_time = parse_iso(issued) if issued else None
    return FloodWarning(
        id=identifier,
        title=title,
        area=area,
        level=warning_level(title, text),
        issue_time=issue_time or now,
        summary=extract_summary(text),
        product_id=product_id,
    )


def merge_warnings(batches: Iterable[List[FloodWarning]]) -> List[FloodWarning]:
    """Deduplicate by id keeping the newest issue, then order by severity and recency."""
    unique: Dict[str, FloodWarning] = {}
    for batch in batches:
        for warning in batch:
            existing = unique.get(warning.id)
            if existing is None or warning.issue_time > existing.issue_time:
                unique[warning.id] = warning
    return sorted(
        unique.values(),
        key=lambda w: (w.severity, w.issue_time),
        reverse=True,
    )


def demo_warnings(now: datetime) -> List[FloodWarning]:
    """Fixed sample used when DEMO_MODE is on and no feed answered."""
    return [
        FloodWarning(
            id="demo-warning-1",
            title="Minor Flood Warning for Fitzroy River",
            area="Fitzroy River Catchment including Rockhampton",
            level="minor",
            issue_time=now,
            summary=(
                "Minor flooding is occurring along the Fitzroy River. River levels are "
                "expected to remain elevated over the next 24-48 hours."
            ),
        ),
    ]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class WarningsClient(HttpProvider):
    """Fetches and merges the state and basin warning feeds."""

    name = "bom-warnings"

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        *,
        product_url: str = "http://www.bom.gov.au/fwo/{product_id}.amoc.xml",
        products: Iterable[str] = BASIN_PRODUCTS,
        demo_mode: bool = False,
        **kwargs,
    ):
        # base_url is the full state feed URL
        super().__init__(base_url, timeout, **kwargs)
        self.product_url = product_url
        self.products = tuple(products)
        self.demo_mode = demo_mode

    async def fetch_feed(self, url: str, product_hint: str = "") -> ProviderResult[List[FloodWarning]]:
        return await self._guard("warnings", product_hint or "state", self._fetch_feed(url, product_hint))

    async def _fetch_feed(self, url: str, product_hint: str) -> List[FloodWarning]:
        response = await self._request(
            "GET", url, headers={"Accept": "application/xml, text/xml, */*"},
        )
        return parse_warnings(
            response.text, self._clock(), product_hint=product_hint, relevant_only=True,
        )

    async def fetch_warnings(self) -> WarningsReport:
        feeds = [self.fetch_feed(self.base_url)]
        feeds += [
            self.fetch_feed(self.product_url.format(product_id=p), product_hint=p)
            for p in self.products
        ]
        results = await asyncio.gather(*feeds)
        now = self._clock()

        answered = [r for r in results if r.success]
        if not answered:
            logger.warning("All %d warning feeds failed", len(results))
            if self.demo_mode:
                return WarningsReport(demo_warnings(now), now, source="demo")
            return WarningsReport([], now, source="unavailable")

        warnings = merge_warnings(r.data or [] for r in answered)
        logger.info(
            "Warnings check: %d active from %d/%d feeds",
            len(warnings), len(answered), len(results),
        )
        return WarningsReport(warnings, now, source="bom")
