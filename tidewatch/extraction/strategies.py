"""Tidewatch — Named Extraction Strategies.

Each strategy is a pure function of the parsed page. Field strategies
return a value or None; position fallbacks return a list of candidate
coordinate pairs which still have to pass the geofence.

Markup targeted (VesselFinder detail page):
  h1.title                      vessel name
  h2.vst                        "Container Ship, IMO 9676307"
  #djson[data-json]             JSON blob with ship_lat / ship_lon / ship_cog / ship_sog ...
  table tr > td (label, value)  "IMO / MMSI", "Flag", "Destination", "Year of Build" ...
  img.main-photo                vessel photo
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from bs4 import BeautifulSoup, Tag

from extraction.geo import Candidate

logger = logging.getLogger("tidewatch.extractor")

IMO_RE = re.compile(r"IMO\s*:?\s*(\d{7})", re.IGNORECASE)
MMSI_LABEL_RE = re.compile(r"IMO\s*/\s*MMSI", re.IGNORECASE)
NINE_DIGITS_RE = re.compile(r"(?<!\d)(\d{9})(?!\d)")
NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")

# Fallback a: lat/lon labelled pairs in script content
LABELLED_LAT_RE = re.compile(r"\blat(?:itude)?[\"']?\s*[:=]\s*[\"']?(-?\d{1,2}(?:\.\d+)?)(?![\d.])", re.IGNORECASE)
LABELLED_LON_RE = re.compile(r"\b(?:lon|lng)(?:gitude)?[\"']?\s*[:=]\s*[\"']?(-?\d{1,3}(?:\.\d+)?)(?![\d.])", re.IGNORECASE)
# Fallback b: bare decimal pairs with at least four fractional digits
DECIMAL_PAIR_RE = re.compile(r"(?<![\d.])(-?\d{1,2}\.\d{4,})\s*,\s*(-?\d{1,3}\.\d{4,})(?![\d.])")
# Fallback d: "1.2966°N, 103.7764°E" in visible text
DEGREE_TEXT_RE = re.compile(
    r"(?<![\d.])(\d{1,2}(?:\.\d+)?)\s*°\s*([NS])\s*[,/]?\s*(?<![\d.])(\d{1,3}(?:\.\d+)?)\s*°\s*([EW])",
    re.IGNORECASE,
)

LAT_ATTRS = ("data-lat", "data-latitude", "lat", "latitude")
LON_ATTRS = ("data-lon", "data-lng", "data-longitude", "lon", "lng", "longitude")

PLACEHOLDER_VALUES = {"", "-", "--", "—", "n/a", "N/A"}

FieldStrategy = tuple[str, Callable[[BeautifulSoup], Any]]
PositionStrategy = tuple[str, Callable[[BeautifulSoup], list[Candidate]]]


@dataclass
class BlobPosition:
    """Position fields decoded from the embedded data blob."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    course: Optional[float] = None
    speed: Optional[float] = None
    status: Optional[str] = None
    timestamp: Optional[datetime] = None
    mmsi: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_sentinel(self) -> bool:
        """(0, 0) or coordinates rounded to whole degrees."""
        if not self.has_coordinates:
            return False
        if self.latitude == 0 and self.longitude == 0:
            return True
        return float(self.latitude).is_integer() and float(self.longitude).is_integer()


# ─── Helpers ───────────────────────────────────────

def clean_text(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    text = " ".join(node.get_text(" ", strip=True).split())
    return text or None


def parse_number(raw: Optional[str]) -> Optional[float]:
    if raw is None or raw.strip() in PLACEHOLDER_VALUES:
        return None
    m = NUMBER_RE.search(raw)
    if not m:
        return None
    return float(m.group(0).replace(",", ""))


def table_value(soup: BeautifulSoup, label: re.Pattern) -> Optional[str]:
    """Value cell of the first table row whose label cell matches ``label``."""
    for row in soup.find_all("tr"):
        cells = row.find_all(["td", "th"])
        if len(cells) < 2:
            continue
        if label.search(cells[0].get_text(" ", strip=True)):
            return clean_text(cells[-1])
    return None


def parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)):
        # Some pages emit milliseconds
        seconds = raw / 1000 if raw > 1e11 else raw
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = str(raw).strip()
    if text.isdigit():
        return parse_timestamp(int(text))
    for fmt in ("%b %d, %Y %H:%M UTC", "%Y-%m-%d %H:%M UTC", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _script_text(soup: BeautifulSoup) -> str:
    return "\n".join(s.get_text() for s in soup.find_all("script"))


def _subtitle(soup: BeautifulSoup) -> Optional[str]:
    return clean_text(soup.select_one("h2.vst")) or clean_text(soup.select_one(".subtitle"))


# ─── Identity ──────────────────────────────────────

def name_from_title(soup: BeautifulSoup) -> Optional[str]:
    return clean_text(soup.select_one("h1.title"))


def name_from_og_title(soup: BeautifulSoup) -> Optional[str]:
    meta = soup.find("meta", attrs={"property": "og:title"})
    if not meta or not meta.get("content"):
        return None
    # "HY EMERALD, Container Ship - Details and current position ..."
    return meta["content"].split(",", 1)[0].split(" - ", 1)[0].strip() or None


def type_from_subtitle(soup: BeautifulSoup) -> Optional[str]:
    sub = _subtitle(soup)
    if not sub:
        return None
    head = sub.split(",", 1)[0].strip()
    if IMO_RE.fullmatch(head):
        return None
    return head or None


def imo_from_subtitle(soup: BeautifulSoup) -> Optional[str]:
    sub = _subtitle(soup)
    m = IMO_RE.search(sub or "")
    return m.group(1) if m else None


def imo_from_table(soup: BeautifulSoup) -> Optional[str]:
    raw = table_value(soup, MMSI_LABEL_RE)
    if not raw:
        return None
    m = re.match(r"\s*(\d{7})\b", raw)
    return m.group(1) if m else None


def mmsi_from_labelled_cell(soup: BeautifulSoup) -> Optional[str]:
    raw = table_value(soup, MMSI_LABEL_RE)
    if not raw or "/" not in raw:
        return None
    suffix = raw.rsplit("/", 1)[1].strip()
    return suffix if suffix.isdigit() else None


def mmsi_from_any_cell(soup: BeautifulSoup) -> Optional[str]:
    for cell in soup.find_all("td"):
        m = NINE_DIGITS_RE.search(cell.get_text(" ", strip=True))
        if m:
            return m.group(1)
    return None


# ─── Port / flag / voyage ──────────────────────────

def flag_from_icon(soup: BeautifulSoup) -> Optional[str]:
    icon = soup.select_one(".flag-icon[title]")
    if icon is None:
        return None
    return icon["title"].strip() or None


def flag_from_table(soup: BeautifulSoup) -> Optional[str]:
    raw = table_value(soup, re.compile(r"^\s*flag\b", re.IGNORECASE))
    return None if raw in PLACEHOLDER_VALUES else raw


def port_from_element(soup: BeautifulSoup) -> Optional[str]:
    return clean_text(soup.select_one(".vi__port a")) or clean_text(soup.select_one(".vi__port"))


def port_from_table(soup: BeautifulSoup) -> Optional[str]:
    raw = table_value(soup, re.compile(r"(current|last)\s+port", re.IGNORECASE))
    return None if raw in PLACEHOLDER_VALUES else raw


def destination_from_element(soup: BeautifulSoup) -> Optional[str]:
    return clean_text(soup.select_one(".vi__destination a")) or clean_text(soup.select_one(".vi__destination"))


def destination_from_table(soup: BeautifulSoup) -> Optional[str]:
    raw = table_value(soup, re.compile(r"^\s*destination\b", re.IGNORECASE))
    return None if raw in PLACEHOLDER_VALUES else raw


def status_from_table(soup: BeautifulSoup) -> Optional[str]:
    raw = table_value(soup, re.compile(r"navigation(al)?\s+status", re.IGNORECASE))
    return None if raw in PLACEHOLDER_VALUES else raw


def course_speed_from_table(soup: BeautifulSoup) -> Optional[tuple[Optional[float], Optional[float]]]:
    """ "85.1 ° / 14.2 kn" -> (85.1, 14.2)"""
    raw = table_value(soup, re.compile(r"course\s*/\s*speed", re.IGNORECASE))
    if not raw or "/" not in raw:
        return None
    course_raw, speed_raw = raw.split("/", 1)
    course, speed = parse_number(course_raw), parse_number(speed_raw)
    if course is None and speed is None:
        return None
    return course, speed


def timestamp_from_table(soup: BeautifulSoup) -> Optional[datetime]:
    return parse_timestamp(table_value(soup, re.compile(r"position\s+received", re.IGNORECASE)))


# ─── Image ─────────────────────────────────────────

def photo_from_main_image(soup: BeautifulSoup) -> Optional[str]:
    img = soup.select_one("img.main-photo")
    if img is None:
        return None
    return (img.get("src") or img.get("data-src") or "").strip() or None


def photo_from_og_image(soup: BeautifulSoup) -> Optional[str]:
    meta = soup.find("meta", attrs={"property": "og:image"})
    return meta["content"].strip() if meta and meta.get("content") else None


# ─── Specifications table ──────────────────────────

SPEC_ROWS: list[tuple[re.Pattern, str, type]] = [
    (re.compile(r"year\s+of\s+build", re.IGNORECASE), "year_built", int),
    (re.compile(r"length\s+overall", re.IGNORECASE), "length", float),
    (re.compile(r"^\s*beam\b", re.IGNORECASE), "width", float),
    (re.compile(r"gross\s+tonnage", re.IGNORECASE), "gross_tonnage", float),
    (re.compile(r"deadweight", re.IGNORECASE), "deadweight", float),
]


def specifications(soup: BeautifulSoup) -> dict[str, float]:
    """Map known specification rows to numeric fields, skipping dashes."""
    found: dict[str, float] = {}
    for row in soup.find_all("tr"):
        cells = row.find_all(["td", "th"])
        if len(cells) < 2:
            continue
        label = cells[0].get_text(" ", strip=True)
        for pattern, field_name, cast in SPEC_ROWS:
            if field_name in found or not pattern.search(label):
                continue
            value = parse_number(cells[-1].get_text(" ", strip=True))
            if value is not None:
                found[field_name] = cast(value)
            break
    return found


# ─── Position: primary ─────────────────────────────

def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def structured_blob(soup: BeautifulSoup) -> Optional[BlobPosition]:
    node = soup.find(id="djson")
    if node is None or not node.get("data-json"):
        return None
    data = json.loads(node["data-json"])
    if not isinstance(data, dict):
        return None

    blob = BlobPosition(
        latitude=_as_float(_first(data, "ship_lat", "lat", "latitude")),
        longitude=_as_float(_first(data, "ship_lon", "lon", "lng", "longitude")),
        course=_as_float(_first(data, "ship_cog", "cog", "course")),
        speed=_as_float(_first(data, "ship_sog", "sog", "speed")),
        timestamp=parse_timestamp(_first(data, "ship_ts", "ts", "timestamp", "lrpd")),
    )
    status = _first(data, "ship_status", "nav_status", "status")
    if status is not None:
        blob.status = str(status).strip() or None
    mmsi = _first(data, "mmsi", "ship_mmsi")
    if mmsi is not None and str(mmsi).isdigit():
        blob.mmsi = str(mmsi)
    return blob


# ─── Position: fallbacks ───────────────────────────

def labelled_script_pairs(soup: BeautifulSoup) -> list[Candidate]:
    text = _script_text(soup)
    lats = [float(m.group(1)) for m in LABELLED_LAT_RE.finditer(text)]
    lons = [float(m.group(1)) for m in LABELLED_LON_RE.finditer(text)]
    return [Candidate(lat, lon, "script_labelled") for lat, lon in zip(lats, lons)]


def decimal_script_pairs(soup: BeautifulSoup) -> list[Candidate]:
    text = _script_text(soup)
    return [
        Candidate(float(m.group(1)), float(m.group(2)), "script_decimal")
        for m in DECIMAL_PAIR_RE.finditer(text)
    ]


def coordinate_attributes(soup: BeautifulSoup) -> list[Candidate]:
    out = []
    for node in soup.find_all(True):
        lat = next((_as_float(node.get(a)) for a in LAT_ATTRS if node.has_attr(a)), None)
        lon = next((_as_float(node.get(a)) for a in LON_ATTRS if node.has_attr(a)), None)
        if lat is not None and lon is not None:
            out.append(Candidate(lat, lon, "attributes"))
    return out


def degree_text(soup: BeautifulSoup) -> list[Candidate]:
    visible = (
        s for s in soup.find_all(string=True)
        if s.parent is not None and s.parent.name not in ("script", "style")
    )
    text = " ".join(s.strip() for s in visible if s.strip())
    out = []
    for m in DEGREE_TEXT_RE.finditer(text):
        lat, ns, lon, ew = m.groups()
        lat_v = float(lat) * (-1 if ns.upper() == "S" else 1)
        lon_v = float(lon) * (-1 if ew.upper() == "W" else 1)
        out.append(Candidate(lat_v, lon_v, "visible_text"))
    return out


# Priority order; first strategy yielding a geofenced candidate wins.
NAME_STRATEGIES: list[FieldStrategy] = [
    ("title", name_from_title),
    ("og_title", name_from_og_title),
]
TYPE_STRATEGIES: list[FieldStrategy] = [("subtitle", type_from_subtitle)]
IMO_STRATEGIES: list[FieldStrategy] = [
    ("subtitle", imo_from_subtitle),
    ("imo_mmsi_cell", imo_from_table),
]
MMSI_STRATEGIES: list[FieldStrategy] = [
    ("imo_mmsi_cell", mmsi_from_labelled_cell),
    ("nine_digit_cell", mmsi_from_any_cell),
]
FLAG_STRATEGIES: list[FieldStrategy] = [
    ("flag_icon", flag_from_icon),
    ("flag_row", flag_from_table),
]
PORT_STRATEGIES: list[FieldStrategy] = [
    ("port_element", port_from_element),
    ("port_row", port_from_table),
]
DESTINATION_STRATEGIES: list[FieldStrategy] = [
    ("destination_element", destination_from_element),
    ("destination_row", destination_from_table),
]
PHOTO_STRATEGIES: list[FieldStrategy] = [
    ("main_photo", photo_from_main_image),
    ("og_image", photo_from_og_image),
]
POSITION_FALLBACKS: list[PositionStrategy] = [
    ("script_labelled", labelled_script_pairs),
    ("script_decimal", decimal_script_pairs),
    ("attributes", coordinate_attributes),
    ("visible_text", degree_text),
]
