import asyncio
import json

import pytest

from collectors.base_collector import BasePageFetcher, PageFetchError
from extraction.field_extractor import FieldExtractor
from extraction.geo import Geofence

SEA = Geofence("Southeast Asia", -12.0, 25.0, 90.0, 135.0)

DETAIL_PAGE = """
<html>
<head>
  <meta property="og:title" content="HY EMERALD, Container Ship - Details and current position">
  <meta property="og:image" content="https://static.vesselfinder.net/ship-photo/9676307.jpg">
</head>
<body>
  <h1 class="title">HY EMERALD</h1>
  <h2 class="vst">Container Ship, IMO 9676307</h2>
  <div id="djson" data-json='{djson}'></div>
  <div class="vi__port"><a href="#">Port of Singapore</a></div>
  <div class="vi__destination">Hong Kong</div>
  <img class="main-photo" src="/ship-photo/9676307-538007641.jpg">
  <table class="tparams">
    <tr><td>IMO / MMSI</td><td>9676307 / 538007641</td></tr>
    <tr><td>Flag</td><td>Singapore</td></tr>
    <tr><td>Navigation Status</td><td>Under way</td></tr>
    <tr><td>Course / Speed</td><td>85.1 ° / 14.2 kn</td></tr>
    <tr><td>Position received</td><td>Oct 18, 2026 08:30 UTC</td></tr>
    <tr><td>Year of Build</td><td>2014</td></tr>
    <tr><td>Length Overall (m)</td><td>336</td></tr>
    <tr><td>Beam (m)</td><td>48</td></tr>
    <tr><td>Gross Tonnage</td><td>117,000</td></tr>
    <tr><td>Deadweight (t)</td><td>-</td></tr>
  </table>
  {extra}
</body>
</html>
"""


def detail_page(blob: dict | None = None, extra: str = "") -> str:
    """Render the sample detail page with the given data blob and extra markup."""
    djson = json.dumps(blob) if blob is not None else ""
    return DETAIL_PAGE.replace("{djson}", djson).replace("{extra}", extra)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher(BasePageFetcher):
    """Serves canned HTML per URL; unknown URLs fail like an exhausted retry loop."""

    def __init__(self, pages: dict[str, str] | None = None, delay: float = 0.0):
        super().__init__("fake", attempts=1, backoff=0)
        self.pages = pages or {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if url not in self.pages:
                raise PageFetchError(url, 1, RuntimeError("unreachable"))
            return self.pages[url]
        finally:
            self.in_flight -= 1


@pytest.fixture
def geofence() -> Geofence:
    return SEA


@pytest.fixture
def extractor() -> FieldExtractor:
    return FieldExtractor(SEA, image_host="https://static.vesselfinder.net")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
