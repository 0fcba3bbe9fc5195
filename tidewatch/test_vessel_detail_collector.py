import pytest

from backend.models import Outcome, PositionSource
from collectors.synthetic import (
    fnv1a,
    search_records,
    ship_name_from_email,
    synthetic_detail_record,
    tracking_link,
)
from collectors.vessel_detail_collector import VesselDetailCollector
from conftest import FakeFetcher, detail_page

PLACEHOLDER = (1.2644, 103.82, "Port of Singapore")


def _collector(extractor, pages=None) -> VesselDetailCollector:
    return VesselDetailCollector(FakeFetcher(pages), extractor, *PLACEHOLDER)


@pytest.mark.asyncio
async def test_scraped_page_resolves(extractor):
    url = "https://www.vesselfinder.com/vessels/details/9676307"
    page = detail_page({"ship_lat": 1.2966, "ship_lon": 103.7764})
    resolution = await _collector(extractor, {url: page}).resolve(url)

    assert resolution.outcome == Outcome.SCRAPED
    assert resolution.record.name == "HY EMERALD"
    assert resolution.record.position.source == PositionSource.STRUCTURED


@pytest.mark.asyncio
async def test_missing_position_keeps_recovered_voyage_fields(extractor):
    url = "https://www.vesselfinder.com/vessels/details/9676307"
    page = detail_page().replace("Port of Singapore", "Port Klang").replace("Hong Kong", "Busan")
    resolution = await _collector(extractor, {url: page}).resolve(url)

    pos = resolution.record.position
    assert resolution.outcome == Outcome.SCRAPED
    assert (pos.latitude, pos.longitude) == PLACEHOLDER[:2]
    assert pos.source == PositionSource.PLACEHOLDER
    assert pos.port == "Port Klang"
    assert pos.destination == "Busan"
    assert pos.status == "Under way"
    assert (pos.course, pos.speed) == (85.1, 14.2)


@pytest.mark.asyncio
async def test_placeholder_defaults_fill_only_missing_fields(extractor):
    url = "https://www.vesselfinder.com/vessels/details/9676307"
    page = "<html><body><h1 class='title'>HY PARTNER</h1></body></html>"
    resolution = await _collector(extractor, {url: page}).resolve(url)

    pos = resolution.record.position
    assert (pos.latitude, pos.longitude, pos.port) == PLACEHOLDER
    assert (pos.speed, pos.course, pos.status) == (0.0, 0.0, "Unknown")
    assert pos.destination is None


@pytest.mark.asyncio
async def test_unreachable_unknown_reference_is_synthetic_and_deterministic(extractor):
    collector = _collector(extractor)
    ref = "https://www.vesselfinder.com/vessels/details/1234567"

    first = await collector.resolve(ref)
    second = await collector.resolve(ref)

    assert first.outcome == Outcome.SYNTHETIC
    assert first.record == second.record
    assert first.record.imo == "1234567"
    assert first.record.name == "MV VESSEL-4567"
    assert first.record.position.source == PositionSource.SYNTHETIC
    assert (first.record.position.latitude, first.record.position.longitude) == PLACEHOLDER[:2]


@pytest.mark.asyncio
async def test_known_reference_falls_back_to_curated_record(extractor):
    resolution = await _collector(extractor).resolve("https://example.com/vessels/details/9676307")

    record = resolution.record
    assert resolution.outcome == Outcome.CURATED
    assert record.name == "HY EMERALD"
    assert record.imo == "9676307"
    assert record.flag == "Singapore"
    assert record.position.latitude == 1.2966


@pytest.mark.asyncio
async def test_garbage_page_falls_back_to_synthetic(extractor):
    url = "https://www.vesselfinder.com/vessels/details/7654321"
    resolution = await _collector(extractor, {url: "<html><body>Just a moment...</body></html>"}).resolve(url)

    assert resolution.outcome == Outcome.SYNTHETIC
    assert resolution.record.position.port == "Port of Singapore"


@pytest.mark.asyncio
async def test_each_call_fetches_again(extractor):
    url = "https://www.vesselfinder.com/vessels/details/9676307"
    collector = _collector(extractor, {url: detail_page()})
    await collector.resolve(url)
    await collector.resolve(url)
    assert collector.fetcher.calls == [url, url]


# ─── Synthetic helpers ─────────────────────────────

def test_fnv1a_reference_values():
    assert fnv1a("") == 0x811C9DC5
    assert fnv1a("a") == 0xE40C292C


def test_synthetic_record_without_embedded_imo():
    record = synthetic_detail_record("https://www.vesselfinder.com/?name=foo", 1.0, 104.0)
    assert record.imo is not None and len(record.imo) == 7
    assert record.name == f"MV VESSEL-{record.imo[-4:]}"


def test_ship_name_from_email():
    assert ship_name_from_email("hyemerald@fleet.example") == "HY EMERALD"
    assert ship_name_from_email("ocean.star-2@fleet.example") == "MV OCEANSTAR"
    assert ship_name_from_email("1234@fleet.example") == "MV UNKNOWN"


def test_tracking_link_preference():
    ref = "https://www.vesselfinder.com/vessels/details/9676307"
    assert tracking_link(ref, live_imo="9000001") == "https://www.vesselfinder.com/?imo=9000001"
    assert tracking_link(ref) == "https://www.vesselfinder.com/?imo=9676307"
    assert tracking_link("https://www.vesselfinder.com/?name=foo") == "https://www.vesselfinder.com/?name=foo"
    assert tracking_link(None) is None


def test_search_records_are_deterministic():
    assert search_records(query="pacific trader") == search_records(query="pacific trader")
    by_mmsi = search_records(mmsi="538007641")
    assert by_mmsi[0].mmsi == "538007641"
    assert by_mmsi[0].name == "MV VESSEL-7641"
    assert search_records(query="   ") == []
