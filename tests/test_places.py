import httpx

from wherelse.catalog.loader import get_default_gazetteer, load_places
from wherelse.config.settings import Settings
from wherelse.core.cache import MemoryCache
from wherelse.core.rate_limit import RequestSpacer
from wherelse.ingestion.places import PhotonAttractionSource, PhotonPlaceSource


def _feature(name, country, lat, lng, type="city"):
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": {"name": name, "country": country, "type": type},
    }


PHOTON_PAYLOAD = {
    "type": "FeatureCollection",
    "features": [
        _feature("Brussels", "Belgium", 50.8503, 4.3517),
        _feature("Antwerp", "Belgium", 51.2194, 4.4025),
        _feature("Grand-Place", "Belgium", 50.8467, 4.3525, type="street"),
        _feature("Lyon", "France", 45.7640, 4.8357),
        {"type": "Feature", "properties": {"name": "Broken"}},
    ],
}


def test_photon_near_filters_types_and_radius(monkeypatch):
    calls = []

    def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):
        calls.append(params)
        return PHOTON_PAYLOAD

    monkeypatch.setattr("wherelse.ingestion.places.get_json", fake_get_json)
    source = PhotonPlaceSource(Settings(), MemoryCache(), spacer=RequestSpacer(0))

    places = source.near(50.85, 4.35, 100)
    assert [p.city for p in places] == ["Brussels", "Antwerp"]
    assert calls[0]["lon"] == 4.35

    # Same query again is served from the cache.
    source.near(50.85, 4.35, 100)
    assert len(calls) == 1


def test_photon_major_in_box_keeps_places_inside(monkeypatch):
    monkeypatch.setattr("wherelse.ingestion.places.get_json", lambda url, **kw: PHOTON_PAYLOAD)
    source = PhotonPlaceSource(Settings(), MemoryCache(), spacer=RequestSpacer(0))

    places = source.major_in_box(49.0, 52.0, 2.0, 6.0)
    assert {p.city for p in places} == {"Brussels", "Antwerp"}


def test_photon_failure_yields_no_places(monkeypatch):
    def boom(url, **kw):
        raise httpx.ConnectError("down")

    monkeypatch.setattr("wherelse.ingestion.places.get_json", boom)
    source = PhotonPlaceSource(Settings(), MemoryCache(), spacer=RequestSpacer(0))
    assert source.near(50.85, 4.35, 100) == []


MUSEUM_PAYLOAD = {
    "type": "FeatureCollection",
    "features": [
        _feature("Magritte Museum", "Belgium", 50.8429, 4.3579, type="house"),
        _feature("Louvre", "France", 48.8606, 2.3376, type="house"),
        _feature("Atomium", "Belgium", 50.8949, 4.3415, type="house"),
        _feature("Comics Art Museum", "Belgium", 50.8513, 4.3596, type="house"),
    ],
}


def test_attractions_stay_within_the_radius_and_per_kind_cap(monkeypatch):
    calls = []

    def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):
        calls.append(params)
        return MUSEUM_PAYLOAD

    monkeypatch.setattr("wherelse.ingestion.places.get_json", fake_get_json)
    source = PhotonAttractionSource(Settings(), MemoryCache(), spacer=RequestSpacer(0))

    hits = source.search("museum", "Brussels", 50.8503, 4.3517)
    # The Louvre is ~260 km away; the cap keeps the first two hits inside 50 km.
    assert [a.name for a in hits] == ["Magritte Museum", "Atomium"]
    assert all(a.kind == "museum" and a.distance_km < 50 for a in hits)
    assert calls[0]["q"] == "museum Brussels"
    assert calls[0]["limit"] == 3


def test_attraction_radius_and_cap_follow_settings(monkeypatch):
    monkeypatch.setattr("wherelse.ingestion.places.get_json", lambda url, **kw: MUSEUM_PAYLOAD)
    settings = Settings(places={"attraction_radius_km": 300, "attractions_per_kind": 10})
    source = PhotonAttractionSource(settings, MemoryCache(), spacer=RequestSpacer(0))

    hits = source.search("museum", "Brussels", 50.8503, 4.3517)
    assert len(hits) == 4


def test_attraction_search_failure_yields_nothing(monkeypatch):
    def boom(url, **kw):
        raise httpx.ConnectError("down")

    monkeypatch.setattr("wherelse.ingestion.places.get_json", boom)
    source = PhotonAttractionSource(Settings(), MemoryCache(), spacer=RequestSpacer(0))
    assert source.search("park", "Brussels", 50.8503, 4.3517) == []


def test_packaged_gazetteer_loads_real_cities():
    places = load_places()
    assert len(places) > 300
    gazetteer = get_default_gazetteer()
    brussels = gazetteer.lookup("Brussels", "Belgium")
    assert brussels is not None and brussels.type == "capital"
    nearby = {p.city for p in gazetteer.near(brussels.lat, brussels.lng, 60)}
    assert "Brussels" in nearby
    assert all(p.type in ("capital", "city") for p in gazetteer.major_in_box(40, 55, -5, 15))
