import asyncio

import pytest

from parcel_viewer.arcgis import ArcGISClient, ArcGISError
from parcel_viewer.layers import PARCELS, ZONING
from parcel_viewer.models import Point
from parcel_viewer.utils.cache import QueryCache


def _polygon(xmin, ymin, xmax, ymax):
    return {
        "type": "Polygon",
        "coordinates": [[[xmin, ymin], [xmax, ymin], [xmax, ymax], [xmin, ymax], [xmin, ymin]]],
    }


@pytest.fixture
def mocked_httpx(monkeypatch):
    captured = {
        'calls': [],
        'payload': {
            'type': 'FeatureCollection',
            'features': [
                {
                    'type': 'Feature',
                    'id': 1,
                    'geometry': _polygon(-122.51, 37.99, -122.49, 38.01),
                    'properties': {'Parcel': '001-011-01'},
                },
                {
                    'type': 'Feature',
                    'id': 2,
                    'geometry': None,
                    'properties': {'Parcel': 'NO-GEOMETRY'},
                },
            ],
        },
    }

    class MockResponse:
        status_code = 200

        def __init__(self, data):
            self._data = data

        def raise_for_status(self):
            return None

        def json(self):
            return self._data

    class MockAsyncClient:
        def __init__(self, *args, **kwargs):
            captured['timeout'] = kwargs.get('timeout')

        async def get(self, url, params=None):
            captured['calls'].append((url, params))
            return MockResponse(captured['payload'])

        async def aclose(self):
            return None

    monkeypatch.setattr("parcel_viewer.arcgis.httpx.AsyncClient", MockAsyncClient)
    return captured


def _query(layer, point, **client_kwargs):
    async def run():
        async with ArcGISClient(**client_kwargs) as client:
            return await client.query_intersecting(layer, point)

    return asyncio.run(run())


def test_query_sends_point_intersects_request(mocked_httpx):
    _query(PARCELS, Point(x=-122.5, y=38.0), timeout=7)

    url, params = mocked_httpx['calls'][0]
    assert url == f"{PARCELS.url}/query"
    assert url.endswith("/Parcels/FeatureServer/0/query")
    assert params['geometry'] == "-122.5,38.0"
    assert params['geometryType'] == 'esriGeometryPoint'
    assert params['inSR'] == 4326
    assert params['spatialRel'] == 'esriSpatialRelIntersects'
    assert params['outFields'] == '*'
    assert params['returnGeometry'] == 'true'
    assert params['f'] == 'geojson'
    assert mocked_httpx['timeout'] == 7


def test_query_parses_features_and_skips_missing_geometry(mocked_httpx):
    features = _query(PARCELS, Point(x=-122.5, y=38.0))

    assert len(features) == 1
    feature = features[0]
    assert feature.attributes == {'Parcel': '001-011-01'}
    assert feature.extent.xmin == pytest.approx(-122.51)
    assert feature.extent.ymax == pytest.approx(38.01)
    assert feature.extent.width == pytest.approx(0.02)


def test_malformed_geometry_does_not_drop_valid_features(mocked_httpx, caplog):
    mocked_httpx['payload'] = {
        'type': 'FeatureCollection',
        'features': [
            {
                'type': 'Feature',
                'id': 7,
                'geometry': {'type': 'Polygon', 'coordinates': [[[-122.5, 38.0], [-122.4, 38.0]]]},
                'properties': {'Parcel': 'BROKEN'},
            },
            {
                'type': 'Feature',
                'id': 8,
                'geometry': _polygon(-122.51, 37.99, -122.49, 38.01),
                'properties': {'Parcel': '001-011-02'},
            },
        ],
    }

    with caplog.at_level("WARNING", logger="parcel_viewer.arcgis"):
        features = _query(PARCELS, Point(x=-122.5, y=38.0))

    assert [feature.attributes['Parcel'] for feature in features] == ['001-011-02']
    assert "Skipping feature with invalid geometry" in caplog.text


def test_query_with_no_matches(mocked_httpx):
    mocked_httpx['payload'] = {'type': 'FeatureCollection', 'features': []}

    assert _query(ZONING, Point(x=-122.5, y=38.0)) == []


def test_arcgis_error_payload_raises(mocked_httpx):
    mocked_httpx['payload'] = {
        'error': {
            'code': 400,
            'message': 'Unable to complete operation.',
            'details': ['Invalid geometry'],
        }
    }

    with pytest.raises(ArcGISError) as excinfo:
        _query(ZONING, Point(x=-122.5, y=38.0))

    assert excinfo.value.code == 400
    assert str(excinfo.value) == 'Unable to complete operation.: Invalid geometry'


def test_retries_until_attempts_exhausted(mocked_httpx, monkeypatch):
    async def immediate_sleep(*args, **kwargs):
        return None

    monkeypatch.setattr("asyncio.sleep", immediate_sleep)
    mocked_httpx['payload'] = {'error': {'code': 500, 'message': 'Busy'}}

    with pytest.raises(ArcGISError):
        _query(ZONING, Point(x=-122.5, y=38.0), retry_attempts=3)

    assert len(mocked_httpx['calls']) == 3


def test_successful_results_are_cached(mocked_httpx):
    cache = QueryCache(ttl=60)
    point = Point(x=-122.5, y=38.0)

    async def run():
        async with ArcGISClient(cache=cache) as client:
            first = await client.query_intersecting(PARCELS, point)
            second = await client.query_intersecting(PARCELS, point)
            other_layer = await client.query_intersecting(ZONING, point)
            return first, second, other_layer

    first, second, other_layer = asyncio.run(run())

    assert first == second
    assert len(mocked_httpx['calls']) == 2
    assert cache.get_stats()['hits'] == 1


def test_probe_layer_requests_service_metadata(mocked_httpx):
    mocked_httpx['payload'] = {'name': 'Parcels', 'geometryType': 'esriGeometryPolygon'}

    async def run():
        async with ArcGISClient() as client:
            return await client.probe_layer(PARCELS)

    info = asyncio.run(run())

    assert info['name'] == 'Parcels'
    assert mocked_httpx['calls'][0] == (PARCELS.url, {'f': 'json'})
