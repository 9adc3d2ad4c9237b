import asyncio

import pytest

from parcel_viewer.models import Extent, Feature


def rect_feature(xmin, ymin, width, height, **attributes):
    """Polygon feature covering an axis-aligned rectangle."""
    xmax, ymax = xmin + width, ymin + height
    geometry = {
        "type": "Polygon",
        "coordinates": [[
            [xmin, ymin], [xmax, ymin], [xmax, ymax], [xmin, ymax], [xmin, ymin],
        ]],
    }
    return Feature(
        geometry=geometry,
        extent=Extent(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax),
        attributes=attributes,
    )


class FakeArcGISClient:
    """Stands in for ArcGISClient; answers from canned per-layer responses."""

    def __init__(self, responses=None, failures=None, delays=None):
        self.responses = responses or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls = []
        self.probed = []

    async def query_intersecting(self, layer, point):
        self.calls.append((layer.id, point))
        await asyncio.sleep(self.delays.get(layer.id, 0))
        if layer.id in self.failures:
            raise self.failures[layer.id]
        return list(self.responses.get(layer.id, []))

    async def probe_layer(self, layer):
        self.probed.append(layer.id)
        if layer.id in self.failures:
            raise self.failures[layer.id]
        return {"name": layer.title}


@pytest.fixture
def make_feature():
    return rect_feature


@pytest.fixture
def fake_client_factory():
    return FakeArcGISClient
