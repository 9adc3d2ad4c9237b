import pytest

from parcel_viewer.layers import GENERAL_PLAN, PARCELS, ZONING
from parcel_viewer.models import Extent, Point
from parcel_viewer.orchestrator import (
    CLICK_ZOOM,
    SEARCH_ZOOM,
    LayerResult,
    decide_go_to,
)

POINT = Point(x=-122.55, y=38.05)


def _results(parcel=None, zoning=None, general_plan=None):
    return [
        LayerResult(layer=PARCELS, layer_name="Parcels", feature=parcel),
        LayerResult(layer=ZONING, layer_name="Zoning", feature=zoning),
        LayerResult(layer=GENERAL_PLAN, layer_name="General Plan", feature=general_plan),
    ]


def test_extent_expand_keeps_center():
    extent = Extent(xmin=0, ymin=0, xmax=10, ymax=4)

    expanded = extent.expand(1.5)

    assert expanded.width == pytest.approx(15)
    assert expanded.height == pytest.approx(6)
    assert expanded.center.x == pytest.approx(5)
    assert expanded.center.y == pytest.approx(2)


def test_parcel_extent_wins_over_other_layers(make_feature):
    parcel = make_feature(-122.551, 38.049, 0.002, 0.002, Parcel="1")
    zoning = make_feature(-122.6, 38.0, 0.1, 0.1, Zoning="R1")
    general_plan = make_feature(-122.7, 37.9, 0.3, 0.3, GeneralPlan="SF3")

    go_to = decide_go_to(POINT, _results(parcel, zoning, general_plan), from_search=False)

    assert go_to.zoom is None
    assert go_to.target == parcel.extent.expand(1.5)
    assert go_to.target.width == pytest.approx(0.003)


def test_parcel_extent_used_for_search_too(make_feature):
    parcel = make_feature(0, 0, 10, 100, Parcel="1")

    go_to = decide_go_to(POINT, _results(parcel=parcel), from_search=True)

    assert isinstance(go_to.target, Extent)
    assert go_to.target == parcel.extent.expand(1.5)


def test_no_features_zoom_to_point_for_click():
    go_to = decide_go_to(POINT, _results(), from_search=False)

    assert go_to.target == POINT
    assert go_to.zoom == CLICK_ZOOM == 15


def test_no_features_zoom_to_point_for_search():
    go_to = decide_go_to(POINT, _results(), from_search=True)

    assert go_to.target == POINT
    assert go_to.zoom == SEARCH_ZOOM == 17


def test_non_parcel_matches_do_not_move_zoom_target(make_feature):
    zoning = make_feature(-122.6, 38.0, 0.1, 0.1, Zoning="R1")

    go_to = decide_go_to(POINT, _results(zoning=zoning), from_search=False)

    assert go_to.target == POINT
    assert go_to.zoom == 15
