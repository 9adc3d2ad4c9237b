import math
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from pyproj import Transformer
from shapely.geometry import shape

from .models import WGS84_WKID, Extent, Point, SpatialReference

WEB_MERCATOR_WKID = 3857
# Esri's legacy id for web mercator, still reported by many MapViews
_WKID_ALIASES = {102100: WEB_MERCATOR_WKID, 102113: WEB_MERCATOR_WKID}

# Scale of zoom level 0 in the standard web-mercator tiling scheme
ZOOM_0_SCALE = 591657527.591555
MAX_ZOOM = 23
INCHES_PER_METER = 39.37
DPI = 96


@lru_cache(maxsize=8)
def _transformer(src_wkid: int, dst_wkid: int) -> Transformer:
    return Transformer.from_crs(
        _WKID_ALIASES.get(src_wkid, src_wkid),
        _WKID_ALIASES.get(dst_wkid, dst_wkid),
        always_xy=True,
    )


def extent_from_geojson(geometry: Optional[Dict[str, Any]]) -> Optional[Extent]:
    """Bounding extent of a GeoJSON geometry, or None when it is empty."""
    if not geometry:
        return None
    geom = shape(geometry)
    if geom.is_empty:
        return None
    xmin, ymin, xmax, ymax = geom.bounds
    return Extent(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax)


def to_wgs84(point: Point) -> Point:
    if point.wkid == WGS84_WKID:
        return point
    x, y = _transformer(point.wkid, WGS84_WKID).transform(point.x, point.y)
    return Point(x=x, y=y, spatialReference=SpatialReference(wkid=WGS84_WKID))


def extent_size_meters(extent: Extent) -> Tuple[float, float]:
    if _WKID_ALIASES.get(extent.spatialReference.wkid) == WEB_MERCATOR_WKID:
        return extent.width, extent.height
    tr = _transformer(extent.spatialReference.wkid, WEB_MERCATOR_WKID)
    x1, y1 = tr.transform(extent.xmin, extent.ymin)
    x2, y2 = tr.transform(extent.xmax, extent.ymax)
    return abs(x2 - x1), abs(y2 - y1)


def scale_for_zoom(zoom: int) -> float:
    return ZOOM_0_SCALE / (2 ** zoom)


def fit_extent(extent: Extent, width_px: int, height_px: int) -> Tuple[Point, int, float]:
    """Center, zoom and scale that show the whole extent in the viewport.

    The zoom snaps down to the nearest whole level so the extent always fits.
    """
    width_m, height_m = extent_size_meters(extent)
    resolution = max(width_m / max(width_px, 1), height_m / max(height_px, 1))
    required_scale = resolution * DPI * INCHES_PER_METER

    if required_scale <= 0:
        zoom = MAX_ZOOM
    else:
        zoom = int(math.floor(math.log2(ZOOM_0_SCALE / required_scale)))
        zoom = max(0, min(MAX_ZOOM, zoom))

    return to_wgs84(extent.center), zoom, scale_for_zoom(zoom)


def zoom_for_scale(scale: float) -> int:
    """Nearest whole zoom level for a scale reported by the browser."""
    zoom = round(math.log2(ZOOM_0_SCALE / scale))
    return max(0, min(MAX_ZOOM, zoom))
