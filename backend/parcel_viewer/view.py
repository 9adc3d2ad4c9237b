"""Server-side model of the browser map view.

The view owns what the user sees after a round: the camera (center, zoom,
scale), the single click/search marker and the sidebar markup. Scale changes
are broadcast to watchers so overlay visibility can follow the camera.
"""
from typing import Callable, List, Optional, Union

from .geometry import fit_extent, scale_for_zoom, to_wgs84, zoom_for_scale
from .models import Extent, GoToTarget, Marker, Point
from .utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CENTER = Point(x=-122.7100, y=38.0521)
DEFAULT_ZOOM = 9
MARKER_SYMBOL = {"type": "simple-marker", "color": "red", "size": "10px"}

ScaleWatcher = Callable[[float], None]


class MarkerOverlay:
    """Graphics collection that holds the interaction marker."""

    def __init__(self):
        self._markers: List[Marker] = []

    def remove_all(self) -> None:
        self._markers.clear()

    def add(self, point: Point) -> None:
        self._markers.append(Marker(geometry=point, symbol=dict(MARKER_SYMBOL)))

    @property
    def markers(self) -> List[Marker]:
        return list(self._markers)


class Sidebar:
    def __init__(self, html: str = ""):
        self.html = html

    def render(self, html: str) -> None:
        self.html = html


class MapView:
    def __init__(
        self,
        width_px: int = 1024,
        height_px: int = 768,
        center: Point = DEFAULT_CENTER,
        zoom: int = DEFAULT_ZOOM,
    ):
        self.width_px = width_px
        self.height_px = height_px
        self.center = center
        self.zoom: Optional[int] = zoom
        self.scale = scale_for_zoom(zoom)
        self.graphics = MarkerOverlay()
        self._watchers: List[ScaleWatcher] = []

    def watch_scale(self, callback: ScaleWatcher) -> Callable[[], None]:
        """Call ``callback`` with the new scale on every scale change."""
        self._watchers.append(callback)

        def remove() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return remove

    def set_scale(self, scale: float) -> None:
        if scale == self.scale:
            return
        self.scale = scale
        for callback in list(self._watchers):
            callback(scale)

    async def go_to(self, target: Union[GoToTarget, Extent]) -> None:
        """Move the camera to a point at a zoom level, or to fit an extent."""
        if isinstance(target, Extent):
            center, zoom, scale = fit_extent(target, self.width_px, self.height_px)
        elif isinstance(target.target, Extent):
            center, zoom, scale = fit_extent(target.target, self.width_px, self.height_px)
        else:
            center = to_wgs84(target.target)
            zoom = target.zoom if target.zoom is not None else self.zoom
            scale = scale_for_zoom(zoom) if zoom is not None else self.scale

        logger.debug(
            "View transition",
            extra={'center_x': center.x, 'center_y': center.y, 'zoom': zoom, 'scale': scale},
        )
        self.center = center
        self.zoom = zoom
        self.set_scale(scale)

    def apply_scale(self, scale: float) -> None:
        """Adopt a scale chosen in the browser, keeping the center."""
        self.zoom = zoom_for_scale(scale)
        self.set_scale(scale)
