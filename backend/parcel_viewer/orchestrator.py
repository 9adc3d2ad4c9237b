import asyncio
import html
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .arcgis import ArcGISClient
from .layers import OVERLAY_LAYERS, OverlayLayer
from .models import (
    Feature,
    GoToTarget,
    IntersectionRound,
    LayerResultModel,
    Point,
    ViewState,
)
from .view import MapView, Sidebar
from .utils.logging import get_logger

logger = get_logger(__name__)

SCALE_VISIBILITY_THRESHOLD = 36000
EXTENT_EXPAND_FACTOR = 1.5
SEARCH_ZOOM = 17
CLICK_ZOOM = 15

SIDEBAR_HEADER = "<b>Intersected Features:</b><br>"
NO_INTERSECTION_HTML = "<p>No intersection found.</p>"


@dataclass
class LayerResult:
    layer: OverlayLayer
    layer_name: str
    feature: Optional[Feature] = None

    def to_model(self) -> LayerResultModel:
        return LayerResultModel(
            layerId=self.layer.id,
            layerName=self.layer_name,
            feature=self.feature,
        )


def select_smallest_feature(features: Iterable[Feature]) -> Optional[Feature]:
    """Pick the feature with the smallest extent area; the first one wins ties."""
    smallest: Optional[Feature] = None
    for feature in features:
        if smallest is None or feature.extent.area < smallest.extent.area:
            smallest = feature
    return smallest


def _format_value(value: Any, default: Optional[str]) -> str:
    if default is not None and not value:
        return default
    if value is None:
        return ""
    return html.escape(str(value))


def render_layer_section(result: LayerResult) -> str:
    attributes = result.feature.attributes if result.feature else {}
    lines = "".join(
        f"<b>{field.label}:</b> {_format_value(attributes.get(field.attribute), field.default)} <br>"
        for field in result.layer.fields
    )
    return f"<h3>{html.escape(result.layer_name)}</h3><ul><li>{lines}</li></ul>"


def build_sidebar_html(results: Sequence[LayerResult]) -> str:
    sections = [render_layer_section(result) for result in results if result.feature]
    if not sections:
        return NO_INTERSECTION_HTML
    return SIDEBAR_HEADER + "".join(sections)


def decide_go_to(point: Point, results: Sequence[LayerResult], from_search: bool) -> GoToTarget:
    """Choose where the view goes after a round.

    A matched feature on the zoom-driving layer (Parcels) wins over everything
    else; otherwise the view centers on the point, closer for search picks.
    """
    for result in results:
        if result.feature and result.layer.zoom_to_feature:
            return GoToTarget(target=result.feature.extent.expand(EXTENT_EXPAND_FACTOR))
    zoom = SEARCH_ZOOM if from_search else CLICK_ZOOM
    return GoToTarget(target=point, zoom=zoom)


def layers_visible_at(scale: float) -> bool:
    return scale < SCALE_VISIBILITY_THRESHOLD


class IntersectionOrchestrator:
    """Turns a map point into per-layer matches, sidebar markup and a camera move."""

    def __init__(
        self,
        client: ArcGISClient,
        view: MapView,
        layers: Sequence[OverlayLayer] = OVERLAY_LAYERS,
        sidebar: Optional[Sidebar] = None,
    ):
        self.client = client
        self.view = view
        self.layers = list(layers)
        self.sidebar = sidebar or Sidebar()
        self.layer_visibility: Dict[str, bool] = {layer.id: layer.visible for layer in self.layers}

    async def load(self) -> bool:
        """Check every layer service answers; failures are only logged."""
        try:
            await asyncio.gather(*(self.client.probe_layer(layer) for layer in self.layers))
        except Exception as exc:
            logger.error(f"Map load error: {exc}", exc_info=True)
            return False
        logger.info("Map loaded successfully", extra={'layers': [layer.id for layer in self.layers]})
        return True

    async def process_point(self, point: Point, from_search: bool = False) -> IntersectionRound:
        logger.info(
            "Processing point",
            extra={'x': point.x, 'y': point.y, 'wkid': point.wkid, 'from_search': from_search},
        )
        self.view.graphics.remove_all()
        self.view.graphics.add(point)
        return await self.check_intersection(point, from_search)

    async def query_layer(self, layer: OverlayLayer, point: Point) -> LayerResult:
        try:
            features = await self.client.query_intersecting(layer, point)
        except Exception as exc:
            logger.error(
                f"Query error for {layer.title}: {exc}",
                extra={'layer': layer.id},
            )
            return LayerResult(layer=layer, layer_name=layer.title)
        return LayerResult(
            layer=layer,
            layer_name=layer.title,
            feature=select_smallest_feature(features),
        )

    async def query_all(self, point: Point) -> List[LayerResult]:
        # query_layer never raises, so gather joins every layer
        return list(await asyncio.gather(*(self.query_layer(layer, point) for layer in self.layers)))

    async def check_intersection(self, point: Point, from_search: bool = False) -> IntersectionRound:
        results = await self.query_all(point)

        sidebar_html = build_sidebar_html(results)
        self.sidebar.render(sidebar_html)

        go_to = decide_go_to(point, results, from_search)
        await self.view.go_to(go_to)
        self.update_layer_visibility()

        return IntersectionRound(
            point=point,
            fromSearch=from_search,
            results=[result.to_model() for result in results],
            sidebarHtml=sidebar_html,
            goTo=go_to,
            view=self.view_state(),
        )

    def update_layer_visibility(self, scale: Optional[float] = None) -> Dict[str, bool]:
        current = self.view.scale if scale is None else scale
        show = layers_visible_at(current)
        for layer in self.layers:
            self.layer_visibility[layer.id] = show
        return dict(self.layer_visibility)

    def view_state(self) -> ViewState:
        return ViewState(
            center=self.view.center,
            zoom=self.view.zoom,
            scale=self.view.scale,
            markers=self.view.graphics.markers,
            sidebarHtml=self.sidebar.html,
            layerVisibility=dict(self.layer_visibility),
        )
