from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

WGS84_WKID = 4326


class SpatialReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    wkid: int = WGS84_WKID


class Point(BaseModel):
    """A map location as emitted by a click or a search selection."""

    model_config = ConfigDict(frozen=True)

    type: Literal["point"] = "point"
    x: float
    y: float
    spatialReference: SpatialReference = SpatialReference()

    @property
    def wkid(self) -> int:
        return self.spatialReference.wkid


class Extent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["extent"] = "extent"
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    spatialReference: SpatialReference = SpatialReference()

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Point:
        return Point(
            x=(self.xmin + self.xmax) / 2,
            y=(self.ymin + self.ymax) / 2,
            spatialReference=self.spatialReference,
        )

    def expand(self, factor: float) -> "Extent":
        """Scale width and height by ``factor`` around the same center."""
        center = self.center
        half_width = self.width * factor / 2
        half_height = self.height * factor / 2
        return Extent(
            xmin=center.x - half_width,
            ymin=center.y - half_height,
            xmax=center.x + half_width,
            ymax=center.y + half_height,
            spatialReference=self.spatialReference,
        )


class Feature(BaseModel):
    type: str = "Feature"
    geometry: Dict[str, Any]
    extent: Extent
    attributes: Dict[str, Any] = Field(default_factory=dict)


class LayerResultModel(BaseModel):
    layerId: str
    layerName: str
    feature: Optional[Feature] = None


class GoToTarget(BaseModel):
    target: Union[Point, Extent]
    zoom: Optional[int] = None


class Marker(BaseModel):
    geometry: Point
    symbol: Dict[str, Any]


class ViewState(BaseModel):
    center: Point
    zoom: Optional[int] = None
    scale: float
    markers: List[Marker]
    sidebarHtml: str
    layerVisibility: Dict[str, bool]


class IntersectionRound(BaseModel):
    point: Point
    fromSearch: bool
    results: List[LayerResultModel]
    sidebarHtml: str
    goTo: GoToTarget
    view: ViewState


class ClickRequest(BaseModel):
    point: Point


class SearchSelectRequest(BaseModel):
    geometry: Point


class ScaleRequest(BaseModel):
    scale: float

    @field_validator("scale")
    @classmethod
    def validate_scale(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("scale must be positive")
        return value


class VisibilityResponse(BaseModel):
    scale: float
    layerVisibility: Dict[str, bool]


class LayerInfo(BaseModel):
    id: str
    title: str
    url: str
    visible: bool


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: Optional[str] = None
