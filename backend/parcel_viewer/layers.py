from dataclasses import dataclass
from typing import List, Optional, Tuple

from .models import WGS84_WKID

MARIN_SERVICES_ROOT = "https://services6.arcgis.com/T8eS7sop5hLmgRRH/arcgis/rest/services"


@dataclass(frozen=True)
class SidebarField:
    label: str
    attribute: str
    default: Optional[str] = "N/A"


@dataclass(frozen=True)
class OverlayLayer:
    """A Marin County feature-service layer queried for every map interaction."""

    id: str
    title: str
    url: str
    fields: Tuple[SidebarField, ...]
    out_fields: str = "*"
    wkid: int = WGS84_WKID
    visible: bool = False
    zoom_to_feature: bool = False  # only one layer may drive the zoom target

    def metadata(self, visible: Optional[bool] = None) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "visible": self.visible if visible is None else visible,
        }


PARCELS = OverlayLayer(
    id="parcels",
    title="Parcels",
    url=f"{MARIN_SERVICES_ROOT}/Parcels/FeatureServer/0",
    fields=(SidebarField("APN", "Parcel"),),
    zoom_to_feature=True,
)

ZONING = OverlayLayer(
    id="zoning",
    title="Zoning",
    url=f"{MARIN_SERVICES_ROOT}/Zoning_of_Unincorporated_Marin_County/FeatureServer/0",
    fields=(
        # The code line is always rendered, even when the attribute is absent
        SidebarField("Zoning", "Zoning", default=None),
        SidebarField("Description", "ZoningDescription"),
    ),
)

GENERAL_PLAN = OverlayLayer(
    id="general-plan",
    title="General Plan",
    url=f"{MARIN_SERVICES_ROOT}/General_Plan_of_Unincorporated_Marin_County/FeatureServer/0",
    fields=(SidebarField("General Plan", "GeneralPlan"),),
)

# Order matters: results and sidebar sections follow this sequence.
OVERLAY_LAYERS: List[OverlayLayer] = [PARCELS, ZONING, GENERAL_PLAN]
