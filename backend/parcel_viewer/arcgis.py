import logging
from typing import Any, Dict, List, Optional

import httpx
from shapely.errors import GEOSException
from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_exponential

from .geometry import extent_from_geojson
from .layers import OverlayLayer
from .models import Feature, Point
from .utils.cache import QueryCache
from .utils.logging import get_logger

logger = get_logger(__name__)


class ArcGISError(Exception):
    """Raised when ArcGIS returns an application level error response."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def _raise_for_arcgis_error(payload: Dict[str, Any]) -> None:
    if 'error' not in payload:
        return
    error_info = payload['error'] or {}
    message = error_info.get('message') or 'ArcGIS API error'
    details = error_info.get('details')
    if details:
        detail_text = '; '.join(str(item) for item in details if item)
        if detail_text:
            message = f"{message}: {detail_text}"
    raise ArcGISError(message, code=error_info.get('code'))


def point_query_params(point: Point, out_fields: str = "*") -> Dict[str, Any]:
    return {
        'geometry': f"{point.x},{point.y}",
        'geometryType': 'esriGeometryPoint',
        'inSR': point.wkid,
        'spatialRel': 'esriSpatialRelIntersects',
        'outFields': out_fields,
        'returnGeometry': 'true',
        'outSR': '4326',
        'f': 'geojson',
    }


class ArcGISClient:
    def __init__(
        self,
        timeout: int = 20,
        retry_attempts: int = 1,
        cache: Optional[QueryCache] = None,
    ):
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.cache = cache
        self.session: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self.session = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session is not None:
            await self.session.aclose()
            self.session = None

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                response = await self.session.get(url, params=params)
                response.raise_for_status()
                payload = response.json()
                _raise_for_arcgis_error(payload)
                return payload
        raise RuntimeError("unreachable")  # pragma: no cover

    async def query_intersecting(self, layer: OverlayLayer, point: Point) -> List[Feature]:
        """Return every feature of ``layer`` whose geometry intersects ``point``."""
        cache_key = None
        if self.cache is not None:
            cache_key = QueryCache.make_key(layer.id, point.model_dump())
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        payload = await self._get_json(
            f"{layer.url}/query",
            point_query_params(point, layer.out_fields),
        )

        features: List[Feature] = []
        for raw in payload.get('features', []):
            feature = self._process_feature(raw)
            if feature is not None:
                features.append(feature)

        logger.info(
            f"{layer.title} returned {len(features)} features",
            extra={'layer': layer.id, 'feature_count': len(features)},
        )

        if cache_key is not None:
            self.cache.set(cache_key, features)
        return features

    async def probe_layer(self, layer: OverlayLayer) -> Dict[str, Any]:
        """Fetch the layer's service metadata to confirm it is reachable."""
        return await self._get_json(layer.url, {'f': 'json'})

    def _process_feature(self, raw: Dict[str, Any]) -> Optional[Feature]:
        geometry = raw.get('geometry')
        try:
            extent = extent_from_geojson(geometry)
        except (ValueError, TypeError, AttributeError, GEOSException) as exc:
            logger.warning(
                f"Skipping feature with invalid geometry: {exc}",
                extra={'feature_id': raw.get('id')},
            )
            return None
        if extent is None:
            logger.debug("Skipping feature without geometry", extra={'feature_id': raw.get('id')})
            return None
        attributes = raw.get('properties') or raw.get('attributes') or {}
        return Feature(geometry=geometry, extent=extent, attributes=attributes)
