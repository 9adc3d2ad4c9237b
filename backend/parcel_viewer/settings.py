import os

from .utils.cache import get_cache
from .utils.rate_limit import get_rate_limiter

APP_VERSION = "1.0.0"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
CACHE_TTL = int(os.getenv("CACHE_TTL", "900"))
ARCGIS_TIMEOUT = int(os.getenv("ARCGIS_TIMEOUT_S", "20"))
# 1 means a single attempt per layer query
ARCGIS_RETRY_ATTEMPTS = max(1, int(os.getenv("ARCGIS_RETRY_ATTEMPTS", "1")))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
VIEW_WIDTH_PX = int(os.getenv("VIEW_WIDTH_PX", "1024"))
VIEW_HEIGHT_PX = int(os.getenv("VIEW_HEIGHT_PX", "768"))
PROBE_LAYERS_ON_STARTUP = os.getenv("PROBE_LAYERS_ON_STARTUP", "true").lower() in ("1", "true", "yes")

cache = get_cache(ttl=CACHE_TTL)
rate_limiter = get_rate_limiter(
    max_requests=RATE_LIMIT_MAX_REQUESTS,
    window_seconds=RATE_LIMIT_WINDOW_SECONDS,
)
