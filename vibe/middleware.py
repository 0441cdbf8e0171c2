"""Per-IP rate limiting and request timing logs."""

import logging
import time
from collections import defaultdict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 300     # clean stale entries every 5 minutes


def client_ip(request: Request, trust_proxy: bool = False) -> str:
    # The proxy appends the address it saw; earlier entries are client-supplied
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[-1].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window request counter per client IP under `path_prefix`."""

    def __init__(
        self,
        app,
        limit: int = 50,
        window: int = 15 * 60,
        path_prefix: str = "/conversation",
        trust_proxy: bool = False,
        error: str = "API rate limit exceeded",
        message: str = "Please wait a moment before making more requests.",
    ):
        super().__init__(app)
        self.limit = limit
        self.window = window
        self.path_prefix = path_prefix
        self.trust_proxy = trust_proxy
        self.body = {"error": error, "message": message}
        self._request_log: dict[str, list[float]] = defaultdict(list)
        self._last_cleanup = 0.0

    def _cleanup_stale(self, now: float) -> None:
        """Remove entries older than 2x the window to prevent memory leak."""
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        cutoff = now - self.window * 2
        stale_ips = [ip for ip, ts_list in self._request_log.items() if not ts_list or ts_list[-1] < cutoff]
        for ip in stale_ips:
            del self._request_log[ip]

    def is_rate_limited(self, ip: str) -> bool:
        now = time.time()
        self._cleanup_stale(now)
        cutoff = now - self.window

        timestamps = [t for t in self._request_log[ip] if t > cutoff]
        self._request_log[ip] = timestamps
        if len(timestamps) >= self.limit:
            return True

        timestamps.append(now)
        return False

    async def dispatch(self, request: Request, call_next):
        if self.limit > 0 and request.url.path.startswith(self.path_prefix):
            ip = client_ip(request, self.trust_proxy)
            if self.is_rate_limited(ip):
                logger.warning("[RateLimit] Blocked %s %s from %s", request.method, request.url.path, ip)
                return JSONResponse(
                    self.body,
                    status_code=429,
                    headers={"Retry-After": str(self.window)},
                )
        return await call_next(request)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s - %s - %.0fms", request.method, request.url.path, response.status_code, duration_ms)
        return response


SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self'; "
        "img-src 'self' data: https:; connect-src 'self' https://www.googleapis.com "
        "https://speech.googleapis.com https://texttospeech.googleapis.com"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
