import json
import logging
import math
import time
from functools import wraps

from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse

from .utils import normalize_mobile

logger = logging.getLogger(__name__)


def client_ip(request) -> str:
    return request.META.get("REMOTE_ADDR") or "unknown"


def body_mobile(request) -> str:
    try:
        body = json.loads(request.body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return ""
    return normalize_mobile(body.get("mobile")) if isinstance(body, dict) else ""


def hit(scope: str, ident: str) -> int:
    """Count one request against ``scope`` for ``ident``.

    Returns 0 while under the limit, otherwise the seconds until the current
    fixed window closes.
    """
    limit, window = settings.RATE_LIMITS[scope]
    now = time.time()
    key = f"throttle:{scope}:{ident}:{int(now // window)}"
    cache.add(key, 0, timeout=window)
    try:
        count = cache.incr(key)
    except ValueError:
        # the window rolled over between add and incr
        cache.set(key, 1, timeout=window)
        count = 1
    if count <= limit:
        return 0
    return max(1, math.ceil(window - now % window))


def rate_limited(scope, key=client_ip, message="Too many requests. Please slow down."):
    """Answer 429 with Retry-After once ``key(request)`` exceeds the scope's limit."""
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            if not settings.RATE_LIMITS_ENABLED:
                return view(request, *args, **kwargs)
            ident = key(request)
            retry_after = hit(scope, ident) if ident else 0
            if retry_after:
                logger.warning("Rate limit %s exceeded by %s", scope, ident)
                resp = JsonResponse({"message": message, "retryAfter": retry_after}, status=429)
                resp["Retry-After"] = str(retry_after)
                return resp
            return view(request, *args, **kwargs)
        return wrapper
    return decorator
