from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.http import JsonResponse

User = get_user_model()

TOKEN_AUDIENCE = "gurudevashram-api"


def issue_token(user, minutes=None) -> str:
    """Signed bearer token for ``user`` (HS256 with the project SECRET_KEY)."""
    minutes = minutes or settings.ADMIN_TOKEN_TTL_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.pk),
        "aud": TOKEN_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
        "staff": bool(user.is_staff),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def user_from_token(token: str):
    """Return the active user a token was issued to, or ``None``."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"], audience=TOKEN_AUDIENCE)
    except jwt.PyJWTError:
        return None
    return User.objects.filter(pk=payload.get("sub"), is_active=True).first()


def bearer_user(request):
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return user_from_token(auth.split(" ", 1)[1].strip())


def token_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        user = bearer_user(request)
        if user is None:
            return JsonResponse({"message": "Authentication required"}, status=401)
        request.user = user
        return view(request, *args, **kwargs)
    return wrapper


def admin_token_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        user = bearer_user(request)
        if user is None:
            return JsonResponse({"message": "Authentication required"}, status=401)
        if not user.is_staff:
            return JsonResponse({"message": "Admin access required"}, status=403)
        request.user = user
        return view(request, *args, **kwargs)
    return wrapper
