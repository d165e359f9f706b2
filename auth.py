from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="user-token")


def issue_user_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def resolve_user_token(token: str, max_age_secs: Optional[int] = None) -> Optional[int]:
    """User id carried by a signed token, or None when invalid or expired."""
    max_age = max_age_secs or get_settings().token_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        return None
    except BadSignature:
        return None

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or user_id <= 0:
        return None
    return user_id
