import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.auth_secret, salt="owner-token")


def issue_token(owner_id: str) -> str:
    serializer = _serializer()
    return serializer.dumps({"u": owner_id, "ts": int(time.time())})


def verify_token(token: str, max_age_secs: Optional[int] = None) -> Optional[str]:
    """Return the owner id carried by a valid token, otherwise ``None``."""
    if not token:
        return None
    if max_age_secs is None:
        max_age_secs = get_settings().auth_token_max_age_secs
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=max_age_secs)
    except BadSignature:
        return None

    owner_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(owner_id, str) or not owner_id:
        return None
    return owner_id


def owner_from_authorization(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith("Bearer "):
        return None
    return verify_token(header.split(" ", 1)[1].strip())
