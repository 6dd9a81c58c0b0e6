import hmac
import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings
from errors import AuthorizationError


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="owner-token")


def issue_owner_token(owner_id: str, max_age_hours: Optional[int] = None) -> str:
    if not owner_id:
        raise AuthorizationError("Owner id is required")
    settings = get_settings()
    max_age_hours = max_age_hours or settings.token_max_age_hours
    timestamp = int(time.time())
    expiry = timestamp + (max_age_hours * 3600)

    token_data = {"o": owner_id, "ts": timestamp, "exp": expiry}

    return _serializer().dumps(token_data)


def verify_owner_token(token: Optional[str]) -> str:
    """Return the owner id carried by ``token`` or raise AuthorizationError."""
    if not token:
        raise AuthorizationError("Missing owner token")
    settings = get_settings()
    try:
        data = _serializer().loads(token, max_age=settings.token_max_age_hours * 3600)
    except BadSignature as exc:
        # SignatureExpired is a BadSignature subclass.
        raise AuthorizationError("Invalid owner token") from exc

    owner_id = data.get("o")
    if not owner_id:
        raise AuthorizationError("Invalid owner token")

    if int(time.time()) > data.get("exp", 0):
        raise AuthorizationError("Owner token expired")

    return owner_id


def verify_job_token(token: Optional[str]) -> None:
    secret = get_settings().job_secret
    if not secret:
        raise AuthorizationError("Job endpoints are disabled")
    if not token or not hmac.compare_digest(token.encode(), secret.encode()):
        raise AuthorizationError("Invalid job token")
