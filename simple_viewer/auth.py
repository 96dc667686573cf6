import logging
from enum import Enum

from .aps import ApsClient
from .errors import AuthError, UpstreamError
from .schemas import Credentials

logger = logging.getLogger(__name__)

TOKEN_PATH = "/authentication/v2/token"

class ScopeClass(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"

SCOPES = {
    ScopeClass.PUBLIC: ["viewables:read"],
    ScopeClass.INTERNAL: ["bucket:read", "bucket:create", "data:create", "data:write", "data:read"],
}

def get_token(client: ApsClient, client_id: str, client_secret: str, scope_class: ScopeClass) -> Credentials:
    """Exchange the client id/secret for a two-legged token; never cached."""
    if not client_id or not client_secret:
        raise AuthError("Client id and secret are required to obtain an access token.")

    scope_class = ScopeClass(scope_class)
    try:
        payload = client.post(
            TOKEN_PATH,
            auth=(client_id, client_secret),
            data={"grant_type": "client_credentials", "scope": " ".join(SCOPES[scope_class])},
        )
    except UpstreamError as exc:
        if exc.upstream_status in (400, 401, 403):
            raise AuthError(str(exc), upstream_status=exc.upstream_status, body=exc.body) from exc
        raise

    logger.debug("obtained %s token (expires in %ss)", scope_class.value, payload.get("expires_in"))
    return Credentials(access_token=payload["access_token"], expires_in=payload["expires_in"])

def get_public_token(client: ApsClient, client_id: str, client_secret: str) -> Credentials:
    return get_token(client, client_id, client_secret, ScopeClass.PUBLIC)

def get_internal_token(client: ApsClient, client_id: str, client_secret: str) -> Credentials:
    return get_token(client, client_id, client_secret, ScopeClass.INTERNAL)
