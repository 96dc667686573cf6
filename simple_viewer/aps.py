import logging
import threading
from typing import Any, Optional

import httpx

from .errors import NotFound, UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

_DETAIL_KEYS = ("reason", "developerMessage", "errorMessage", "diagnostic", "message", "detail")

def _error_message(resp: httpx.Response) -> str:
    detail = ""
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in _DETAIL_KEYS:
            if payload.get(key):
                detail = str(payload[key])
                break
    if not detail:
        detail = resp.text.strip()
    message = f"Request failed with status code {resp.status_code}"
    return f"{message}: {detail}" if detail else message

class ApsClient:
    def __init__(self, base_url: str, timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def request(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> Any:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            resp = self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc

        logger.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code == 404:
            raise NotFound(_error_message(resp))
        if resp.is_error:
            raise UpstreamError(_error_message(resp), upstream_status=resp.status_code, body=resp.text)
        if not resp.content:
            return {}
        return resp.json()

    def get(self, path: str, token: Optional[str] = None, **kwargs) -> Any:
        return self.request("GET", path, token=token, **kwargs)

    def post(self, path: str, token: Optional[str] = None, **kwargs) -> Any:
        return self.request("POST", path, token=token, **kwargs)

    def close(self) -> None:
        self._http.close()

_client: Optional[ApsClient] = None
_client_key: Optional[tuple] = None
_client_lock = threading.Lock()

def aps_client(base_url: str, timeout: Optional[float] = None) -> ApsClient:
    global _client, _client_key
    key = (base_url.rstrip("/"), timeout)
    with _client_lock:
        # the previous client is left open; requests in flight may still use it
        if _client is None or _client_key != key:
            _client = ApsClient(base_url, timeout=timeout)
            _client_key = key
        return _client
