import logging
import time
from typing import Callable, Optional

import httpx

from .schemas import Credentials, DesignOut, Manifest

logger = logging.getLogger(__name__)

class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

def _raise_for_status(resp: httpx.Response) -> None:
    if resp.is_success:
        return
    try:
        message = resp.json().get("message") or resp.text
    except (ValueError, AttributeError):
        message = resp.text
    raise ApiError(resp.status_code, message)

class DesignsClient:
    def __init__(self, base_url: str = "http://127.0.0.1:8000", http: Optional[httpx.Client] = None, uploader: Optional[httpx.Client] = None):
        self._http = http or httpx.Client(base_url=base_url.rstrip("/"))
        self._uploader = uploader or httpx.Client()

    def _get(self, path: str):
        resp = self._http.get(path)
        _raise_for_status(resp)
        return resp.json()

    def get_access_token(self) -> Credentials:
        return Credentials(**self._get("/token"))

    def list_designs(self) -> list[DesignOut]:
        return [DesignOut(**item) for item in self._get("/designs")]

    def get_design_status(self, urn: str) -> Manifest:
        return Manifest(**self._get(f"/designs/{urn}/status"))

    def create_design(self, name: str) -> str:
        resp = self._http.post("/designs", json={"name": name})
        _raise_for_status(resp)
        return resp.json()["url"]

    def upload_design(self, name: str, data: bytes) -> None:
        url = self.create_design(name)
        logger.info("uploading %s (%d bytes)", name, len(data))
        resp = self._uploader.put(url, content=data)
        # a failed PUT leaves the created object empty; nothing cleans it up
        _raise_for_status(resp)

    def wait_for_design(
        self,
        urn: str,
        attempts: int = 30,
        delay: float = 2.0,
        backoff: float = 1.5,
        max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Manifest:
        # gives up after `attempts` polls and returns the last manifest seen
        manifest = self.get_design_status(urn)
        for _ in range(attempts - 1):
            if manifest.is_terminal:
                break
            logger.info("%s: %s (%s)", urn, manifest.status, manifest.progress)
            sleep(delay)
            delay = min(delay * backoff, max_delay)
            manifest = self.get_design_status(urn)
        return manifest

    def close(self) -> None:
        self._http.close()
        self._uploader.close()
