import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError

DEFAULT_BASE_URL = "https://developer.api.autodesk.com"

@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    base_url: str = DEFAULT_BASE_URL
    timeout: Optional[float] = None

    @property
    def bucket_key(self) -> str:
        return self.client_id.lower() + "-test-bucket"

def _timeout_from_env() -> Optional[float]:
    raw = os.environ.get("APS_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"Invalid APS_TIMEOUT value: {raw!r}")

def load_settings() -> Settings:
    # read per call so a missing variable fails the request, not the import
    client_id = os.environ.get("APS_CLIENT_ID", "")
    client_secret = os.environ.get("APS_CLIENT_SECRET", "")
    if not client_id:
        raise ConfigError("Missing APS_CLIENT_ID environment variable.")
    if not client_secret:
        raise ConfigError("Missing APS_CLIENT_SECRET environment variable.")
    return Settings(
        client_id=client_id,
        client_secret=client_secret,
        base_url=os.environ.get("APS_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        timeout=_timeout_from_env(),
    )
