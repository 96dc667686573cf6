import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Optional

from .aps import ApsClient
from .errors import NotFound

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "svf2"
OUTPUT_VIEWS = ["2d", "3d"]

class DesignState(str, Enum):
    NO_MANIFEST = "no_manifest"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"

def state_of(manifest: Optional[dict]) -> DesignState:
    if manifest is None:
        return DesignState.NO_MANIFEST
    status = manifest.get("status")
    if status == "success":
        return DesignState.SUCCESS
    if status in ("failed", "timeout"):
        return DesignState.FAILED
    return DesignState.IN_PROGRESS

_locks_guard = threading.Lock()
# urn -> [lock, holders]; an entry lives only while someone holds or waits on it
_locks: dict[str, list] = {}

@contextmanager
def _urn_lock(urn: str):
    with _locks_guard:
        entry = _locks.get(urn)
        if entry is None:
            entry = _locks[urn] = [threading.Lock(), 0]
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _locks[urn]

def get_manifest(client: ApsClient, urn: str, token: str) -> Optional[dict]:
    try:
        return client.get(f"/modelderivative/v2/designdata/{urn}/manifest", token=token)
    except NotFound:
        return None

def start_conversion(client: ApsClient, urn: str, token: str) -> str:
    job = client.post(
        "/modelderivative/v2/designdata/job",
        token=token,
        json={
            "input": {"urn": urn},
            "output": {"formats": [{"type": OUTPUT_FORMAT, "views": OUTPUT_VIEWS}]},
        },
    )
    logger.info("conversion job for %s: %s", urn, job.get("result"))
    return job.get("result")

def get_status(client: ApsClient, urn: str, token: str) -> dict:
    manifest = get_manifest(client, urn, token)
    if state_of(manifest) != DesignState.NO_MANIFEST:
        return manifest

    # one submission per urn even when first polls arrive together
    with _urn_lock(urn):
        manifest = get_manifest(client, urn, token)
        if state_of(manifest) == DesignState.NO_MANIFEST:
            start_conversion(client, urn, token)
            manifest = get_manifest(client, urn, token)

    if state_of(manifest) == DesignState.NO_MANIFEST:
        # job accepted but manifest not published yet
        return {"urn": urn, "status": "pending", "progress": "0% complete"}
    return manifest
