import base64
import logging
import urllib.parse

from .aps import ApsClient
from .errors import NotFound, UpstreamError

logger = logging.getLogger(__name__)

BUCKET_REGION = "US"
BUCKET_POLICY = "persistent"
PAGE_SIZE = 64

def ensure_bucket_exists(client: ApsClient, bucket_key: str, token: str) -> None:
    try:
        client.get(f"/oss/v2/buckets/{bucket_key}/details", token=token)
        return
    except NotFound:
        pass

    logger.info("creating bucket %s", bucket_key)
    try:
        client.post(
            "/oss/v2/buckets",
            token=token,
            headers={"x-ads-region": BUCKET_REGION},
            json={"bucketKey": bucket_key, "policyKey": BUCKET_POLICY},
        )
    except UpstreamError as exc:
        # another request created it between our lookup and create
        if exc.upstream_status != 409:
            raise
        logger.info("bucket %s already exists", bucket_key)

def _start_at(next_url: str) -> str:
    query = urllib.parse.urlparse(next_url).query
    values = urllib.parse.parse_qs(query).get("startAt")
    if not values:
        raise UpstreamError(f"Pagination link without startAt: {next_url}")
    return values[0]

def list_objects(client: ApsClient, bucket_key: str, token: str) -> list[dict]:
    path = f"/oss/v2/buckets/{bucket_key}/objects"
    resp = client.get(path, token=token, params={"limit": PAGE_SIZE})
    objects = list(resp.get("items", []))
    while resp.get("next"):
        start_at = _start_at(resp["next"])
        resp = client.get(path, token=token, params={"limit": PAGE_SIZE, "startAt": start_at})
        objects.extend(resp.get("items", []))
    return objects

def create_upload_url(client: ApsClient, bucket_key: str, object_key: str, token: str) -> str:
    # caller PUTs the file bytes to this URL itself
    quoted = urllib.parse.quote(object_key, safe="")
    resp = client.post(
        f"/oss/v2/buckets/{bucket_key}/objects/{quoted}/signed",
        token=token,
        params={"access": "write"},
        json={},
    )
    return resp["signedUrl"]

def urnify(object_id: str) -> str:
    return base64.urlsafe_b64encode(object_id.encode("utf-8")).decode("ascii").replace("=", "")
