"""Shared fixtures: an in-memory stand-in for the APS endpoints."""

from __future__ import annotations

import base64
import json
import re
import urllib.parse

import httpx
import pytest
from fastapi.testclient import TestClient

from simple_viewer.aps import ApsClient
from simple_viewer.main import app, get_aps

APS_BASE = "https://aps.test"
CLIENT_ID = "MyClient"
CLIENT_SECRET = "s3cret"
BUCKET_KEY = "myclient-test-bucket"


def _json(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


class FakeAps:
    """Just enough of authentication, OSS and Model Derivative to drive the app."""

    def __init__(self) -> None:
        self.buckets: dict[str, dict[str, str]] = {}
        self.manifests: dict[str, dict] = {}
        self.jobs: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.token_scopes: list[str] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.publish_manifest_on_job = True
        self.bucket_create_conflict = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = urllib.parse.unquote(request.url.raw_path.decode("ascii").split("?")[0])
        self.calls.append((method, path))

        status = self.failures.get((method, path))
        if status is not None:
            return _json(status, {"reason": f"simulated {status}"})

        if request.url.host == "signed.test":
            return self._upload(method, path, request)
        if path == "/authentication/v2/token" and method == "POST":
            return self._token(request)
        if path == "/oss/v2/buckets" and method == "POST":
            return self._create_bucket(request)
        m = re.fullmatch(r"/oss/v2/buckets/([^/]+)/details", path)
        if m and method == "GET":
            if m.group(1) not in self.buckets:
                return _json(404, {"reason": "Bucket not found"})
            return _json(200, {"bucketKey": m.group(1), "policyKey": "persistent"})
        m = re.fullmatch(r"/oss/v2/buckets/([^/]+)/objects", path)
        if m and method == "GET":
            return self._list_objects(m.group(1), request)
        m = re.fullmatch(r"/oss/v2/buckets/([^/]+)/objects/(.+)/signed", path)
        if m and method == "POST":
            assert request.url.params.get("access") == "write"
            key = urllib.parse.quote(m.group(2), safe="")
            return _json(200, {"signedUrl": f"https://signed.test/upload/{m.group(1)}/{key}"})
        m = re.fullmatch(r"/modelderivative/v2/designdata/([^/]+)/manifest", path)
        if m and method == "GET":
            manifest = self.manifests.get(m.group(1))
            if manifest is None:
                return _json(404, {"diagnostic": "Requested resource does not exist."})
            return _json(200, manifest)
        if path == "/modelderivative/v2/designdata/job" and method == "POST":
            return self._start_job(request)
        return _json(404, {"reason": f"no fake route for {method} {path}"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        expected = base64.b64encode(f"{CLIENT_ID}:{CLIENT_SECRET}".encode()).decode()
        if request.headers.get("Authorization") != f"Basic {expected}":
            return _json(401, {"developerMessage": "The client credentials are invalid."})
        form = urllib.parse.parse_qs(request.content.decode())
        assert form["grant_type"] == ["client_credentials"]
        scope = form["scope"][0]
        self.token_scopes.append(scope)
        token = "public-token" if scope == "viewables:read" else "internal-token"
        return _json(200, {"access_token": token, "token_type": "Bearer", "expires_in": 3599})

    def _create_bucket(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        key = body["bucketKey"]
        assert request.headers.get("x-ads-region") == "US"
        assert body["policyKey"] == "persistent"
        if key in self.buckets or self.bucket_create_conflict:
            self.buckets.setdefault(key, {})
            return _json(409, {"reason": "Bucket already exists"})
        self.buckets[key] = {}
        return _json(200, {"bucketKey": key})

    def _list_objects(self, bucket_key: str, request: httpx.Request) -> httpx.Response:
        if bucket_key not in self.buckets:
            return _json(404, {"reason": "Bucket not found"})
        keys = sorted(self.buckets[bucket_key])
        limit = int(request.url.params.get("limit", 10))
        start_at = request.url.params.get("startAt")
        start = keys.index(start_at) if start_at else 0
        page = keys[start:start + limit]
        payload = {
            "items": [
                {"bucketKey": bucket_key, "objectKey": key, "objectId": self.buckets[bucket_key][key]}
                for key in page
            ]
        }
        if start + limit < len(keys):
            next_key = urllib.parse.quote(keys[start + limit], safe="")
            payload["next"] = f"{APS_BASE}/oss/v2/buckets/{bucket_key}/objects?startAt={next_key}&limit={limit}"
        return _json(200, payload)

    def _upload(self, method: str, path: str, request: httpx.Request) -> httpx.Response:
        m = re.fullmatch(r"/upload/([^/]+)/(.+)", path)
        if method != "PUT" or not m:
            return _json(403, {"reason": "Signature does not allow this request"})
        self.add_object(m.group(1), m.group(2))
        return _json(200, {"objectKey": m.group(2), "size": len(request.content)})

    def _start_job(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.jobs.append(body)
        urn = body["input"]["urn"]
        if self.publish_manifest_on_job:
            self.manifests[urn] = {"urn": urn, "status": "inprogress", "progress": "0% complete"}
        return _json(200, {"result": "created", "urn": urn})

    def add_object(self, bucket_key: str, object_key: str) -> str:
        object_id = f"urn:adsk.objects:os.object:{bucket_key}/{object_key}"
        self.buckets.setdefault(bucket_key, {})[object_key] = object_id
        return object_id

    def upstream_calls(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if not call[1].startswith("/upload/")]


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("APS_CLIENT_ID", CLIENT_ID)
    monkeypatch.setenv("APS_CLIENT_SECRET", CLIENT_SECRET)
    monkeypatch.delenv("APS_BASE_URL", raising=False)
    monkeypatch.delenv("APS_TIMEOUT", raising=False)


@pytest.fixture
def fake_aps() -> FakeAps:
    return FakeAps()


@pytest.fixture
def aps(fake_aps: FakeAps):
    client = ApsClient(APS_BASE, transport=httpx.MockTransport(fake_aps.handler))
    yield client
    client.close()


@pytest.fixture
def api(env, aps: ApsClient):
    app.dependency_overrides[get_aps] = lambda: aps
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def uploader(fake_aps: FakeAps):
    client = httpx.Client(transport=httpx.MockTransport(fake_aps.handler))
    yield client
    client.close()
