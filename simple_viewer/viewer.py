import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .client import DesignsClient
from .schemas import Credentials, Manifest

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = {"env": "AutodeskProduction2", "api": "streamingV2"}

class RuntimeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"

class ViewerConfigError(Exception):
    pass

class ViewerInitError(Exception):
    pass

@dataclass
class RuntimeContext:
    options: dict
    credentials: Optional[Credentials] = None

@dataclass
class ViewerDocument:
    document_id: str
    access_token: Optional[str]
    options: dict = field(default_factory=dict)

# one runtime per process; reinitializing with other options is refused
class ViewerRuntime:
    def __init__(self):
        self._cond = threading.Condition()
        self.state = RuntimeState.UNINITIALIZED
        self.options: Optional[dict] = None
        self.context: Any = None
        self._error: Optional[BaseException] = None

    def _check_options(self, options: dict) -> None:
        for key, value in self.options.items():
            if options.get(key) != value:
                raise ViewerConfigError(
                    "Viewer runtime properties cannot be modified after the runtime has been initialized."
                )

    def initialize(self, options: Optional[dict], initializer: Callable[[dict], Any]) -> Any:
        options = dict(options or {})
        with self._cond:
            if self.state in (RuntimeState.INITIALIZING, RuntimeState.READY):
                self._check_options(options)
            while self.state == RuntimeState.INITIALIZING:
                self._cond.wait()
                if self.state == RuntimeState.FAILED:
                    raise ViewerInitError(f"Viewer runtime failed to initialize: {self._error}") from self._error
            if self.state == RuntimeState.READY:
                return self.context
            self.state = RuntimeState.INITIALIZING
            self.options = options
            self._error = None

        try:
            context = initializer(options)
        except Exception as exc:
            with self._cond:
                self.state = RuntimeState.FAILED
                self._error = exc
                self._cond.notify_all()
            logger.error("viewer runtime initialization failed: %s", exc)
            raise

        with self._cond:
            self.context = context
            self.state = RuntimeState.READY
            self._cond.notify_all()
        return context

_runtime: Optional[ViewerRuntime] = None
_runtime_lock = threading.Lock()

def get_runtime() -> ViewerRuntime:
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = ViewerRuntime()
        return _runtime

def token_initializer(client: DesignsClient) -> Callable[[dict], RuntimeContext]:
    def initialize(options: dict) -> RuntimeContext:
        return RuntimeContext(options=options, credentials=client.get_access_token())
    return initialize

def load_document(document_id: str, context: RuntimeContext) -> ViewerDocument:
    token = context.credentials.access_token if context.credentials else None
    return ViewerDocument(document_id=document_id, access_token=token, options=dict(context.options))

class Viewer:
    def __init__(self, runtime: ViewerRuntime, loader: Callable[[str, Any], Any] = load_document):
        self.runtime = runtime
        self.loader = loader
        self.urn: Optional[str] = None
        self.document: Any = None

    def show(self, urn: Optional[str]) -> Any:
        """Load the design unless it is already the one on display."""
        if not urn or urn == self.urn:
            return self.document
        if self.runtime.state != RuntimeState.READY:
            raise ViewerInitError("Viewer runtime is not initialized.")
        self.document = self.loader("urn:" + urn, self.runtime.context)
        self.urn = urn
        return self.document

@dataclass
class OpenResult:
    urn: str
    status: str
    progress: Optional[str] = None
    messages: list = field(default_factory=list)
    document: Any = None

def _failure_messages(manifest: Manifest) -> list:
    if manifest.messages:
        return list(manifest.messages)
    messages = []
    for derivative in getattr(manifest, "derivatives", None) or []:
        messages.extend(derivative.get("messages") or [])
    return messages

def open_design(client: DesignsClient, viewer: Viewer, urn: str) -> OpenResult:
    manifest = client.get_design_status(urn)
    if manifest.status in ("inprogress", "pending"):
        logger.info("model is being translated (%s)", manifest.progress)
        return OpenResult(urn=urn, status=manifest.status, progress=manifest.progress)
    if manifest.status == "failed":
        return OpenResult(urn=urn, status=manifest.status, progress=manifest.progress, messages=_failure_messages(manifest))
    document = viewer.show(urn)
    return OpenResult(urn=urn, status=manifest.status, progress=manifest.progress, document=document)
