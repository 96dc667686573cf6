import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from .aps import ApsClient, aps_client
from .auth import get_internal_token, get_public_token
from .config import Settings, load_settings
from .derivatives import get_status
from .errors import SimpleViewerError, ValidationError, status_for
from .schemas import Credentials, DesignCreate, DesignOut, UploadUrlOut
from .storage import create_upload_url, ensure_bucket_exists, list_objects, urnify

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "OPTIONS,GET,POST",
}

app = FastAPI(title="Simple Viewer")

def get_settings() -> Settings:
    return load_settings()

def get_aps(settings: Settings = Depends(get_settings)) -> ApsClient:
    return aps_client(settings.base_url, settings.timeout)

def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status_code = status_for(exc)
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, SimpleViewerError):
        logger.error("%s %s failed (%s): %s", request.method, request.url.path, status_code, message)
    else:
        logger.exception("%s %s failed unexpectedly", request.method, request.url.path)
    return JSONResponse(status_code=status_code, content={"message": message})

def _allowed_methods(request: Request) -> list[str]:
    methods = set()
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match != Match.NONE and getattr(route, "methods", None):
            methods.update(route.methods)
    methods.discard("HEAD")
    return sorted(methods)

def _validation_message(exc: RequestValidationError) -> str:
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        if error.get("type") == "json_invalid":
            return "The request payload is not valid JSON."
        if not loc:
            return "The request payload is missing or is not a JSON object."
        field = loc[-1]
        if error.get("type") == "missing":
            return f"The '{field}' field is missing in the request payload."
        return f"The '{field}' field is invalid: {error.get('msg')}"
    return "Invalid request payload."

@app.exception_handler(SimpleViewerError)
def handle_service_error(request: Request, exc: SimpleViewerError):
    return _error_response(request, exc)

@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    return _error_response(request, ValidationError(_validation_message(exc)))

@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        methods = " or ".join(_allowed_methods(request)) or "other"
        err = ValidationError(f"Only {methods} requests are allowed for this endpoint.")
        return _error_response(request, err)
    logger.error("%s %s failed (%s): %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

@app.middleware("http")
async def default_headers(request: Request, call_next):
    if request.method == "OPTIONS":
        response = Response(status_code=200)
    else:
        try:
            response = await call_next(request)
        except Exception as exc:
            response = _error_response(request, exc)
    response.headers.update(DEFAULT_HEADERS)
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["OPTIONS", "GET", "POST"],
    allow_headers=["Content-Type"],
)

@app.get("/health")
def health():
    return {"status": "ok"}

@app.post("/designs", response_model=UploadUrlOut)
def create_design(payload: DesignCreate, settings: Settings = Depends(get_settings), aps: ApsClient = Depends(get_aps)):
    credentials = get_internal_token(aps, settings.client_id, settings.client_secret)
    ensure_bucket_exists(aps, settings.bucket_key, credentials.access_token)
    url = create_upload_url(aps, settings.bucket_key, payload.name, credentials.access_token)
    logger.info("issued upload URL for %s", payload.name)
    return UploadUrlOut(url=url)

@app.get("/designs", response_model=list[DesignOut])
def list_designs(settings: Settings = Depends(get_settings), aps: ApsClient = Depends(get_aps)):
    credentials = get_internal_token(aps, settings.client_id, settings.client_secret)
    ensure_bucket_exists(aps, settings.bucket_key, credentials.access_token)
    objects = list_objects(aps, settings.bucket_key, credentials.access_token)
    return [DesignOut(name=obj["objectKey"], urn=urnify(obj["objectId"])) for obj in objects]

@app.get("/designs/{urn}/status")
def get_design_status(urn: str, settings: Settings = Depends(get_settings), aps: ApsClient = Depends(get_aps)):
    credentials = get_internal_token(aps, settings.client_id, settings.client_secret)
    return get_status(aps, urn, credentials.access_token)

@app.get("/token", response_model=Credentials)
def get_access_token(settings: Settings = Depends(get_settings), aps: ApsClient = Depends(get_aps)):
    return get_public_token(aps, settings.client_id, settings.client_secret)
