from typing import Optional

class SimpleViewerError(Exception):
    status_code = 400

    @property
    def message(self) -> str:
        return str(self)

class ConfigError(SimpleViewerError):
    pass

class ValidationError(SimpleViewerError):
    pass

class NotFound(SimpleViewerError):
    status_code = 404

class UpstreamError(SimpleViewerError):
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body

class AuthError(UpstreamError):
    pass

class UpstreamTimeout(UpstreamError):
    status_code = 504

def status_for(exc: Exception) -> int:
    # anything unrecognised is reported as a bad request
    if isinstance(exc, SimpleViewerError):
        return exc.status_code
    return 400
