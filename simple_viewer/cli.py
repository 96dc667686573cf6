import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer

from .client import ApiError, DesignsClient
from .viewer import DEFAULT_OPTIONS, Viewer, get_runtime, open_design, token_initializer

API_ERROR_EXIT_CODE = 3

app = typer.Typer(help="Upload designs, track their conversion and open them in the viewer.")

_state = {"api_url": "http://127.0.0.1:8000"}

def configure_logging(level: Optional[str] = None) -> None:
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

def _client() -> DesignsClient:
    return DesignsClient(_state["api_url"])

def _echo_json(value) -> None:
    typer.echo(json.dumps(value, indent=2, default=str))

def _fail(exc: ApiError) -> None:
    typer.echo(f"Error ({exc.status_code}): {exc.message}", err=True)
    raise typer.Exit(code=API_ERROR_EXIT_CODE)

@app.callback()
def main(
    api_url: str = typer.Option("http://127.0.0.1:8000", envvar="SIMPLE_VIEWER_API", help="Base URL of the API."),
    log_level: Optional[str] = typer.Option(None, help="Logging level (defaults to LOG_LEVEL or INFO)."),
) -> None:
    _state["api_url"] = api_url
    configure_logging(log_level)

@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("simple_viewer.main:app", host=host, port=port)

@app.command("list")
def list_designs() -> None:
    """List uploaded designs."""
    try:
        _echo_json([d.model_dump() for d in _client().list_designs()])
    except ApiError as exc:
        _fail(exc)

@app.command()
def upload(path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True), name: Optional[str] = None) -> None:
    """Upload a design file under its file name (or --name)."""
    design_name = name or path.name
    try:
        _client().upload_design(design_name, path.read_bytes())
    except ApiError as exc:
        _fail(exc)
    typer.echo(f"Uploaded {design_name}")

@app.command()
def status(
    urn: str,
    wait: bool = typer.Option(False, "--wait", help="Keep polling until the conversion finishes."),
    attempts: int = 30,
    delay: float = 2.0,
) -> None:
    """Show the conversion status of a design, starting the conversion if needed."""
    client = _client()
    try:
        manifest = client.wait_for_design(urn, attempts=attempts, delay=delay) if wait else client.get_design_status(urn)
    except ApiError as exc:
        _fail(exc)
    _echo_json(manifest.model_dump())

@app.command()
def token() -> None:
    """Print a viewer (read-only) access token."""
    try:
        _echo_json(_client().get_access_token().model_dump())
    except ApiError as exc:
        _fail(exc)

@app.command()
def view(urn: str) -> None:
    """Open a design in the viewer once its conversion succeeded."""
    client = _client()
    runtime = get_runtime()
    try:
        runtime.initialize(DEFAULT_OPTIONS, token_initializer(client))
        result = open_design(client, Viewer(runtime), urn)
    except ApiError as exc:
        _fail(exc)
    if result.status in ("inprogress", "pending"):
        typer.echo(f"Model is being translated ({result.progress})...")
    elif result.status == "failed":
        typer.echo("Translation failed.")
        for message in result.messages:
            typer.echo(f"  - {json.dumps(message)}")
    else:
        _echo_json(asdict(result))

if __name__ == "__main__":
    app()
