"""ASGI entrypoint for the session sync API."""

from session_sync.api.app import create_app
from session_sync.containers import build_container

app = create_app(build_container())


def run() -> None:
    """Serve the API with uvicorn using the configured bind address."""
    import uvicorn

    settings = app.state.container.settings
    uvicorn.run(app, host=settings.host, port=settings.port)
