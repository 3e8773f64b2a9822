"""ASGI entry point: `uvicorn autoapi.asgi:app`."""

from autoapi.main import create_app

app = create_app()
