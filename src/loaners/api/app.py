"""ASGI entry point: `uvicorn loaners.api.app:app`."""

from loaners.api.factory import create_app

app = create_app()
