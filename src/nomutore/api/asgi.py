"""ASGI entrypoint for the ledger API."""

from nomutore.api.app import create_app
from nomutore.containers import build_container

app = create_app(build_container())
