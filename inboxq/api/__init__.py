"""HTTP surface for InboxQ."""

from __future__ import annotations


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    from inboxq.config import API_HOST, API_PORT, DEBUG

    uvicorn.run("inboxq.api.app:app", host=API_HOST, port=API_PORT, reload=DEBUG)
