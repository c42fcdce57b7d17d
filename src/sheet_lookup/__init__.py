"""Sheet Lookup - spreadsheet upload and identifier lookup service."""

from sheet_lookup.api import app, create_app

__all__ = ["app", "create_app"]
__version__ = "0.1.0"


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from sheet_lookup.config import settings

    uvicorn.run(
        "sheet_lookup.api:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
