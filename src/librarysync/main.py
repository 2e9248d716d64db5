"""Service entry point: ``librarysync`` console script."""

import uvicorn

from librarysync.api import create_app
from librarysync.config import get_settings

app = create_app()


def run() -> None:
    """Run the API with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "librarysync.main:app",
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,  # configure_logging() owns the root logger
    )


if __name__ == "__main__":
    run()
