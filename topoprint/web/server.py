"""Server entry point for the topoprint web API."""

import uvicorn

from topoprint.config import get_config
from topoprint.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def run_server(host: str = "0.0.0.0", port: int = 5000, reload: bool = False) -> None:
    """Start uvicorn with JSON logging configured from the active config."""
    settings = get_config().logging
    configure_logging(level=settings.level, format_type="json", log_file=settings.file)
    logger.info("Starting topoprint web API", host=host, port=port, reload=reload)
    uvicorn.run(
        "topoprint.web.api:app",  # Import string for reload support
        host=host,
        port=port,
        reload=reload,
        log_level=settings.level.lower(),
    )


def main():
    """Main entry point for web server."""
    run_server()


if __name__ == "__main__":
    main()
