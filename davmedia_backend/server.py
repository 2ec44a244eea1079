"""
Standalone server entry point.
"""
from aiohttp import web

from .config import SERVER_HOST, SERVER_PORT
from .routes import create_app
from .shared import get_logger, log_success

logger = get_logger(__name__)


def main() -> None:
    app = create_app()
    log_success(logger, f"Serving DavMedia scan API on http://{SERVER_HOST}:{SERVER_PORT}/davmedia/")
    web.run_app(app, host=SERVER_HOST, port=SERVER_PORT, print=None)


if __name__ == "__main__":
    main()
