"""Entry point for the service directory.

Serves the FastAPI application with Uvicorn.  Host, port and every
other setting are read from environment variables (see
``directory_service.app.core.config``).

Usage:
    python run.py
"""
import asyncio

from uvicorn import Config, Server

from directory_service.app.core.config import settings
from directory_service.app.main import app


async def main() -> None:
    """Start the directory API and serve until interrupted."""
    config = Config(app=app, host=settings.host, port=settings.port, reload=False, log_level=settings.log_level.lower())
    server = Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
