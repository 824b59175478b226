"""Main entry point - runs the bridge API."""

import asyncio
import logging
import signal
from pathlib import Path

import uvicorn

from htlcbridge.api.app import create_app
from htlcbridge.chain import get_height_source
from htlcbridge.config import get_settings
from htlcbridge.ledger.database import close_db, init_db

logger = logging.getLogger(__name__)


class Application:
    """Main application serving the bridge API."""

    def __init__(self):
        self.settings = get_settings()
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        # Configure logging
        if self.settings.debug:
            log_level = logging.DEBUG
        else:
            log_level = getattr(logging, self.settings.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting HTLC bridge...")
        logger.info("Environment: %s", self.settings.environment)
        logger.info("Bridge account: %s", self.settings.bridge_address)

        self._ensure_data_dir()

        # Initialize database
        await init_db()
        logger.info("Database initialized")

        height_source = get_height_source()
        logger.info("Height source: %s", height_source.name)

        task = asyncio.create_task(self._run_api())
        logger.info("API task created")

        # Wait for shutdown signal or the server exiting on its own
        shutdown = asyncio.create_task(self._shutdown_event.wait())
        await asyncio.wait({task, shutdown}, return_when=asyncio.FIRST_COMPLETED)

        for pending in (task, shutdown):
            pending.cancel()
        await asyncio.gather(task, shutdown, return_exceptions=True)

        await self._cleanup()

    def _ensure_data_dir(self):
        """Create the directory of a file-backed SQLite database."""
        url = self.settings.database_url
        if url.startswith("sqlite") and ":memory:" not in url:
            path = Path(url.split(":///", 1)[-1])
            path.parent.mkdir(parents=True, exist_ok=True)

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app()
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info("Starting API server on %s:%d", self.settings.api_host, self.settings.api_port)
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error("API error: %s", e)
            raise

    async def _cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up...")
        await close_db()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    app = Application()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
