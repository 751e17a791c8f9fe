"""Main entry point - runs the transfer API and job pipelines."""

import asyncio
import logging
import signal
import sys

import uvicorn

from relaybridge.api.app import create_app
from relaybridge.config import ConfigurationError, get_settings
from relaybridge.services.factory import build_orchestrator
from relaybridge.signing.base import SigningError

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class Application:
    """Main application: API server plus the orchestrator it hosts."""

    def __init__(self):
        self.settings = get_settings()
        self.orchestrator = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        configure_logging(self.settings.debug)

        logger.info("Starting RelayBridge...")
        logger.info(f"Environment: {self.settings.environment}")

        # Invalid configuration is fatal before anything touches the network
        self.orchestrator = build_orchestrator(self.settings)
        logger.info(f"Relay address: {self.orchestrator.relay_address}")

        api_task = asyncio.create_task(self._run_api())
        logger.info("API task created")

        # Wait for shutdown signal or the server exiting on its own
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        await asyncio.wait({api_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

        for task in (api_task, shutdown_task):
            task.cancel()
        await asyncio.gather(api_task, shutdown_task, return_exceptions=True)
        logger.info("Shutdown complete")

    async def _run_api(self):
        """Run the FastAPI server. Its lifespan opens the database and resumes jobs."""
        try:
            app = create_app(self.orchestrator)
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

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
    except (ConfigurationError, SigningError) as e:
        logger.critical(f"Startup aborted: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
