"""
planflow API runner

Loads .env, configures logging from settings and serves the FastAPI app.
"""
import os
import signal
import sys

import uvicorn
from dotenv import load_dotenv

# Settings are read at import time, so .env has to be loaded first
load_dotenv()

from planflow.config import get_logger, settings, setup_logging  # noqa: E402

logger = get_logger("runner")


def _shutdown(signum, frame):
    logger.info("Signal %s received, stopping API", signal.Signals(signum).name)
    sys.exit(0)


def main():
    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _shutdown)

    setup_logging(
        log_level=settings.log_level,
        json_logs=not settings.debug,
        log_file=os.environ.get("LOG_FILE"),
    )

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    logger.info(
        "planflow API on %s:%s (%s), functions at %s",
        host, port, settings.app_env, settings.execution.functions_url,
    )

    uvicorn.run(
        "planflow.api.app:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
