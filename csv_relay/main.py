"""
Process entry point.

Runs the relay under Uvicorn with the host, port and log level taken from
:class:`csv_relay.core.config.Settings`::

    python -m csv_relay.main

Process supervision (restart, PID tracking, stop) is left to whatever runs
this command: systemd, a container runtime, supervisord.
"""

import logging

import uvicorn

from csv_relay.core.config import get_settings


def main() -> None:
    """Start Uvicorn serving ``csv_relay.api.app:app``."""
    settings = get_settings()
    uvicorn.run(
        "csv_relay.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,  # Enable auto-reload in debug mode
        log_level=logging.getLevelName(
            logging.DEBUG if settings.debug else logging.INFO
        ).lower(),
    )


if __name__ == "__main__":
    main()
