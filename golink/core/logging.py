from __future__ import annotations

import logging


def configure_logging(level_name: str) -> None:
    """Configure the ``golink`` logger namespace.

    ``logging.basicConfig`` is a no-op when the root logger already has
    handlers (e.g. when uvicorn sets up its own before the app is imported).
    Configuring the ``golink`` namespace directly with ``propagate = False``
    sends all application logs to stderr regardless of the host's root-logger
    setup, and keeps stdout free for the CLI's output.
    """
    level = getattr(logging, level_name.upper(), logging.WARNING)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    )
    app_log = logging.getLogger("golink")
    app_log.setLevel(level)
    if not app_log.handlers:
        app_log.addHandler(handler)
    app_log.propagate = False
