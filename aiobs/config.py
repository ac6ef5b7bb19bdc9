"""Environment-driven settings and logging setup."""

from __future__ import annotations

import logging
import os
import sys

from pydantic import BaseModel

DEFAULT_SHEPHERD_URL = "https://shepherd-api-48963996968.us-central1.run.app"
DEFAULT_FLUSH_SERVER_URL = "https://aiobs-flush-server-48963996968.us-central1.run.app"

QUOTA_TIMEOUT = 10.0
TRACES_TIMEOUT = 30.0


class CollectorSettings(BaseModel):
    """Collector configuration.

    Environment variables (all optional):
      AIOBS_API_KEY           — credential for the quota and flush services
      AIOBS_SHEPHERD_URL      — quota service base URL
      AIOBS_FLUSH_SERVER_URL  — trace transmission base URL
      LLM_OBS_OUT             — default path of the local export file
      AIOBS_DEBUG             — any non-empty value enables debug logging
    """

    api_key: str | None = None
    shepherd_url: str = DEFAULT_SHEPHERD_URL
    flush_server_url: str = DEFAULT_FLUSH_SERVER_URL
    output_path: str | None = None
    quota_timeout: float = QUOTA_TIMEOUT
    traces_timeout: float = TRACES_TIMEOUT
    debug: bool = False

    @classmethod
    def from_env(cls) -> CollectorSettings:
        return cls(
            api_key=os.environ.get("AIOBS_API_KEY") or None,
            shepherd_url=os.environ.get("AIOBS_SHEPHERD_URL", DEFAULT_SHEPHERD_URL),
            flush_server_url=os.environ.get("AIOBS_FLUSH_SERVER_URL", DEFAULT_FLUSH_SERVER_URL),
            output_path=os.environ.get("LLM_OBS_OUT") or None,
            debug=bool(os.environ.get("AIOBS_DEBUG")),
        )


def configure_logging(debug: bool | None = None) -> None:
    """Attach a stdout handler to the ``aiobs`` logger when debugging is on."""
    if debug is None:
        debug = bool(os.environ.get("AIOBS_DEBUG"))
    pkg_logger = logging.getLogger("aiobs")
    if not debug:
        return

    if any(getattr(h, "_aiobs_debug", False) for h in pkg_logger.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    ))
    handler._aiobs_debug = True  # type: ignore[attr-defined]
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.WARNING)
