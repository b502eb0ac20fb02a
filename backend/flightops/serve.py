"""
`flightops-serve`: run the API under uvicorn.

TLS is terminated by the proxy in front of the service, so only plain HTTP
options are read here.
"""

import logging
import os
from typing import Any, Dict

import uvicorn

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def server_options() -> Dict[str, Any]:
    reload_enabled = _flag("RELOAD")
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "127.0.0.1"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": reload_enabled,
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "proxy_headers": _flag("PROXY_HEADERS", "true"),
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1"),
    }
    # uvicorn ignores workers when reloading
    if not reload_enabled:
        options["workers"] = int(os.getenv("WEB_CONCURRENCY", "1"))
    return options


def main() -> None:
    options = server_options()
    logger.info("Starting flightops API", extra={"host": options["host"], "port": options["port"]})
    uvicorn.run("flightops.main:app", **options)


if __name__ == "__main__":
    main()
