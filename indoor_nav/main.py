"""Application entry point for the indoor navigation service.

Run locally:
    uvicorn indoor_nav.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import uvicorn

from indoor_nav.api import create_app

DEFAULT_BUILDING = "assets/ryokan_building.json"


def _load_local_env() -> None:
    """Load key=value pairs from local .env files if present.

    Priority (first existing file wins per key if env var was unset):
    1) indoor_nav/.env
    2) .env
    """
    candidates = [Path("indoor_nav/.env"), Path(".env")]

    for env_path in candidates:
        if not env_path.exists():
            continue

        for raw in env_path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            os.environ[key] = value.strip().strip("'").strip('"')


def _configure_logging() -> None:
    level = os.getenv("INDOOR_NAV_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_load_local_env()
_configure_logging()

_building_path = os.getenv("INDOOR_NAV_BUILDING", DEFAULT_BUILDING).strip()
if _building_path and not Path(_building_path).exists():
    logging.getLogger(__name__).warning("Building file %s not found; POST /building to load one", _building_path)
    _building_path = ""

app = create_app(
    building_path=_building_path or None,
    auto_tick=os.getenv("INDOOR_NAV_AUTO_TICK", "false").lower() == "true",
)


if __name__ == "__main__":
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    reload_enabled = os.getenv("API_RELOAD", "true").lower() == "true"
    uvicorn.run("indoor_nav.main:app", host=host, port=port, reload=reload_enabled)
