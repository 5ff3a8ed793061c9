"""Run the controller with uvicorn: ``python -m fpunlock``."""
from __future__ import annotations

import uvicorn

from .config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "fpunlock.main:app",
        host=settings.controller_host,
        port=settings.controller_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
