"""Development server entrypoint."""
from __future__ import annotations

from .app import create_app
from .config import get_settings


def run() -> None:
    """Convenience wrapper used by ``python -m factory_entry.main``."""

    settings = get_settings()
    app = create_app(settings)
    app.run(
        host="0.0.0.0",
        port=5000,
        debug=settings.environment == "development",
    )


if __name__ == "__main__":
    run()
