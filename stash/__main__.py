"""Entry point: python -m stash"""

import uvicorn

from stash.config import get_settings
from stash.logging import setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(settings.debug)
    uvicorn.run(
        "stash.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
