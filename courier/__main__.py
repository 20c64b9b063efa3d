"""Run the courier with uvicorn: ``python -m courier``."""

import uvicorn

from courier.core.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "courier.application.app:create_app",
        factory=True,
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
