"""
Main module entry point.

Runs the HTTP service as: python -m diabetify.main
"""

import uvicorn

from diabetify.main.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "diabetify.main.app:app",
        host=settings.service.host,
        port=settings.service.port,
        reload=settings.service.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
