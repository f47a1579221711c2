"""Run the API with uvicorn: ``python -m imagio``."""

import uvicorn

from imagio.core.settings import app_settings


def main() -> None:
    uvicorn.run(
        "imagio.main:app",
        host=app_settings.API_HOST,
        port=app_settings.API_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
