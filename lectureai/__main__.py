"""Start the API server: `python -m lectureai`."""

import uvicorn

from lectureai.config import settings


def main() -> None:
    uvicorn.run(
        "lectureai.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
