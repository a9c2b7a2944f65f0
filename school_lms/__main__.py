"""Run the API with uvicorn: ``python -m school_lms`` or ``school-lms``."""

import uvicorn

from school_lms.config import settings


def main() -> None:
    uvicorn.run(
        "school_lms.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
