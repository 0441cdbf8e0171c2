import uvicorn

from .config import get_settings


def main():
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "vibe.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
