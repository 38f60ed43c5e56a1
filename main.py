"""Main entry point for running an example HTTP platform service."""

from loguru import logger

from http_platform import Platform, get_settings, setup_logging


def main() -> None:
    """Main entry point for the example service."""
    settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    platform = Platform(settings.to_config(logger))

    @platform.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    logger.info(
        f"Starting HTTP platform on http://{settings.host}:{settings.port} "
        f"({settings.mode} mode)"
    )
    platform.run()


if __name__ == "__main__":
    main()
