import asyncio
from zoneinfo import ZoneInfo

import structlog
import uvicorn

from usageboard.api import create_app
from usageboard.categories import load_category_rules
from usageboard.cli import parse_args
from usageboard.collector import UsageCollector
from usageboard.logging import setup_logging
from usageboard.metrics import MetricsUpdater
from usageboard.source.directory import DirectoryLogSource

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':5177' or '127.0.0.1:5177'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_format)

    metrics_updater = MetricsUpdater()
    source = DirectoryLogSource(config.log_dir_path)
    collector = UsageCollector(
        source,
        metrics_updater,
        rules=load_category_rules(config.categories),
        pricing=config.pricing,
        refresh_interval_seconds=config.refresh_interval,
        report_tz=ZoneInfo(config.timezone),
        text_fallback=config.text_fallback,
    )
    logger.info(
        "log_source_configured",
        log_dir=source.location,
        pricing=config.pricing,
    )

    host, port = _parse_listen_address(config.listen_address)
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(collector, metrics_updater.registry),
            host=host,
            port=port,
            log_config=None,
        )
    )

    async def _run() -> "None":
        # uvicorn owns SIGINT/SIGTERM; the refresh loop
        # stops once the server has shut down
        refresher = asyncio.create_task(collector.run())
        logger.info("usage_server_starting", host=host, port=port)
        try:
            await server.serve()
        finally:
            logger.info("shutting_down")
            collector.stop()
            await refresher
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
