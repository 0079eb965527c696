import argparse

from usageboard.config import Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="usageboard",
        description="LLM usage and cost aggregation service for log directories",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":5177",
        help="Address to listen on (default: :5177)",
    )
    parser.add_argument(
        "--refresh.interval",
        dest="refresh_interval",
        type=int,
        default=60,
        help="Background refresh interval in seconds (default: 60)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=["console", "json"],
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--usage.log-dir",
        dest="usage_log_dir",
        help="Directory of *.log files (default: $OPENCLAW_LOG_DIR)",
    )
    parser.add_argument(
        "--usage.pricing",
        dest="pricing",
        help="Pricing JSON path or URL (default: $USAGEBOARD_PRICING)",
    )
    parser.add_argument(
        "--usage.categories",
        dest="categories",
        help="JSON file with provider/user matching rules",
    )
    parser.add_argument(
        "--usage.timezone",
        dest="timezone",
        help="Time zone for daily/weekly/monthly buckets (default: UTC)",
    )
    parser.add_argument(
        "--usage.text-fallback",
        dest="text_fallback",
        action="store_true",
        help="Only scan free text for signals structured fields did not provide",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    config.listen_address = args.listen_address
    config.refresh_interval = args.refresh_interval
    config.log_level = args.log_level
    config.log_format = args.log_format
    config.text_fallback = args.text_fallback

    # flags backed by env vars only override when given
    for name in ("usage_log_dir", "pricing", "categories", "timezone"):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)

    return config
