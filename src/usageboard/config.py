import os
from dataclasses import dataclass

DEFAULT_LOG_DIR = os.path.join("~", ".openclaw", "logs")
DEFAULT_PRICING = os.path.join("data", "pricing.json")


@dataclass
class Config:
    # listen_address: format ":5177" or
    # "127.0.0.1:5177"
    listen_address: "str" = ":5177"
    # background refresh interval in seconds
    refresh_interval: "int" = 60
    log_level: "str" = "info"
    # "console" or "json"
    log_format: "str" = "console"

    # directory holding the *.log files to aggregate
    usage_log_dir: "str" = DEFAULT_LOG_DIR
    # local path or http(s) URL of the pricing document
    pricing: "str" = DEFAULT_PRICING
    # optional JSON file overriding the provider/user rules
    categories: "str" = ""
    # IANA zone name used for the daily/weekly/monthly buckets
    timezone: "str" = "UTC"
    # only use regex matches when structured fields found nothing
    text_fallback: "bool" = False

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            usage_log_dir=os.environ.get("OPENCLAW_LOG_DIR", DEFAULT_LOG_DIR),
            pricing=os.environ.get("USAGEBOARD_PRICING", DEFAULT_PRICING),
            categories=os.environ.get("USAGEBOARD_CATEGORIES", ""),
            timezone=os.environ.get("USAGEBOARD_TIMEZONE", "UTC"),
        )

    @property
    def log_dir_path(self) -> "str":
        return os.path.expanduser(self.usage_log_dir)
