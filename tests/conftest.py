import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest
from prometheus_client import CollectorRegistry

from usageboard.categories import CategoryRules
from usageboard.metrics import MetricsUpdater


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def metrics(registry: "CollectorRegistry") -> "MetricsUpdater":
    return MetricsUpdater(registry=registry)


@pytest.fixture()
def rules() -> "CategoryRules":
    return CategoryRules()


@pytest.fixture()
def fixed_now() -> "datetime":
    return datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def write_log(tmp_path: "Path") -> "Callable[..., Path]":
    """
    writes lines (strings or dicts, dicts become JSON) into
    a log file under tmp_path and returns its path.
    """

    def _write(name: "str", lines: "list[object]") -> "Path":
        path = tmp_path / name
        rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
        path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        return path

    return _write
