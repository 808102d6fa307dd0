"""Root test configuration."""

import logging

import pytest
import structlog

from rolesd.discovery.models import QueryResult, Sample


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def make_record(host: str, port: str = "9404", role: str = "jmx") -> dict[str, str]:
    """An ``up`` series label set as returned by the backend."""
    return {
        "__name__": "up",
        "app": "kafka",
        "role": role,
        "instance": f"{host}:9999",
        "exporter_port": port,
        "metrics_path": "/metrics",
    }


def make_result(*metrics) -> QueryResult:
    return QueryResult(
        status="success",
        result_type="vector",
        samples=tuple(Sample(metric=m, value=[1609459200, "1"]) for m in metrics),
    )


@pytest.fixture
def record():
    return make_record


@pytest.fixture
def result():
    return make_result
