"""Turn backend metric records into discovery target groups."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rolesd.core.errors import RecordConversionError
from rolesd.discovery.models import (
    ADDRESS_LABEL,
    META_LABEL_PREFIX,
    METRIC_NAME_LABEL,
    MetricRecord,
    TargetGroup,
)

INSTANCE_LABEL = "instance"
EXPORTER_PORT_LABEL = "exporter_port"


def _required_label(metric: MetricRecord, name: str) -> str:
    value = metric.get(name)
    if not isinstance(value, str) or not value:
        raise RecordConversionError(
            f"Record has no usable '{name}' label",
            details={"label": name},
        )
    return value


def derive_source(metric: MetricRecord) -> str:
    """
    Derive a record's identity: the instance host joined to its exporter port.

    ``{"instance": "10.0.0.1:9999", "exporter_port": "9404"}`` -> ``"10.0.0.1:9404"``
    """
    host = _required_label(metric, INSTANCE_LABEL).split(":", 1)[0]
    port = _required_label(metric, EXPORTER_PORT_LABEL)
    return f"{host}:{port}"


def build_target_group(metric: Any, role: str | None = None) -> TargetGroup:
    """
    Build the target group for one metric record.

    ``__name__`` is copied as-is, every other label is stored under the
    ``__meta_`` prefix. The group's only target is its source address.

    Args:
        metric: Label set of one ``up`` series
        role: Role the record was queried for, used in error details

    Raises:
        RecordConversionError: If the record is not a label mapping or lacks
            ``instance``/``exporter_port``
    """
    if not isinstance(metric, Mapping):
        raise RecordConversionError(
            f"Record is not a label set: {type(metric).__name__}",
            details={"role": role},
        )

    source = derive_source(metric)

    labels: dict[str, str] = {}
    for name, value in metric.items():
        if not isinstance(value, str):
            raise RecordConversionError(
                f"Label '{name}' has a non-string value",
                details={"role": role, "source": source},
            )
        if name == METRIC_NAME_LABEL:
            labels[name] = value
            continue
        labels[f"{META_LABEL_PREFIX}{name}"] = value

    return TargetGroup(
        source=source,
        labels=labels,
        targets=[{ADDRESS_LABEL: source}],
    )


def build_tombstone(source: str) -> TargetGroup:
    """Target group announcing that ``source`` is gone."""
    return TargetGroup(source=source)
