"""Tests for target group derivation."""

import pytest
from rolesd.core.errors import RecordConversionError
from rolesd.discovery.builder import build_target_group, build_tombstone, derive_source
from rolesd.discovery.models import ADDRESS_LABEL


def test_label_prefixing():
    metric = {
        "__name__": "up",
        "role": "jmx",
        "instance": "10.0.0.1:9999",
        "exporter_port": "9404",
    }

    group = build_target_group(metric, "jmx")

    assert group.source == "10.0.0.1:9404"
    assert group.labels == {
        "__name__": "up",
        "__meta_role": "jmx",
        "__meta_instance": "10.0.0.1:9999",
        "__meta_exporter_port": "9404",
    }
    assert group.targets == [{ADDRESS_LABEL: "10.0.0.1:9404"}]
    assert group.addresses == [group.source]
    assert not group.is_tombstone


def test_identity_depends_only_on_instance_and_port(record):
    first = build_target_group(record("10.0.0.1", role="jmx"))
    other_labels = dict(record("10.0.0.1", role="kafka"), app="zookeeper", extra="x")
    second = build_target_group(other_labels)

    assert first.source == second.source
    assert first.labels != second.labels


def test_differing_exporter_port_differs(record):
    first = build_target_group(record("10.0.0.1", port="9404"))
    second = build_target_group(record("10.0.0.1", port="9405"))

    assert first.source != second.source


def test_instance_port_is_replaced():
    assert derive_source({"instance": "host-a:8080", "exporter_port": "9100"}) == "host-a:9100"


def test_instance_without_port():
    assert derive_source({"instance": "host-a", "exporter_port": "9100"}) == "host-a:9100"


@pytest.mark.parametrize(
    "metric",
    [
        {"exporter_port": "9404"},
        {"instance": "10.0.0.1:9999"},
        {"instance": "", "exporter_port": "9404"},
        {"instance": "10.0.0.1:9999", "exporter_port": 9404},
    ],
)
def test_missing_identity_labels_rejected(metric):
    with pytest.raises(RecordConversionError):
        build_target_group(metric, "jmx")


@pytest.mark.parametrize("metric", [None, "up", ["instance", "exporter_port"]])
def test_non_mapping_record_rejected(metric):
    with pytest.raises(RecordConversionError):
        build_target_group(metric, "jmx")


def test_non_string_label_value_rejected():
    metric = {"instance": "10.0.0.1:9999", "exporter_port": "9404", "app": None}

    with pytest.raises(RecordConversionError) as exc_info:
        build_target_group(metric, "jmx")

    assert exc_info.value.details["source"] == "10.0.0.1:9404"


def test_tombstone_shape():
    tombstone = build_tombstone("10.0.0.1:9404")

    assert tombstone.source == "10.0.0.1:9404"
    assert tombstone.targets == []
    assert tombstone.labels == {}
    assert tombstone.is_tombstone
