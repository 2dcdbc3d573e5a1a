import json

import pytest

from entropy.errors import ERR_INTERNAL, ERR_INVALID, is_error
from entropy.firehose import (
    FirehoseOutput,
    TransientData,
    build_helm_release,
    clone_and_merge_maps,
    default_driver_conf,
    merge_chart_values,
    parse_driver_conf,
    read_output_data,
    read_transient_data,
    render_labels,
)
from entropy.firehose_config import ChartValues, FirehoseConfig, UsageSpec
from entropy.kube import Pod
from entropy.kubernetes import KubernetesOutput, Toleration


def _conf():
    return FirehoseConfig(
        replicas=1,
        namespace="firehose",
        deployment_id="firehose-foo-fh1",
        chart_values=ChartValues("latest", "0.1.3", "IfNotPresent"),
        env_variables={"SINK_TYPE": "LOG"},
        limits=UsageSpec("200m", "512Mi"),
        requests=UsageSpec("200m", "512Mi"),
    )


def test_default_driver_conf_valid():
    conf = parse_driver_conf("{}")
    assert conf.namespace == "firehose"
    assert conf.chart_values.chart_version == "0.1.3"


def test_parse_driver_conf_overrides_partially():
    conf = parse_driver_conf({"chart_values": {"image_tag": "v2"}})
    assert conf.chart_values.image_tag == "v2"
    assert conf.chart_values.image_pull_policy == "IfNotPresent"


def test_parse_driver_conf_missing_namespace():
    with pytest.raises(Exception) as exc:
        parse_driver_conf({"namespace": ""})
    assert is_error(exc.value, ERR_INVALID)


def test_render_labels():
    got = render_labels({"a": "{{ .name }}", "b": "{{ .missing }}"}, {"name": "fh1"})
    assert got == {"a": "fh1"}


def test_render_labels_invalid():
    with pytest.raises(Exception) as exc:
        render_labels({"a": "{{ .name"}, {})
    assert is_error(exc.value, ERR_INVALID)


def test_merge_chart_values():
    cur = ChartValues("latest", "0.1.3", "IfNotPresent")
    assert merge_chart_values(cur, None) is cur
    merged = merge_chart_values(cur, ChartValues(image_tag="gotocompany/firehose:1.0"))
    assert merged.image_tag == "1.0"
    assert merged.chart_version == "0.1.3"
    with pytest.raises(Exception) as exc:
        merge_chart_values(cur, ChartValues(image_tag="other/repo:1"))
    assert is_error(exc.value, ERR_INVALID)


def test_clone_and_merge_maps():
    first = {"a": "1"}
    assert clone_and_merge_maps(first, {"a": "2", "b": "3"}) == {"a": "2", "b": "3"}
    assert first == {"a": "1"}


def test_build_helm_release():
    kube = KubernetesOutput(tolerations={"firehose_LOG": [Toleration("k", "v", "e", "o")]})
    rc = build_helm_release(default_driver_conf(), _conf(), {}, kube)
    assert rc.name == "firehose-foo-fh1"
    assert rc.namespace == "firehose"
    assert rc.values["replicaCount"] == 1
    assert rc.values["labels"]["orchestrator"] == "entropy"
    assert rc.values["labels"]["deployment"] == "firehose-foo-fh1"
    assert rc.values["tolerations"][0]["key"] == "k"


def test_build_helm_release_credentials():
    dc = default_driver_conf()
    dc.gcs_sink_credential = "gcs-cred"
    rc = build_helm_release(dc, _conf(), {}, KubernetesOutput())
    env = rc.values["firehose"]["config"]
    assert env["SINK_BLOB_GCS_CREDENTIAL_PATH"] == "/etc/secret/blob-gcs-sink/auth.json"
    assert rc.values["secretsAsVolumes"][0]["secretName"] == "gcs-cred"


def test_output_round_trip():
    out = FirehoseOutput([Pod("foo-1", ["firehose"])], "firehose", "foo-bar")
    assert read_output_data(out.to_json()) == out


def test_read_output_data_empty():
    with pytest.raises(Exception) as exc:
        read_output_data(b"")
    assert is_error(exc.value, ERR_INTERNAL)


def test_transient_data():
    assert read_transient_data(b"") == TransientData()
    data = TransientData(["release_stop"], "latest")
    assert read_transient_data(data.to_json()) == data
    assert json.loads(TransientData().to_json()) == {"pending_steps": None}
    with pytest.raises(Exception) as exc:
        read_transient_data("{")
    assert is_error(exc.value, ERR_INTERNAL)