"""Firehose module: driver settings and Helm release construction."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from entropy.errors import ERR_INTERNAL, ERR_INVALID
from entropy.firehose_config import (
    ChartValues,
    FirehoseConfig,
    Telegraf,
    TelegrafConf,
    UsageSpec,
)
from entropy.helm import ReleaseConfig, default_release_config
from entropy.kube import Pod
from entropy.kubernetes import KubernetesOutput
from entropy.validator import required_field, tagged_struct

STEP_RELEASE_CREATE = "release_create"
STEP_RELEASE_UPDATE = "release_update"
STEP_RELEASE_STOP = "release_stop"
STEP_KAFKA_RESET = "consumer_reset"

CHART_REPO = "https://goto.github.io/charts/"
CHART_NAME = "firehose"
IMAGE_REPO = "gotocompany/firehose"

LABELS_CONF_KEY = "labels"
LABEL_DEPLOYMENT = "deployment"
LABEL_ORCHESTRATOR = "orchestrator"
ORCHESTRATOR_LABEL_VALUE = "entropy"

KEY_KUBE_DEPENDENCY = "kube_cluster"
MODULE_KIND = "firehose"
SCALE_ACTION = "scale"
START_ACTION = "start"
STOP_ACTION = "stop"
RESET_ACTION = "reset"
UPGRADE_ACTION = "upgrade"

ACTIONS = (
    ("create", "Creates a new firehose"),
    ("update", "Update all configurations of firehose"),
    (RESET_ACTION, "Stop firehose, reset consumer group, restart"),
    (STOP_ACTION, "Stop all replicas of this firehose."),
    (START_ACTION, "Start the firehose if it is currently stopped."),
    (SCALE_ACTION, "Scale the number of replicas to given number."),
    (UPGRADE_ACTION, "Upgrade firehose version"),
)

_MOUNT_MODE = 420
_TEMPLATE = re.compile(r"\{\{(.*?)\}\}", re.S)
_FIELD = re.compile(r"\s*\.([A-Za-z0-9_]+)\s*")


def _decode(raw: Any, fail) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise fail(str(exc)) from exc
    return raw


def _bad_conf(cause: str) -> Exception:
    return ERR_INVALID.with_msgf("invalid driver config").with_causef(cause)


def _str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _bad_conf(f"field '{key}' must be a list of strings")
    return list(value)


def _str(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise _bad_conf(f"field '{key}' must be a string")
    return value


@dataclass
class InitContainer:
    """Init container run before the firehose starts."""

    enabled: bool = False
    args: list[str] = field(default_factory=list)
    command: list[str] = field(default_factory=list)
    repository: str = ""
    image_tag: str = ""
    pull_policy: str = ""


@dataclass
class Preference:
    """A node selector requirement."""

    key: str = ""
    operator: str = ""
    values: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Preference:
        return cls(_str(data, "key"), _str(data, "operator"), _str_list(data.get("values"), "values"))

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "operator": self.operator, "values": self.values or None}


@dataclass
class WeightedPreference:
    """A weighted group of node selector requirements."""

    weight: int = 0
    preference: list[Preference] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WeightedPreference:
        weight = data.get("weight") or 0
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise _bad_conf("field 'weight' must be an integer")
        return cls(weight, [Preference.from_dict(p) for p in data.get("preference") or []])

    def to_dict(self) -> dict[str, Any]:
        return {"weight": self.weight, "preference": [p.to_dict() for p in self.preference]}


@dataclass
class NodeAffinityMatchExpressions:
    """Node affinity rules for firehose pods."""

    required_during_scheduling_ignored_during_execution: list[Preference] = field(
        default_factory=list
    )
    preferred_during_scheduling_ignored_during_execution: list[WeightedPreference] = field(
        default_factory=list
    )


@dataclass
class DriverConf:
    """Project-level settings of the firehose module."""

    labels: dict[str, str] | None = None
    telegraf: Telegraf | None = None
    namespace: str = required_field(default="")
    chart_values: ChartValues = required_field(default_factory=ChartValues)
    limits: UsageSpec = required_field(default_factory=UsageSpec)
    requests: UsageSpec = required_field(default_factory=UsageSpec)
    tolerations: dict[str, Any] | None = None
    init_container: InitContainer = field(default_factory=InitContainer)
    node_affinity_match_expressions: NodeAffinityMatchExpressions = field(
        default_factory=NodeAffinityMatchExpressions
    )
    gcs_sink_credential: str = ""
    dlq_gcs_sink_credential: str = ""
    big_query_sink_credential: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> DriverConf:
        """Read settings from JSON, laid over the module defaults."""
        data = _decode(data, _bad_conf)
        conf = default_driver_conf()
        if data is None:
            return conf
        if not isinstance(data, Mapping):
            raise _bad_conf("expected an object")
        if data.get("labels") is not None:
            labels = data["labels"]
            if not isinstance(labels, Mapping):
                raise _bad_conf("field 'labels' must be an object")
            conf.labels = {**(conf.labels or {}), **labels}
        if data.get("telegraf") is not None:
            conf.telegraf = Telegraf.from_dict(data["telegraf"])
        conf.namespace = _str(data, "namespace", conf.namespace)
        if data.get("chart_values") is not None:
            conf.chart_values.update_from(data["chart_values"], "chart_values")
        if data.get("limits") is not None:
            conf.limits.update_from(data["limits"], "limits")
        if data.get("requests") is not None:
            conf.requests.update_from(data["requests"], "requests")
        if data.get("tolerations") is not None:
            conf.tolerations = dict(data["tolerations"])
        raw_init = data.get("init_container")
        if raw_init is not None:
            ic = conf.init_container
            ic.enabled = bool(raw_init.get("enabled", ic.enabled))
            if "args" in raw_init:
                ic.args = _str_list(raw_init["args"], "args")
            if "command" in raw_init:
                ic.command = _str_list(raw_init["command"], "command")
            ic.repository = _str(raw_init, "repository", ic.repository)
            ic.image_tag = _str(raw_init, "image_tag", ic.image_tag)
            ic.pull_policy = _str(raw_init, "pull_policy", ic.pull_policy)
        raw_aff = data.get("node_affinity_match_expressions")
        if raw_aff is not None:
            aff = conf.node_affinity_match_expressions
            req = raw_aff.get("requiredDuringSchedulingIgnoredDuringExecution")
            if req is not None:
                aff.required_during_scheduling_ignored_during_execution = [
                    Preference.from_dict(p) for p in req
                ]
            pref = raw_aff.get("preferredDuringSchedulingIgnoredDuringExecution")
            if pref is not None:
                aff.preferred_during_scheduling_ignored_during_execution = [
                    WeightedPreference.from_dict(p) for p in pref
                ]
        conf.gcs_sink_credential = _str(data, "gcs_sink_credential", conf.gcs_sink_credential)
        conf.dlq_gcs_sink_credential = _str(
            data, "dlq_gcs_sink_credential", conf.dlq_gcs_sink_credential
        )
        conf.big_query_sink_credential = _str(
            data, "big_query_sink_credential", conf.big_query_sink_credential
        )
        return conf


@dataclass
class FirehoseOutput:
    """What a firehose resource exposes."""

    pods: list[Pod] = field(default_factory=list)
    namespace: str = ""
    release_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.pods:
            out["pods"] = [p.to_dict() for p in self.pods]
        if self.namespace:
            out["namespace"] = self.namespace
        if self.release_name:
            out["release_name"] = self.release_name
        return out

    def to_json(self) -> str:
        """Return compact JSON text."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass
class TransientData:
    """Steps still to run for a resource and reset parameters."""

    pending_steps: list[str] | None = None
    reset_offset_to: str = ""

    def to_json(self) -> str:
        """Return compact JSON text."""
        doc: dict[str, Any] = {"pending_steps": self.pending_steps}
        if self.reset_offset_to:
            doc["reset_offset_to"] = self.reset_offset_to
        return json.dumps(doc, separators=(",", ":"))


def default_driver_conf() -> DriverConf:
    """Return a fresh copy of the module defaults."""
    return DriverConf(
        namespace="firehose",
        chart_values=ChartValues("latest", "0.1.3", "IfNotPresent"),
        limits=UsageSpec("200m", "512Mi"),
        requests=UsageSpec("200m", "512Mi"),
    )


def parse_driver_conf(conf_json: Any) -> DriverConf:
    """Read and check the module settings."""
    return tagged_struct(DriverConf.from_dict(conf_json))


def _render(key: str, template: str, values: Mapping[str, str]) -> str:
    pos = 0
    parts = []
    for match in _TEMPLATE.finditer(template):
        parts.append(template[pos : match.start()])
        found = _FIELD.fullmatch(match.group(1))
        if found is None:
            raise ERR_INVALID.with_msgf(f"label template for '{key}' is invalid").with_causef(
                f"unsupported action {match.group(0)!r}"
            )
        parts.append(values.get(found.group(1), ""))
        pos = match.end()
    rest = template[pos:]
    if "{{" in rest:
        raise ERR_INVALID.with_msgf(f"label template for '{key}' is invalid").with_causef(
            "unclosed action"
        )
    parts.append(rest)
    return "".join(parts)


def render_labels(
    templates: Mapping[str, str] | None, values: Mapping[str, str]
) -> dict[str, str]:
    """Render label templates like '{{ .name }}'; blank results are dropped."""
    out = {}
    for key, template in (templates or {}).items():
        rendered = _render(key, template, values)
        if rendered.strip():
            out[key] = rendered
    return out


def merge_chart_values(current: ChartValues, new: ChartValues | None) -> ChartValues:
    """Apply a requested image tag to the current chart values."""
    if new is None:
        return current
    merged = replace(current)
    tag = new.image_tag.strip()
    if tag:
        if ":" in tag and not tag.startswith(IMAGE_REPO):
            raise ERR_INVALID.with_msgf(
                f"unknown image repo: '{tag}', must start with '{IMAGE_REPO}'"
            )
        prefix = IMAGE_REPO + ":"
        merged.image_tag = tag[len(prefix):] if tag.startswith(prefix) else tag
    return merged


def clone_and_merge_maps(
    first: Mapping[str, str] | None, second: Mapping[str, str] | None
) -> dict[str, str]:
    """Return a new map with second's entries laid over first's."""
    return {**(first or {}), **(second or {})}


def build_helm_release(
    driver_conf: DriverConf,
    conf: FirehoseConfig,
    labels: Mapping[str, str] | None,
    kube_output: KubernetesOutput,
) -> ReleaseConfig:
    """Build the Helm release for a firehose on a cluster."""
    telegraf = Telegraf()
    if conf.telegraf is not None and conf.telegraf.enabled:
        tags = render_labels(conf.telegraf.config.additional_global_tags, labels or {})
        telegraf = Telegraf(
            True, conf.telegraf.image, TelegrafConf(conf.telegraf.config.output, tags)
        )

    toleration_key = f"firehose_{conf.env_variables.get('SINK_TYPE', '')}"
    tolerations = [
        t.to_dict() for t in (kube_output.tolerations or {}).get(toleration_key, [])
    ] or None

    entropy_labels = {
        LABEL_DEPLOYMENT: conf.deployment_id,
        LABEL_ORCHESTRATOR: ORCHESTRATOR_LABEL_VALUE,
    }
    deployment_labels = render_labels(
        driver_conf.labels, clone_and_merge_maps(labels, entropy_labels)
    )

    env = dict(conf.env_variables)
    volumes: list[dict[str, Any]] = []
    mounts: list[dict[str, Any]] = []
    for secret, mount_path, env_key in (
        (driver_conf.gcs_sink_credential, "/etc/secret/blob-gcs-sink",
         "SINK_BLOB_GCS_CREDENTIAL_PATH"),
        (driver_conf.dlq_gcs_sink_credential, "/etc/secret/dlq-gcs", "DLQ_GCS_CREDENTIAL_PATH"),
        (driver_conf.big_query_sink_credential, "/etc/secret/bigquery-sink",
         "SINK_BIGQUERY_CREDENTIAL_PATH"),
    ):
        if not secret:
            continue
        volumes.append({
            "name": secret,
            "items": [{"key": "token", "path": "auth.json"}],
            "secretName": secret,
            "defaultMode": _MOUNT_MODE,
        })
        mounts.append({"name": secret, "mountPath": mount_path})
        env[env_key] = mount_path + "/auth.json"

    chart = conf.chart_values or ChartValues()
    affinity = driver_conf.node_affinity_match_expressions
    init = driver_conf.init_container

    rc = default_release_config()
    rc.name = conf.deployment_id
    rc.repository = CHART_REPO
    rc.chart = CHART_NAME
    rc.namespace = conf.namespace
    rc.force_update = True
    rc.version = chart.chart_version
    rc.values = {
        LABELS_CONF_KEY: clone_and_merge_maps(deployment_labels, entropy_labels),
        "replicaCount": conf.replicas,
        "firehose": {
            "image": {
                "repository": IMAGE_REPO,
                "pullPolicy": chart.image_pull_policy,
                "tag": chart.image_tag,
            },
            "config": env,
            "resources": {
                "limits": {"cpu": conf.limits.cpu, "memory": conf.limits.memory},
                "requests": {"cpu": conf.requests.cpu, "memory": conf.requests.memory},
            },
            "volumeMounts": mounts or None,
        },
        "secretsAsVolumes": volumes or None,
        "tolerations": tolerations,
        "nodeAffinityMatchExpressions": {
            "requiredDuringSchedulingIgnoredDuringExecution": [
                p.to_dict() for p in affinity.required_during_scheduling_ignored_during_execution
            ] or None,
            "preferredDuringSchedulingIgnoredDuringExecution": [
                p.to_dict() for p in affinity.preferred_during_scheduling_ignored_during_execution
            ] or None,
        },
        "init-firehose": {
            "enabled": init.enabled,
            "image": {
                "repository": init.repository,
                "pullPolicy": init.pull_policy,
                "tag": init.image_tag,
            },
            "command": init.command or None,
            "args": init.args or None,
        },
        "telegraf": {
            "enabled": telegraf.enabled,
            "image": telegraf.image,
            "config": {
                "output": telegraf.config.output,
                "additional_global_tags": telegraf.config.additional_global_tags,
            },
        },
    }
    return rc


def _corrupted(what: str):
    def fail(cause: str) -> Exception:
        return ERR_INTERNAL.with_msgf(f"corrupted {what}").with_causef(cause)

    return fail


def read_output_data(raw: Any) -> FirehoseOutput:
    """Read the stored output of a firehose resource."""
    fail = _corrupted("output")
    if raw is None or raw in (b"", ""):
        raise fail("unexpected end of JSON input")
    doc = _decode(raw, fail)
    if doc is None:
        return FirehoseOutput()
    if not isinstance(doc, Mapping):
        raise fail("expected an object")
    try:
        pods = [
            Pod(p["name"], list(p.get("containers") or [])) for p in doc.get("pods") or []
        ]
        return FirehoseOutput(pods, doc.get("namespace") or "", doc.get("release_name") or "")
    except (KeyError, TypeError, AttributeError) as exc:
        raise fail(str(exc)) from exc


def read_transient_data(raw: Any) -> TransientData:
    """Read the stored pending steps; nothing stored means none."""
    if raw is None or len(raw) == 0:
        return TransientData()
    fail = _corrupted("transient data")
    doc = _decode(raw, fail)
    if doc is None:
        return TransientData()
    if not isinstance(doc, Mapping):
        raise fail("expected an object")
    steps = doc.get("pending_steps")
    if steps is not None and (
        not isinstance(steps, list) or not all(isinstance(s, str) for s in steps)
    ):
        raise fail("pending_steps must be a list of strings")
    reset = doc.get("reset_offset_to") or ""
    if not isinstance(reset, str):
        raise fail("reset_offset_to must be a string")
    return TransientData(steps, reset)