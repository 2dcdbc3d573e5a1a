"""User-facing configuration of a firehose deployment."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from entropy.errors import ERR_INVALID
from entropy.validator import required_field

CONF_KEY_CONSUMER_ID = "SOURCE_KAFKA_CONSUMER_GROUP_ID"
CONF_KEY_KAFKA_BROKERS = "SOURCE_KAFKA_BROKERS"
HELM_RELEASE_NAME_MAX_LENGTH = 53

_RELEASE_SUFFIX = "-firehose"
_HASH_LEN = 6


def _invalid_json(cause: str) -> Exception:
    return ERR_INVALID.with_msgf("invalid config json").with_causef(cause)


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise _invalid_json(str(exc)) from exc
    return raw


def _str(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise _invalid_json(f"field '{key}' must be a string")
    return value


def _str_map(value: Any, key: str) -> dict[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping) or not all(isinstance(v, str) for v in value.values()):
        raise _invalid_json(f"field '{key}' must be an object of strings")
    return dict(value)


def _obj(value: Any, key: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise _invalid_json(f"field '{key}' must be an object")
    return value


@dataclass
class UsageSpec:
    """CPU and memory quantities."""

    cpu: str = required_field(default="")
    memory: str = required_field(default="")

    def merge(self, override: UsageSpec) -> UsageSpec:
        """Return a copy with the non-empty values of override applied."""
        return UsageSpec(override.cpu or self.cpu, override.memory or self.memory)

    def update_from(self, data: Mapping[str, Any], key: str) -> None:
        data = _obj(data, key)
        self.cpu = _str(data, "cpu", self.cpu)
        self.memory = _str(data, "memory", self.memory)

    def to_dict(self) -> dict[str, str]:
        out = {}
        if self.cpu:
            out["cpu"] = self.cpu
        if self.memory:
            out["memory"] = self.memory
        return out


@dataclass
class ChartValues:
    """Image and chart versions of a deployment."""

    image_tag: str = required_field(default="")
    chart_version: str = required_field(default="")
    image_pull_policy: str = required_field(default="")

    def update_from(self, data: Mapping[str, Any], key: str) -> None:
        data = _obj(data, key)
        self.image_tag = _str(data, "image_tag", self.image_tag)
        self.chart_version = _str(data, "chart_version", self.chart_version)
        self.image_pull_policy = _str(data, "image_pull_policy", self.image_pull_policy)

    def to_dict(self) -> dict[str, str]:
        return {
            "image_tag": self.image_tag,
            "chart_version": self.chart_version,
            "image_pull_policy": self.image_pull_policy,
        }


@dataclass
class TelegrafConf:
    """Telegraf output and global tag templates."""

    output: dict[str, Any] | None = None
    additional_global_tags: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"output": self.output, "additional_global_tags": self.additional_global_tags}


@dataclass
class Telegraf:
    """Telegraf side-car settings."""

    enabled: bool = False
    image: dict[str, Any] | None = None
    config: TelegrafConf = field(default_factory=TelegrafConf)

    @classmethod
    def from_dict(cls, data: Any) -> Telegraf:
        data = _obj(data, "telegraf")
        enabled = data.get("enabled") or False
        if not isinstance(enabled, bool):
            raise _invalid_json("field 'enabled' must be a boolean")
        image = data.get("image")
        if image is not None:
            image = dict(_obj(image, "image"))
        conf = TelegrafConf()
        raw_conf = data.get("config")
        if raw_conf is not None:
            raw_conf = _obj(raw_conf, "config")
            if raw_conf.get("output") is not None:
                conf.output = dict(_obj(raw_conf["output"], "output"))
            conf.additional_global_tags = _str_map(
                raw_conf.get("additional_global_tags"), "additional_global_tags"
            )
        return cls(enabled, image, conf)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.enabled:
            out["enabled"] = True
        if self.image:
            out["image"] = self.image
        out["config"] = self.config.to_dict()
        return out


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise _invalid_json("field 'stop_time' must be a string")
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise _invalid_json(str(exc)) from exc
    if parsed.tzinfo is None:
        raise _invalid_json("stop_time must carry a time zone")
    return parsed


def _format_time(moment: datetime) -> str:
    text = moment.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


@dataclass
class FirehoseConfig:
    """Configuration of one firehose."""

    stopped: bool = False
    stop_time: datetime | None = None
    telegraf: Telegraf | None = None
    replicas: int = 0
    namespace: str = ""
    deployment_id: str = ""
    chart_values: ChartValues | None = None
    env_variables: dict[str, str] = field(default_factory=dict)
    limits: UsageSpec = field(default_factory=UsageSpec)
    requests: UsageSpec = field(default_factory=UsageSpec)

    @classmethod
    def from_dict(cls, data: Any) -> FirehoseConfig:
        """Read a config from its JSON form (mapping or JSON text)."""
        data = _decode(data)
        conf = cls()
        if data is None:
            return conf
        data = _obj(data, "config")
        stopped = data.get("stopped") or False
        if not isinstance(stopped, bool):
            raise _invalid_json("field 'stopped' must be a boolean")
        conf.stopped = stopped
        if data.get("stop_time") is not None:
            conf.stop_time = _parse_time(data["stop_time"])
        if data.get("telegraf") is not None:
            conf.telegraf = Telegraf.from_dict(data["telegraf"])
        replicas = data.get("replicas") or 0
        if isinstance(replicas, bool) or not isinstance(replicas, int):
            raise _invalid_json("field 'replicas' must be an integer")
        conf.replicas = replicas
        conf.namespace = _str(data, "namespace")
        conf.deployment_id = _str(data, "deployment_id")
        if data.get("chart_values") is not None:
            conf.chart_values = ChartValues()
            conf.chart_values.update_from(data["chart_values"], "chart_values")
        conf.env_variables = _str_map(data.get("env_variables"), "env_variables") or {}
        if data.get("limits") is not None:
            conf.limits.update_from(data["limits"], "limits")
        if data.get("requests") is not None:
            conf.requests.update_from(data["requests"], "requests")
        return conf

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form, leaving out empty optional values."""
        out: dict[str, Any] = {"stopped": self.stopped}
        if self.stop_time is not None:
            out["stop_time"] = _format_time(self.stop_time)
        if self.telegraf is not None:
            out["telegraf"] = self.telegraf.to_dict()
        out["replicas"] = self.replicas
        if self.namespace:
            out["namespace"] = self.namespace
        if self.deployment_id:
            out["deployment_id"] = self.deployment_id
        if self.chart_values is not None:
            out["chart_values"] = self.chart_values.to_dict()
        if self.env_variables:
            out["env_variables"] = dict(self.env_variables)
        out["limits"] = self.limits.to_dict()
        out["requests"] = self.requests.to_dict()
        return out


def safe_release_name(name: str) -> str:
    """Derive a release name of at most 53 chars ending in '-firehose'."""
    if name.endswith(_RELEASE_SUFFIX):
        name = name[: -len(_RELEASE_SUFFIX)]
    if len(name) <= HELM_RELEASE_NAME_MAX_LENGTH - len(_RELEASE_SUFFIX):
        return name + _RELEASE_SUFFIX
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    suffix = f"-{digest[:_HASH_LEN]}{_RELEASE_SUFFIX}"
    truncated = name[: HELM_RELEASE_NAME_MAX_LENGTH - len(suffix)].strip("-")
    return truncated + suffix


def read_config(
    project: str,
    name: str,
    conf_json: Any,
    default_limits: UsageSpec,
    default_requests: UsageSpec,
    validate: Callable[[Any], Any] | None = None,
) -> FirehoseConfig:
    """Read and complete a firehose config for the resource project/name.

    validate, if given, checks the raw JSON against the config schema.
    """
    conf = FirehoseConfig.from_dict(conf_json)
    if conf.replicas <= 0:
        conf.replicas = 1
    if validate is not None:
        validate(conf_json)

    if not conf.deployment_id:
        conf.deployment_id = safe_release_name(f"{project}-{name}")
    elif len(conf.deployment_id) > HELM_RELEASE_NAME_MAX_LENGTH:
        raise ERR_INVALID.with_msgf("deployment_id must not have more than 53 chars")

    if not conf.env_variables.get(CONF_KEY_CONSUMER_ID):
        conf.env_variables[CONF_KEY_CONSUMER_ID] = f"{conf.deployment_id}-0001"

    conf.limits = default_limits.merge(conf.limits)
    conf.requests = default_requests.merge(conf.requests)
    return conf