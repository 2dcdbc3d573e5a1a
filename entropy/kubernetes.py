"""Output of the kubernetes module: cluster settings, server info, tolerations."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from entropy.errors import ERR_INVALID
from entropy.kube import KubeConfig

SERVER_INFO_FIELDS = (
    "major",
    "minor",
    "gitVersion",
    "gitCommit",
    "gitTreeState",
    "buildDate",
    "goVersion",
    "compiler",
    "platform",
)

_TOLERATION_FIELDS = ("key", "value", "effect", "operator")


def _invalid(cause: str) -> Exception:
    return ERR_INVALID.with_msgf("invalid kube output").with_causef(cause)


def _zero_config() -> KubeConfig:
    return KubeConfig(timeout=timedelta(0))


def _empty_server_info() -> dict[str, str]:
    return {name: "" for name in SERVER_INFO_FIELDS}


@dataclass
class Toleration:
    """A taint toleration applied to deployments on the cluster."""

    key: str = ""
    value: str = ""
    effect: str = ""
    operator: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return the JSON form."""
        return {
            "key": self.key,
            "value": self.value,
            "effect": self.effect,
            "operator": self.operator,
        }


def _toleration_from_dict(data: Any) -> Toleration:
    if not isinstance(data, Mapping):
        raise _invalid(f"toleration must be an object, got {type(data).__name__}")
    values = {}
    for name in _TOLERATION_FIELDS:
        value = data.get(name)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise _invalid(f"toleration field '{name}' must be a string")
        values[name] = value
    return Toleration(**values)


@dataclass
class KubernetesOutput:
    """What a kubernetes resource exposes to resources depending on it."""

    configs: KubeConfig = field(default_factory=_zero_config)
    server_info: dict[str, str] = field(default_factory=_empty_server_info)
    tolerations: dict[str, list[Toleration]] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | str | bytes | None) -> KubernetesOutput:
        """Read the output from its JSON form (a mapping or JSON text)."""
        if isinstance(data, (bytes, bytearray)):
            data = data.decode("utf-8")
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError as exc:
                raise _invalid(str(exc)) from exc

        out = cls()
        if data is None:
            return out
        if not isinstance(data, Mapping):
            raise _invalid(f"expected an object, got {type(data).__name__}")

        raw_conf = data.get("configs")
        if raw_conf is not None:
            out.configs = KubeConfig.from_dict(raw_conf)
            if raw_conf.get("timeout") is None:
                out.configs.timeout = timedelta(0)

        raw_info = data.get("server_info")
        if raw_info is not None:
            if not isinstance(raw_info, Mapping):
                raise _invalid("server_info must be an object")
            for name in SERVER_INFO_FIELDS:
                value = raw_info.get(name)
                if value is None:
                    continue
                if not isinstance(value, str):
                    raise _invalid(f"server_info field '{name}' must be a string")
                out.server_info[name] = value

        raw_tolerations = data.get("tolerations")
        if raw_tolerations is not None:
            if not isinstance(raw_tolerations, Mapping):
                raise _invalid("tolerations must be an object")
            tolerations: dict[str, list[Toleration]] = {}
            for key, items in raw_tolerations.items():
                if items is None:
                    tolerations[key] = []
                    continue
                if not isinstance(items, list):
                    raise _invalid(f"tolerations for '{key}' must be a list")
                tolerations[key] = [_toleration_from_dict(item) for item in items]
            out.tolerations = tolerations

        return out

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; tolerations are ordered by key."""
        tolerations = None
        if self.tolerations is not None:
            tolerations = {
                key: [t.to_dict() for t in self.tolerations[key]]
                for key in sorted(self.tolerations)
            }
        return {
            "configs": self.configs.to_dict(),
            "server_info": {
                name: self.server_info.get(name, "") for name in SERVER_INFO_FIELDS
            },
            "tolerations": tolerations,
        }

    def to_json(self) -> str:
        """Return compact JSON text."""
        return json.dumps(self.to_dict(), separators=(",", ":"))