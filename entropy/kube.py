"""Kubernetes cluster connection settings and pod/log query helpers."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any

from entropy.errors import ERR_INTERNAL, ERR_INVALID, ERR_NOT_FOUND

ERR_JOB_EXECUTION_FAILED = ERR_INTERNAL.with_msgf("job execution failed")
ERR_JOB_CREATION_FAILED = ERR_INTERNAL.with_msgf("job creation failed")
ERR_JOB_NOT_FOUND = ERR_NOT_FOUND.with_msgf("job not found")

DEFAULT_TIMEOUT = timedelta(milliseconds=100)
_SANITISED_TIMEOUT = timedelta(seconds=1)
_NS_PER_MICROSECOND = 1000
_TRUE = "true"

_STRING_FIELDS = (
    "host",
    "token",
    "client_key",
    "client_certificate",
    "cluster_ca_certificate",
)

_LABEL_VALUE_MAX_LENGTH = 63
_LABEL_VALUE_PATTERN = re.compile(r"(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?")
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _bad_field(name: str, expected: str, value: Any) -> Exception:
    return ERR_INVALID.with_msgf("invalid json config value").with_causef(
        f"field '{name}' must be {expected}, got {type(value).__name__}"
    )


@dataclass
class KubeConfig:
    """Connection settings for a Kubernetes cluster."""

    host: str = ""
    timeout: timedelta = DEFAULT_TIMEOUT
    token: str = ""
    insecure: bool = False
    client_key: str = ""
    client_certificate: str = ""
    cluster_ca_certificate: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> KubeConfig:
        """Build a config from its JSON form, starting from the defaults.

        The timeout is given in nanoseconds.
        """
        conf = default_client_config()
        if data is None:
            return conf
        if not isinstance(data, Mapping):
            raise ERR_INVALID.with_msgf("invalid json config value").with_causef(
                f"expected an object, got {type(data).__name__}"
            )

        for name in _STRING_FIELDS:
            value = data.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise _bad_field(name, "a string", value)
            setattr(conf, name, value)

        insecure = data.get("insecure")
        if insecure is not None:
            if not isinstance(insecure, bool):
                raise _bad_field("insecure", "a boolean", insecure)
            conf.insecure = insecure

        timeout = data.get("timeout")
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, int):
                raise _bad_field("timeout", "an integer", timeout)
            conf.timeout = timedelta(microseconds=timeout / _NS_PER_MICROSECOND)

        return conf

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; the timeout is given in nanoseconds."""
        return {
            "host": self.host,
            "timeout": (self.timeout // timedelta(microseconds=1)) * _NS_PER_MICROSECOND,
            "token": self.token,
            "insecure": self.insecure,
            "client_key": self.client_key,
            "client_certificate": self.client_certificate,
            "cluster_ca_certificate": self.cluster_ca_certificate,
        }

    def sanitise(self) -> None:
        """Check the settings and fill in a timeout if none is set."""
        if not self.host:
            raise ERR_INVALID.with_msgf("host must be set")

        if not self.timeout:
            self.timeout = _SANITISED_TIMEOUT

        if not self.token and (not self.client_key or not self.client_certificate):
            raise ERR_INVALID.with_msgf(
                "client_key and client_certificate must be set when token is not set"
            )

        if not self.insecure and not self.cluster_ca_certificate:
            raise ERR_INVALID.with_msgf(
                "cluster_ca_certificate must be set when insecure=false"
            )


def default_client_config() -> KubeConfig:
    """Return a config holding the default values."""
    return KubeConfig()


@dataclass
class Pod:
    """A pod and the names of its containers."""

    name: str
    containers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; no containers are written as null."""
        return {
            "name": self.name,
            "containers": list(self.containers) if self.containers else None,
        }


def _escape_field_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=")


def _parse_int64(name: str, value: str) -> int:
    if not _INT_PATTERN.fullmatch(value):
        raise ERR_INVALID.with_msgf(f"invalid value for {name}: {value!r}")
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ERR_INVALID.with_msgf(f"value out of range for {name}: {value!r}")
    return number


@dataclass
class LogOptions:
    """Filters and flags for streaming container logs."""

    app: str = ""
    pod: str = ""
    container: str = ""
    follow: str = ""
    previous: str = ""
    since_seconds: str = ""
    timestamps: str = ""
    tail_lines: str = ""

    @classmethod
    def from_filter(cls, filter: Mapping[str, Any] | None) -> LogOptions:
        """Read options from a filter map; keys match case-insensitively."""
        options = cls()
        if not filter:
            return options
        lowered = {str(key).lower(): key for key in filter}
        for f in fields(cls):
            key = f.name if f.name in filter else lowered.get(f.name)
            if key is None:
                continue
            value = filter[key]
            if not isinstance(value, str):
                raise ERR_INVALID.with_msgf(
                    f"'{f.name}' expected type 'string', got '{type(value).__name__}'"
                )
            setattr(options, f.name, value)
        return options

    def pod_list_options(self) -> dict[str, str]:
        """Return the label and field selectors for listing matching pods."""
        if len(self.app) > _LABEL_VALUE_MAX_LENGTH or not _LABEL_VALUE_PATTERN.fullmatch(
            self.app
        ):
            raise ERR_INVALID.with_msgf(f"invalid label value for 'app': {self.app!r}")

        field_selector = ""
        if self.pod:
            field_selector = f"metadata.name={_escape_field_value(self.pod)}"

        return {
            "label_selector": f"app={self.app}",
            "field_selector": field_selector,
        }

    def pod_log_options(self) -> dict[str, Any]:
        """Return the options for reading a container's log."""
        return {
            "container": self.container,
            "follow": self.follow == _TRUE,
            "previous": self.previous == _TRUE,
            "timestamps": self.timestamps == _TRUE,
            "since_seconds": (
                _parse_int64("since_seconds", self.since_seconds)
                if self.since_seconds
                else None
            ),
            "tail_lines": (
                _parse_int64("tail_lines", self.tail_lines) if self.tail_lines else None
            ),
        }


def label_selector(labels: Mapping[str, str]) -> str:
    """Join labels into a selector of the form k1=v1,k2=v2."""
    return ",".join(f"{key}={value}" for key, value in labels.items())