"""Helm release settings and chart resolution helpers."""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from typing import Any

TYPE_APPLICATION = "application"
ERR_CHART_NOT_APPLICATION = ValueError("helm chart is not an application chart")

_ANY_VERSION = ">0.0.0-0"
_HEX = set(string.hexdigits)


@dataclass
class ReleaseConfig:
    """Settings of a Helm release."""

    name: str = ""
    repository: str = ""
    chart: str = ""
    version: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    namespace: str = "default"
    timeout: int = 300
    force_update: bool = False
    recreate_pods: bool = False
    wait: bool = True
    wait_for_jobs: bool = False
    replace: bool = False
    description: str = ""
    create_namespace: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form."""
        return {
            "name": self.name,
            "repository": self.repository,
            "chart": self.chart,
            "version": self.version,
            "values": dict(self.values),
            "namespace": self.namespace,
            "timeout": self.timeout,
            "force_update": self.force_update,
            "recreate_pods": self.recreate_pods,
            "wait": self.wait,
            "wait_for_jobs": self.wait_for_jobs,
            "replace": self.replace,
            "description": self.description,
            "create_namespace": self.create_namespace,
        }


def default_release_config() -> ReleaseConfig:
    """Return a release config holding the default values."""
    return ReleaseConfig()


def get_version(version: str) -> str:
    """Return the chart version constraint; empty means any version."""
    if version == "":
        return _ANY_VERSION
    return version.strip()


def _split_scheme(raw: str) -> tuple[str, str]:
    for i, char in enumerate(raw):
        if char.isascii() and char.isalpha():
            continue
        if char.isascii() and (char.isdigit() or char in "+-."):
            if i == 0:
                return "", raw
            continue
        if char == ":":
            if i == 0:
                raise ValueError("missing protocol scheme")
            return raw[:i].lower(), raw[i + 1 :]
        return "", raw
    return "", raw


def _valid_escapes(text: str) -> bool:
    pos = text.find("%")
    while pos != -1:
        code = text[pos + 1 : pos + 3]
        if len(code) != 2 or not set(code) <= _HEX:
            return False
        pos = text.find("%", pos + 3)
    return True


def _valid_port(port: str) -> bool:
    return port == "" or port == ":" or (port.startswith(":") and port[1:].isdigit())


def _valid_authority(authority: str) -> bool:
    host = authority.rpartition("@")[2]
    if host.startswith("["):
        end = host.find("]")
        if end == -1:
            return False
        return _valid_port(host[end + 1 :])
    if ":" in host:
        return _valid_port(host[host.rfind(":") :])
    return _valid_escapes(host)


def _is_request_uri(raw: str) -> bool:
    """True if raw is an absolute URI or an absolute path."""
    if not raw or any(ord(c) < 0x20 or ord(c) == 0x7F for c in raw):
        return False
    try:
        scheme, rest = _split_scheme(raw)
    except ValueError:
        return False
    rest = rest.split("?", 1)[0]
    if not rest.startswith("/"):
        return bool(scheme)
    path = rest
    if scheme and rest.startswith("//"):
        authority, slash, tail = rest[2:].partition("/")
        if not _valid_authority(authority):
            return False
        path = slash + tail
    return _valid_escapes(path)


def resolve_chart_name(repository: str, name: str) -> tuple[str, str]:
    """Return the repository URL to use and the chart name to locate.

    A repository that is a URL is used as is; otherwise it is folded into
    the chart name as a repository prefix.
    """
    if _is_request_uri(repository):
        return repository, name
    if "/" not in name and repository != "":
        name = f"{repository}/{name}"
    return "", name


def is_release_not_found_error(err: BaseException) -> bool:
    """True if err reports that a release does not exist."""
    return "release: not found" in str(err)