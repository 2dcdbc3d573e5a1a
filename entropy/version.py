"""Build and version information."""

from __future__ import annotations

import json
import platform
import sys
from dataclasses import dataclass
from datetime import datetime, timezone

VERSION = "dev"
COMMIT = "dev"
BUILD_TIME = ""


@dataclass(frozen=True)
class VersionInfo:
    """Version, commit and runtime details of this build."""

    version: str
    commit: str
    lang_version: str
    os: str
    architecture: str
    build_time: datetime | None = None

    def to_json(self) -> str:
        """Render as indented JSON, leaving out empty values."""
        doc: dict[str, str] = {}
        for key, value in (
            ("version", self.version),
            ("commit", self.commit),
        ):
            if value:
                doc[key] = value
        if self.build_time is not None:
            doc["buildTime"] = _format_timestamp(self.build_time)
        for key, value in (
            ("langVersion", self.lang_version),
            ("os", self.os),
            ("architecture", self.architecture),
        ):
            if value:
                doc[key] = value
        return json.dumps(doc, indent=2)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    return text + "Z"


def _parse_rfc3339(text: str) -> datetime | None:
    if not text or "T" not in text.upper():
        return None
    candidate = text.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def get_version_and_build_info() -> VersionInfo:
    """Collect the version details of the running build."""
    return VersionInfo(
        version=VERSION,
        commit=COMMIT,
        lang_version=f"python{platform.python_version()}",
        os=sys.platform,
        architecture=platform.machine(),
        build_time=_parse_rfc3339(BUILD_TIME),
    )


def print_version() -> str:
    """Write the version details as JSON to standard output and return the text."""
    text = get_version_and_build_info().to_json()
    sys.stdout.write(text + "\n")
    sys.stdout.flush()
    return text