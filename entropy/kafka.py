"""Kafka consumer-group offset reset through a cluster job."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from entropy.errors import ERR_INVALID

KAFKA_IMAGE = "bitnami/kafka:2.0.0"
RETRIES = 6

RESET_LATEST = "latest"
RESET_EARLIEST = "earliest"
RESET_DATETIME = "datetime"

RunJob = Callable[[str, str, str, list, int], Any]


@dataclass
class ResetParams:
    """Parameters of a reset request."""

    to: str = ""
    datetime: str = ""


def _invalid_params(cause: str) -> Exception:
    return ERR_INVALID.with_msgf("invalid reset params").with_causef(cause)


def _decode_params(data: Any) -> ResetParams:
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    try:
        doc = json.loads(data) if isinstance(data, str) else data
    except ValueError as exc:
        raise _invalid_params(str(exc)) from exc
    if doc is None:
        return ResetParams()
    if not isinstance(doc, dict):
        raise _invalid_params(f"cannot decode {type(doc).__name__} into reset params")
    values = {}
    for key in ("to", "datetime"):
        value = doc.get(key)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise _invalid_params(f"field '{key}' must be a string")
        values[key] = value
    return ResetParams(**values)


def parse_reset_params(data: Any) -> str:
    """Read reset parameters from JSON and return the value to reset to."""
    params = _decode_params(data)
    reset_value = params.to.lower()
    if params.to == RESET_DATETIME:
        reset_value = params.datetime
    elif reset_value not in (RESET_LATEST, RESET_EARLIEST):
        raise ERR_INVALID.with_msgf(
            f"reset_value must be one of [{RESET_EARLIEST} {RESET_LATEST} {RESET_DATETIME}]"
        )
    return reset_value


def prep_command(brokers: str, consumer_id: str, reset_value: str) -> list[str]:
    """Build the kafka-consumer-groups command for a reset."""
    args = [
        "kafka-consumer-groups.sh",
        "--bootstrap-server", brokers,
        "--group", consumer_id,
        "--reset-offsets",
        "--execute",
        "--all-topics",
    ]
    if reset_value == RESET_LATEST:
        args.append("--to-latest")
    elif reset_value == RESET_EARLIEST:
        args.append("--to-earliest")
    else:
        args.extend(["--to-datetime", reset_value])
    return args


def do_reset(
    run_job: RunJob,
    namespace: str,
    brokers: str,
    consumer_id: str,
    reset_value: str,
) -> Any:
    """Run a job that resets the consumer group's offsets on all topics.

    run_job is called as run_job(namespace, name, image, command, retries).
    """
    return run_job(
        namespace,
        consumer_id + "-reset",
        KAFKA_IMAGE,
        prep_command(brokers, consumer_id, reset_value),
        RETRIES,
    )