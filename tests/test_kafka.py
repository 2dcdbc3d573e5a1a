import pytest

from entropy.errors import ERR_INVALID, EntropyError, is_error
from entropy.kafka import (
    KAFKA_IMAGE,
    RETRIES,
    ResetParams,
    do_reset,
    parse_reset_params,
    prep_command,
)


@pytest.mark.parametrize(
    "raw, want",
    [
        (b'{"to": "latest"}', "latest"),
        (b'{"to": "earliest"}', "earliest"),
        ('{"to": "LATEST"}', "latest"),
        (b'{"to": "datetime", "datetime": "2023-01-01T00:00:00Z"}', "2023-01-01T00:00:00Z"),
    ],
)
def test_parse_reset_params(raw, want):
    assert parse_reset_params(raw) == want


def test_parse_reset_params_unknown_value():
    with pytest.raises(EntropyError) as exc_info:
        parse_reset_params(b'{"reset_to": "some_random"}')
    assert is_error(exc_info.value, ERR_INVALID)
    assert exc_info.value.message == "reset_value must be one of [earliest latest datetime]"


def test_parse_reset_params_uppercase_datetime_is_rejected():
    with pytest.raises(EntropyError) as exc_info:
        parse_reset_params(b'{"to": "DATETIME", "datetime": "x"}')
    assert exc_info.value.code == "bad_request"


def test_parse_reset_params_invalid_json():
    with pytest.raises(EntropyError) as exc_info:
        parse_reset_params(b"{")
    assert exc_info.value.message == "invalid reset params"
    assert exc_info.value.cause


def test_parse_reset_params_wrong_type():
    with pytest.raises(EntropyError) as exc_info:
        parse_reset_params(b'{"to": 5}')
    assert exc_info.value.message == "invalid reset params"


def test_reset_params_defaults():
    params = ResetParams()
    assert (params.to, params.datetime) == ("", "")


def test_prep_command_latest():
    assert prep_command("localhost:9092", "group-1", "latest") == [
        "kafka-consumer-groups.sh",
        "--bootstrap-server", "localhost:9092",
        "--group", "group-1",
        "--reset-offsets",
        "--execute",
        "--all-topics",
        "--to-latest",
    ]


def test_prep_command_earliest_ends_with_flag():
    assert prep_command("b", "g", "earliest")[-1] == "--to-earliest"


def test_prep_command_datetime():
    cmd = prep_command("b", "g", "2023-01-01T00:00:00Z")
    assert cmd[-2:] == ["--to-datetime", "2023-01-01T00:00:00Z"]


def test_do_reset_runs_job():
    calls = []

    def run_job(namespace, name, image, cmd, retries):
        calls.append((namespace, name, image, cmd, retries))
        return "done"

    result = do_reset(run_job, "firehose", "localhost:9092", "foo-bar-baz", "earliest")
    assert result == "done"
    assert calls == [
        (
            "firehose",
            "foo-bar-baz-reset",
            KAFKA_IMAGE,
            prep_command("localhost:9092", "foo-bar-baz", "earliest"),
            RETRIES,
        )
    ]


def test_do_reset_propagates_job_errors():
    def run_job(*args):
        raise ERR_INVALID.with_msgf("job failed")

    with pytest.raises(EntropyError) as exc_info:
        do_reset(run_job, "ns", "b", "g", "latest")
    assert exc_info.value.message == "job failed"