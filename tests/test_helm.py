import pytest

from entropy.helm import (
    ReleaseConfig,
    default_release_config,
    get_version,
    is_release_not_found_error,
    resolve_chart_name,
)


def test_default_release_config_values():
    conf = default_release_config()
    assert conf.namespace == "default"
    assert conf.timeout == 300
    assert conf.wait is True
    assert (conf.force_update, conf.replace, conf.create_namespace) == (False, False, False)


def test_default_release_configs_are_independent():
    first = default_release_config()
    second = default_release_config()
    first.values["replicaCount"] = 2
    assert second.values == {}


def test_to_dict_mirrors_fields():
    conf = ReleaseConfig(name="foo-fh1-firehose", chart="firehose", values={"a": 1})
    doc = conf.to_dict()
    assert doc["name"] == "foo-fh1-firehose"
    assert doc["chart"] == "firehose"
    assert doc["values"] == {"a": 1}
    assert ReleaseConfig(**doc) == conf


def test_get_version_empty_means_any():
    assert get_version("") == ">0.0.0-0"


def test_get_version_trims():
    assert get_version(" 0.1.3 ") == "0.1.3"


@pytest.mark.parametrize(
    "repository",
    ["https://goto.github.io/charts/", "/charts/local", "oci:registry"],
)
def test_resolve_chart_name_with_uri(repository):
    assert resolve_chart_name(repository, "firehose") == (repository, "firehose")


def test_resolve_chart_name_prefixes_repository():
    assert resolve_chart_name("stable", "nginx") == ("", "stable/nginx")


def test_resolve_chart_name_keeps_qualified_name():
    assert resolve_chart_name("stable", "other/nginx") == ("", "other/nginx")


def test_resolve_chart_name_without_repository():
    assert resolve_chart_name("", "nginx") == ("", "nginx")


def test_resolve_chart_name_bad_port_is_not_uri():
    assert resolve_chart_name("http://host:abc", "nginx") == ("", "http://host:abc/nginx")


def test_is_release_not_found_error():
    assert is_release_not_found_error(Exception("get: release: not found"))
    assert not is_release_not_found_error(Exception("connection refused"))