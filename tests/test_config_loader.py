import json

import pytest

from stackdriver_backend.config_loader import ConfigError, build_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for k in ("STATSD_CONFIG", "STACKDRIVER_API_KEY", "STACKDRIVER_SOURCE", "STACKDRIVER_DEBUG"):
        monkeypatch.delenv(k, raising=False)


def test_defaults_without_config():
    s = build_settings()
    assert s.api_key is None and s.source is None
    assert s.send_counters and s.send_zero_timers_and_rates
    assert not s.send_timer_percentiles
    assert s.percent_threshold == [90]
    assert s.source_prefix_separator == "--"
    assert s.attribution_mode == "none"


def test_json_config_section(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({
        "port": 8125,
        "backends": ["./backends/stackdriver"],
        "stackdriver": {
            "apiKey": "abc", "sourceFromPrefix": True, "sourcePrefixSeparator": "__",
            "sendTimerPercentiles": True, "percentThreshold": [90, 99.9], "sendGauges": False,
        },
    }))
    s = build_settings(p)
    assert s.api_key == "abc" and s.attribution_mode == "prefix"
    assert s.source_prefix_separator == "__"
    assert s.percent_threshold == [90, 99.9]
    assert s.send_timer_percentiles and not s.send_gauges


def test_yaml_config_and_scalar_threshold(tmp_path, monkeypatch):
    p = tmp_path / "config.yaml"
    p.write_text("stackdriver:\n  apiKey: xyz\n  source: gce\n  percentThreshold: 95\n")
    monkeypatch.setenv("STATSD_CONFIG", str(p))
    s = build_settings()
    assert s.api_key == "xyz" and s.cloud_sentinel == "gce"
    assert s.percent_threshold == [95]


def test_env_overrides_file(tmp_path, monkeypatch):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"stackdriver": {"apiKey": "file", "debug": False}}))
    monkeypatch.setenv("STACKDRIVER_API_KEY", "env")
    monkeypatch.setenv("STACKDRIVER_DEBUG", "true")
    s = build_settings(p)
    assert s.api_key == "env" and s.debug


def test_explicit_overrides_win(monkeypatch):
    monkeypatch.setenv("STACKDRIVER_SOURCE", "envhost")
    assert build_settings(overrides={"source": "hostB"}).source == "hostB"


def test_blank_source_is_unset():
    assert build_settings(overrides={"source": "  "}).attribution_mode == "none"


def test_invalid_option_raises_config_error():
    with pytest.raises(ConfigError):
        build_settings(overrides={"sendCounters": "not-a-bool"})


def test_unparseable_file_raises_config_error(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("stackdriver: [unclosed\n")
    with pytest.raises(ConfigError):
        build_settings(p)


def test_missing_file_raises_config_error(tmp_path):
    with pytest.raises(ConfigError):
        build_settings(tmp_path / "nope.json")


def test_settings_are_frozen():
    s = build_settings()
    with pytest.raises(Exception):
        s.send_counters = False
