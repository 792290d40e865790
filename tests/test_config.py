import json

from campusradio.lib import config


def test_cfg_reads_env_override(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"stream": {"url": "http://x/live"}, "station": "flat"}))
    monkeypatch.setenv(config.ENV_VAR, str(path))

    config.reload_config()

    assert config.cfg("stream", "url") == "http://x/live"
    assert config.cfg("stream", "metadata_url", default="d") == "d"
    assert config.cfg("station") == "flat"
    assert config.cfg("station", "name", default="fallback") == "fallback"
    assert config.cfg("missing", default=3) == 3


def test_invalid_json_falls_through(tmp_path, monkeypatch, caplog):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    monkeypatch.setattr(config, "_search_paths", lambda: [str(bad)])

    assert config.reload_config() == {}
    assert "Invalid JSON" in caplog.text


def test_validate_warns_on_bad_values(tmp_path, monkeypatch, caplog):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "stream": {"url": "ftp://nope"},
        "titles": {"retry_interval": -1},
        "telemetry": {"interval": "fast"},
    }))
    monkeypatch.setattr(config, "_search_paths", lambda: [str(path)])

    config.reload_config()

    assert "stream.url is not an http(s) URL" in caplog.text
    assert "titles.retry_interval must be a positive number" in caplog.text
    assert "telemetry.interval must be positive" in caplog.text


def test_config_is_cached(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"service": {"port": 1}}))
    monkeypatch.setattr(config, "_search_paths", lambda: [str(path)])
    config.reload_config()

    path.write_text(json.dumps({"service": {"port": 2}}))

    assert config.cfg("service", "port") == 1
    assert config.reload_config()["service"]["port"] == 2


def test_non_object_document_falls_through(tmp_path, monkeypatch, caplog):
    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]")
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"service": {"port": 9}}))
    monkeypatch.setattr(config, "_search_paths", lambda: [str(listing), str(good)])

    assert config.reload_config() == {"service": {"port": 9}}
    assert config.config_path() == str(good)
    assert "must be a JSON object" in caplog.text


def test_unreadable_path_is_skipped(tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(config, "_search_paths", lambda: [str(tmp_path)])

    assert config.reload_config() == {}
    assert config.config_path() is None
    assert "Cannot read" in caplog.text


def test_explicit_null_uses_default(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"titles": {"retry_interval": None}, "station": None}))
    monkeypatch.setattr(config, "_search_paths", lambda: [str(path)])
    config.reload_config()

    assert config.cfg("titles", "retry_interval", default=5) == 5
    assert config.cfg("station", default="x") == "x"
