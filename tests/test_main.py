import json
import logging

import pytest

from syncthing_events import __main__ as cli
from syncthing_events.monitor import EventMonitor


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"watchers": [{"folder": "photos", "path_pattern": ".", "command": "echo ${path}"}]})
    )
    return path


class TestMain:
    def test_missing_auth_token_exits_2(self, config_file, monkeypatch, caplog):
        monkeypatch.delenv(cli.AUTH_ENV_VAR, raising=False)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--config", str(config_file)])

        assert excinfo.value.code == 2
        assert "ST_EVENTS_AUTH not set" in caplog.text

    def test_config_error_exits_2(self, tmp_path, monkeypatch):
        monkeypatch.setenv(cli.AUTH_ENV_VAR, "key")

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--config", str(tmp_path / "missing.json")])

        assert excinfo.value.code == 2

    def test_exit_status_comes_from_monitor(self, config_file, monkeypatch):
        monkeypatch.setenv(cli.AUTH_ENV_VAR, "key")
        seen = {}

        def fake_run(self):
            seen["url"] = self._poller.url()
            return 100

        monkeypatch.setattr(EventMonitor, "run", fake_run)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--config", str(config_file), "--url", "http://other:9999/"])

        assert excinfo.value.code == 100
        assert seen["url"] == "http://other:9999/rest/events?events=ItemFinished"


class TestLogLevel:
    @pytest.mark.parametrize(
        "name, verbose, expected",
        [
            ("INFO", 0, logging.INFO),
            ("INFO", 1, logging.DEBUG),
            ("WARNING", 1, logging.INFO),
            ("ERROR", 5, logging.DEBUG),
            ("bogus", 0, logging.INFO),
        ],
    )
    def test_resolve_log_level(self, name, verbose, expected):
        assert cli.resolve_log_level(name, verbose) == expected
