# tests/test_settings_and_logging.py
# Tests for the preference store, configuration file, log helpers and folder opener

import json
import logging
from unittest.mock import patch

import pytest

import logging_config
from config import ImportConfig
from settings_manager_qt import SettingsManager
from utils.system_open import open_folder


class TestSettingsManager:

    def test_load_unset_key_is_none(self, tmp_path):
        settings = SettingsManager(str(tmp_path / "settings.json"))
        assert settings.load("destination_path") is None
        assert settings.load("no_such_key") is None

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "settings.json"
        SettingsManager(str(path)).save_destination_path("/home/user/Pictures/Import")

        assert SettingsManager(str(path)).load_destination_path() == "/home/user/Pictures/Import"
        assert json.loads(path.read_text())["destination_path"] == "/home/user/Pictures/Import"

    def test_broken_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        settings = SettingsManager(str(path))
        assert settings.get("log_level") == "INFO"


class TestImportConfig:

    def test_defaults(self, tmp_path):
        config = ImportConfig(str(tmp_path / "cfg.json"))
        assert config.thumbnail.max_edge == 250
        assert config.transfer.chunk_size == 64 * 1024
        assert "heic" in config.scan.image_extensions

    def test_partial_file_and_unknown_keys(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"thumbnail": {"max_edge": 160, "bogus": 1}}))
        config = ImportConfig(str(path))
        assert config.thumbnail.max_edge == 160
        assert config.thumbnail.max_workers == 4

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "cfg.json"
        config = ImportConfig(str(path))
        config.transfer.fsync = False
        config.save()
        assert ImportConfig(str(path)).transfer.fsync is False


class TestLogging:

    @pytest.fixture
    def log_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(logging_config, "_current_log_file", None)
        root = logging.getLogger()
        saved = root.handlers[:]
        path = tmp_path / "camporter.log"
        logging_config.setup_logging(log_level="WARNING", log_file=str(path), console=False)
        yield path
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)
        for handler in saved:
            root.addHandler(handler)

    def test_file_records_debug(self, log_file):
        logging_config.get_logger("services.test").debug("debug detail")
        assert any("debug detail" in line for line in logging_config.read_log_tail(50))

    def test_append_and_read_tail(self, log_file):
        for i in range(5):
            logging_config.append_log("info", f"ui message {i}")
        logging_config.append_log("warn", "careful")

        tail = logging_config.read_log_tail(2)
        assert len(tail) == 2
        assert "ui message 4" in tail[0]
        assert "careful" in tail[1] and "WARNING" in tail[1]

    def test_set_log_level_leaves_file_at_debug(self, log_file):
        console = logging.StreamHandler()
        logging.getLogger().addHandler(console)
        logging_config.set_log_level("error")

        assert console.level == logging.ERROR
        file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
        assert file_handlers and all(h.level == logging.DEBUG for h in file_handlers)

    def test_read_without_log_file(self, tmp_path):
        assert logging_config.read_log_tail(10, log_file=str(tmp_path / "none.log")) == []


class TestOpenFolder:

    def test_missing_folder(self, tmp_path):
        assert open_folder(str(tmp_path / "missing")) == (False, "Destination folder does not exist")

    @pytest.mark.parametrize("system, launcher", [("Linux", "xdg-open"), ("Darwin", "open"), ("Windows", "explorer")])
    def test_platform_launcher(self, tmp_path, system, launcher):
        with patch("utils.system_open.subprocess.Popen") as popen:
            ok, _ = open_folder(str(tmp_path), system=system)
        assert ok
        assert popen.call_args[0][0][0] == launcher

    def test_launcher_missing(self, tmp_path):
        with patch("utils.system_open.subprocess.Popen", side_effect=FileNotFoundError("xdg-open")):
            ok, message = open_folder(str(tmp_path), system="Linux")
        assert not ok
        assert "xdg-open" in message
