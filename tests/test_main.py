import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from streamcal import main as main_module


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = str(Path(self.temp_dir.name) / "missing.yaml")
        self._root_handlers = list(logging.getLogger().handlers)
        self._root_level = logging.getLogger().level

    def tearDown(self) -> None:
        root_logger = logging.getLogger()
        root_logger.handlers = self._root_handlers
        root_logger.setLevel(self._root_level)
        self.temp_dir.cleanup()

    def test_configure_logging_installs_single_handler(self) -> None:
        main_module.configure_logging("debug")
        root_logger = logging.getLogger()
        self.assertEqual(len(root_logger.handlers), 1)
        self.assertEqual(root_logger.level, logging.DEBUG)

    def test_missing_config_exits(self) -> None:
        env = {"STREAMCAL_CONFIG_PATH": self.config_path}
        with mock.patch.dict(os.environ, env, clear=True), mock.patch.object(main_module.uvicorn, "run") as run:
            with self.assertRaises(SystemExit) as ctx:
                main_module.main()
        self.assertEqual(ctx.exception.code, 2)
        run.assert_not_called()

    def test_serves_status_app(self) -> None:
        env = {
            "STREAMCAL_CONFIG_PATH": self.config_path,
            "STREAMCAL_PORT": "9090",
            "TWITCH_BROADCASTER_ID": "111",
            "DISCORD_GUILD_ID": "99",
            "DISCORD_BOT_TOKEN": "token",
            "DISCORD_BOT_ID": "1000",
        }
        with mock.patch.dict(os.environ, env, clear=True), mock.patch.object(main_module.uvicorn, "run") as run:
            main_module.main()
        run.assert_called_once()
        self.assertEqual(run.call_args.kwargs["port"], 9090)
        self.assertEqual(run.call_args.kwargs["host"], "0.0.0.0")


if __name__ == "__main__":
    unittest.main()
