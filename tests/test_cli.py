"""Tests for the command line entry point."""

from unittest.mock import patch

import pytest

from query_exporter.cli import create_parser, main


class TestCreateParser:
    def test_default_config_path(self):
        args = create_parser().parse_args([])
        assert args.config == "query_config.yaml"

    @pytest.mark.parametrize("flag", ["-config", "--config"])
    def test_config_flag(self, flag):
        args = create_parser().parse_args([flag, "/etc/exporter/queries.yaml"])
        assert args.config == "/etc/exporter/queries.yaml"

    def test_unknown_arguments_are_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["serve"])


class TestMain:
    def test_exit_code_comes_from_run(self):
        with patch("query_exporter.core.runner.run", return_value=0) as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                main(["-config", "custom.yaml"])

        assert exc_info.value.code == 0
        mock_run.assert_called_once_with("custom.yaml")

    def test_failure_exit_code(self):
        with patch("query_exporter.core.runner.run", return_value=1):
            with pytest.raises(SystemExit) as exc_info:
                main([])

        assert exc_info.value.code == 1
