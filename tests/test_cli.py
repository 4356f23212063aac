"""
Tests for the command line entry point and logging setup.
"""

import json
import logging
import signal
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from srht_client import __main__ as cli
from srht_client.config import SrhtConfig
from srht_client.context import OperationCancelled, OperationContext
from srht_client.graphql_client import APICallStats
from srht_client.logging_config import (
    HumanReadableFormatter,
    LogContext,
    StructuredFormatter,
    log_api_call,
    setup_structured_logging,
)
from srht_export.types import ExportStatus, ImportSummary, ServiceExportResult


@pytest.fixture
def config():
    return SrhtConfig(instance="example.org", token="t")


@pytest.fixture
def quiet_logging():
    with patch("srht_client.__main__.setup_structured_logging"):
        yield


class TestParseArgs:
    """Tests for parse_args()."""

    def test_export(self):
        args = cli.parse_args(["--instance", "example.org", "export", "out", "git.example.org"])
        assert args.command == "export"
        assert args.directory == Path("out")
        assert args.resources == ["git.example.org"]
        assert args.instance == "example.org"

    def test_export_all(self):
        args = cli.parse_args(["export", "out"])
        assert args.resources == []

    def test_builds_follow(self):
        args = cli.parse_args(["-v", "builds", "follow", "1234"])
        assert args.command == "builds"
        assert args.job_id == 1234
        assert args.verbose is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.parse_args([])


class TestRunExport:
    """Tests for exit status mapping of run_export()."""

    def run(self, config, tmp_path, statuses, resources=()):
        results = [ServiceExportResult(f"s{i}", status, tmp_path) for i, status in enumerate(statuses)]
        driver = Mock()
        driver.export_all.return_value = results
        driver.export_resources.return_value = results
        with patch("srht_export.driver.build_exporters", return_value=[]), \
                patch("srht_export.driver.ExportDriver", return_value=driver):
            code = cli.run_export(config, OperationContext(), tmp_path / "out", list(resources))
        return code, driver

    def test_all_completed(self, config, tmp_path):
        code, driver = self.run(config, tmp_path, [ExportStatus.COMPLETED, ExportStatus.SKIPPED])
        assert code == cli.EXIT_OK
        driver.export_all.assert_called_once()
        assert (tmp_path / "out").is_dir()

    def test_partial(self, config, tmp_path):
        code, _ = self.run(config, tmp_path, [ExportStatus.COMPLETED, ExportStatus.PARTIAL])
        assert code == cli.EXIT_PARTIAL

    def test_failed(self, config, tmp_path):
        code, _ = self.run(config, tmp_path, [ExportStatus.PARTIAL, ExportStatus.FAILED])
        assert code == cli.EXIT_ERROR

    def test_selected_resources(self, config, tmp_path):
        code, driver = self.run(config, tmp_path, [ExportStatus.COMPLETED], resources=["git.example.org"])
        assert code == cli.EXIT_OK
        driver.export_resources.assert_called_once()
        driver.export_all.assert_not_called()


class TestMain:
    """Tests for main()."""

    def test_configuration_error(self, quiet_logging):
        with patch.object(SrhtConfig, "from_env", side_effect=ValueError("token or token_cmd is required")):
            assert cli.main(["export", "out"]) == cli.EXIT_ERROR

    def test_import(self, quiet_logging, config, tmp_path):
        summary = ImportSummary(imported=["a"], failed={"b": "boom"})
        driver = Mock()
        driver.import_all.return_value = summary
        with patch.object(SrhtConfig, "from_env", return_value=config), \
                patch("srht_client.__main__.install_signal_handlers"), \
                patch("srht_export.driver.build_exporters", return_value=[]), \
                patch("srht_export.driver.ExportDriver", return_value=driver):
            assert cli.main(["import", str(tmp_path)]) == cli.EXIT_PARTIAL

    def test_interrupted(self, quiet_logging, config):
        with patch.object(SrhtConfig, "from_env", return_value=config), \
                patch("srht_client.__main__.install_signal_handlers"), \
                patch("srht_client.__main__.run_follow", side_effect=OperationCancelled("interrupted")):
            assert cli.main(["builds", "follow", "5"]) == cli.EXIT_INTERRUPTED

    def test_unexpected_error(self, quiet_logging, config, tmp_path):
        with patch.object(SrhtConfig, "from_env", return_value=config), \
                patch("srht_client.__main__.install_signal_handlers"), \
                patch("srht_client.__main__.run_export", side_effect=RuntimeError("disk full")):
            assert cli.main(["export", str(tmp_path)]) == cli.EXIT_ERROR



class TestLogLevel:
    """Tests for choosing the log level in main()."""

    def run_main(self, config, argv):
        with patch("srht_client.__main__.setup_structured_logging") as setup, \
                patch.object(SrhtConfig, "from_env", return_value=config), \
                patch("srht_client.__main__.install_signal_handlers"), \
                patch("srht_client.__main__.run_export", return_value=cli.EXIT_OK):
            assert cli.main(argv) == cli.EXIT_OK
        return [c.kwargs["level"] for c in setup.call_args_list]

    def test_configured_level_applies(self, tmp_path):
        config = SrhtConfig(instance="example.org", token="t", log_level="debug")
        assert self.run_main(config, ["export", str(tmp_path)])[-1] == logging.DEBUG

    def test_flags_win_over_configured_level(self, tmp_path):
        config = SrhtConfig(instance="example.org", token="t", log_level="DEBUG")
        assert self.run_main(config, ["-q", "export", str(tmp_path)]) == [logging.ERROR]

    def test_unknown_level_ignored(self, tmp_path):
        config = SrhtConfig(instance="example.org", token="t", log_level="LOUD")
        assert self.run_main(config, ["export", str(tmp_path)]) == [logging.INFO]


class TestApiStats:
    """Tests for log_api_stats()."""

    def test_logs_counters_of_used_clients(self, caplog):
        used = Mock()
        used.name = "git.sr.ht"
        used.client.stats = APICallStats(total_calls=3, successful_calls=2, retried_calls=1, failed_calls=1)
        idle = Mock()
        idle.name = "hg.sr.ht"
        idle.client.stats = APICallStats()

        with caplog.at_level(logging.DEBUG, logger="srht_client"):
            cli.log_api_stats([used, idle])

        assert "git.sr.ht: 3 API call(s), 2 ok, 1 retried, 1 failed" in caplog.text
        assert "hg.sr.ht" not in caplog.text

class TestSignalHandlers:
    """Tests for install_signal_handlers()."""

    def test_first_signal_cancels_second_aborts(self):
        ctx = OperationContext()
        with patch("srht_client.__main__.signal.signal") as install:
            cli.install_signal_handlers(ctx)

        handler = install.call_args_list[0].args[1]
        handler(signal.SIGINT, None)
        assert ctx.cancelled

        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGINT, None)


class TestLogging:
    """Tests for the logging helpers."""

    def make_record(self, msg="hello", level=logging.INFO):
        return logging.getLogger("srht_export.test").makeRecord(
            "srht_export.test", level, __file__, 1, msg, (), None,
        )

    def test_structured_formatter_includes_context(self):
        """Test JSON lines carry the service/resource context."""
        with LogContext(service="git.sr.ht", resource="repo"):
            record = logging.getLogRecordFactory()(
                "srht_export.test", logging.INFO, __file__, 1, "cloning", (), None,
            )
        data = json.loads(StructuredFormatter(extra_fields={"app": "srht-export"}).format(record))

        assert data["message"] == "cloning"
        assert data["service"] == "git.sr.ht"
        assert data["resource"] == "repo"
        assert data["app"] == "srht-export"

    def test_log_context_restores_factory(self):
        original = logging.getLogRecordFactory()
        with LogContext(service="x"):
            assert logging.getLogRecordFactory() is not original
        assert logging.getLogRecordFactory() is original

    def test_human_formatter(self):
        record = self.make_record("Skipping repo")
        record.service = "hg.sr.ht"
        line = HumanReadableFormatter(use_colors=False).format(record)
        assert "INFO" in line
        assert "Skipping repo [service=hg.sr.ht]" in line

    @pytest.mark.parametrize("status,level", [(200, logging.DEBUG), (404, logging.WARNING), (502, logging.ERROR)])
    def test_api_call_levels(self, status, level):
        logger = Mock()
        log_api_call(logger, "POST", "https://x/query", status, 12.0)
        assert logger.log.call_args.args[0] == level
        assert logger.log.call_args.kwargs["extra"]["status_code"] == status

    def test_log_file_has_no_colors(self, tmp_path):
        """Test the log file stays plain text when stderr is a terminal."""
        log_file = tmp_path / "export.log"
        terminal = Mock()
        terminal.isatty.return_value = True
        root = logging.getLogger()
        package_logger = logging.getLogger("srht_client")
        saved_handlers, saved_level = root.handlers[:], root.level
        saved_package_level = package_logger.level
        try:
            with patch("srht_client.logging_config.sys.stderr", terminal):
                setup_structured_logging(level=logging.INFO, log_file=str(log_file))
            logging.getLogger("srht_client.test").warning("disk almost full")
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                if handler not in saved_handlers:
                    handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
            package_logger.setLevel(saved_package_level)
            logging.getLogger("urllib3").setLevel(logging.NOTSET)

        text = log_file.read_text()
        assert "disk almost full" in text
        assert "\033[" not in text
