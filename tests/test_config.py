"""
Tests for configuration and the cancellation context.
"""

import time
from unittest.mock import patch

import pytest

from srht_client.config import SrhtConfig
from srht_client.context import OperationCancelled, OperationContext


class TestSrhtConfig:
    """Tests for SrhtConfig."""

    def test_requires_token(self):
        """Test a token or token command is required."""
        with pytest.raises(ValueError, match="token"):
            SrhtConfig(instance="sr.ht")

    def test_rejects_bad_timeout(self):
        with pytest.raises(ValueError):
            SrhtConfig(token="t", timeout=0)

    def test_derived_origin(self):
        """Test origins are derived from the instance hostname."""
        config = SrhtConfig(instance="example.org", token="t")
        assert config.origin_for("git") == "https://git.example.org"
        assert config.origin_for("builds") == "https://builds.example.org"

    def test_origin_override(self):
        """Test an explicit origin wins over the derived one."""
        config = SrhtConfig(token="t", origins={"todo": "http://localhost:5003/"})
        assert config.origin_for("todo") == "http://localhost:5003"
        assert config.origin_for("paste") == "https://paste.sr.ht"

    @pytest.mark.parametrize("instance", ["localhost", "127.0.0.1", "10.0.0.1:8080"])
    def test_underivable_origin(self, instance):
        """Test bare hostnames and IP addresses need explicit origins."""
        config = SrhtConfig(instance=instance, token="t")
        with pytest.raises(ValueError, match="failed to get origin"):
            config.origin_for("git")

    def test_token_command(self):
        """Test the token command's first field is used."""
        config = SrhtConfig(token_cmd="pass show srht")
        with patch("srht_client.config.subprocess.run") as run:
            run.return_value.stdout = "abc123 extra\n"
            assert config.resolve_token() == "abc123"
        assert run.call_args.args[0] == ["pass", "show", "srht"]

    def test_token_command_empty_output(self):
        config = SrhtConfig(token_cmd="true")
        with patch("srht_client.config.subprocess.run") as run:
            run.return_value.stdout = "\n"
            with pytest.raises(ValueError):
                config.resolve_token()

    def test_from_env(self, monkeypatch):
        """Test settings are read from the environment."""
        monkeypatch.setenv("SRHT_INSTANCE", "example.org")
        monkeypatch.setenv("SRHT_TOKEN", "envtoken")
        monkeypatch.setenv("SRHT_GIT_ORIGIN", "http://git.local")
        monkeypatch.setenv("SRHT_DOWNLOAD_TIMEOUT", "120")
        monkeypatch.setenv("SRHT_VERIFY_SSL", "false")

        with patch("srht_client.config.load_dotenv"):
            config = SrhtConfig.from_env(token="override", instance=None)

        assert config.instance == "example.org"
        assert config.token == "override"
        assert config.origins == {"git": "http://git.local"}
        assert config.download_timeout == 120
        assert config.verify_ssl is False


class TestOperationContext:
    """Tests for OperationContext."""

    def test_live_context(self):
        ctx = OperationContext()
        ctx.check()
        assert ctx.cancelled is False
        assert ctx.remaining() is None

    def test_cancel(self):
        """Test cancel() makes check() raise with the reason."""
        ctx = OperationContext()
        ctx.cancel("interrupted by SIGINT")

        with pytest.raises(OperationCancelled, match="SIGINT"):
            ctx.check()

    def test_deadline(self):
        """Test an expired deadline cancels the context."""
        ctx = OperationContext(timeout=0)
        with pytest.raises(OperationCancelled, match="deadline"):
            ctx.check()

    def test_wait_returns_after_timeout(self):
        ctx = OperationContext()
        started = time.monotonic()
        ctx.wait(0.01)
        assert time.monotonic() - started < 1

    def test_wait_capped_by_deadline(self):
        """Test wait() ends at the deadline instead of sleeping on."""
        ctx = OperationContext(timeout=0.05)
        started = time.monotonic()
        with pytest.raises(OperationCancelled):
            ctx.wait(10)
        assert time.monotonic() - started < 5
