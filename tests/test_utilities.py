#!/usr/bin/env python3
"""
Pytest tests for the utilities module.
Covers oc/az execution with retries, logins and runtime formatting.
"""

import os
import sys
from types import SimpleNamespace

import pytest

# Add parent directory to path for module imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import Mock, patch  # noqa: E402
from aro_patcher.errors import CommandError  # noqa: E402
from aro_patcher.utilities import (  # noqa: E402
    _is_retryable_error,
    az_login,
    count_jsonpath_items,
    execute_az_command,
    execute_oc_command,
    format_runtime,
    oc_login,
    require_output,
)


def _completed(returncode=0, stdout="", stderr=""):
    return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


class TestFormatRuntime:
    """Test runtime formatting"""

    @pytest.mark.parametrize(
        "elapsed,expected",
        [
            (0, "0s"),
            (45, "45s"),
            (60, "1m 0s"),
            (323, "5m 23s"),
            (3600, "1h 0m 0s"),
            (4530, "1h 15m 30s"),
        ],
    )
    def test_format_runtime(self, elapsed, expected):
        assert format_runtime(1000.0, 1000.0 + elapsed) == expected

    def test_fractional_seconds_are_truncated(self):
        assert format_runtime(0.0, 59.9) == "59s"


class TestRetryableErrors:
    """Test classification of transient API failures"""

    @pytest.mark.parametrize(
        "stderr",
        [
            "Unable to connect to the server: dial tcp 10.0.0.10:6443: connect: connection refused",
            "error: net/http: TLS handshake timeout",
            "Error from server (ServiceUnavailable): the server is currently unable to handle the request",
            "Operation cannot be fulfilled on apiservers.config.openshift.io: the object has been modified",
            "context deadline exceeded",
        ],
    )
    def test_transient_errors_are_retryable(self, stderr):
        assert _is_retryable_error(stderr) is True

    @pytest.mark.parametrize(
        "stderr",
        [
            'Error from server (NotFound): secrets "api-certs" not found',
            "error: You must be logged in to the server (Unauthorized)",
            "",
            None,
        ],
    )
    def test_permanent_errors_are_not_retryable(self, stderr):
        assert _is_retryable_error(stderr) is False


class TestExecuteOcCommand:
    """Test oc execution through subprocess.run"""

    @patch("aro_patcher.utilities.subprocess.run")
    def test_returns_stripped_stdout(self, mock_run, mock_printer):
        mock_run.return_value = _completed(stdout="custom-ca\n")

        result = execute_oc_command(["get", "proxy/cluster"], printer=mock_printer, oc_path="/usr/bin/oc")

        assert result == "custom-ca"
        assert mock_run.call_args[0][0] == ["/usr/bin/oc", "get", "proxy/cluster"]

    @patch("aro_patcher.utilities.subprocess.run")
    def test_parses_json_output(self, mock_run):
        mock_run.return_value = _completed(stdout='{"kind": "ClusterOperator"}')

        result = execute_oc_command(["get", "clusteroperator", "ingress", "-o", "json"], json_output=True)

        assert result == {"kind": "ClusterOperator"}

    @patch("aro_patcher.utilities.subprocess.run")
    def test_invalid_json_returns_none(self, mock_run, mock_printer):
        mock_run.return_value = _completed(stdout="not json")

        assert execute_oc_command(["get", "nodes"], json_output=True, printer=mock_printer) is None
        mock_printer.print_error.assert_called_once()

    @patch("time.sleep")
    @patch("aro_patcher.utilities.subprocess.run")
    def test_retries_transient_failure_then_succeeds(self, mock_run, mock_sleep, mock_printer):
        mock_run.side_effect = [
            _completed(returncode=1, stderr="connection refused"),
            _completed(stdout="ok"),
        ]

        result = execute_oc_command(["get", "nodes"], printer=mock_printer, retry_delay=2)

        assert result == "ok"
        assert mock_run.call_count == 2
        mock_sleep.assert_called_once_with(2)
        mock_printer.print_success.assert_called_once_with("Command succeeded on retry attempt 1")

    @patch("time.sleep")
    @patch("aro_patcher.utilities.subprocess.run")
    def test_retry_delay_grows_between_attempts(self, mock_run, mock_sleep):
        mock_run.return_value = _completed(returncode=1, stderr="service unavailable")

        result = execute_oc_command(["get", "nodes"], max_retries=2, retry_delay=2)

        assert result is None
        assert mock_run.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 3.0]

    @patch("time.sleep")
    @patch("aro_patcher.utilities.subprocess.run")
    def test_permanent_failure_is_not_retried(self, mock_run, mock_sleep, mock_printer):
        mock_run.return_value = _completed(returncode=1, stderr="Error from server (NotFound)")

        assert execute_oc_command(["get", "secret", "missing"], printer=mock_printer) is None
        assert mock_run.call_count == 1
        mock_sleep.assert_not_called()

    @patch("aro_patcher.utilities.subprocess.run")
    def test_missing_binary_returns_none(self, mock_run, mock_printer):
        mock_run.side_effect = FileNotFoundError("No such file or directory: 'oc'")

        assert execute_oc_command(["version"], printer=mock_printer) is None
        mock_printer.print_error.assert_called_once()

    @patch("aro_patcher.utilities.subprocess.run")
    def test_passes_stdin_text(self, mock_run):
        mock_run.return_value = _completed(stdout="configured")

        execute_oc_command(["apply", "-f", "-"], input_text="kind: ConfigMap")

        assert mock_run.call_args[1]["input"] == "kind: ConfigMap"

    @patch("aro_patcher.utilities.subprocess.run")
    def test_az_command_uses_az_binary(self, mock_run):
        mock_run.return_value = _completed(stdout="value")

        execute_az_command(["keyvault", "secret", "show"], az_path="/usr/bin/az")

        assert mock_run.call_args[0][0][0] == "/usr/bin/az"


class TestLogins:
    """Test oc and az logins"""

    def test_oc_login_builds_command(self, mock_printer):
        oc = Mock(return_value="Login successful.")

        oc_login("https://api.example.com:6443", "kubeadmin", "pw", oc, printer=mock_printer)

        oc.assert_called_once_with(
            ["login", "--username=kubeadmin", "--password=pw", "--server=https://api.example.com:6443"],
            printer=mock_printer,
        )

    def test_oc_login_failure_raises(self):
        with pytest.raises(CommandError, match="log in to OCP cluster"):
            oc_login("https://api.example.com:6443", "kubeadmin", "pw", Mock(return_value=None))

    def test_az_login_uses_service_principal(self):
        az = Mock(return_value=[{"tenantId": "tenant"}])

        az_login("client", "secret", "tenant", az)

        command = az.call_args[0][0]
        assert "--service-principal" in command
        assert "--allow-no-subscriptions" in command
        assert "--tenant=tenant" in command
        assert az.call_args[1]["json_output"] is True

    def test_az_login_failure_raises(self):
        with pytest.raises(CommandError, match="log in to Azure"):
            az_login("client", "secret", "tenant", Mock(return_value=None))


class TestHelpers:
    def test_require_output_passes_value_through(self):
        assert require_output("", "read") == ""

    def test_require_output_raises_on_none(self):
        with pytest.raises(CommandError) as exc_info:
            require_output(None, "read proxy/cluster", command=["get", "proxy/cluster"])
        assert exc_info.value.command == ["get", "proxy/cluster"]
        assert exc_info.value.exit_code == 1

    @pytest.mark.parametrize("output,expected", [("", 0), (None, 0), ("a", 1), ("a b  c", 3)])
    def test_count_jsonpath_items(self, output, expected):
        assert count_jsonpath_items(output) == expected
