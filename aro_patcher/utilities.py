#!/usr/bin/env python3
"""Utilities module: oc/az command execution and shared helpers."""

import json
import subprocess
import time
from typing import Any, Callable, List, Optional

from .errors import CommandError
from .print_manager import mask_secrets


def _is_retryable_error(stderr_text):
    """Check if the error is worth retrying."""
    if not stderr_text:
        return False

    # Common API server connectivity issues that warrant retry
    retryable_patterns = [
        "keepalive ping failed",
        "connection refused",
        "timeout",
        "connection reset",
        "temporary failure in name resolution",
        "service unavailable",
        "internal server error",
        "too many requests",
        "server is currently unable to handle the request",
        "context deadline exceeded",
        "tls handshake timeout",
        "the object has been modified",
    ]

    stderr_lower = stderr_text.lower()
    return any(pattern in stderr_lower for pattern in retryable_patterns)


def _log_retry_attempt(printer, attempt, max_retries, exec_command):
    """Log retry attempt information."""
    if not printer:
        return
    command_text = mask_secrets(" ".join(exec_command))
    if attempt == 0:
        printer.print_action(f"Executing: {command_text}")
    else:
        printer.print_info(f"Retry attempt {attempt}/{max_retries}: {command_text}")


def _handle_command_success(result, json_output, attempt, printer):
    """Handle successful command execution."""
    if attempt > 0 and printer:
        printer.print_success(f"Command succeeded on retry attempt {attempt}")
    if json_output:
        return json.loads(result.stdout)
    return result.stdout.strip()


def _should_retry(stderr, attempt, max_retries, retry_delay, printer):
    """Decide whether a failed command is retried, sleeping before the retry."""
    if attempt < max_retries and _is_retryable_error(stderr):
        if printer:
            printer.print_warning(f"Command failed with retryable error, waiting {retry_delay}s before retry...")
            printer.print_info(f"Error: {stderr.strip()}")
        time.sleep(retry_delay)
        return True
    if printer:
        printer.print_error(f"Command failed: {stderr.strip()}")
    return False


def _execute_cli_command(
    binary: str,
    command: List[str],
    json_output: bool = False,
    printer: Any = None,
    max_retries: int = 3,
    retry_delay: float = 2,
    input_text: Optional[str] = None,
):
    """
    Execute a CLI command with retry logic for transient API failures.

    Args:
        binary: Path of the executable
        command: Arguments passed to the executable
        json_output: If True, parse stdout as JSON
        printer: Printer instance for output
        max_retries: Maximum number of retry attempts
        retry_delay: Seconds to wait before the first retry, growing by 1.5x
        input_text: Optional text written to the command's stdin

    Returns:
        str or dict: Command output, or None on failure after all retries
    """
    exec_command = [binary] + list(command)
    last_error = None

    for attempt in range(max_retries + 1):  # +1 for the initial attempt
        _log_retry_attempt(printer, attempt, max_retries, exec_command)
        try:
            result = subprocess.run(exec_command, capture_output=True, text=True, input=input_text)
        except OSError as e:
            # Missing or non-executable binary will not heal on retry
            if printer:
                printer.print_error(f"Failed to execute {binary}: {e}")
            return None

        if result.returncode == 0:
            try:
                return _handle_command_success(result, json_output, attempt, printer)
            except json.JSONDecodeError as e:
                if printer:
                    printer.print_error(f"Failed to parse JSON output: {e}")
                return None

        last_error = result.stderr or ""
        if not _should_retry(last_error, attempt, max_retries, retry_delay, printer):
            return None
        retry_delay *= 1.5

    if printer:
        printer.print_error(f"Command failed after {max_retries} retries. Last error: {last_error}")
    return None


def execute_oc_command(command, json_output=False, printer=None, max_retries=3, retry_delay=2, oc_path="oc", input_text=None):
    """
    Execute an OpenShift CLI command with retry logic for API failures.

    Args:
        command: List of command arguments to execute (excluding 'oc')
        json_output: If True, parse result as JSON
        printer: Printer instance for output
        max_retries: Maximum number of retry attempts (default: 3)
        retry_delay: Seconds to wait between retries (default: 2)
        oc_path: Resolved path of the oc binary
        input_text: Optional stdin content (e.g. a manifest for 'apply -f -')

    Returns:
        str or dict: Command output as string, or parsed JSON dict if json_output=True.
                    Returns None on command failure after all retries.
    """
    return _execute_cli_command(oc_path, command, json_output, printer, max_retries, retry_delay, input_text)


def execute_az_command(command, json_output=False, printer=None, max_retries=3, retry_delay=2, az_path="az"):
    """
    Execute an Azure CLI command with the same retry semantics as execute_oc_command.

    Returns:
        str or dict: Command output, or None on failure
    """
    return _execute_cli_command(az_path, command, json_output, printer, max_retries, retry_delay)


def require_output(result, description, command=None):
    """Turn a failed (None) command result into a CommandError"""
    if result is None:
        raise CommandError(f"Failed to {description}", command=command)
    return result


def oc_login(server: str, username: str, password: str, execute_oc_command: Callable, printer: Any = None) -> str:
    """Log in to the cluster API; raises CommandError on failure"""
    if printer:
        printer.print_info(f"Attempting to log in to OCP cluster {server}")
    output = execute_oc_command(
        ["login", f"--username={username}", f"--password={password}", f"--server={server}"],
        printer=printer,
    )
    require_output(output, f"log in to OCP cluster {server}")
    if printer:
        printer.print_success(f"Logged in to {server} as {username}")
    return output


def az_login(client_id: str, client_secret: str, tenant_id: str, execute_az_command: Callable, printer: Any = None):
    """Log in to Azure with a service principal; raises CommandError on failure"""
    if printer:
        printer.print_info("Attempting to log in to Azure")
    output = execute_az_command(
        [
            "login",
            "--allow-no-subscriptions",
            "--service-principal",
            f"--username={client_id}",
            f"--password={client_secret}",
            f"--tenant={tenant_id}",
        ],
        json_output=True,
        printer=printer,
    )
    require_output(output, "log in to Azure")
    if printer:
        printer.print_success(f"Logged in to Azure tenant {tenant_id}")
    return output


def count_jsonpath_items(output):
    """Count whitespace separated names in a jsonpath '{.items[*].metadata.name}' result"""
    if not output:
        return 0
    return len(output.split())


def format_runtime(start_time, end_time):
    """
    Format runtime duration in a human-readable way.

    Args:
        start_time (float): Start timestamp from time.time()
        end_time (float): End timestamp from time.time()

    Returns:
        str: Formatted runtime string (e.g., "5m 23s", "1h 15m 30s")
    """
    total_seconds = int(end_time - start_time)

    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    elif minutes > 0:
        return f"{minutes}m {seconds}s"
    else:
        return f"{seconds}s"
