#!/usr/bin/env python3
"""Print Manager module for the ARO certificate and infra-node tools.

Commands are echoed in debug mode only, and always through mask_secrets so the
cluster admin password and the Azure service principal secret passed as
--password=... flags never reach container logs.
"""

import re
import sys

# Global debug flag
DEBUG_MODE = False

_SECRET_FLAG_PATTERN = re.compile(r"(--(?:password|client-secret|p)=)(\S+)")


def mask_secrets(text):
    """Hide credential values passed as --password=... style flags"""
    return _SECRET_FLAG_PATTERN.sub(r"\1******", text)


class PrintManager:
    """Manages all output formatting and printing for the tools"""

    @staticmethod
    def print_header(message):
        """Print a section header with visual separation"""
        print(f"\n{'=' * 60}")
        print(f" {message.upper()}")
        print(f"{'=' * 60}")

    @staticmethod
    def print_info(message):
        """Print informational message"""
        print(f"    [INFO]  {message}")

    @staticmethod
    def print_success(message):
        """Print success message"""
        print(f"    [✓]     {message}")

    @staticmethod
    def print_warning(message):
        """Print warning message"""
        print(f"    [⚠️]     {message}")

    @staticmethod
    def print_error(message):
        """Print error message to stderr"""
        print(f"    [✗]     {message}", file=sys.stderr)

    @staticmethod
    def print_step(step_num, total_steps, message):
        """Print numbered step"""
        print(f"[{step_num}/{total_steps}] {message}")

    @staticmethod
    def print_action(message):
        """Print command being executed (only in debug mode)"""
        if DEBUG_MODE:
            print(f"    [ACTION] {mask_secrets(message)}")


def set_debug_mode(enabled):
    """Toggle [ACTION] tracing for every printer"""
    global DEBUG_MODE
    DEBUG_MODE = bool(enabled)


# Create a global print manager instance for convenience
printer = PrintManager()
