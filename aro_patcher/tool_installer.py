#!/usr/bin/env python3
"""Tool Installer module: fetches the OpenShift and Azure CLIs when they are missing."""

import os
import subprocess
import tarfile

import requests

from .errors import CommandError

OC_MIRROR_URL = "https://mirror.openshift.com/pub/openshift-v4/clients/ocp/stable-{version}/openshift-client-linux.tar.gz"
MICROSOFT_KEY_URL = "https://packages.microsoft.com/keys/microsoft.asc"
AZURE_CLI_REPO_FILE = "/etc/yum.repos.d/azure-cli.repo"
AZURE_CLI_REPO = """\
[azure-cli]
name=Azure CLI
baseurl=https://packages.microsoft.com/yumrepos/azure-cli
enabled=1
gpgcheck=1
gpgkey=https://packages.microsoft.com/keys/microsoft.asc
"""


class ToolInstaller:
    """Installs the oc and az command line clients into a container image"""

    def __init__(self, work_dir, printer=None, download_timeout=300):
        """
        Initialize ToolInstaller.

        Args:
            work_dir: Directory the oc client archive is extracted into
            printer: Printer instance for output
            download_timeout: Seconds allowed for the client download
        """
        self.work_dir = work_dir
        self.printer = printer
        self.download_timeout = download_timeout

    def install_oc(self, ocp_version="4.7"):
        """
        Download and extract the oc client for the given OCP version.

        Returns:
            str: Path to the extracted oc binary

        Raises:
            CommandError: If the download or extraction fails
        """
        url = OC_MIRROR_URL.format(version=ocp_version)
        archive_path = os.path.join(self.work_dir, "openshift-client-linux.tar.gz")

        if self.printer:
            self.printer.print_info(f"Downloading OpenShift client {ocp_version}")
            self.printer.print_action(f"GET {url}")

        try:
            with requests.get(url, stream=True, timeout=self.download_timeout) as response:
                response.raise_for_status()
                with open(archive_path, "wb") as archive:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        archive.write(chunk)
        except requests.RequestException as e:
            raise CommandError(f"Failed to download OpenShift client from {url}: {e}")

        try:
            with tarfile.open(archive_path, "r:gz") as archive:
                members = [m for m in archive.getmembers() if m.name in ("oc", "kubectl")]
                archive.extractall(self.work_dir, members=members)
        except (tarfile.TarError, OSError) as e:
            raise CommandError(f"Failed to extract {archive_path}: {e}")

        oc_path = os.path.join(self.work_dir, "oc")
        if not os.path.isfile(oc_path):
            raise CommandError(f"oc binary not found in {archive_path}")
        os.chmod(oc_path, 0o755)

        if self.printer:
            self.printer.print_success(f"OpenShift client extracted to {oc_path}")
        return oc_path

    def install_az(self):
        """Register the Microsoft yum repository and install azure-cli"""
        if self.printer:
            self.printer.print_info("Installing Azure CLI")

        self._run(["rpm", "--import", MICROSOFT_KEY_URL])
        try:
            with open(AZURE_CLI_REPO_FILE, "w") as repo_file:
                repo_file.write(AZURE_CLI_REPO)
        except OSError as e:
            raise CommandError(f"Failed to write {AZURE_CLI_REPO_FILE}: {e}")
        self._run(["yum", "install", "-y", "azure-cli"])

        if self.printer:
            self.printer.print_success("Azure CLI installed")

    def install_missing(self, missing, ocp_version="4.7"):
        """Install only the clients named in missing"""
        if "oc" in missing:
            self.install_oc(ocp_version)
        if "az" in missing:
            self.install_az()

    def _run(self, command):
        if self.printer:
            self.printer.print_action(f"Executing: {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=True)
        except OSError as e:
            raise CommandError(f"Failed to run {command[0]}: {e}", command=command)
        if result.returncode != 0:
            raise CommandError(f"{' '.join(command)} failed: {result.stderr.strip()}", command=command)
        return result.stdout
