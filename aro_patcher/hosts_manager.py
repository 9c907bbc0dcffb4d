#!/usr/bin/env python3
"""Hosts Manager module: points cluster names at private endpoint IPs."""

import os

HOSTS_MARKER = "# aro-cert-tool"
# Prefix of pre-existing lines mapping a cluster name elsewhere, restored on removal
DISABLED_PREFIX = "#aro-cert-tool-disabled# "


def cluster_host_entries(api_host, api_ip, ingress_host, ingress_ip):
    """
    Build the name -> IP overrides needed to log in to a private cluster.

    oc login talks to the API endpoint and is redirected to the OAuth route,
    which is served by the ingress endpoint.
    """
    return {
        api_host: api_ip,
        f"oauth-openshift.{ingress_host}": ingress_ip,
        f"console-openshift-console.{ingress_host}": ingress_ip,
    }


def _parse_line(line):
    """Return (ip, names) of an active hosts line, or (None, []) for comments and blanks"""
    fields = line.split("#", 1)[0].split()
    if len(fields) < 2:
        return None, []
    return fields[0], fields[1:]


class HostsFileManager:
    """Adds and removes tagged entries in a hosts file"""

    def __init__(self, hosts_file="/etc/hosts", printer=None):
        self.hosts_file = hosts_file
        self.printer = printer
        self.added = []

    def _read_lines(self):
        if not os.path.exists(self.hosts_file):
            return []
        with open(self.hosts_file, "r") as f:
            return f.read().splitlines()

    def _write_lines(self, lines):
        with open(self.hosts_file, "w") as f:
            f.write("\n".join(lines) + "\n")

    def add_entries(self, entries):
        """
        Append "<ip> <name>" lines that are not already present.

        Lines mapping one of the names to a different address would shadow the
        override (the resolver takes the first match), so they are commented
        out until remove_entries() restores them.

        Args:
            entries: Mapping of host name to IP address

        Returns:
            list: Host names that were added
        """
        lines = self._read_lines()
        existing = set()
        for line in lines:
            ip, names = _parse_line(line)
            existing.update((ip, name) for name in names)

        wanted = {host: ip for host, ip in entries.items() if (ip, host) not in existing}
        for host, ip in entries.items():
            if host not in wanted and self.printer:
                self.printer.print_info(f"Hosts entry already present: {ip} {host}")

        changed = False
        for index, line in enumerate(lines):
            ip, names = _parse_line(line)
            conflicts = [name for name in names if name in wanted and wanted[name] != ip]
            if conflicts:
                lines[index] = f"{DISABLED_PREFIX}{line}"
                changed = True
                if self.printer:
                    self.printer.print_warning(
                        f"Disabled conflicting hosts entry for {', '.join(conflicts)}: {line.strip()}"
                    )

        new_lines = []
        for host, ip in wanted.items():
            new_lines.append(f"{ip} {host} {HOSTS_MARKER}")
            self.added.append(host)

        if new_lines or changed:
            self._write_lines(lines + new_lines)
            if self.printer:
                for line in new_lines:
                    self.printer.print_success(f"Added hosts entry: {line}")

        return list(self.added)

    def remove_entries(self):
        """
        Remove every entry this tool added and restore the lines it disabled.

        Returns:
            int: Number of added lines removed
        """
        lines = self._read_lines()
        kept = []
        removed = 0
        restored = 0
        for line in lines:
            if line.rstrip().endswith(HOSTS_MARKER):
                removed += 1
            elif line.startswith(DISABLED_PREFIX):
                kept.append(line[len(DISABLED_PREFIX):])
                restored += 1
            else:
                kept.append(line)

        if removed or restored:
            self._write_lines(kept)
            if self.printer:
                self.printer.print_info(
                    f"Removed {removed} temporary hosts entr{'y' if removed == 1 else 'ies'}, restored {restored}"
                )

        self.added = []
        return removed
