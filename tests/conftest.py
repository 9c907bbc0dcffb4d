#!/usr/bin/env python3
"""
Shared pytest configuration and fixtures for all tests.
"""

import datetime
import os
import sys
from types import SimpleNamespace
from typing import Any, Dict
from unittest.mock import Mock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

# Add the parent directory to Python path so we can import aro_patcher
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from aro_patcher.configuration import RunContext  # noqa: E402

API_HOST = "api.mycluster.example.com"
INGRESS_HOST = "apps.mycluster.example.com"


@pytest.fixture
def mock_printer() -> Mock:
    """Mock printer for testing output operations.

    Returns:
        Mock: Mock printer instance with all required methods.
    """
    printer = Mock()
    printer.print_info = Mock()
    printer.print_action = Mock()
    printer.print_success = Mock()
    printer.print_error = Mock()
    printer.print_warning = Mock()
    printer.print_step = Mock()
    printer.print_header = Mock()
    return printer


@pytest.fixture
def mock_format_runtime() -> Mock:
    return Mock(return_value="1m 5s")


# =============================================================================
# Certificate Material Factory
# =============================================================================


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _pem_key(key) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode()


def _pem_cert(cert) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode()


def _build_cert(subject, issuer, public_key, signing_key, is_ca=False, sans=None):
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=90))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName([x509.DNSName(s) for s in sans]), critical=False)
    return builder.sign(signing_key, hashes.SHA256())


@pytest.fixture(scope="session")
def cert_material() -> Dict[str, Any]:
    """Root CA, matching leaf key/certificate and an unrelated key, all as PEM.

    Generated once per session since RSA key generation is slow.
    """
    ca_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    ca_cert = _build_cert(_name("Test Root CA"), _name("Test Root CA"), ca_key.public_key(), ca_key, is_ca=True)

    leaf_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    leaf_cert = _build_cert(
        _name(API_HOST),
        ca_cert.subject,
        leaf_key.public_key(),
        ca_key,
        sans=[API_HOST, f"*.{INGRESS_HOST}"],
    )

    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    return {
        "ca_pem": _pem_cert(ca_cert),
        "leaf_pem": _pem_cert(leaf_cert),
        "key_pem": _pem_key(leaf_key),
        "other_key_pem": _pem_key(other_key),
        "leaf_key": leaf_key,
        "leaf_cert": leaf_cert,
        "ca_cert": ca_cert,
    }


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def cert_tool_env(cert_material, tmp_path) -> Dict[str, str]:
    """Environment for a certificate patch run using inline PEM material"""
    return {
        "ARO_API_IP": "10.0.0.10",
        "ARO_API_URL": API_HOST,
        "ARO_INGRESS_IP": "10.0.0.20",
        "ARO_USERNAME": "kubeadmin",
        "ARO_PASSWORD": "s3cret",
        "TLS_KEY": cert_material["key_pem"],
        "TLS_CERT": cert_material["leaf_pem"],
        "TLS_CA": cert_material["ca_pem"],
        "HOSTS_FILE": str(tmp_path / "hosts"),
        "WORK_DIR": str(tmp_path),
        "POLL_INTERVAL": "0",
        "POLL_ITERATIONS": "3",
    }


@pytest.fixture
def azure_env() -> Dict[str, str]:
    return {
        "AZ_CLIENT_ID": "00000000-1111-2222-3333-444444444444",
        "AZ_CLIENT_SECRET": "client-secret",
        "AZ_TENANT_ID": "tenant-id",
        "AZ_VAULT_NAME": "my-vault",
        "AZ_CERT_NAME": "aro-wildcard",
    }


@pytest.fixture
def run_context_factory(tmp_path):
    """Factory fixture creating RunContext objects around a minimal config namespace"""

    def _create(force: bool = False, **config_values: Any) -> RunContext:
        config = SimpleNamespace(force=force, work_dir=str(tmp_path), **config_values)
        return RunContext(config=config)

    return _create
