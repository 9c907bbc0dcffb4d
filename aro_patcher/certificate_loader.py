#!/usr/bin/env python3
"""Certificate Loader module: materializes and validates the serving certificate bundle."""

import base64
import binascii
import hashlib
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from .errors import CertificateValidationError, CommandError

PEM_BLOCK_PATTERN = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----", re.DOTALL)


def normalize_pem(text: Optional[str]) -> Optional[str]:
    """
    Turn PEM content passed through environment variables back into valid PEM.

    Pipelines frequently hand over PEM blobs with literal "\\n" sequences,
    surrounding quotes or Windows line endings.
    """
    if text is None:
        return None
    normalized = text.strip().strip("'\"")
    normalized = normalized.replace("\\r\\n", "\n").replace("\\n", "\n").replace("\r\n", "\n")
    normalized = normalized.strip()
    if not normalized:
        return None
    return normalized + "\n"


def split_pem_blocks(text: str) -> List[tuple]:
    """Return (block type, block text) for every PEM block in text, in order"""
    return [(match.group(1), match.group(0) + "\n") for match in PEM_BLOCK_PATTERN.finditer(text or "")]


def _load_certificate(pem: str, description: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(pem.encode())
    except ValueError as e:
        raise CertificateValidationError(f"Invalid {description} PEM: {e}")


def _load_private_key(pem: str):
    try:
        return serialization.load_pem_private_key(pem.encode(), password=None)
    except (ValueError, TypeError) as e:
        raise CertificateValidationError(f"Invalid private key PEM: {e}")


def public_key_fingerprint(public_key) -> str:
    """
    Fingerprint of the key material shared by a private key and its certificate.

    For RSA this hashes the hex modulus the same way 'openssl x509 -noout -modulus'
    prints it; for EC keys the uncompressed point is hashed instead.
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        material = format(public_key.public_numbers().n, "X").encode()
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        material = public_key.public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )
    else:
        material = public_key.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    return hashlib.sha256(material).hexdigest()


def _certificate_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode()


def _is_self_signed(certificate: x509.Certificate) -> bool:
    return certificate.subject == certificate.issuer


@dataclass
class CertificateFiles:
    """Paths of the certificate material written to disk for oc"""

    key: str
    cert: str
    ca: Optional[str] = None


@dataclass
class CertificateBundle:
    """PEM key, leaf certificate, optional issuer chain and optional root CA"""

    key_pem: str
    cert_pem: str
    chain_pem: Optional[str] = None
    ca_pem: Optional[str] = None

    @property
    def fullchain_pem(self) -> str:
        """Leaf followed by the issuer chain, as served by the API server and routers"""
        if self.chain_pem:
            return self.cert_pem + self.chain_pem
        return self.cert_pem

    @classmethod
    def from_pem(cls, key_pem, cert_pem, chain_pem=None, ca_pem=None) -> "CertificateBundle":
        """Build a bundle from separately supplied PEM values, normalizing escaped newlines"""
        key_pem = normalize_pem(key_pem)
        cert_pem = normalize_pem(cert_pem)
        if not key_pem or not cert_pem:
            raise CertificateValidationError("Both private key and certificate PEM must be provided")

        cert_blocks = [block for kind, block in split_pem_blocks(cert_pem) if kind == "CERTIFICATE"]
        chain_blocks = [block for kind, block in split_pem_blocks(normalize_pem(chain_pem) or "") if kind == "CERTIFICATE"]
        if not cert_blocks:
            raise CertificateValidationError("No certificate found in certificate PEM")

        # A certificate variable that already carries the chain is split into leaf + chain
        chain_blocks = cert_blocks[1:] + chain_blocks
        return cls(
            key_pem=key_pem,
            cert_pem=cert_blocks[0],
            chain_pem="".join(chain_blocks) or None,
            ca_pem=normalize_pem(ca_pem),
        )

    @classmethod
    def from_pem_bundle(cls, bundle_text: str, ca_pem: Optional[str] = None) -> "CertificateBundle":
        """
        Split a combined PEM (key + certificates, as exported by Key Vault) into a bundle.

        The leaf is the certificate whose public key matches the private key; the
        remaining certificates form the issuer chain in their original order.
        """
        blocks = split_pem_blocks(normalize_pem(bundle_text) or "")
        key_blocks = [block for kind, block in blocks if kind.endswith("PRIVATE KEY")]
        cert_blocks = [block for kind, block in blocks if kind == "CERTIFICATE"]

        if not key_blocks:
            raise CertificateValidationError("No private key found in certificate bundle")
        if not cert_blocks:
            raise CertificateValidationError("No certificate found in certificate bundle")

        key_fingerprint = public_key_fingerprint(_load_private_key(key_blocks[0]).public_key())
        leaf_index = 0
        for index, block in enumerate(cert_blocks):
            if public_key_fingerprint(_load_certificate(block, "certificate").public_key()) == key_fingerprint:
                leaf_index = index
                break

        chain = [block for index, block in enumerate(cert_blocks) if index != leaf_index]
        return cls(
            key_pem=key_blocks[0],
            cert_pem=cert_blocks[leaf_index],
            chain_pem="".join(chain) or None,
            ca_pem=normalize_pem(ca_pem),
        )

    @classmethod
    def from_pkcs12(cls, pfx_data: bytes, password: Optional[bytes] = None, ca_pem=None) -> "CertificateBundle":
        """Build a bundle from a PKCS#12 archive"""
        try:
            private_key, certificate, additional = pkcs12.load_key_and_certificates(pfx_data, password)
        except ValueError as e:
            raise CertificateValidationError(f"Invalid PKCS#12 certificate: {e}")
        if private_key is None or certificate is None:
            raise CertificateValidationError("PKCS#12 certificate does not contain both key and certificate")

        key_pem = private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()
        chain = "".join(_certificate_pem(extra) for extra in additional or [])
        return cls(
            key_pem=key_pem,
            cert_pem=_certificate_pem(certificate),
            chain_pem=chain or None,
            ca_pem=normalize_pem(ca_pem),
        )

    def chain_certificates(self) -> List[x509.Certificate]:
        blocks = [block for kind, block in split_pem_blocks(self.chain_pem or "") if kind == "CERTIFICATE"]
        return [_load_certificate(block, "issuer chain") for block in blocks]

    def root_ca_pem(self) -> Optional[str]:
        """Explicit root CA, or the self-signed top of the issuer chain when present"""
        if self.ca_pem:
            return self.ca_pem
        chain = self.chain_certificates()
        if chain and _is_self_signed(chain[-1]):
            return _certificate_pem(chain[-1])
        return None

    def validate(self, printer: Any = None) -> str:
        """
        Verify that the private key belongs to the leaf certificate.

        Returns:
            str: The shared key fingerprint

        Raises:
            CertificateValidationError: If any PEM is malformed or the fingerprints differ
        """
        certificate = _load_certificate(self.cert_pem, "certificate")
        key_fingerprint = public_key_fingerprint(_load_private_key(self.key_pem).public_key())
        cert_fingerprint = public_key_fingerprint(certificate.public_key())

        # Parse the optional parts too so that malformed PEM fails before any cluster change
        self.chain_certificates()
        if self.ca_pem:
            _load_certificate(self.ca_pem, "root CA")

        if key_fingerprint != cert_fingerprint:
            raise CertificateValidationError(
                f"Private key does not match certificate (key {key_fingerprint[:16]}..., "
                f"certificate {cert_fingerprint[:16]}...)"
            )

        if printer:
            printer.print_success("Private key matches certificate")
            printer.print_info(f"Certificate subject: {certificate.subject.rfc4514_string()}")
            printer.print_info(f"Certificate expires: {certificate.not_valid_after_utc.isoformat()}")
        return cert_fingerprint

    def write_files(self, directory: str) -> CertificateFiles:
        """Write key, full chain and root CA files for oc create commands"""
        os.makedirs(directory, exist_ok=True)
        key_path = os.path.join(directory, "tls.key")
        cert_path = os.path.join(directory, "tls.crt")

        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as key_file:
            key_file.write(self.key_pem)
        with open(cert_path, "w") as cert_file:
            cert_file.write(self.fullchain_pem)

        ca_path = None
        root_ca = self.root_ca_pem()
        if root_ca:
            ca_path = os.path.join(directory, "ca-bundle.crt")
            with open(ca_path, "w") as ca_file:
                ca_file.write(root_ca)

        return CertificateFiles(key=key_path, cert=cert_path, ca=ca_path)


class KeyVaultCertificateSource:
    """Reads certificate material from an Azure Key Vault through the az CLI"""

    def __init__(self, vault_name: str, execute_az_command: Callable, printer: Any = None):
        self.vault_name = vault_name
        self.execute_az_command = execute_az_command
        self.printer = printer

    def fetch_secret(self, name: str) -> str:
        """Return the secret value backing a Key Vault certificate"""
        if self.printer:
            self.printer.print_info(f"Retrieving '{name}' from Key Vault {self.vault_name}")
        value = self.execute_az_command(
            ["keyvault", "secret", "show", "--vault-name", self.vault_name, "--name", name, "--query", "value", "-o", "tsv"],
            printer=self.printer,
        )
        if not value:
            raise CommandError(f"Failed to retrieve '{name}' from Key Vault {self.vault_name}")
        return value

    def load_bundle(self, cert_name: str, ca_cert_name: Optional[str] = None) -> CertificateBundle:
        """
        Load the serving certificate (PEM or base64 PKCS#12) and the optional root CA.
        """
        value = self.fetch_secret(cert_name)
        ca_pem = None
        if ca_cert_name:
            ca_value = self.fetch_secret(ca_cert_name)
            ca_pem = ca_value if "-----BEGIN" in ca_value else self._pkcs12_certificate_pem(ca_value)

        if "-----BEGIN" in value or "\\n" in value:
            return CertificateBundle.from_pem_bundle(value, ca_pem=ca_pem)
        return CertificateBundle.from_pkcs12(self._decode(value), ca_pem=ca_pem)

    def _decode(self, value: str) -> bytes:
        try:
            return base64.b64decode(value.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise CertificateValidationError(f"Key Vault secret is neither PEM nor base64 PKCS#12: {e}")

    def _pkcs12_certificate_pem(self, value: str) -> str:
        try:
            _, certificate, _ = pkcs12.load_key_and_certificates(self._decode(value), None)
        except ValueError as e:
            raise CertificateValidationError(f"Invalid PKCS#12 root CA: {e}")
        if certificate is None:
            raise CertificateValidationError("PKCS#12 root CA does not contain a certificate")
        return _certificate_pem(certificate)


def load_certificate_bundle(config: Any, execute_az_command: Optional[Callable] = None, printer: Any = None) -> CertificateBundle:
    """
    Materialize the certificate bundle from inline PEM variables or from the Key Vault.

    Args:
        config: CertToolConfig with tls_* values or azure settings
        execute_az_command: Bound az executor, required for the Key Vault path
        printer: Printer instance for output

    Returns:
        CertificateBundle: Unvalidated bundle
    """
    if not config.uses_key_vault:
        if printer:
            printer.print_info("Using certificate material from TLS_* environment variables")
        return CertificateBundle.from_pem(config.tls_key, config.tls_cert, config.tls_chain, config.tls_ca)

    source = KeyVaultCertificateSource(config.azure.vault_name, execute_az_command, printer=printer)
    bundle = source.load_bundle(config.azure.cert_name, config.azure.ca_cert_name)
    if config.tls_ca and not bundle.ca_pem:
        bundle.ca_pem = normalize_pem(config.tls_ca)
    return bundle
