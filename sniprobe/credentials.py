"""
SniProbe — Credential Provider

Supplies the identity and trust material used by both ends of the demo.
Server and client share one self-signed identity, read from a
password-protected PKCS#12 key store:

  - the certificate chain, written out as PEM for ``ssl``
  - the private key, re-encrypted with the key store password
  - the trust anchors, kept in memory as PEM text (``cadata``)

When no key store is configured, an ephemeral one is generated into the
provider's working directory.
"""

from __future__ import annotations

import ssl
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import TracebackType

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from sniprobe.config import CredentialsConfig
from sniprobe.errors import CredentialLoadError
from sniprobe.primitives.probe import CredentialBundle

logger = structlog.get_logger("sniprobe.credentials")

_CERT_FILE = "identity.crt"
_KEY_FILE = "identity.key"


def _encryption(password: str) -> serialization.KeySerializationEncryption:
    if password:
        return serialization.BestAvailableEncryption(password.encode("utf-8"))
    return serialization.NoEncryption()


# ─── Generation ───────────────────────────────────────────────────


def generate_keystore(
    path: Path,
    password: str,
    hostname: str = "example.com",
    key_size: int = 2048,
    validity_days: int = 3650,
) -> Path:
    """
    Generate a self-signed identity and store it as a PKCS#12 key store.

    The certificate is its own trust anchor, so it is marked as a CA and
    carries key identifiers for strict X.509 verification.
    """
    key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )

    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "SniProbe"),
        x509.NameAttribute(NameOID.COMMON_NAME, hostname),
    ])

    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)  # Self-signed
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName(hostname),
                x509.DNSName("localhost"),
            ]),
            critical=False,
        )
        .add_extension(
            x509.BasicConstraints(ca=True, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                key_cert_sign=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([
                ExtendedKeyUsageOID.SERVER_AUTH,
                ExtendedKeyUsageOID.CLIENT_AUTH,
            ]),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(key.public_key()),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    data = pkcs12.serialize_key_and_certificates(
        name=b"sniprobe",
        key=key,
        cert=cert,
        cas=None,
        encryption_algorithm=_encryption(password),
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.info(
        "keystore_generated",
        path=str(path),
        hostname=hostname,
        fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
    )
    return path


# ─── Loading ──────────────────────────────────────────────────────


def load_keystore(path: Path, password: str, workdir: Path) -> CredentialBundle:
    """
    Read a PKCS#12 key store and materialise it under ``workdir``.

    Raises CredentialLoadError for a missing file, a wrong password or a
    store without a key and certificate.
    """
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise CredentialLoadError(f"Cannot read key store {path}: {exc}") from exc

    try:
        key, cert, additional = pkcs12.load_key_and_certificates(
            data, password.encode("utf-8") if password else None,
        )
    except ValueError as exc:
        raise CredentialLoadError(
            f"Key store {path} could not be decrypted or parsed: {exc}"
        ) from exc

    if key is None or cert is None:
        raise CredentialLoadError(
            f"Key store {path} must hold a private key and its certificate"
        )

    chain_pem = b"".join(
        c.public_bytes(serialization.Encoding.PEM) for c in [cert, *additional]
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=_encryption(password),
    )

    workdir.mkdir(parents=True, exist_ok=True)
    cert_path = workdir / _CERT_FILE
    key_path = workdir / _KEY_FILE
    cert_path.write_bytes(chain_pem)
    key_path.write_bytes(key_pem)
    key_path.chmod(0o600)

    bundle = CredentialBundle(
        keystore_path=path,
        cert_path=cert_path,
        key_path=key_path,
        password=password,
        trust_pem=chain_pem.decode("ascii"),
        subject=cert.subject.rfc4514_string(),
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
    )

    # Make sure ssl accepts what cryptography extracted
    load_identity(ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER), bundle)

    logger.info(
        "keystore_loaded",
        path=str(path),
        subject=bundle.subject,
        fingerprint=bundle.fingerprint_sha256,
    )
    return bundle


def load_identity(context: ssl.SSLContext, bundle: CredentialBundle) -> None:
    """Install the bundle's certificate chain and private key into ``context``."""
    try:
        context.load_cert_chain(
            certfile=str(bundle.cert_path),
            keyfile=str(bundle.key_path),
            password=bundle.password or None,
        )
    except (ssl.SSLError, OSError) as exc:
        raise CredentialLoadError(
            f"TLS stack rejected credentials from {bundle.keystore_path}: {exc}"
        ) from exc


# ─── Provider ─────────────────────────────────────────────────────


class CredentialProvider:
    """
    Owns the credential bundle for one demo run.

    The PEM files live in a private temporary directory that is removed on
    close(). Use as a context manager.
    """

    def __init__(self, config: CredentialsConfig) -> None:
        self._config = config
        self._workdir: tempfile.TemporaryDirectory[str] | None = None
        self._bundle: CredentialBundle | None = None
        self._logger = logger.bind(component="credential_provider")

    def open(self) -> CredentialBundle:
        """Load (or generate, then load) the key store. Idempotent."""
        if self._bundle is not None:
            return self._bundle

        self._workdir = tempfile.TemporaryDirectory(prefix="sniprobe-")
        workdir = Path(self._workdir.name)

        try:
            if self._config.keystore_path:
                keystore = Path(self._config.keystore_path)
            else:
                self._logger.info("keystore_not_configured_generating")
                try:
                    keystore = generate_keystore(
                        workdir / "ephemeral.p12",
                        password=self._config.password,
                        hostname=self._config.hostname,
                        key_size=self._config.key_size,
                        validity_days=self._config.validity_days,
                    )
                except ValueError as exc:
                    raise CredentialLoadError(
                        f"Cannot generate an ephemeral key store: {exc}"
                    ) from exc
            self._bundle = load_keystore(keystore, self._config.password, workdir)
        except CredentialLoadError:
            self.close()
            raise

        return self._bundle

    @property
    def bundle(self) -> CredentialBundle:
        if self._bundle is None:
            raise CredentialLoadError("Credential provider has not been opened")
        return self._bundle

    def close(self) -> None:
        self._bundle = None
        if self._workdir is not None:
            self._workdir.cleanup()
            self._workdir = None

    def __enter__(self) -> CredentialBundle:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
