"""Certificate authority and leaf identity material per service instance.

Every instance that needs an identity owns four PEM files in its directory:
ca.cert, ca.key, identity.cert (leaf followed by the CA) and identity.key.
Material is only ever created, never validated, replaced or deleted.
"""
from __future__ import annotations

import datetime
import hashlib
import os
from dataclasses import dataclass
from enum import Enum

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from .db import log_event
from .errors import IdentityConflict

CA_CERT = "ca.cert"
CA_KEY = "ca.key"
IDENTITY_CERT = "identity.cert"
IDENTITY_KEY = "identity.key"

ROOT_SERVICE = "satellite-api"

_VALIDITY = datetime.timedelta(days=3650)


class PairStatus(Enum):
    NO_CERT_NO_KEY = "no-cert-no-key"
    CERT_NO_KEY = "cert-no-key"
    NO_CERT_KEY = "no-cert-key"
    CERT_KEY = "cert-key"


def pair_status(cert_path: str, key_path: str) -> PairStatus:
    cert, key = os.path.exists(cert_path), os.path.exists(key_path)
    if cert and key:
        return PairStatus.CERT_KEY
    if cert:
        return PairStatus.CERT_NO_KEY
    if key:
        return PairStatus.NO_CERT_KEY
    return PairStatus.NO_CERT_NO_KEY


@dataclass(frozen=True)
class RootIdentity:
    """Fixed credential bytes for the root service's first instance.

    Keeping these stable keeps anything derived from them (node id, issued
    API keys, access grants) stable across cluster rebuilds.
    """

    ca_cert: bytes
    ca_key: bytes
    identity_cert: bytes
    identity_key: bytes

    @classmethod
    def from_dir(cls, path: str) -> "RootIdentity":
        def _read(name: str) -> bytes:
            with open(os.path.join(path, name), "rb") as f:
                return f.read()

        return cls(
            ca_cert=_read(CA_CERT),
            ca_key=_read(CA_KEY),
            identity_cert=_read(IDENTITY_CERT),
            identity_key=_read(IDENTITY_KEY),
        )

    def node_id(self) -> str:
        return node_id(self.ca_cert)


def node_id(ca_cert_pem: bytes) -> str:
    """Stable id of an identity: sha256 of the CA public key."""
    cert = x509.load_pem_x509_certificate(ca_cert_pem)
    der = cert.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return hashlib.sha256(der).hexdigest()


def _key_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def _cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def _builder(subject: x509.Name, issuer: x509.Name, public_key, ca: bool) -> x509.CertificateBuilder:
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + _VALIDITY)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )


def create_ca(common_name: str) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, f"{common_name} CA")])
    cert = _builder(name, name, key.public_key(), ca=True).sign(key, hashes.SHA256())
    return cert, key


def create_leaf(
    common_name: str, ca_cert: x509.Certificate, ca_key: ec.EllipticCurvePrivateKey
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = _builder(subject, ca_cert.subject, key.public_key(), ca=False).sign(ca_key, hashes.SHA256())
    return cert, key


def _write(path: str, data: bytes, mode: int = 0o644) -> None:
    with open(path, "wb") as f:
        f.write(data)
    os.chmod(path, mode)


def _check_empty(kind: str, cert_path: str, key_path: str) -> None:
    if pair_status(cert_path, key_path) is not PairStatus.NO_CERT_NO_KEY:
        raise IdentityConflict(
            f"{kind} certificate and/or key already exists, NOT overwriting",
            cert_path=cert_path,
            key_path=key_path,
        )


class IdentityProvisioner:
    """Creates identity material for instances that need it, idempotently."""

    def __init__(self, root_identity: RootIdentity | None = None, root_service: str = ROOT_SERVICE) -> None:
        self.root_identity = root_identity
        self.root_service = root_service

    def provision(self, directory: str, name: str, index: int) -> bool:
        """Make sure ``directory`` holds an identity. Returns True if one was created."""
        identity_cert = os.path.join(directory, IDENTITY_CERT)
        if os.path.exists(identity_cert):
            return False

        os.makedirs(directory, exist_ok=True)
        ca_cert = os.path.join(directory, CA_CERT)
        ca_key = os.path.join(directory, CA_KEY)
        identity_key = os.path.join(directory, IDENTITY_KEY)

        root = self.root_identity
        if root is not None and name == self.root_service and index == 0:
            _write(identity_cert, root.identity_cert)
            _write(identity_key, root.identity_key)
            _write(ca_cert, root.ca_cert)
            _write(ca_key, root.ca_key)
            log_event("INFO", "Installed fixed root identity", service_name=name, instance=index)
            return True

        # Both pairs are checked before anything is written.
        _check_empty("CA", ca_cert, ca_key)
        _check_empty("Identity", identity_cert, identity_key)

        label = f"{name}/{index}"
        ca, ca_private = create_ca(label)
        leaf, leaf_private = create_leaf(label, ca, ca_private)

        _write(ca_cert, _cert_pem(ca))
        _write(ca_key, _key_pem(ca_private), 0o600)
        _write(identity_cert, _cert_pem(leaf) + _cert_pem(ca))
        _write(identity_key, _key_pem(leaf_private), 0o600)
        log_event("INFO", f"Created identity {node_id(_cert_pem(ca))}", service_name=name, instance=index)
        return True
