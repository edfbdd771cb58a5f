"""
Minimal ASN.1 DER reader for RSA private keys.

Service-account credentials carry their private key as a PEM-wrapped PKCS#8
structure:

    PrivateKeyInfo ::= SEQUENCE {
        version             INTEGER,
        privateKeyAlgorithm AlgorithmIdentifier,   -- skipped, not validated
        privateKey          OCTET STRING           -- RSAPrivateKey below
    }

    RSAPrivateKey ::= SEQUENCE {
        version INTEGER,
        modulus, publicExponent, privateExponent,
        prime1, prime2, exponent1, exponent2, coefficient  INTEGER
    }

Only the tag/length/value steps needed for that shape are implemented. The
module does no I/O; every function is a deterministic decoder that either
returns RsaKeyMaterial or raises ParseError.
"""

import base64
import binascii
import re
from dataclasses import dataclass

from bqvirtual.errors import ParseError


INTEGER = 0x02
OCTET_STRING = 0x04
SEQUENCE = 0x30

# More than four length bytes would describe a >4 GiB element.
MAX_LENGTH_BYTES = 4

RSA_FIELDS = (
    "modulus",
    "public_exponent",
    "private_exponent",
    "prime1",
    "prime2",
    "exponent1",
    "exponent2",
    "coefficient",
)

_PEM_BOUNDARY = re.compile(r"-----(BEGIN|END) [A-Z ]+-----")


@dataclass(frozen=True)
class RsaKeyMaterial:
    """RSA private key components as unsigned big-endian byte strings."""
    modulus: bytes
    public_exponent: bytes
    private_exponent: bytes
    prime1: bytes
    prime2: bytes
    exponent1: bytes
    exponent2: bytes
    coefficient: bytes

    @property
    def n(self) -> int:
        return int.from_bytes(self.modulus, "big")

    @property
    def e(self) -> int:
        return int.from_bytes(self.public_exponent, "big")

    @property
    def d(self) -> int:
        return int.from_bytes(self.private_exponent, "big")

    @property
    def p(self) -> int:
        return int.from_bytes(self.prime1, "big")

    @property
    def q(self) -> int:
        return int.from_bytes(self.prime2, "big")

    @property
    def dp(self) -> int:
        return int.from_bytes(self.exponent1, "big")

    @property
    def dq(self) -> int:
        return int.from_bytes(self.exponent2, "big")

    @property
    def qinv(self) -> int:
        return int.from_bytes(self.coefficient, "big")

    @property
    def size_in_bytes(self) -> int:
        """Length of the modulus in bytes (signature length)."""
        return (self.n.bit_length() + 7) // 8

    def __repr__(self) -> str:
        # Never print private components.
        return f"RsaKeyMaterial(bits={self.n.bit_length()})"


class DerReader:
    """Forward-only cursor over a DER byte string."""

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read_byte(self) -> int:
        if self._pos >= len(self._data):
            raise ParseError("Unexpected end of DER data")
        value = self._data[self._pos]
        self._pos += 1
        return value

    def read_length(self) -> int:
        """Decode a short-form or long-form DER length."""
        first = self.read_byte()
        if not first & 0x80:
            return first

        count = first & 0x7F
        if count == 0 or count > MAX_LENGTH_BYTES:
            raise ParseError(f"Unsupported DER length encoding with {count} length bytes")

        length = 0
        for _ in range(count):
            length = (length << 8) | self.read_byte()
        return length

    def read_value(self, length: int) -> bytes:
        if length > self.remaining:
            raise ParseError(
                f"Declared length {length} exceeds remaining {self.remaining} bytes"
            )
        value = self._data[self._pos:self._pos + length]
        self._pos += length
        return value

    def read_element(self, expected_tag: int, name: str) -> bytes:
        """Read one tag-length-value element and return its value bytes.

        Raises:
            ParseError: If the tag differs from expected_tag or the value
                runs past the end of the buffer.
        """
        tag = self.read_byte()
        if tag != expected_tag:
            raise ParseError(
                f"Expected {name} (tag 0x{expected_tag:02x}), found tag 0x{tag:02x}"
            )
        return self.read_value(self.read_length())

    def read_integer(self) -> bytes:
        """Read an INTEGER, dropping its 0x00 sign-padding byte if present."""
        value = self.read_element(INTEGER, "INTEGER")
        if not value:
            raise ParseError("Empty INTEGER value")
        if len(value) > 1 and value[0] == 0x00:
            value = value[1:]
        return value


def parse_rsa_private_key(der: bytes) -> RsaKeyMaterial:
    """Decode a PKCS#1 RSAPrivateKey SEQUENCE into its eight integers."""
    body = DerReader(der).read_element(SEQUENCE, "RSAPrivateKey SEQUENCE")
    reader = DerReader(body)
    reader.read_integer()  # version

    values = []
    for name in RSA_FIELDS:
        if reader.remaining == 0:
            raise ParseError(
                f"RSA private key has {len(values)} of {len(RSA_FIELDS)} integer fields "
                f"(missing {name})"
            )
        values.append(reader.read_integer())

    return RsaKeyMaterial(*values)


def parse_pkcs8(der: bytes) -> RsaKeyMaterial:
    """Decode a PKCS#8 PrivateKeyInfo wrapping an RSA key."""
    body = DerReader(der).read_element(SEQUENCE, "PrivateKeyInfo SEQUENCE")
    reader = DerReader(body)
    reader.read_integer()  # version
    reader.read_element(SEQUENCE, "AlgorithmIdentifier SEQUENCE")
    key_bytes = reader.read_element(OCTET_STRING, "privateKey OCTET STRING")
    return parse_rsa_private_key(key_bytes)


def pem_to_der(pem: str) -> bytes:
    """Strip PEM boundaries and whitespace, then base64-decode."""
    body = _PEM_BOUNDARY.sub("", pem)
    body = "".join(body.split())
    if not body:
        raise ParseError("PEM contains no key data")
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParseError(f"Invalid base64 in PEM body: {e}") from e


def parse_private_key_pem(pem: str) -> RsaKeyMaterial:
    """
    Parse a PEM private key into RSA key material.

    Accepts "BEGIN PRIVATE KEY" (PKCS#8, what service-account JSON files
    contain) and "BEGIN RSA PRIVATE KEY" (bare PKCS#1).

    Raises:
        ParseError: If the PEM or DER structure is malformed
    """
    der = pem_to_der(pem)
    if "BEGIN RSA PRIVATE KEY" in pem:
        return parse_rsa_private_key(der)
    return parse_pkcs8(der)
