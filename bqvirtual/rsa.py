"""RSASSA-PKCS1-v1_5 with SHA-256 (the JWT "RS256" algorithm), in pure Python."""

import hashlib
import hmac

from bqvirtual.asn1 import RsaKeyMaterial
from bqvirtual.errors import ParseError


# DER prefix of DigestInfo{ sha256, NULL } (RFC 8017, section 9.2 note 1)
SHA256_DIGEST_INFO = bytes.fromhex("3031300d060960864801650304020105000420")


def encode_pkcs1_v15(message: bytes, em_len: int) -> bytes:
    """EMSA-PKCS1-v1_5 encoding of SHA-256(message) into em_len bytes."""
    t = SHA256_DIGEST_INFO + hashlib.sha256(message).digest()
    if em_len < len(t) + 11:
        raise ParseError(f"RSA modulus of {em_len} bytes is too short for an RS256 signature")
    padding = b"\xff" * (em_len - len(t) - 3)
    return b"\x00\x01" + padding + b"\x00" + t


def _private_op(m: int, key: RsaKeyMaterial) -> int:
    # CRT: s = m2 + q * (qinv * (m1 - m2) mod p)
    p, q = key.p, key.q
    m1 = pow(m, key.dp, p)
    m2 = pow(m, key.dq, q)
    h = (key.qinv * (m1 - m2)) % p
    return m2 + h * q


def sign(message: bytes, key: RsaKeyMaterial) -> bytes:
    """
    Sign message with RSA-SHA256 / PKCS#1 v1.5.

    Args:
        message: Bytes to sign (the JWT signing input)
        key: Parsed private key

    Returns:
        Signature, left-padded to the modulus length

    Raises:
        ParseError: If the key is too small or its components are inconsistent
    """
    n = key.n
    k = key.size_in_bytes
    m = int.from_bytes(encode_pkcs1_v15(message, k), "big")
    if m >= n:
        raise ParseError("Encoded message is not smaller than the RSA modulus")

    s = _private_op(m, key)

    # The CRT result must invert under the public exponent.
    if pow(s, key.e, n) != m:
        raise ParseError("RSA key components are inconsistent")

    return s.to_bytes(k, "big")


def verify(message: bytes, signature: bytes, modulus: int, public_exponent: int) -> bool:
    """Check an RS256 signature against a public key."""
    k = (modulus.bit_length() + 7) // 8
    if len(signature) != k:
        return False

    s = int.from_bytes(signature, "big")
    if s >= modulus:
        return False

    try:
        expected = encode_pkcs1_v15(message, k)
    except ParseError:
        return False

    recovered = pow(s, public_exponent, modulus).to_bytes(k, "big")
    return hmac.compare_digest(recovered, expected)
