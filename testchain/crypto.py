import hmac
import hashlib
from typing import Dict

try:
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.hazmat.primitives.asymmetric.utils import (
        decode_dss_signature,
        encode_dss_signature,
        Prehashed,
    )
except Exception as exc:  # pragma: no cover - hard fail when dependency missing
    raise ImportError(
        "cryptography is required. Install with `python3 -m pip install cryptography`."
    ) from exc

from .utils import sha256

CURVE = ec.SECP256K1()
# secp256k1 order (for low-s normalization and key range checks)
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _low_s(s: int) -> int:
    return N - s if s > N // 2 else s


def _secret_int(secret: bytes) -> int:
    d = int.from_bytes(secret, "big")
    if d <= 0 or d >= N:
        raise ValueError("private key out of range")
    return d


def generate_secret() -> bytes:
    key = ec.generate_private_key(CURVE)
    return key.private_numbers().private_value.to_bytes(32, "big")


def derive_secret(seed: bytes, path: str) -> bytes:
    """Deterministic key for `path` under `seed` (HMAC-SHA512, reduced mod N)."""
    counter = 0
    while True:
        msg = f"{path}#{counter}".encode() if counter else path.encode()
        digest = hmac.new(seed, msg, hashlib.sha512).digest()
        d = int.from_bytes(digest[:32], "big") % N
        if d:
            return d.to_bytes(32, "big")
        counter += 1


def public_key(secret: bytes) -> Dict[str, int]:
    key = ec.derive_private_key(_secret_int(secret), CURVE)
    pub = key.public_key().public_numbers()
    return {"x": pub.x, "y": pub.y}


def address_from_pubkey(pub: Dict[str, int]) -> str:
    payload = pub["x"].to_bytes(32, "big") + pub["y"].to_bytes(32, "big")
    return "0x" + sha256(payload)[-40:]


def address_from_secret(secret: bytes) -> str:
    return address_from_pubkey(public_key(secret))


def sign(message_hash_hex: str, secret: bytes) -> str:
    key = ec.derive_private_key(_secret_int(secret), CURVE)
    digest = bytes.fromhex(message_hash_hex)
    sig = key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
    r, s = decode_dss_signature(sig)
    s = _low_s(s)
    return f"{r:x}:{s:x}"


def verify(message_hash_hex: str, signature: str, pub: Dict[str, int]) -> bool:
    try:
        r_hex, s_hex = signature.split(":")
        r = int(r_hex, 16)
        s = int(s_hex, 16)
    except Exception:
        return False
    if r <= 0 or r >= N or s <= 0 or s >= N:
        return False
    sig = encode_dss_signature(r, s)
    try:
        key = ec.EllipticCurvePublicNumbers(pub["x"], pub["y"], CURVE).public_key()
        digest = bytes.fromhex(message_hash_hex)
        key.verify(sig, digest, ec.ECDSA(Prehashed(hashes.SHA256())))
        return True
    except Exception:
        return False
