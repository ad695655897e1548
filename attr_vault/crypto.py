"""
Vault Crypto Core — Key derivation, attribute encryption and integrity tags.

Each keyring Key yields two independent sub-keys through HKDF-SHA256:
- Encryption: HKDF(key.secret, "attr-vault-encrypt") → AEAD → [nonce 12B][payload + tag 16B]
- Integrity:  HKDF(key.secret, "attr-vault-hmac")    → HMAC-SHA256 over ciphertext

The key id is authenticated as associated data, so a blob only decrypts
under the key id it was written with.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import hmac
import hashlib
import logging
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .exceptions import ConfigurationError, DecryptionError
from .keyring import Key, KEY_LENGTH

logger = logging.getLogger("attr_vault.crypto")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # AEAD authentication tag

ENCRYPT_CONTEXT = "attr-vault-encrypt"
HMAC_CONTEXT = "attr-vault-hmac"

CIPHER_BACKENDS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}

BytesLike = Union[bytes, bytearray, memoryview]


def get_cipher_cls(backend: str) -> type:
    """Return the AEAD cipher class for ``backend``.

    Raises:
        ConfigurationError: If the backend is not supported.
    """
    try:
        return CIPHER_BACKENDS[backend.lower()]
    except (KeyError, AttributeError):
        raise ConfigurationError(
            f"Unsupported cipher backend: {backend!r} "
            f"(available: {sorted(CIPHER_BACKENDS)})"
        ) from None


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte sub-key using HKDF-SHA256.

    Args:
        seed: Input key material (raw keyring key bytes).
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # deterministic: the same Key must always yield the same sub-keys
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


# ---------------------------------------------------------------------------
# Cipher codec
# ---------------------------------------------------------------------------

class CipherCodec:
    """Authenticated encryption of attribute plaintext under a keyring Key.

    Output blobs are self-describing: ``[nonce 12B][ciphertext + tag]``.
    Empty plaintext encrypts to an empty blob.
    """

    def __init__(self, backend: str = "aesgcm") -> None:
        self._cipher_cls = get_cipher_cls(backend)
        self.backend = backend.lower()

    def _cipher(self, key: Key):
        return self._cipher_cls(derive_key(key.secret, ENCRYPT_CONTEXT))

    def encrypt(self, key: Key, plaintext: str) -> bytes:
        """Encrypt ``plaintext`` with a fresh random nonce.

        Raises:
            TypeError: If plaintext is not a str.
        """
        if not isinstance(plaintext, str):
            raise TypeError(
                f"Vault attributes hold str values, got {type(plaintext).__name__}"
            )
        if plaintext == "":
            return b""
        nonce = os.urandom(NONCE_SIZE)
        ct = self._cipher(key).encrypt(
            nonce, plaintext.encode("utf-8"), key.id.encode("utf-8"),
        )
        return nonce + ct

    def decrypt(self, key: Key, blob: BytesLike) -> str:
        """Authenticate and decrypt ``blob``.

        Raises:
            DecryptionError: On malformed input or authentication failure.
        """
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise DecryptionError(
                f"ciphertext must be bytes, got {type(blob).__name__}"
            )
        blob = bytes(blob)
        if blob == b"":
            return ""
        _min = NONCE_SIZE + TAG_SIZE
        if len(blob) < _min:
            raise DecryptionError(
                f"ciphertext too short: {len(blob)} bytes (minimum {_min})"
            )
        nonce = blob[:NONCE_SIZE]
        ct = blob[NONCE_SIZE:]
        try:
            data = self._cipher(key).decrypt(nonce, ct, key.id.encode("utf-8"))
        except InvalidTag as err:
            raise DecryptionError(
                f"ciphertext failed authentication under key {key.id!r}"
            ) from err
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionError("decrypted value is not valid UTF-8") from err


# ---------------------------------------------------------------------------
# Integrity tagger
# ---------------------------------------------------------------------------

def tag(key: Key, ciphertext: BytesLike) -> bytes:
    """Deterministic HMAC-SHA256 fingerprint of ``ciphertext`` under ``key``.

    Empty ciphertext tags to an empty digest.
    """
    if not isinstance(ciphertext, (bytes, bytearray, memoryview)):
        raise TypeError(
            f"ciphertext must be bytes, got {type(ciphertext).__name__}"
        )
    ciphertext = bytes(ciphertext)
    if ciphertext == b"":
        return b""
    return hmac.new(
        derive_key(key.secret, HMAC_CONTEXT), ciphertext, hashlib.sha256,
    ).digest()


def verify_tag(key: Key, ciphertext: BytesLike, digest: BytesLike) -> bool:
    """Check ``digest`` against ``ciphertext`` in constant time."""
    return hmac.compare_digest(tag(key, ciphertext), bytes(digest))
