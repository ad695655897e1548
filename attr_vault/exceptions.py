"""Attr Vault exception hierarchy."""


class VaultError(Exception):
    """Base error for every vault failure."""


class ConfigurationError(VaultError, ValueError):
    """Raised when bindings or vault settings are invalid at setup time."""


class KeyringFormatError(VaultError, ValueError):
    """Raised when a serialized keyring contains malformed key descriptors."""


class EmptyKeyringError(VaultError):
    """Raised when a keyring has no keys to select a current key from."""


class KeyNotFoundError(VaultError, LookupError):
    """Raised when a record references a key id missing from the keyring.

    Usually means a key was retired while records still depend on it;
    provision the old key again to recover.
    """

    def __init__(self, key_id):
        self.key_id = key_id
        super().__init__(
            f"Key {key_id!r} not found in keyring; "
            "provision the retired key to read this record"
        )


class DecryptionError(VaultError):
    """Raised when ciphertext fails authentication or is malformed."""
