"""
Agent Key Management
Handles generation, encryption, and decryption of agent private keys
"""

import os
import logging
from typing import Optional

import base58
from cryptography.hazmat.primitives import padding, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from infrastructure.errors import ConfigurationError

logger = logging.getLogger(__name__)

KEY_TYPE = "ed25519"
IV_LENGTH = 16
SECRET_HEX_LENGTH = 64  # 32 bytes, AES-256


class NearKeyPair:
    """
    Ed25519 keypair in NEAR string format.

    Secret keys are "ed25519:<base58(seed || public)>", public keys are
    "ed25519:<base58(public)>". A bare 32-byte seed is accepted too.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self._seed = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        self._public = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def __repr__(self):
        return f"NearKeyPair({self.public_key})"

    @classmethod
    def from_random(cls) -> "NearKeyPair":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_string(cls, encoded: str) -> "NearKeyPair":
        """Parse "ed25519:<base58>" secret key"""
        if ":" in encoded:
            key_type, data = encoded.split(":", 1)
            if key_type != KEY_TYPE:
                raise ValueError(f"Unsupported key type: {key_type}")
        else:
            data = encoded

        raw = base58.b58decode(data)
        if len(raw) not in (32, 64):
            raise ValueError("Invalid ed25519 secret key length")

        keypair = cls(Ed25519PrivateKey.from_private_bytes(raw[:32]))
        if len(raw) == 64 and raw[32:] != keypair.public_key_bytes:
            raise ValueError("Secret key does not match embedded public key")
        return keypair

    @property
    def public_key_bytes(self) -> bytes:
        return self._public

    @property
    def public_key(self) -> str:
        return f"{KEY_TYPE}:{base58.b58encode(self._public).decode()}"

    @property
    def secret_key(self) -> str:
        return f"{KEY_TYPE}:{base58.b58encode(self._seed + self._public).decode()}"

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)


def generate_agent_keypair() -> NearKeyPair:
    """Generate a new agent keypair locally"""
    return NearKeyPair.from_random()


class SecretStore:
    """
    AES-256-CBC encryption of agent private keys at rest.

    Blob format: "<iv hex>:<ciphertext hex>". One process-wide secret,
    validated once at construction.
    """

    def __init__(self, secret_hex: Optional[str] = None):
        secret_hex = secret_hex if secret_hex is not None else os.getenv("AGENT_KEYSTORE_SECRET", "")
        if not secret_hex:
            raise ConfigurationError("AGENT_KEYSTORE_SECRET environment variable is not set")
        if len(secret_hex) != SECRET_HEX_LENGTH:
            raise ConfigurationError("AGENT_KEYSTORE_SECRET must be 64 hex characters (32 bytes)")
        try:
            self._key = bytes.fromhex(secret_hex)
        except ValueError as e:
            raise ConfigurationError("AGENT_KEYSTORE_SECRET must be hex encoded") from e

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a private key for storage

        Args:
            plaintext: The private key to encrypt

        Returns:
            "iv:ciphertext" hex blob
        """
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode()) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()

        return f"{iv.hex()}:{encrypted.hex()}"

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a stored private key

        Args:
            blob: "iv:ciphertext" hex blob produced by encrypt()

        Returns:
            Decrypted private key
        """
        parts = blob.split(":")
        if len(parts) != 2:
            raise ValueError("Invalid encrypted key format")

        iv = bytes.fromhex(parts[0])
        encrypted = bytes.fromhex(parts[1])

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(encrypted) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode()
