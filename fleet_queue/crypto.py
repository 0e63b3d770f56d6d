"""Encryption helpers for keeping the API token on disk."""

import base64
import hashlib
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken


def _fernet_for(passphrase: str) -> Fernet:
    """Build a Fernet cipher from an arbitrary passphrase.

    The passphrase is hashed with SHA256 and base64 encoded into a Fernet key.
    """
    digest = hashlib.sha256(passphrase.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_token(token: str, passphrase: str) -> str:
    """Encrypt an API token.

    Args:
        token: Bearer token to protect.
        passphrase: Secret used to derive the encryption key.

    Returns:
        Fernet ciphertext as text.
    """
    return _fernet_for(passphrase).encrypt(token.encode()).decode()


def decrypt_token(ciphertext: str, passphrase: str) -> str:
    """Decrypt a token produced by encrypt_token.

    Raises:
        ValueError: Wrong passphrase or corrupted data.
    """
    try:
        return _fernet_for(passphrase).decrypt(ciphertext.encode()).decode()
    except InvalidToken as err:
        raise ValueError("Failed to decrypt token - wrong key or corrupted data") from err


def write_token_file(token: str, passphrase: str, file_path: Path) -> None:
    """Encrypt a token and store it with owner-only permissions."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(encrypt_token(token, passphrase))
    file_path.chmod(0o600)


def read_token_file(file_path: Path, passphrase: str) -> str:
    """Read and decrypt a token file."""
    if not file_path.exists():
        raise FileNotFoundError(f"Token file not found: {file_path}")
    return decrypt_token(file_path.read_text().strip(), passphrase)
