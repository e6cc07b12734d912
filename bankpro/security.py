"""
Security primitives

Password and PIN hashing (scrypt), JWT access/refresh tokens (PyJWT),
password reset tokens and card CVV encryption at rest (Fernet).
"""

import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import BankProConfig
from .errors import AuthenticationError


ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

ENCRYPTION_PREFIX = "ENC:"


def generate_salt() -> str:
    """Generate random salt for password hashing"""
    return secrets.token_hex(16)


def hash_secret(secret: str, salt: str) -> str:
    """Hash a password or PIN with salt using scrypt"""
    return hashlib.scrypt(
        secret.encode(),
        salt=salt.encode(),
        n=16384, r=8, p=1
    ).hex()


def verify_secret(secret: str, salt: Optional[str], expected_hash: Optional[str]) -> bool:
    if not salt or not expected_hash:
        return False
    return hmac.compare_digest(hash_secret(secret, salt), expected_hash)


def generate_reset_token() -> Tuple[str, str]:
    """Returns (raw token for the user, SHA-256 digest to store)"""
    raw = secrets.token_hex(32)
    return raw, digest_reset_token(raw)


def digest_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


class TokenService:
    """Issues and verifies HS256 access and refresh tokens"""

    def __init__(self, config: BankProConfig):
        self.config = config

    def _secret(self, token_type: str) -> str:
        if token_type == REFRESH_TOKEN:
            return self.config.jwt_refresh_secret
        return self.config.jwt_secret

    def issue(self, user_id: str, token_type: str = ACCESS_TOKEN) -> str:
        now = datetime.now(timezone.utc)
        if token_type == REFRESH_TOKEN:
            lifetime = timedelta(days=self.config.jwt_refresh_expiry_days)
        else:
            lifetime = timedelta(days=self.config.jwt_expiry_days)
        payload = {
            "sub": user_id,
            "type": token_type,
            "iat": now,
            "exp": now + lifetime,
            # Unique per token so two tokens issued in the same second differ
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret(token_type), algorithm=self.config.jwt_algorithm)

    def decode(self, token: str, token_type: str = ACCESS_TOKEN) -> Dict[str, Any]:
        """Decode and validate a token, raising AuthenticationError on any failure"""
        try:
            payload = jwt.decode(token, self._secret(token_type), algorithms=[self.config.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")
        if payload.get("type") != token_type or not payload.get("sub"):
            raise AuthenticationError("Invalid token")
        return payload


class CardCipher:
    """Fernet encryption for card secrets, key derived from the configured secret"""

    def __init__(self, master_key: str, salt: bytes = b'bankpro_card_salt'):
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        derived_key = kdf.derive(master_key.encode('utf-8'))
        self.fernet = Fernet(base64.urlsafe_b64encode(derived_key))

    def encrypt(self, plaintext: str) -> str:
        token = self.fernet.encrypt(plaintext.encode('utf-8')).decode('ascii')
        return f"{ENCRYPTION_PREFIX}{token}"

    def decrypt(self, ciphertext: str) -> str:
        if ciphertext.startswith(ENCRYPTION_PREFIX):
            ciphertext = ciphertext[len(ENCRYPTION_PREFIX):]
        try:
            return self.fernet.decrypt(ciphertext.encode('ascii')).decode('utf-8')
        except InvalidToken:
            raise ValueError("Failed to decrypt card data")
