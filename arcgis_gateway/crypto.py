"""
RSA encryption of token request credentials.

The server publishes a small RSA public key (hex exponent and modulus) on its
admin ``publicKey`` resource. Each credential field is encrypted on its own
with PKCS#1 v1.5 padding and sent hex encoded, with ``encrypted=true``.
"""

from typing import Optional, Protocol

from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .token import GenerateToken


class CryptoProvider(Protocol):
    def encrypt(self, token_request: GenerateToken, exponent: bytes, modulus: bytes) -> GenerateToken: ...


class RsaEncrypter:
    """Encrypts username, password, expiration, client and referer."""

    def encrypt(self, token_request: GenerateToken, exponent: bytes, modulus: bytes) -> GenerateToken:
        if token_request is None:
            raise ValueError("token_request is null.")
        if not exponent:
            raise ValueError("exponent is null.")
        if not modulus:
            raise ValueError("modulus is null.")

        if token_request.encrypted:
            return token_request

        public_key = rsa.RSAPublicNumbers(
            int.from_bytes(exponent, "big"),
            int.from_bytes(modulus, "big"),
        ).public_key()

        def _encrypt(value: Optional[str]) -> str:
            if not value or not value.strip():
                return ""
            return public_key.encrypt(value.encode("utf-8"), padding.PKCS1v15()).hex()

        token_request.encrypt(
            _encrypt(token_request.username),
            _encrypt(token_request.password),
            expiration=_encrypt(str(token_request.expiration_minutes)),
            client=_encrypt(token_request.client),
            referer=_encrypt(token_request.referer),
        )
        return token_request


def default_crypto_provider(enabled: bool) -> Optional[CryptoProvider]:
    """The crypto provider used when none is passed explicitly."""
    return RsaEncrypter() if enabled else None
