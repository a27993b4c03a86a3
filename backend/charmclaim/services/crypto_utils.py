import hashlib
import hmac
import secrets

from charmclaim.errors import ConfigurationError, InvalidCode

NONCE_BYTES = 16
SALT_BYTES = 32


def normalize_code(raw_code: str) -> str:
    """Canonical form of a user-typed code: surrounding whitespace stripped, upper case."""
    return (raw_code or "").strip().upper()


def _hmac_hex(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


class CodeHasher:
    """
    Keyed one-way transform of a raw claim code into its lookup key.

    HMAC-SHA256 under a server-held secret, so a leaked ``code_hash`` can be
    neither reversed nor forged for an arbitrary code without the secret.
    """

    def __init__(self, secret: str | None):
        if not secret:
            raise ConfigurationError("CODE_HASH_SECRET is not configured")
        self._secret = secret

    def hash(self, raw_code: str) -> str:
        code = normalize_code(raw_code)
        if not code:
            raise InvalidCode("Empty claim code")
        return _hmac_hex(self._secret, code)


def generate_nonce() -> str:
    return secrets.token_hex(NONCE_BYTES)


def generate_secure_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def compute_challenge_digest(code_hash: str, nonce: str, timestamp: str, secure_salt: str) -> str:
    """Seal (unit, nonce, timestamp) with the unit's secret salt. Only the server can reproduce it."""
    return _hmac_hex(secure_salt, f"{code_hash}-{nonce}-{timestamp}")


def sign_challenge_with_code(raw_code: str, challenge_digest: str) -> str:
    """
    Proof of possession: HMAC of the challenge digest keyed by the code itself.

    This is the computation a client (or a chip embedded in the unit) performs,
    using the code exactly as it has it.
    """
    return _hmac_hex(raw_code, challenge_digest)


def signature_matches(raw_code: str, challenge_digest: str, signature: str) -> bool:
    """
    Check a client signature for ``raw_code``.

    Accepts a signature keyed by the code as submitted or by its normalized
    form, so a client may sign either what the user typed or the canonical code.
    Both candidates are always compared.
    """
    provided = signature.strip().lower()
    as_submitted = digests_match(sign_challenge_with_code(raw_code, challenge_digest), provided)
    normalized = digests_match(
        sign_challenge_with_code(normalize_code(raw_code), challenge_digest), provided
    )
    return as_submitted or normalized


def digests_match(expected: str, provided: str) -> bool:
    """Constant-time comparison of two hex strings."""
    return hmac.compare_digest(expected.encode(), provided.encode())
