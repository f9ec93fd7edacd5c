import hmac
from hashlib import sha256
from typing import Any, Dict

from jose import JWTError, jwt

from nedapay.core.config import get_settings

settings = get_settings()

PRIVY_ALGORITHM = "ES256"


def sign_hmac_sha256(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg=message, digestmod=sha256).hexdigest()


def verify_hmac_sha256(secret: str, message: str | bytes, signature: str | None) -> bool:
    if not signature:
        return False
    computed = sign_hmac_sha256(secret, message)
    return hmac.compare_digest(computed, signature.strip().lower())


def decode_privy_token(token: str) -> Dict[str, Any]:
    """Return the claims of a Privy access token.

    With PRIVY_VERIFICATION_KEY configured the signature, audience and issuer are
    checked. Without it the claims are read as-is, which is only meant for local
    development against the Privy sandbox.
    """
    try:
        if settings.PRIVY_VERIFICATION_KEY:
            return jwt.decode(
                token,
                settings.PRIVY_VERIFICATION_KEY.replace("\\n", "\n"),
                algorithms=[PRIVY_ALGORITHM],
                audience=settings.PRIVY_APP_ID or None,
                issuer=settings.PRIVY_ISSUER,
                options={"verify_aud": bool(settings.PRIVY_APP_ID)},
            )
        return jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc


def admin_key_matches(candidate: str | None) -> bool:
    expected = settings.admin_access_key
    if not expected or not candidate:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
