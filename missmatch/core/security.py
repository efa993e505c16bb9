import hashlib
import hmac


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check an ``x-flux-signature`` style header against the shared webhook secret.

    Verification is skipped when no secret is configured.
    """
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature)


def verify_cron_authorization(header: str | None, secret: str) -> bool:
    if not secret or not header:
        return False
    return hmac.compare_digest(header, f"Bearer {secret}")
