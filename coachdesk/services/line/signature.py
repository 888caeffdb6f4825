import base64
import hashlib
import hmac

LINE_SIGNATURE_HEADER = "x-line-signature"


def compute_line_signature(channel_secret: str, body: bytes) -> str:
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_line_signature(channel_secret: str | None, body: bytes, signature: str | None) -> bool:
    """Base64 HMAC-SHA256 of the raw body, compared in constant time."""
    if not channel_secret or not signature:
        return False
    expected = compute_line_signature(channel_secret, body)
    return hmac.compare_digest(expected, signature)
