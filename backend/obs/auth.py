"""obs-websocket challenge/response authentication."""

import base64
import hashlib


def _sha256_b64(text: str) -> str:
    return base64.b64encode(hashlib.sha256(text.encode("utf-8")).digest()).decode("ascii")


def create_auth_response(secret: str, salt: str, challenge: str) -> str:
    """
    Compute the Identify ``authentication`` string.

    base64(sha256(base64(sha256(secret + salt)) + challenge)). The secret
    itself never goes over the wire.
    """
    return _sha256_b64(_sha256_b64(secret + salt) + challenge)
