import hmac
import uuid

from app.core.datetime_utils import is_expired


def generate_client_id() -> str:
    """Generate an SSE subscriber id when the client does not supply one."""
    return str(uuid.uuid4())


def verify_worker_token(token: str | None, expected: str) -> bool:
    """Check the shared secret presented by the processing worker.

    An empty expected token rejects every call.
    """
    if not expected or not token:
        return False
    return hmac.compare_digest(expected.encode(), token.encode())


__all__ = [
    "generate_client_id",
    "is_expired",
    "verify_worker_token",
]
