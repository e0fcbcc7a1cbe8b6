"""
Utility functions for caller identity.
"""

import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def sign_caller(caller: str, secret: str) -> str:
    """Hex HMAC-SHA256 of a caller principal name."""
    return hmac.new(
        secret.encode("utf-8"),
        caller.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def verify_caller_signature(caller: str, signature: str, secret: str) -> bool:
    """
    Verify the HMAC-SHA256 signature of a caller principal.

    Args:
        caller: Principal name from the X-Caller header
        signature: Hex-encoded signature from the X-Signature header
        secret: CALLER_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    logger.debug(f"Verifying caller signature: caller={caller}, signature={signature[:8]}...")

    expected_signature = sign_caller(caller, secret)

    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(expected_signature, signature)
    if not is_valid:
        logger.info(f"Caller signature verification failed: caller={caller}")

    return is_valid
