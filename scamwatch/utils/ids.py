"""Report and voter ID generation."""
import random
import string
import uuid

_BASE36 = string.digits + string.ascii_lowercase


def generate_report_id() -> str:
    """Generate unique report ID (used by the in-process store)."""
    return f"RPT-{uuid.uuid4().hex[:12].upper()}"


def generate_voter_id() -> str:
    """Generate a pseudo-random local voter ID: user_{9 base-36 chars}.

    Only used to stop a browser from voting twice; it is not an identity.
    """
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"user_{suffix}"
