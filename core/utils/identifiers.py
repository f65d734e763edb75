"""Build identifiers used to namespace temporary cloud resources."""

from datetime import datetime, timezone
from uuid import uuid4


def generate_build_id() -> str:
    """Return a unique id for one build: UTC timestamp plus a uuid4 hex."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{stamp}-{uuid4().hex}"


def key_pair_name(build_id: str) -> str:
    return f"mami-keypair-{build_id}"


def security_group_name(build_id: str) -> str:
    return f"mami-sg-{build_id}"
