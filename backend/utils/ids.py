import uuid


def generate_id() -> str:
    """Opaque 32-char hex identifier for users, sessions and messages."""
    return uuid.uuid4().hex
