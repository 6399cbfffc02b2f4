"""Meeting identifiers and join tokens.

The id and the access token are independent draws from the OS randomness
source, so leaking one says nothing about the other. If the source is
unavailable `secrets` raises and the error propagates: the service cannot run
without it.
"""
import secrets

MEETING_ID_PREFIX = "cons_"


class TokenGenerator:
    """Produce collision-resistant meeting ids and access tokens."""

    def __init__(self, id_bytes: int = 16, token_bytes: int = 24):
        """
        Args:
            id_bytes: Random bytes in a meeting id (16 = 128 bits)
            token_bytes: Random bytes in an access token
        """
        self.id_bytes = id_bytes
        self.token_bytes = token_bytes

    def new_meeting_id(self) -> str:
        """Return a fresh id such as cons_9f86d081884c7d65...."""
        return f"{MEETING_ID_PREFIX}{secrets.token_hex(self.id_bytes)}"

    def new_access_token(self) -> str:
        """Return a fresh URL-safe secret used only to authorize joining."""
        return secrets.token_urlsafe(self.token_bytes)


# Singleton instance
token_generator = TokenGenerator()
