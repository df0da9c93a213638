"""Identity verification interface."""

from typing import Protocol

from duedesk.core.lifecycle import Actor


class IdentityVerifier(Protocol):
    """Turns a bearer credential into a verified actor."""

    def verify(self, bearer_token: str) -> Actor:
        """Return the verified actor. Raises Forbidden on a bad credential."""
        ...
