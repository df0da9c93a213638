"""Google ID-token identity adapter."""

import logging

from duedesk.core.errors import Forbidden, InvalidInput
from duedesk.core.lifecycle import Actor
from duedesk.core.tasks import normalize_role
from duedesk.ports.store import DocumentStore

logger = logging.getLogger(__name__)

USERS = "users"
_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class GoogleIdentityVerifier:
    """
    Verifies Google ID tokens and resolves the caller's role.

    Implements IdentityVerifier protocol. The role comes from the caller's
    document in the users collection; users without one are associates.
    """

    def __init__(self, store: DocumentStore, client_id: str):
        self.store = store
        self.client_id = client_id

    def _decode(self, bearer_token: str) -> dict:
        from google.auth.transport import requests as google_requests
        from google.oauth2 import id_token

        return id_token.verify_oauth2_token(bearer_token, google_requests.Request(), self.client_id)

    def verify(self, bearer_token: str) -> Actor:
        token = (bearer_token or "").strip()
        parts = token.split(None, 1)
        if parts and parts[0].lower() == "bearer":
            token = parts[1].strip() if len(parts) > 1 else ""
        if not token:
            raise Forbidden("Missing bearer token")

        try:
            info = self._decode(token)
        except ValueError as e:
            raise Forbidden(f"Invalid ID token: {e}") from e

        if info.get("iss") not in _ISSUERS:
            raise Forbidden("Invalid token issuer")

        uid = info["sub"]
        email = (info.get("email") or "").lower()
        user = self.store.get(USERS, uid) or {}
        try:
            role = normalize_role(user.get("role"))
        except InvalidInput:
            logger.warning(f"Unknown role {user.get('role')!r} for {email}, treating as associate")
            role = normalize_role(None)
        return Actor(uid=uid, email=email, role=role)
