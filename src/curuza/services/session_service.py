from __future__ import annotations

import logging

import requests

from curuza.domain.errors import AuthorizationError, IdentityUnavailableError, ValidationError
from curuza.domain.models import ROLES, Actor, UserRole
from curuza.services.access_policy import AccessPolicy

log = logging.getLogger("curuza.identity")

DEFAULT_ROLE = "user"


class SessionService:
    """Turns an identity-provider access token into an ``Actor``.

    The provider only vouches for who the user is; the role always comes
    from the local ``user_roles`` table.
    """

    def __init__(self, repo, identity_url: str = "", api_key: str = "", policy: AccessPolicy | None = None):
        self.repo = repo
        self.identity_url = (identity_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.policy = policy or AccessPolicy()

    def _fetch_json(self, url: str, headers: dict) -> dict:
        r = requests.get(url, headers=headers, timeout=10)
        r.raise_for_status()
        return r.json()

    def _extract_user(self, data: object) -> tuple[str, str]:
        if not isinstance(data, dict):
            raise IdentityUnavailableError(f"Identity response is not an object. Raw: {data}")
        user_id = data.get("id")
        if not user_id:
            raise IdentityUnavailableError(f"Identity response missing user id. Raw: {data}")
        return str(user_id), str(data.get("email") or "")

    def resolve(self, access_token: str) -> Actor:
        token = (access_token or "").strip()
        if not token:
            raise AuthorizationError("Not signed in.")
        if not self.identity_url:
            raise IdentityUnavailableError("Identity provider URL is not configured.")

        url = f"{self.identity_url}/auth/v1/user"
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {token}"}
        try:
            data = self._fetch_json(url, headers)
        except (requests.RequestException, ValueError) as e:
            log.warning("identity_lookup_failed url=%s error=%s", url, e)
            raise IdentityUnavailableError(f"Identity provider unavailable: {e}") from e

        user_id, email = self._extract_user(data)
        stored = self.repo.get_user_role(user_id)
        role = stored.role if stored else DEFAULT_ROLE
        log.info("session_resolved user_id=%s role=%s", user_id, role)
        return Actor(user_id=user_id, role=role, email=email)

    def get_role(self, user_id: str, actor: Actor) -> str:
        stored = self.repo.get_user_role(user_id)
        self.policy.require(actor, "read", stored or UserRole(user_id=user_id, role=DEFAULT_ROLE, created_at=""))
        return stored.role if stored else DEFAULT_ROLE

    def assign_role(self, user_id: str, role: str, actor: Actor) -> UserRole:
        self.policy.require(actor, "update", "user_role")
        if not (user_id or "").strip():
            raise ValidationError("User id is required.")
        if role not in ROLES:
            raise ValidationError(f"Role must be one of {', '.join(ROLES)}.")

        with self.repo.unit_of_work() as uow:
            uow.upsert_user_role(user_id, role)
        log.info("role_assigned user_id=%s role=%s actor=%s", user_id, role, actor.user_id)
        return self.repo.get_user_role(user_id)
