from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


ROLE_SCOPES: dict[str, set[str]] = {
    "user": {"catalog:read", "submission:write"},
    "admin": {"catalog:read", "submission:write", "moderation:read", "moderation:write", "blog:write"},
}


@dataclass(slots=True)
class Principal:
    """Identity of the caller for one request.

    Built by the security dependencies and handed to route handlers
    explicitly; nothing about the session is kept between requests.
    """

    subject: str
    role: str = Role.USER.value
    email: str | None = None
    scopes: set[str] = field(default_factory=set)
    access_token: str | None = field(default=None, repr=False)

    @property
    def actor_id(self) -> str:
        return self.subject

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


def scopes_for_role(role: str) -> set[str]:
    return set(ROLE_SCOPES.get(role, ROLE_SCOPES[Role.USER.value]))
