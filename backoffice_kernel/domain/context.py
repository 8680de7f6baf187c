"""
Actor context handed to every core operation by the external auth gate.

The gate has already authenticated the caller and decided the coarse
yes/no permission for the route.  The core trusts this context completely
and uses it for business-level checks (for example, only a card's assignee
or a MANAGE_EXPENSES holder may submit expenses on that card).
"""

from dataclasses import dataclass, field
from uuid import UUID

MANAGE_EXPENSES = "MANAGE_EXPENSES"


@dataclass(frozen=True)
class ActorContext:
    """Resolved identity: {user_id, company_id, role, permissions}."""
    user_id: UUID
    company_id: str
    role: str = "user"
    permissions: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if not self.company_id:
            raise ValueError("ActorContext requires a company_id")
        # Accept any iterable of permission names
        if not isinstance(self.permissions, frozenset):
            object.__setattr__(self, "permissions", frozenset(self.permissions))

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def log_fields(self) -> dict[str, str]:
        return {"actor_id": str(self.user_id), "company_id": self.company_id}
