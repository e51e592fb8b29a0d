from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller, built from a validated bearer token.

    user_id is the token subject; every progress operation is scoped to it.
    Roles gate the repair endpoints (``admin``).
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles
