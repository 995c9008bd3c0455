"""Row-level authorization predicates.

Every read and write path on contributions, classifications and review
history consults these predicates. The classification engine repeats the
admin check on its own, so a router that forgets a guard still cannot
classify or reject.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from sqlalchemy import exists, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from plasticwatch.config import settings
from plasticwatch.models.contribution import Contribution

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class Principal:
    user_id: str | None = None
    app_metadata: dict[str, Any] = field(default_factory=dict)
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def claims(self) -> dict[str, Any]:
        return {
            "sub": self.user_id,
            "app_metadata": self.app_metadata,
            "user_metadata": self.user_metadata,
        }

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls()

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        return cls(
            user_id=claims.get("sub") or None,
            app_metadata=_as_dict(claims.get("app_metadata")),
            user_metadata=_as_dict(claims.get("user_metadata")),
        )

    @classmethod
    def from_header(cls, raw: str) -> "Principal":
        """Parse the JSON claims forwarded by the auth gateway."""
        if not raw:
            return cls.anonymous()
        claims = json.loads(raw)
        if not isinstance(claims, dict):
            raise ValueError("claims must be a JSON object")
        return cls.from_claims(claims)


def _as_dict(value: Any) -> dict[str, Any]:
    # Some providers serialize metadata blocks as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return dict(value) if isinstance(value, Mapping) else {}


def resolve_role(claims: Mapping[str, Any]) -> Role:
    """Resolve the caller's role from token claims.

    ``app_metadata`` is server-assigned and authoritative. ``user_metadata``
    is editable by the user and is only consulted while
    ``allow_legacy_role_claim`` is on.
    """
    app_role = _as_dict(claims.get("app_metadata")).get("role")
    if app_role == Role.ADMIN.value:
        return Role.ADMIN

    # TODO: remove once all admin roles are migrated to app_metadata
    if settings.allow_legacy_role_claim:
        legacy_role = _as_dict(claims.get("user_metadata")).get("role")
        if legacy_role == Role.ADMIN.value:
            logger.warning("Admin role granted from user_metadata for %s", claims.get("sub"))
            return Role.ADMIN

    return Role.USER


def is_admin(principal: Principal) -> bool:
    if not principal.is_authenticated:
        return False
    return resolve_role(principal.claims) is Role.ADMIN


def current_role(principal: Principal) -> str:
    if not principal.is_authenticated:
        return Role.USER.value
    return resolve_role(principal.claims).value


async def owns_contribution(db: AsyncSession, caller_id: str | None, contribution_id: str) -> bool:
    if not caller_id:
        return False
    stmt = select(
        exists().where(
            Contribution.id == contribution_id,
            Contribution.user_id == caller_id,
        )
    )
    return bool(await db.scalar(stmt))


def _is_owner(principal: Principal, contribution: Contribution) -> bool:
    return principal.is_authenticated and contribution.user_id == principal.user_id


# Contributions

def can_read_contribution(principal: Principal, contribution: Contribution) -> bool:
    return (
        contribution.status == "classified"
        or _is_owner(principal, contribution)
        or is_admin(principal)
    )


def can_create_contribution(principal: Principal, user_id: str) -> bool:
    return principal.is_authenticated and principal.user_id == user_id


def can_update_contribution(principal: Principal, contribution: Contribution) -> bool:
    if is_admin(principal):
        return True
    return _is_owner(principal, contribution) and contribution.status == "pending"


def can_delete_contribution(principal: Principal, contribution: Contribution) -> bool:
    return _is_owner(principal, contribution) and contribution.status == "pending"


def contribution_visibility(principal: Principal):
    """SQL filter restricting a contributions query to rows the caller may read."""
    if is_admin(principal):
        return true()
    clauses = [Contribution.status == "classified"]
    if principal.is_authenticated:
        clauses.append(Contribution.user_id == principal.user_id)
    return or_(*clauses)


# Classifications

def can_read_classification(principal: Principal) -> bool:
    return True


def can_write_classification(principal: Principal) -> bool:
    return is_admin(principal)


# Review history: writes only happen inside the classification engine

def can_append_review_history(principal: Principal) -> bool:
    return True


def can_read_review_history(principal: Principal) -> bool:
    return is_admin(principal)
