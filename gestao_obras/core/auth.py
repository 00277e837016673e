"""Authentication context extraction and RBAC guard utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from gestao_obras.core.config import get_settings
from gestao_obras.db.dependencies import get_db_session
from gestao_obras.models.entities import ClientPortalAccess, RoleType, User, UserRole

logger = logging.getLogger(__name__)


class AppRole(str, Enum):
    """Application role names as granted in ``user_roles``."""

    ADMIN = "admin"
    CLIENT = "client"


ROLE_TYPE_TO_APP_ROLE: dict[RoleType, AppRole] = {
    RoleType.ADMIN: AppRole.ADMIN,
    RoleType.CLIENT: AppRole.CLIENT,
}


APP_ROLE_TO_DB_ROLE: dict[AppRole, RoleType] = {
    AppRole.ADMIN: RoleType.ADMIN,
    AppRole.CLIENT: RoleType.CLIENT,
}


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from headers and DB state."""

    user_id: UUID
    auth_subject: str
    email: str
    display_name: str
    status: str
    roles: tuple[AppRole, ...]

    @property
    def is_admin(self) -> bool:
        """Whether current user holds the admin role."""

        return AppRole.ADMIN in self.roles


def _require_identity_headers(
    x_auth_subject: str | None,
    x_auth_email: str | None,
    x_auth_name: str | None,
) -> tuple[str, str, str]:
    if not x_auth_subject or not x_auth_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Não autorizado",
        )

    display_name = x_auth_name or x_auth_email
    return x_auth_subject.strip(), x_auth_email.strip().lower(), display_name.strip()


def _resolve_identity(
    x_auth_subject: str | None,
    x_auth_email: str | None,
    x_auth_name: str | None,
) -> tuple[str, str, str]:
    settings = get_settings()
    if x_auth_subject and x_auth_email:
        return _require_identity_headers(x_auth_subject, x_auth_email, x_auth_name)

    if settings.auth_allow_dev_principal:
        return (
            settings.auth_dev_subject.strip(),
            settings.auth_dev_email.strip().lower(),
            settings.auth_dev_display_name.strip(),
        )

    return _require_identity_headers(x_auth_subject, x_auth_email, x_auth_name)


def _absorb_invited_user(db: Session, *, user: User, invited: User) -> None:
    """Move roles and portal grants of an invited row onto ``user`` and drop it."""

    held_roles = set(db.scalars(select(UserRole.role).where(UserRole.user_id == user.id)).all())
    for row in db.scalars(select(UserRole).where(UserRole.user_id == invited.id)).all():
        if row.role in held_roles:
            db.delete(row)
        else:
            row.user_id = user.id

    granted = set(
        db.scalars(select(ClientPortalAccess.project_id).where(ClientPortalAccess.user_id == user.id)).all()
    )
    for access in db.scalars(select(ClientPortalAccess).where(ClientPortalAccess.user_id == invited.id)).all():
        if access.project_id in granted:
            db.delete(access)
        else:
            access.user_id = user.id
    for access in db.scalars(select(ClientPortalAccess).where(ClientPortalAccess.created_by == invited.id)).all():
        access.created_by = user.id

    db.flush()
    db.delete(invited)
    db.flush()


def _upsert_user(db: Session, *, auth_subject: str, email: str, display_name: str) -> User:
    user = db.scalar(select(User).where(User.auth_subject == auth_subject))
    if user is None:
        # Portal invitations create the row before the first sign-in.
        user = db.scalar(select(User).where(User.email == email, User.auth_subject.is_(None)))
    now = datetime.utcnow()

    if user is None:
        if db.scalar(select(User.id).where(User.email == email)) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email já vinculado a outra conta.",
            )
        user = User(
            auth_subject=auth_subject,
            email=email,
            display_name=display_name,
            status="active",
            last_login_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.flush()
        return user

    changed = False
    if user.auth_subject != auth_subject:
        user.auth_subject = auth_subject
        changed = True
    if user.email != email:
        holder = db.scalar(select(User).where(User.email == email, User.id != user.id))
        if holder is not None and holder.auth_subject is None:
            _absorb_invited_user(db, user=user, invited=holder)
            holder = None
        if holder is None:
            user.email = email
            changed = True
        else:
            logger.warning(
                "Identity email held by another account; keeping stored email",
                extra={"user_id": str(user.id), "holder_id": str(holder.id)},
            )
    if user.display_name != display_name:
        user.display_name = display_name
        changed = True
    if user.status == "invited":
        user.status = "active"
        changed = True

    user.last_login_at = now
    if changed:
        user.updated_at = now
    db.flush()
    return user


def ensure_user_principal(
    db: Session,
    *,
    auth_subject: str,
    email: str,
    display_name: str,
) -> User:
    """Ensure user exists and return persisted row.

    Utility exported for tests and seed helpers.
    """

    normalized_subject = auth_subject.strip()
    normalized_email = email.strip().lower()
    normalized_display_name = display_name.strip() or normalized_email

    user = _upsert_user(
        db,
        auth_subject=normalized_subject,
        email=normalized_email,
        display_name=normalized_display_name,
    )
    db.commit()
    db.refresh(user)
    return user


def load_roles(db: Session, *, user_id: UUID) -> tuple[AppRole, ...]:
    """Role names granted to a user, without duplicates."""

    rows = db.scalars(select(UserRole.role).where(UserRole.user_id == user_id)).all()
    return tuple(dict.fromkeys(ROLE_TYPE_TO_APP_ROLE[row] for row in rows))


def get_current_user_context(
    x_auth_subject: str | None = Header(default=None, alias="X-AUTH-SUBJECT"),
    x_auth_email: str | None = Header(default=None, alias="X-AUTH-EMAIL"),
    x_auth_name: str | None = Header(default=None, alias="X-AUTH-NAME"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve current request user and granted roles.

    Identity comes from trusted headers set by the authentication proxy
    in front of the API.
    """

    auth_subject, email, display_name = _resolve_identity(x_auth_subject, x_auth_email, x_auth_name)
    user = _upsert_user(db, auth_subject=auth_subject, email=email, display_name=display_name)
    roles = load_roles(db, user_id=user.id)
    db.commit()

    return RequestUserContext(
        user_id=user.id,
        auth_subject=auth_subject,
        email=user.email,
        display_name=user.display_name,
        status=user.status,
        roles=roles,
    )


def has_role(context: RequestUserContext, allowed_roles: set[AppRole]) -> bool:
    """Check whether user has any of the allowed roles."""

    return any(role in allowed_roles for role in context.roles)


def require_roles(*roles: AppRole):
    """Dependency factory requiring at least one provided role."""

    allowed = set(roles)

    def dependency(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
        if not has_role(context, allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permissão insuficiente para esta operação.",
            )
        return context

    return dependency
