"""Notification helpers for review status changes and new submissions."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import or_

from apps.api import db
from apps.api.models.notification import Notification
from apps.api.models.rbac import Role, UserRole
from apps.api.models.user import User
from apps.api.utils import roles


def create_notification(
    user_id: str,
    title: str,
    message: str,
    type: str = 'info',
    category: str = 'status',
    link: Optional[str] = None,
    audit_log_id: Optional[int] = None,
) -> Optional[Notification]:
    """Stage one in-app notification (no commit)."""
    if not user_id:
        return None
    entry = Notification(
        user_id=user_id,
        type=type,
        title=title or 'Notifikasi',
        message=message or '',
        link=link,
        category=category,
        audit_log_id=audit_log_id,
    )
    db.session.add(entry)
    return entry


def _users_in_groups(groups: Iterable[str], **assigned) -> List[User]:
    aliases = [alias for group in groups for alias in roles.ROLE_GROUPS.get(group, ())]
    if not aliases:
        return []

    query = User.query.filter(User.is_active.is_(True))
    for column, value in assigned.items():
        query = query.filter(getattr(User, column) == value)

    via_grants = (
        db.session.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(UserRole.is_active.is_(True), Role.is_active.is_(True), Role.name.in_(aliases))
    )
    return query.filter(or_(User.role.in_(aliases), User.id.in_(via_grants))).all()


def find_reviewers_for_scope(jurisdiction: Dict[str, Optional[str]]) -> List[User]:
    """Verifikators and super admins, plus the admins assigned to the record's area."""
    reviewers = _users_in_groups([roles.VERIFIKATOR, roles.SUPER_ADMIN])
    if jurisdiction.get('village_id'):
        reviewers += _users_in_groups([roles.ADMIN_DESA], assigned_village_id=jurisdiction['village_id'])
    if jurisdiction.get('regency_id'):
        reviewers += _users_in_groups([roles.ADMIN_KABUPATEN], assigned_regency_id=jurisdiction['regency_id'])

    unique = {}
    for user in reviewers:
        unique.setdefault(user.id, user)
    return list(unique.values())


def notify_best_effort(user_ids: Iterable[str], **data) -> int:
    """Create and commit notifications; failures are logged, never raised.

    Must run after the change being announced has been committed.
    Returns the number of notifications written.
    """
    user_ids = [uid for uid in dict.fromkeys(user_ids or ()) if uid]
    if not user_ids:
        return 0
    try:
        for user_id in user_ids:
            create_notification(user_id, **data)
        db.session.commit()
        return len(user_ids)
    except Exception as e:
        db.session.rollback()
        current_app.logger.warning(f"Failed to create notifications for {len(user_ids)} user(s): {e}")
        return 0
