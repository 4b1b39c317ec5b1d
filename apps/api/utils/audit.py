"""Audit trail helpers for review and submission actions.

Entries are added to the caller's session and committed with the change
they describe, so an audit row exists iff the change was committed.
"""
from flask import request, current_app, has_request_context

from apps.api import db
from apps.api.models.audit import AuditLog


class AuditAction:
    FORM_REVIEWED = 'form_reviewed'
    VERIFY = 'VERIFY'
    SUBMIT = 'SUBMIT'
    RESUBMIT = 'form_resubmitted'
    SUPERSEDE = 'SUPERSEDE'


def _client_ip():
    if not has_request_context():
        return None
    ip_address = request.headers.get('X-Forwarded-For', '').split(',')[0].strip()
    if not ip_address:
        ip_address = request.headers.get('X-Real-IP')
    return ip_address or request.remote_addr


def record_audit(
    user_id=None,
    action: str = None,
    resource_type: str = None,
    resource_id=None,
    old_values: dict = None,
    new_values: dict = None,
    notes: str = None,
    actor_role: str = None,
) -> AuditLog:
    """
    Stage an audit entry in the current transaction (no commit).

    Args:
        user_id: The acting user (None for system actions)
        action: One of the AuditAction constants
        resource_type: e.g. 'form_submission'
        resource_id: Id of the record acted upon
        old_values / new_values: Snapshot of the changed fields
        notes: Free-text reviewer notes

    Returns:
        The pending AuditLog instance (flushed, so its id is usable)
    """
    if not action or not resource_type:
        raise ValueError("action and resource_type are required")

    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_role=actor_role,
        old_values=old_values,
        new_values=new_values,
        notes=notes,
        ip_address=_client_ip(),
    )
    db.session.add(entry)
    db.session.flush()
    current_app.logger.info(f"Audit: {action} by {user_id} on {resource_type}:{resource_id}")
    return entry


__all__ = ['AuditAction', 'record_audit']
