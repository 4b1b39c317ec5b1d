"""Append-only audit log for state-changing actions."""
from sqlalchemy import Index

from apps.api import db
from apps.api.utils.time import utc_now


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(12), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    # e.g. 'form_reviewed', 'VERIFY', 'SUBMIT', 'RESUBMIT'
    action = db.Column(db.String(50), nullable=False)
    # e.g. 'form_submission', 'facility_survey', 'housing_development'
    resource_type = db.Column(db.String(50), nullable=False)
    resource_id = db.Column(db.String(12), nullable=True)
    actor_role = db.Column(db.String(50), nullable=True)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    user = db.relationship('User', backref=db.backref('audit_logs', lazy='dynamic'))

    __table_args__ = (
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
        Index('idx_audit_created_at', 'created_at'),
        Index('idx_audit_user', 'user_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'action': self.action,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'actor_role': self.actor_role,
            'old_values': self.old_values,
            'new_values': self.new_values,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
