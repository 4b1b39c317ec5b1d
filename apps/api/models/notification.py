"""In-app notifications for record authors and reviewers."""
from apps.api import db
from apps.api.utils.time import utc_now


NOTIFICATION_TYPES = ('info', 'warning', 'success')
NOTIFICATION_CATEGORIES = ('security', 'verification', 'status', 'audit')


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(12), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type = db.Column(db.String(20), nullable=False, default='info')
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(20), nullable=False, default='status')
    audit_log_id = db.Column(db.Integer, db.ForeignKey('audit_logs.id', ondelete='SET NULL'), nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        db.Index('ix_notifications_user_read', 'user_id', 'is_read'),
        db.Index('ix_notifications_created_at', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'link': self.link,
            'category': self.category,
            'audit_log_id': self.audit_log_id,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
