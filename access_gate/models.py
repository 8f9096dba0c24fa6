from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import func

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class AccessLink(db.Model):
    __tablename__ = 'access_link'

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    target_id = db.Column(db.String(64), nullable=False, index=True)
    is_free = db.Column(db.Boolean, nullable=False, default=False)
    expires_at = db.Column(db.DateTime(timezone=True))  # null = never expires
    require_group_key = db.Column(db.Boolean, nullable=False, default=False)
    visits = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())

    allowed_users = db.relationship('LinkUser', lazy='selectin', cascade='all, delete-orphan')
    group_keys = db.relationship('LinkGroupKey', lazy='selectin', cascade='all, delete-orphan',
                                 order_by='LinkGroupKey.position')

    @property
    def mode(self) -> str:
        return 'free' if self.is_free else 'paid'

    @property
    def expires_at_utc(self) -> datetime | None:
        return ensure_aware(self.expires_at)

    def allows_user(self, user_id: str) -> bool:
        return any(u.user_id == user_id for u in self.allowed_users)


class LinkUser(db.Model):
    __tablename__ = 'access_link_user'
    __table_args__ = (db.UniqueConstraint('link_id', 'user_id', name='uq_link_user'),)

    id = db.Column(db.Integer, primary_key=True)
    link_id = db.Column(db.Integer, db.ForeignKey('access_link.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)


class LinkGroupKey(db.Model):
    __tablename__ = 'access_link_group_key'

    id = db.Column(db.Integer, primary_key=True)
    link_id = db.Column(db.Integer, db.ForeignKey('access_link.id', ondelete='CASCADE'), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    label = db.Column(db.String(64), nullable=False, default='group')
    hash = db.Column(db.String(64), nullable=False)


class LinkVisitor(db.Model):
    __tablename__ = 'access_link_visitor'
    __table_args__ = (db.UniqueConstraint('link_id', 'visitor_id', name='uq_link_visitor'),)

    id = db.Column(db.Integer, primary_key=True)
    link_id = db.Column(db.Integer, db.ForeignKey('access_link.id', ondelete='CASCADE'), nullable=False)
    visitor_id = db.Column(db.String(128), nullable=False)
    first_seen_at = db.Column(db.DateTime(timezone=True), server_default=func.now())


class PrepAccess(db.Model):
    __tablename__ = 'prep_access'
    __table_args__ = (db.UniqueConstraint('user_email', 'exam_id', name='uq_prep_user_exam'),)

    STATUSES = ('active', 'archived')

    id = db.Column(db.Integer, primary_key=True)
    user_email = db.Column(db.String(255), nullable=False, index=True)
    exam_id = db.Column(db.String(64), nullable=False, index=True)
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_at = db.Column(db.DateTime(timezone=True), nullable=False)
    plan_days = db.Column(db.Integer, nullable=False, default=30)
    status = db.Column(db.String(16), nullable=False, default='active', index=True)
    cycle = db.Column(db.Integer, nullable=False, default=0)  # bumped on every grant
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def expiry_at_utc(self) -> datetime:
        return ensure_aware(self.expiry_at)


class PrepAccessRequest(db.Model):
    __tablename__ = 'prep_access_request'

    INTENTS = ('purchase', 'restart')
    STATUSES = ('pending', 'approved', 'rejected')

    id = db.Column(db.Integer, primary_key=True)
    user_email = db.Column(db.String(255), nullable=False, index=True)
    exam_id = db.Column(db.String(64), nullable=False, index=True)
    intent = db.Column(db.String(16), nullable=False, default='purchase')
    note = db.Column(db.String(500))
    status = db.Column(db.String(16), nullable=False, default='pending', index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    decided_at = db.Column(db.DateTime(timezone=True))
    decided_by = db.Column(db.String(64))

    def to_dict(self) -> dict:
        decided_at = ensure_aware(self.decided_at)
        return {
            'id': self.id,
            'userEmail': self.user_email,
            'examId': self.exam_id,
            'intent': self.intent,
            'note': self.note,
            'status': self.status,
            'createdAt': ensure_aware(self.created_at).isoformat(),
            'decidedAt': decided_at.isoformat() if decided_at else None,
            'decidedBy': self.decided_by,
        }
