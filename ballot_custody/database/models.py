# ballot_custody/database/models.py

from ballot_custody import db
from datetime import datetime

# Schema for voters and their signed votes


class Voter(db.Model):
    __tablename__ = 'users'
    __table_args__ = (
        db.UniqueConstraint('document_type', 'document_number', name='uq_users_document'),
    )
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    document_type = db.Column(db.String(10), nullable=False)
    document_number = db.Column(db.String(32), nullable=False)
    public_key = db.Column(db.Text, nullable=False)  # PEM SubjectPublicKeyInfo
    private_key = db.Column(db.Text, nullable=False)  # AES-256-GCM envelope JSON, never plaintext
    password_hash = db.Column(db.String(200), nullable=True)  # Argon2id
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    votes = db.relationship('Vote', backref='voter', lazy=True)

    def __repr__(self):
        return f'<Voter {self.id} {self.document_type}:{self.document_number}>'


class Vote(db.Model):
    __tablename__ = 'votes'
    id = db.Column(db.Integer, primary_key=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    candidate = db.Column(db.String(64), nullable=False, index=True)
    signature = db.Column(db.Text, nullable=True)  # hex DER, opaque format
    r = db.Column(db.Text, nullable=True)  # hex, components format
    s = db.Column(db.Text, nullable=True)
    transaction_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Vote {self.id} by Voter {self.voter_id}>'
