"""
Database models for Zeropad.

Uses SQLAlchemy ORM so every query is parameterized.
The server only ever holds ciphertext and, optionally, the SHA-256 hash of a
write token. Keys and raw tokens never reach this table.
"""

from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

# Initialize SQLAlchemy - will be bound to app in __init__.py
db = SQLAlchemy()


class Document(db.Model):
    """
    An encrypted document.

    - id: random 128-bit hex identifier, immutable
    - encrypted_content: b64url(IV || ciphertext || tag), the only mutable column
    - write_token_hash: nullable for documents created before write tokens
    - created_at: immutable
    """
    __tablename__ = 'documents'

    id = db.Column(db.String(32), primary_key=True)
    encrypted_content = db.Column(db.Text, nullable=False)
    write_token_hash = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f'<Document {self.id}>'

    def to_record(self):
        """Detach the row into an immutable DocumentRecord."""
        from zeropad.storage import DocumentRecord

        created_at = self.created_at
        if created_at is not None:
            # SQLite drops tzinfo on the way back out
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            created_at = created_at.astimezone(timezone.utc)

        return DocumentRecord(
            id=self.id,
            encrypted_content=self.encrypted_content,
            write_token_hash=self.write_token_hash,
            created_at=created_at,
        )

