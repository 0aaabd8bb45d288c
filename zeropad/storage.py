"""
Storage backends for encrypted documents.

Business logic talks to a DocumentStore and never to a specific backend.
Two implementations exist, chosen by the STORAGE_BACKEND config key:

- 'sql': Flask-SQLAlchemy. SQLite or PostgreSQL depending on the URL.
- 'memory': a dict behind a lock, for tests and throwaway instances.

Both give atomic single-row reads and writes. Neither offers version checks,
so concurrent updates are last-write-wins.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from zeropad.models import db, Document


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    encrypted_content: str
    write_token_hash: Optional[str]
    created_at: datetime


class DocumentStore(ABC):
    """Primary-key access to encrypted documents."""

    @abstractmethod
    def create(self, record: DocumentRecord) -> None:
        """Persist a new record."""

    @abstractmethod
    def get(self, document_id: str) -> Optional[DocumentRecord]:
        """Return the record or None."""

    @abstractmethod
    def update_content(self, document_id: str, encrypted_content: str) -> bool:
        """
        Replace encrypted_content in place. Other columns are untouched.

        Returns:
            False if no record has that id
        """


class SqlDocumentStore(DocumentStore):
    """Documents in the `documents` table. Needs an application context."""

    def create(self, record):
        row = Document(
            id=record.id,
            encrypted_content=record.encrypted_content,
            write_token_hash=record.write_token_hash,
            created_at=record.created_at,
        )
        try:
            db.session.add(row)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def get(self, document_id):
        row = db.session.get(Document, document_id)
        if row is None:
            return None
        return row.to_record()

    def update_content(self, document_id, encrypted_content):
        try:
            updated = (
                db.session.query(Document)
                .filter_by(id=document_id)
                .update({Document.encrypted_content: encrypted_content},
                        synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return updated > 0


class MemoryDocumentStore(DocumentStore):
    """Process-local store. Contents are lost on restart."""

    def __init__(self):
        self._documents = {}
        self._lock = threading.Lock()

    def create(self, record):
        with self._lock:
            if record.id in self._documents:
                raise KeyError(f"Duplicate document id {record.id}")
            self._documents[record.id] = record

    def get(self, document_id):
        with self._lock:
            return self._documents.get(document_id)

    def update_content(self, document_id, encrypted_content):
        with self._lock:
            record = self._documents.get(document_id)
            if record is None:
                return False
            self._documents[document_id] = replace(
                record, encrypted_content=encrypted_content)
            return True

    def __len__(self):
        with self._lock:
            return len(self._documents)


STORAGE_BACKENDS = {
    'sql': SqlDocumentStore,
    'memory': MemoryDocumentStore,
}


def build_store(backend):
    """
    Instantiate the store named by the STORAGE_BACKEND setting.

    Raises:
        ValueError: Unknown backend name
    """
    try:
        store_class = STORAGE_BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown STORAGE_BACKEND {backend!r}. "
            f"Expected one of: {', '.join(sorted(STORAGE_BACKENDS))}"
        )
    return store_class()
