"""
Client-local document history.

Remembers the documents a user has created or opened, together with their
keys and write tokens, so they can be reopened later. This is convenience
state on the user's own machine, kept in a JSON file, and is not a security
boundary.

The list is most-recently-used first, de-duplicated by document id and
capped at 50 entries.
"""

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 50
TITLE_MAX_LENGTH = 50


@dataclass
class HistoryEntry:
    id: str
    encryption_key: str
    write_token: str       # empty for read-only documents
    title: str
    created_at: int        # epoch milliseconds
    last_modified: int     # epoch milliseconds


def now_millis():
    return int(time.time() * 1000)


def extract_title(content):
    """
    Title for a markdown document.

    The text of the first heading, else the first non-empty line (cut to 50
    characters with '...'), else 'Untitled'.
    """
    if not content:
        return "Untitled"

    lines = content.split("\n")

    for line in lines:
        stripped = line.strip()
        if stripped.startswith("#"):
            return stripped.lstrip("#").strip() or "Untitled"

    for line in lines:
        stripped = line.strip()
        if stripped:
            if len(stripped) > TITLE_MAX_LENGTH:
                return stripped[:TITLE_MAX_LENGTH] + "..."
            return stripped

    return "Untitled"


# Key spellings written by the browser history (camelCase)
FIELD_ALIASES = {
    'encryptionKey': 'encryption_key',
    'writeToken': 'write_token',
    'createdAt': 'created_at',
    'lastModified': 'last_modified',
}


def _millis(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    try:
        return int(value)
    except (ValueError, OverflowError):
        # NaN and Infinity are valid JSON to Python's parser
        return 0


def entry_from_dict(item):
    """
    Build a HistoryEntry from a stored dict in either key style.

    Unknown keys are ignored. Missing optional fields get defaults.

    Returns:
        HistoryEntry, or None if the id or the encryption key is unusable
    """
    if not isinstance(item, dict):
        return None

    data = {FIELD_ALIASES.get(name, name): value for name, value in item.items()}

    document_id = data.get('id')
    key = data.get('encryption_key')
    if not isinstance(document_id, str) or not document_id:
        return None
    if not isinstance(key, str) or not key:
        return None

    write_token = data.get('write_token')
    title = data.get('title')
    return HistoryEntry(
        id=document_id,
        encryption_key=key,
        write_token=write_token if isinstance(write_token, str) else '',
        title=title if isinstance(title, str) and title else 'Untitled',
        created_at=_millis(data.get('created_at')),
        last_modified=_millis(data.get('last_modified')),
    )


class DocumentHistory:
    """
    History persisted as a JSON list at `path`.

    The file is the only copy of the keys it holds, so it is never silently
    overwritten: if any part of it could not be read, the next save or
    remove first moves it aside to `<path>.<millis>.bak`.

    Args:
        path: File to read and write. Created on first save.
        max_entries: Cap on the number of remembered documents
    """

    def __init__(self, path, max_entries=MAX_HISTORY_ENTRIES):
        self.path = path
        self.max_entries = max_entries

    def entries(self) -> List[HistoryEntry]:
        """All readable entries, newest first. A missing or corrupt file reads as empty."""
        return self._load()[0]

    def save(self, entry: HistoryEntry) -> None:
        """Add or refresh an entry and move it to the front."""
        entries, intact = self._load()
        history = [e for e in entries if e.id != entry.id]
        history.insert(0, entry)
        self._replace(history[:self.max_entries], intact)

    def remove(self, document_id: str) -> None:
        entries, intact = self._load()
        self._replace([e for e in entries if e.id != document_id], intact)

    def get(self, document_id: str) -> Optional[HistoryEntry]:
        for entry in self.entries():
            if entry.id == document_id:
                return entry
        return None

    def _load(self):
        """
        Returns:
            Tuple of (entries, intact). intact is False when the file, or
            any entry in it, could not be read.
        """
        if not os.path.exists(self.path):
            return [], True

        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Error loading document history from %s: %s", self.path, e)
            return [], False

        if not isinstance(data, list):
            logger.warning("Document history in %s is not a list", self.path)
            return [], False

        entries = []
        for index, item in enumerate(data):
            entry = entry_from_dict(item)
            if entry is None:
                logger.warning("Skipping unreadable entry %d in %s", index, self.path)
                continue
            entries.append(entry)

        return entries, len(entries) == len(data)

    def _replace(self, history, intact):
        if not intact and os.path.exists(self.path):
            backup_path = f"{self.path}.{now_millis()}.bak"
            os.replace(self.path, backup_path)
            logger.warning("Moved unreadable document history to %s", backup_path)
        self._write(history)

    def _write(self, history):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        # Write then rename so a crash never leaves half a file
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump([asdict(e) for e in history], f, indent=2)
        os.replace(tmp_path, self.path)
