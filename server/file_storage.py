"""File-based vocabulary storage implementation."""

import json
import logging
import os
import threading
from datetime import datetime

from core.interfaces import VocabularyStore, VocabularyStoreError
from core.models import WordRecord, ProficientRecord

logger = logging.getLogger(__name__)


def _key(word: str, language: str) -> str:
    return f"{language}:{word}"


class FileStorage(VocabularyStore):
    """Vocabulary kept in a single JSON file.

    Layout: {"struggling": {"<lang>:<word>": {...}}, "proficient": [{...}]}
    """

    def __init__(self, state_dir: str = None):
        # Project root is one level up from server/
        project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        self.state_dir = state_dir or os.environ.get('PARLA_STATE_DIR', project_root)
        self._lock = threading.Lock()

    def _get_vocabulary_file(self) -> str:
        return os.path.join(self.state_dir, 'parla_vocabulary.json')

    def _load(self) -> dict:
        vocab_file = self._get_vocabulary_file()
        if not os.path.exists(vocab_file):
            return {'struggling': {}, 'proficient': []}
        try:
            with open(vocab_file, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading vocabulary from {vocab_file}: {e}")
            raise VocabularyStoreError(f"Cannot read {vocab_file}") from e
        data.setdefault('struggling', {})
        data.setdefault('proficient', [])
        return data

    def _save(self, data: dict) -> None:
        vocab_file = self._get_vocabulary_file()
        tmp_file = vocab_file + '.tmp'
        try:
            os.makedirs(self.state_dir, exist_ok=True)
            with open(tmp_file, 'w') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_file, vocab_file)
        except OSError as e:
            logger.error(f"Error saving vocabulary to {vocab_file}: {e}")
            raise VocabularyStoreError(f"Cannot write {vocab_file}") from e

    def find_struggling(self, word: str, language: str) -> WordRecord | None:
        with self._lock:
            data = self._load()
        entry = data['struggling'].get(_key(word, language))
        return WordRecord.from_dict(entry) if entry else None

    def save_struggling(self, record: WordRecord) -> None:
        with self._lock:
            data = self._load()
            data['struggling'][_key(record.word, record.language)] = record.to_dict()
            self._save(data)

    def promote(self, record: WordRecord, proficient: ProficientRecord) -> None:
        with self._lock:
            data = self._load()
            data['struggling'].pop(_key(record.word, record.language), None)
            data['proficient'].append(proficient.to_dict())
            self._save(data)

    def list_struggling(self, language: str) -> list[WordRecord]:
        with self._lock:
            data = self._load()
        return [
            WordRecord.from_dict(entry)
            for entry in data['struggling'].values()
            if entry['language'] == language
        ]

    def list_due(self, now: datetime, language: str = None) -> list[WordRecord]:
        with self._lock:
            data = self._load()
        due = []
        for entry in data['struggling'].values():
            if language and entry['language'] != language:
                continue
            record = WordRecord.from_dict(entry)
            if record.next_review_at and record.next_review_at <= now:
                due.append(record)
        return due

    def list_proficient(self, language: str) -> list[ProficientRecord]:
        with self._lock:
            data = self._load()
        return [
            ProficientRecord.from_dict(entry)
            for entry in data['proficient']
            if entry['language'] == language
        ]
