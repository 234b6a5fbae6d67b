"""PostgreSQL vocabulary storage implementation."""

import logging
import os
import threading
from datetime import datetime

import psycopg2
from psycopg2.extras import RealDictCursor

from core.interfaces import VocabularyStore, VocabularyStoreError
from core.models import WordRecord, ProficientRecord

logger = logging.getLogger(__name__)

WORD_COLUMNS = """word, language, severity, retries_needed, ease_factor,
                  current_interval_hours, next_review_at, last_reviewed_at"""


def _row_to_record(row: dict) -> WordRecord:
    return WordRecord(
        row['word'], row['language'],
        severity=row['severity'],
        retries_needed=row['retries_needed'],
        ease_factor=row['ease_factor'],
        current_interval_hours=row['current_interval_hours'],
        next_review_at=row['next_review_at'],
        last_reviewed_at=row['last_reviewed_at']
    )


class PostgresStorage(VocabularyStore):
    """PostgreSQL-based vocabulary storage."""

    def __init__(self, db_url: str = None):
        self.db_url = db_url or os.environ.get(
            'DATABASE_URL',
            'postgresql://localhost:5432/parla'
        )
        self._conn = None
        self._initialized = False
        # One connection is shared by executor threads; transactions must not interleave
        self._lock = threading.RLock()

    @property
    def conn(self):
        """Lazy connection initialization."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(self.db_url)
            if not self._initialized:
                self._init_db()
                self._initialized = True
        return self._conn

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._conn.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS struggling_words (
                    word VARCHAR(255) NOT NULL,
                    language VARCHAR(35) NOT NULL,
                    severity SMALLINT NOT NULL CHECK (severity BETWEEN 0 AND 3),
                    retries_needed INTEGER NOT NULL DEFAULT 0,
                    ease_factor DOUBLE PRECISION NOT NULL CHECK (ease_factor BETWEEN 1.3 AND 2.5),
                    current_interval_hours INTEGER NOT NULL CHECK (current_interval_hours >= 1),
                    next_review_at TIMESTAMPTZ NOT NULL,
                    last_reviewed_at TIMESTAMPTZ NOT NULL,
                    PRIMARY KEY (word, language)
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_struggling_next_review
                ON struggling_words(next_review_at)
            """)
            # Mastery log, append-only
            cur.execute("""
                CREATE TABLE IF NOT EXISTS proficient_words (
                    id SERIAL PRIMARY KEY,
                    word VARCHAR(255) NOT NULL,
                    language VARCHAR(35) NOT NULL,
                    mastered_at TIMESTAMPTZ NOT NULL
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_proficient_language
                ON proficient_words(language)
            """)
        self._conn.commit()

    def close(self):
        """Close the database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()

    def _query(self, sql: str, params: tuple) -> list[dict]:
        with self._lock:
            try:
                with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
                self.conn.commit()
                return rows
            except psycopg2.Error as e:
                logger.error(f"Error querying vocabulary: {e}")
                self._rollback()
                raise VocabularyStoreError(str(e)) from e

    def _rollback(self):
        if self._conn and not self._conn.closed:
            self._conn.rollback()

    def find_struggling(self, word: str, language: str) -> WordRecord | None:
        rows = self._query(
            f"SELECT {WORD_COLUMNS} FROM struggling_words WHERE word = %s AND language = %s",
            (word, language)
        )
        return _row_to_record(rows[0]) if rows else None

    def save_struggling(self, record: WordRecord) -> None:
        with self._lock:
            try:
                with self.conn.cursor() as cur:
                    cur.execute(f"""
                        INSERT INTO struggling_words ({WORD_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (word, language) DO UPDATE SET
                            severity = EXCLUDED.severity,
                            retries_needed = EXCLUDED.retries_needed,
                            ease_factor = EXCLUDED.ease_factor,
                            current_interval_hours = EXCLUDED.current_interval_hours,
                            next_review_at = EXCLUDED.next_review_at,
                            last_reviewed_at = EXCLUDED.last_reviewed_at
                    """, (record.word, record.language, record.severity, record.retries_needed,
                          record.ease_factor, record.current_interval_hours,
                          record.next_review_at, record.last_reviewed_at))
                self.conn.commit()
            except psycopg2.Error as e:
                logger.error(f"Error saving struggling word '{record.word}': {e}")
                self._rollback()
                raise VocabularyStoreError(str(e)) from e

    def promote(self, record: WordRecord, proficient: ProficientRecord) -> None:
        with self._lock:
            try:
                with self.conn.cursor() as cur:
                    cur.execute(
                        "DELETE FROM struggling_words WHERE word = %s AND language = %s",
                        (record.word, record.language)
                    )
                    cur.execute(
                        "INSERT INTO proficient_words (word, language, mastered_at) VALUES (%s, %s, %s)",
                        (proficient.word, proficient.language, proficient.mastered_at)
                    )
                self.conn.commit()
            except psycopg2.Error as e:
                logger.error(f"Error promoting '{record.word}': {e}")
                self._rollback()
                raise VocabularyStoreError(str(e)) from e

    def list_struggling(self, language: str) -> list[WordRecord]:
        rows = self._query(
            f"SELECT {WORD_COLUMNS} FROM struggling_words WHERE language = %s ORDER BY word",
            (language,)
        )
        return [_row_to_record(row) for row in rows]

    def list_due(self, now: datetime, language: str = None) -> list[WordRecord]:
        if language:
            rows = self._query(
                f"""SELECT {WORD_COLUMNS} FROM struggling_words
                    WHERE next_review_at <= %s AND language = %s
                    ORDER BY next_review_at, word""",
                (now, language)
            )
        else:
            rows = self._query(
                f"""SELECT {WORD_COLUMNS} FROM struggling_words
                    WHERE next_review_at <= %s
                    ORDER BY next_review_at, word, language""",
                (now,)
            )
        return [_row_to_record(row) for row in rows]

    def list_proficient(self, language: str) -> list[ProficientRecord]:
        rows = self._query(
            """SELECT word, language, mastered_at FROM proficient_words
               WHERE language = %s ORDER BY mastered_at, id""",
            (language,)
        )
        return [ProficientRecord(row['word'], row['language'], row['mastered_at']) for row in rows]
