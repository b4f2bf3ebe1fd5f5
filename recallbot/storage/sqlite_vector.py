# recallbot/storage/sqlite_vector.py
"""SQLite-based message store with FTS5 keyword search and numpy vector search."""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any, Iterable, Tuple

import numpy as np
from sqlite_vec import serialize_float32

from ..contracts.storage import IMessageStore
from ..core.errors import StoreError
from ..core.text import is_news_dump
from ..models.context import ContextMessage, WindowMessage, MessageWindow
from ..models.indexing import IndexingStats
from ..models.message import MessageRecord
from ..models.search import SearchResult

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS messages (
        chat_id INTEGER NOT NULL,
        id INTEGER NOT NULL,
        from_user_id INTEGER NOT NULL DEFAULT 0,
        username TEXT,
        display_name TEXT,
        text TEXT,
        date_utc TEXT NOT NULL,
        reply_to_message_id INTEGER,

        -- Forwarded-message provenance
        is_forwarded INTEGER NOT NULL DEFAULT 0,
        forward_origin_type TEXT,
        forward_from_name TEXT,

        is_news_dump INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (chat_id, id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_chat_date ON messages(chat_id, date_utc)",
    """
    CREATE TABLE IF NOT EXISTS message_embeddings (
        chat_id INTEGER NOT NULL,
        message_id INTEGER NOT NULL,
        chunk_index INTEGER NOT NULL DEFAULT 0,  -- negative: question-bridge embedding
        chunk_text TEXT NOT NULL,
        embedding BLOB NOT NULL,  -- float32, L2-normalized
        is_question INTEGER NOT NULL DEFAULT 0,
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (chat_id, message_id, chunk_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS context_embeddings (
        chat_id INTEGER NOT NULL,
        center_message_id INTEGER NOT NULL,
        window_start_id INTEGER NOT NULL,
        window_end_id INTEGER NOT NULL,
        message_ids TEXT NOT NULL,  -- JSON array
        context_text TEXT NOT NULL,
        embedding BLOB NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (chat_id, center_message_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS context_progress (
        chat_id INTEGER PRIMARY KEY,
        last_message_id INTEGER NOT NULL,
        resume_after_id INTEGER,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
        text,
        content='messages',
        content_rowid='rowid'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_fts_insert AFTER INSERT ON messages BEGIN
        INSERT INTO messages_fts(rowid, text) VALUES (new.rowid, COALESCE(new.text, ''));
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_fts_delete AFTER DELETE ON messages BEGIN
        INSERT INTO messages_fts(messages_fts, rowid, text) VALUES ('delete', old.rowid, COALESCE(old.text, ''));
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_fts_update AFTER UPDATE OF text ON messages BEGIN
        INSERT INTO messages_fts(messages_fts, rowid, text) VALUES ('delete', old.rowid, COALESCE(old.text, ''));
        INSERT INTO messages_fts(rowid, text) VALUES (new.rowid, COALESCE(new.text, ''));
    END
    """,
]


def _has_text(column: str = "text") -> str:
    return f"{column} IS NOT NULL AND TRIM({column}) != ''"


HAS_TEXT = _has_text()

# Chats with an eligible message newer than their context progress marker
STALE_CONTEXT_CHATS = """
    FROM messages m
    LEFT JOIN context_progress p ON p.chat_id = m.chat_id
    WHERE m.text IS NOT NULL AND LENGTH(m.text) > 5
      AND (p.last_message_id IS NULL OR m.id > p.last_message_id)
"""


def _to_db_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def _from_db_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _encode_vector(vector: np.ndarray) -> bytes:
    return serialize_float32(np.asarray(vector, dtype=np.float32).ravel().tolist())


def _decode_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def _unit(vector: np.ndarray) -> np.ndarray:
    vector = np.asarray(vector, dtype=np.float32).ravel()
    norm = float(np.linalg.norm(vector))
    return vector / norm if norm > 0 else vector


def _fts_query(keywords: List[str]) -> str:
    """OR-join quoted keywords so FTS5 syntax characters are taken literally."""
    terms = []
    for keyword in keywords:
        keyword = keyword.strip()
        if keyword:
            terms.append('"' + keyword.replace('"', '""') + '"')
    return " OR ".join(terms)


class SQLiteMessageStore(IMessageStore):
    """
    SQLite store with FTS5 full-text search and brute-force cosine search.

    Vectors are float32 blobs (sqlite-vec serialization). One connection
    is opened per thread so the search fan-out can query concurrently.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.database_path = Path(self.config.get("database", "data/recallbot.db"))
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        """Get or create this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.database_path),
                    timeout=self.config.get("busy_timeout", 30.0),
                    check_same_thread=False,
                )
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open database {self.database_path}: {e}")

            conn.row_factory = sqlite3.Row
            if self.config.get("wal", True):
                conn.execute("PRAGMA journal_mode=WAL")

            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)

        return conn

    def _query(self, sql: str, params=()) -> List[sqlite3.Row]:
        try:
            return self._connect().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Query failed: {e}")

    def initialize(self) -> None:
        """Create database schema."""
        conn = self._connect()
        try:
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot initialize schema: {e}")

        logger.info("Database initialized at %s", self.database_path)

    def save_messages(self, messages: Iterable[MessageRecord]) -> int:
        """Bulk upsert; FTS is kept in sync by triggers."""
        rows = [
            {
                'chat_id': m.chat_id,
                'id': m.id,
                'from_user_id': m.from_user_id,
                'username': m.username,
                'display_name': m.display_name,
                'text': m.text,
                'date_utc': _to_db_date(m.date_utc),
                'reply_to_message_id': m.reply_to_message_id,
                'is_forwarded': int(m.is_forwarded),
                'forward_origin_type': m.forward_origin_type,
                'forward_from_name': m.forward_from_name,
                'is_news_dump': int(is_news_dump(m.text)),
            }
            for m in messages
        ]
        if not rows:
            return 0

        conn = self._connect()
        try:
            conn.executemany("""
                INSERT INTO messages (
                    chat_id, id, from_user_id, username, display_name, text, date_utc,
                    reply_to_message_id, is_forwarded, forward_origin_type, forward_from_name,
                    is_news_dump
                ) VALUES (
                    :chat_id, :id, :from_user_id, :username, :display_name, :text, :date_utc,
                    :reply_to_message_id, :is_forwarded, :forward_origin_type, :forward_from_name,
                    :is_news_dump
                )
                ON CONFLICT(chat_id, id) DO UPDATE SET
                    from_user_id = excluded.from_user_id,
                    username = excluded.username,
                    display_name = excluded.display_name,
                    text = excluded.text,
                    date_utc = excluded.date_utc,
                    reply_to_message_id = excluded.reply_to_message_id,
                    is_forwarded = excluded.is_forwarded,
                    forward_origin_type = excluded.forward_origin_type,
                    forward_from_name = excluded.forward_from_name,
                    is_news_dump = excluded.is_news_dump
            """, rows)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Cannot save messages: {e}")

        return len(rows)

    # Search

    def search_by_vector(
        self,
        query_vector: np.ndarray,
        chat_id: int,
        limit: int = 20,
        include_question_embeddings: bool = True,
    ) -> List[SearchResult]:
        """Vector similarity search (cosine, embeddings are stored normalized)."""
        where = "e.chat_id = ?"
        if not include_question_embeddings:
            where += " AND e.chunk_index >= 0"

        rows = self._query(f"""
            SELECT e.chat_id, e.message_id, e.chunk_index, e.chunk_text, e.embedding,
                   e.is_question, e.metadata, m.is_news_dump
            FROM message_embeddings e
            LEFT JOIN messages m ON m.chat_id = e.chat_id AND m.id = e.message_id
            WHERE {where}
        """, (chat_id,))

        if not rows:
            return []

        similarities = self._cosine(query_vector, [row['embedding'] for row in rows])
        order = np.argsort(-similarities, kind='stable')[:limit]

        return [
            SearchResult(
                chat_id=rows[i]['chat_id'],
                message_id=rows[i]['message_id'],
                chunk_index=rows[i]['chunk_index'],
                chunk_text=rows[i]['chunk_text'],
                similarity=float(similarities[i]),
                is_news_dump=bool(rows[i]['is_news_dump']),
                is_question_embedding=bool(rows[i]['is_question']),
                metadata=json.loads(rows[i]['metadata'] or '{}'),
            )
            for i in order
        ]

    def search_by_text(
        self,
        keywords: List[str],
        chat_id: int,
        limit: int = 20,
        query_vector: Optional[np.ndarray] = None,
    ) -> List[SearchResult]:
        """Full-text search ranked by bm25."""
        match = _fts_query(keywords)
        if not match:
            return []

        rows = self._query(f"""
            SELECT m.chat_id, m.id, m.text, m.is_news_dump, e.embedding
            FROM (
                SELECT rowid, bm25(messages_fts) AS score
                FROM messages_fts
                WHERE messages_fts MATCH ?
            ) hits
            JOIN messages m ON m.rowid = hits.rowid
            LEFT JOIN message_embeddings e
                ON e.chat_id = m.chat_id AND e.message_id = m.id AND e.chunk_index = 0
            WHERE m.chat_id = ? AND {_has_text("m.text")}
            ORDER BY hits.score ASC, m.id ASC
            LIMIT ?
        """, (match, chat_id, limit))

        results = []
        for i, row in enumerate(rows, 1):
            if query_vector is None:
                similarity = 1.0 / (i + 1)  # Rank-based score
            elif row['embedding'] is not None:
                similarity = float(self._cosine(query_vector, [row['embedding']])[0])
            else:
                similarity = 0.0

            results.append(SearchResult(
                chat_id=row['chat_id'],
                message_id=row['id'],
                chunk_text=row['text'],
                similarity=similarity,
                is_news_dump=bool(row['is_news_dump']),
                metadata={'matched_on': 'text'},
            ))

        return results

    def search_context_by_vector(
        self,
        query_vector: np.ndarray,
        chat_id: int,
        limit: int = 10,
    ) -> List[SearchResult]:
        rows = self._query("""
            SELECT chat_id, center_message_id, window_start_id, window_end_id,
                   message_ids, context_text, embedding
            FROM context_embeddings
            WHERE chat_id = ?
        """, (chat_id,))

        if not rows:
            return []

        similarities = self._cosine(query_vector, [row['embedding'] for row in rows])
        order = np.argsort(-similarities, kind='stable')[:limit]

        return [
            SearchResult(
                chat_id=rows[i]['chat_id'],
                message_id=rows[i]['center_message_id'],
                chunk_text=rows[i]['context_text'],
                similarity=float(similarities[i]),
                is_context_window=True,
                metadata={
                    'window_start_id': rows[i]['window_start_id'],
                    'window_end_id': rows[i]['window_end_id'],
                    'message_ids': json.loads(rows[i]['message_ids']),
                },
            )
            for i in order
        ]

    def get_message_window(
        self,
        chat_id: int,
        message_id: int,
        before: int,
        after: int,
    ) -> List[ContextMessage]:
        target = self._query(f"""
            SELECT * FROM messages WHERE chat_id = ? AND id = ? AND {HAS_TEXT}
        """, (chat_id, message_id))
        if not target:
            return []

        anchor = target[0]
        preceding = self._query(f"""
            SELECT * FROM messages
            WHERE chat_id = ? AND {HAS_TEXT}
              AND (date_utc < ? OR (date_utc = ? AND id < ?))
            ORDER BY date_utc DESC, id DESC
            LIMIT ?
        """, (chat_id, anchor['date_utc'], anchor['date_utc'], message_id, max(0, before)))
        following = self._query(f"""
            SELECT * FROM messages
            WHERE chat_id = ? AND {HAS_TEXT}
              AND (date_utc > ? OR (date_utc = ? AND id > ?))
            ORDER BY date_utc ASC, id ASC
            LIMIT ?
        """, (chat_id, anchor['date_utc'], anchor['date_utc'], message_id, max(0, after)))

        rows = list(reversed(preceding)) + [anchor] + list(following)
        return [self._row_to_context_message(row) for row in rows]

    # Message embeddings

    def get_messages_without_embeddings(self, limit: int) -> List[MessageRecord]:
        rows = self._query(f"""
            SELECT m.* FROM messages m
            WHERE {_has_text("m.text")}
              AND NOT EXISTS (
                  SELECT 1 FROM message_embeddings e
                  WHERE e.chat_id = m.chat_id AND e.message_id = m.id AND e.chunk_index = 0
              )
            ORDER BY m.date_utc ASC, m.id ASC
            LIMIT ?
        """, (limit,))
        return [self._row_to_message(row) for row in rows]

    def upsert_embedding(
        self,
        chat_id: int,
        message_id: int,
        vector: np.ndarray,
        chunk_index: int = 0,
        chunk_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if chunk_text is None:
            rows = self._query("SELECT text FROM messages WHERE chat_id = ? AND id = ?", (chat_id, message_id))
            chunk_text = rows[0]['text'] if rows else ""

        conn = self._connect()
        try:
            conn.execute("""
                INSERT OR REPLACE INTO message_embeddings
                (chat_id, message_id, chunk_index, chunk_text, embedding, is_question, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                chat_id,
                message_id,
                chunk_index,
                chunk_text,
                _encode_vector(_unit(vector)),
                int(chunk_index < 0),
                json.dumps(metadata or {}, ensure_ascii=False),
            ))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Cannot store embedding for {chat_id}/{message_id}: {e}")

    def upsert_embeddings_batch(self, items: List[Tuple[MessageRecord, np.ndarray]]) -> int:
        rows = [
            (m.chat_id, m.id, 0, m.text, _encode_vector(_unit(vector)), 0, '{}')
            for m, vector in items
        ]
        if not rows:
            return 0

        conn = self._connect()
        try:
            conn.executemany("""
                INSERT OR REPLACE INTO message_embeddings
                (chat_id, message_id, chunk_index, chunk_text, embedding, is_question, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, rows)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Cannot store embedding batch: {e}")

        return len(rows)

    def get_embedding_stats(self) -> IndexingStats:
        total = self._query(f"SELECT COUNT(*) AS count FROM messages WHERE {HAS_TEXT}")[0]['count']
        indexed = self._query(f"""
            SELECT COUNT(*) AS count FROM messages m
            WHERE {_has_text("m.text")}
              AND EXISTS (
                  SELECT 1 FROM message_embeddings e
                  WHERE e.chat_id = m.chat_id AND e.message_id = m.id AND e.chunk_index = 0
              )
        """)[0]['count']
        return IndexingStats.from_counts(total, indexed)

    # Context embeddings

    def get_messages_for_windows(
        self,
        chat_id: int,
        after_message_id: Optional[int],
        limit: int,
        min_text_length: int = 5,
    ) -> List[WindowMessage]:
        rows = self._query("""
            SELECT * FROM messages
            WHERE chat_id = ? AND id > ? AND text IS NOT NULL AND LENGTH(text) > ?
            ORDER BY date_utc ASC, id ASC
            LIMIT ?
        """, (chat_id, after_message_id if after_message_id is not None else -1, min_text_length, limit))
        return [self._row_to_context_message(row) for row in rows]

    def get_last_context_center_id(self, chat_id: int) -> Optional[int]:
        rows = self._query(
            "SELECT MAX(center_message_id) AS last_id FROM context_embeddings WHERE chat_id = ?",
            (chat_id,),
        )
        return rows[0]['last_id'] if rows else None

    def context_embedding_exists(self, chat_id: int, center_message_id: int) -> bool:
        rows = self._query(
            "SELECT 1 FROM context_embeddings WHERE chat_id = ? AND center_message_id = ?",
            (chat_id, center_message_id),
        )
        return bool(rows)

    def store_context_embedding(
        self,
        window: MessageWindow,
        context_text: str,
        vector: np.ndarray,
    ) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                INSERT INTO context_embeddings
                (chat_id, center_message_id, window_start_id, window_end_id, message_ids, context_text, embedding)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_id, center_message_id) DO UPDATE SET
                    window_start_id = excluded.window_start_id,
                    window_end_id = excluded.window_end_id,
                    message_ids = excluded.message_ids,
                    context_text = excluded.context_text,
                    embedding = excluded.embedding,
                    created_at = CURRENT_TIMESTAMP
            """, (
                window.chat_id,
                window.center_message_id,
                window.window_start_id,
                window.window_end_id,
                json.dumps([m.message_id for m in window.messages]),
                context_text,
                _encode_vector(_unit(vector)),
            ))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Cannot store context window {window.chat_id}/{window.center_message_id}: {e}")

    def set_context_progress(
        self,
        chat_id: int,
        last_message_id: int,
        resume_after_id: Optional[int] = None,
    ) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                INSERT INTO context_progress (chat_id, last_message_id, resume_after_id) VALUES (?, ?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET
                    last_message_id = MAX(last_message_id, excluded.last_message_id),
                    resume_after_id = COALESCE(
                        MAX(resume_after_id, excluded.resume_after_id),
                        resume_after_id,
                        excluded.resume_after_id
                    ),
                    updated_at = CURRENT_TIMESTAMP
            """, (chat_id, last_message_id, resume_after_id))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Cannot update context progress for chat {chat_id}: {e}")

    def get_context_resume_id(self, chat_id: int) -> Optional[int]:
        rows = self._query("SELECT resume_after_id FROM context_progress WHERE chat_id = ?", (chat_id,))
        return rows[0]['resume_after_id'] if rows else None

    def get_stale_context_chat_ids(self) -> List[int]:
        rows = self._query(f"SELECT DISTINCT m.chat_id {STALE_CONTEXT_CHATS} ORDER BY m.chat_id")
        return [row['chat_id'] for row in rows]

    def get_context_stats(self) -> IndexingStats:
        """A chat is indexed when no eligible message is newer than its progress marker."""
        total = self._query("SELECT COUNT(DISTINCT chat_id) AS count FROM messages")[0]['count']
        stale = self._query(f"SELECT COUNT(DISTINCT m.chat_id) AS count {STALE_CONTEXT_CHATS}")[0]['count']
        return IndexingStats.from_counts(total, total - stale)

    def get_statistics(self) -> dict:
        """Return storage statistics."""
        stats = {}
        stats['total_messages'] = self._query("SELECT COUNT(*) AS count FROM messages")[0]['count']
        stats['total_chats'] = self._query("SELECT COUNT(DISTINCT chat_id) AS count FROM messages")[0]['count']
        stats['message_embeddings'] = self._query(
            "SELECT COUNT(*) AS count FROM message_embeddings WHERE chunk_index >= 0"
        )[0]['count']
        stats['question_embeddings'] = self._query(
            "SELECT COUNT(*) AS count FROM message_embeddings WHERE chunk_index < 0"
        )[0]['count']
        stats['context_embeddings'] = self._query("SELECT COUNT(*) AS count FROM context_embeddings")[0]['count']
        stats['news_dumps'] = self._query("SELECT COUNT(*) AS count FROM messages WHERE is_news_dump = 1")[0]['count']
        stats['size_mb'] = (
            self.database_path.stat().st_size / 1024 / 1024 if self.database_path.exists() else 0
        )
        return stats

    def close(self) -> None:
        """Close every per-thread connection."""
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    @staticmethod
    def _cosine(query_vector: np.ndarray, blobs: List[bytes]) -> np.ndarray:
        query = _unit(query_vector)
        matrix = np.vstack([_decode_vector(blob) for blob in blobs])
        if matrix.shape[1] != query.shape[0]:
            raise StoreError(
                f"Embedding dimension mismatch: query has {query.shape[0]}, store has {matrix.shape[1]}"
            )
        return matrix @ query

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            chat_id=row['chat_id'],
            id=row['id'],
            text=row['text'] or "",
            date_utc=_from_db_date(row['date_utc']),
            from_user_id=row['from_user_id'],
            username=row['username'],
            display_name=row['display_name'],
            reply_to_message_id=row['reply_to_message_id'],
            is_forwarded=bool(row['is_forwarded']),
            forward_origin_type=row['forward_origin_type'],
            forward_from_name=row['forward_from_name'],
        )

    @classmethod
    def _row_to_context_message(cls, row: sqlite3.Row) -> ContextMessage:
        message = cls._row_to_message(row)
        return ContextMessage(
            message_id=message.id,
            chat_id=message.chat_id,
            author=message.author,
            text=message.text,
            date_utc=message.date_utc,
            from_user_id=message.from_user_id,
            is_forwarded=message.is_forwarded,
            forward_origin_type=message.forward_origin_type,
            forward_from_name=message.forward_from_name,
        )
