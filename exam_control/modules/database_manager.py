"""
Database Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module implements the document store used by every other manager.
Documents are JSON objects grouped in named collections (users, students,
committees, envelopes, handover_logs, attendance, exam_schedule) and kept
in a single SQLite table, one row per document.

Features:
- SQLite connection management (thread-local connections)
- Collection-scoped fetch, fetch-ordered, add, set, update and delete
- Conditional (compare-and-swap) field updates
- Atomic write batches capped at a bounded operation count
- Chunked sequential commits for bulk operations
- Demo data seeding
- Error wrapping and logging
"""

import json
import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple

from exam_control.modules import models
from exam_control.modules.errors import BatchLimitExceeded, StoreWriteFailure

MAX_BATCH_OPERATIONS = 400

# (kind, collection, doc_id, payload)
Operation = Tuple[str, str, str, Optional[Dict[str, Any]]]


class WriteBatch:
    """
    Group of set/update/delete operations committed atomically.
    A batch never holds more than ``limit`` operations.
    """

    def __init__(self, database_manager, limit: int = MAX_BATCH_OPERATIONS):
        self.db = database_manager
        self.limit = limit
        self.operations: List[Operation] = []
        self.committed = False

    def __len__(self):
        return len(self.operations)

    def _append(self, operation: Operation) -> 'WriteBatch':
        if len(self.operations) >= self.limit:
            raise BatchLimitExceeded(limit=self.limit)
        self.operations.append(operation)
        return self

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> 'WriteBatch':
        return self._append(('set', collection, doc_id, data))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> 'WriteBatch':
        return self._append(('update', collection, doc_id, fields))

    def delete(self, collection: str, doc_id: str) -> 'WriteBatch':
        return self._append(('delete', collection, doc_id, None))

    def commit(self) -> int:
        """
        Apply every queued operation in one transaction.

        Returns:
            int: Number of operations applied
        """
        if self.committed:
            raise StoreWriteFailure('لا يمكن تنفيذ الدفعة مرتين')
        self.db.apply_operations(self.operations)
        self.committed = True
        return len(self.operations)


class DatabaseManager:
    """
    Document store over SQLite. Every public operation wraps persistence
    errors in StoreWriteFailure so callers see a single error kind.
    """

    def __init__(self, db_path, batch_limit: int = MAX_BATCH_OPERATIONS):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file, or ':memory:'
            batch_limit (int): Maximum operations per atomic batch
        """
        self.db_path = str(db_path)
        self.batch_limit = batch_limit
        self.commit_count = 0
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        if self.db_path != ':memory:':
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row

        try:
            yield self._local.connection
        except sqlite3.Error as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise StoreWriteFailure(details=str(e)) from e

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback on error.

        Yields:
            sqlite3.Cursor: Cursor bound to the open transaction
        """
        with self.get_connection() as conn:
            try:
                yield conn.cursor()
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.logger.error(f"Transaction rolled back: {str(e)}")
                raise

    def initialize_database(self):
        """Create the documents table. Idempotent."""
        with self.transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection VARCHAR(50) NOT NULL,
                    doc_id VARCHAR(64) NOT NULL,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (collection, doc_id)
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)")
        self.logger.info("Database initialized successfully")

    @staticmethod
    def new_document_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _row_to_document(row) -> Dict[str, Any]:
        document = json.loads(row['data'])
        document['id'] = row['doc_id']
        return document

    # Reads

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        """
        Fetch every document of a collection in insertion order.

        Args:
            collection (str): Collection name

        Returns:
            List[Dict[str, Any]]: Documents, each with its 'id'
        """
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT doc_id, data FROM documents WHERE collection = ? ORDER BY rowid",
                (collection,)
            ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def fetch_ordered(self, collection: str, field: str,
                      descending: bool = False) -> List[Dict[str, Any]]:
        """
        Fetch every document of a collection ordered by one field.

        Args:
            collection (str): Collection name
            field (str): Document field to order by
            descending (bool): Reverse the order

        Returns:
            List[Dict[str, Any]]: Ordered documents
        """
        direction = 'DESC' if descending else 'ASC'
        with self.get_connection() as conn:
            rows = conn.execute(
                f"""SELECT doc_id, data FROM documents WHERE collection = ?
                    ORDER BY json_extract(data, ?) {direction}, rowid {direction}""",
                (collection, f'$.{field}')
            ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT doc_id, data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id)
            ).fetchone()
        return self._row_to_document(row) if row else None

    def count(self, collection: str) -> int:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
            ).fetchone()
        return row[0]

    # Single-document writes

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        """
        Add a document under a freshly assigned id.

        Returns:
            str: The new document id
        """
        doc_id = self.new_document_id()
        self.set_document(collection, doc_id, data)
        return doc_id

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or overwrite the document stored under an explicit id."""
        with self.transaction() as cursor:
            self._set(cursor, collection, doc_id, data)

    def update_fields(self, collection: str, doc_id: str, fields: Dict[str, Any],
                      expected: Optional[Dict[str, Any]] = None) -> bool:
        """
        Partially update a document.

        Args:
            collection (str): Collection name
            doc_id (str): Document id
            fields (Dict[str, Any]): Fields to overwrite
            expected (Dict[str, Any]): Field values the stored document must
                still hold for the update to apply

        Returns:
            bool: False when an expected value did not match, True otherwise
        """
        with self.transaction() as cursor:
            current = self._load(cursor, collection, doc_id)
            if expected:
                for key, value in expected.items():
                    if current.get(key) != value:
                        self.logger.warning(
                            f"Conditional update rejected for {collection}/{doc_id}: "
                            f"{key}={current.get(key)!r}, expected {value!r}"
                        )
                        return False
            current.update(fields)
            self._set(cursor, collection, doc_id, current)
        return True

    def delete_document(self, collection: str, doc_id: str) -> None:
        with self.transaction() as cursor:
            cursor.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id)
            )

    # Batches

    def batch(self) -> WriteBatch:
        return WriteBatch(self, self.batch_limit)

    def apply_operations(self, operations: Iterable[Operation]) -> None:
        """Apply a list of operations in a single transaction."""
        operations = list(operations)
        with self.transaction() as cursor:
            for kind, collection, doc_id, payload in operations:
                if kind == 'set':
                    self._set(cursor, collection, doc_id, payload)
                elif kind == 'update':
                    current = self._load(cursor, collection, doc_id)
                    current.update(payload)
                    self._set(cursor, collection, doc_id, current)
                elif kind == 'delete':
                    cursor.execute(
                        "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                        (collection, doc_id)
                    )
                else:
                    raise StoreWriteFailure(details=f'Unknown operation: {kind}')
        self.commit_count += 1
        self.logger.debug(f"Committed batch of {len(operations)} operations")

    def commit_in_chunks(self, operations: List[Operation],
                         chunk_size: Optional[int] = None) -> int:
        """
        Commit a long list of operations as sequential independent batches.
        A failure leaves earlier chunks committed and later chunks unattempted.

        Args:
            operations (List[Operation]): Operations to apply
            chunk_size (int): Operations per batch, capped at the batch limit

        Returns:
            int: Number of batch commits issued
        """
        size = min(chunk_size or self.batch_limit, self.batch_limit)
        commits = 0
        for start in range(0, len(operations), size):
            batch = self.batch()
            for kind, collection, doc_id, payload in operations[start:start + size]:
                if kind == 'set':
                    batch.set(collection, doc_id, payload)
                elif kind == 'update':
                    batch.update(collection, doc_id, payload)
                else:
                    batch.delete(collection, doc_id)
            batch.commit()
            commits += 1
            self.logger.info(f"Committed chunk {commits}: {len(batch)} operations")
        return commits

    # Internal helpers

    def _load(self, cursor, collection: str, doc_id: str) -> Dict[str, Any]:
        row = cursor.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id)
        ).fetchone()
        if row is None:
            raise StoreWriteFailure(details=f'No document {collection}/{doc_id}')
        return json.loads(row['data'])

    def _set(self, cursor, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        payload = dict(data)
        payload['id'] = doc_id
        cursor.execute(
            """INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)
               ON CONFLICT(collection, doc_id)
               DO UPDATE SET data = excluded.data, updated_at = CURRENT_TIMESTAMP""",
            (collection, doc_id, json.dumps(payload, ensure_ascii=False))
        )

    def seed_demo_data(self) -> bool:
        """
        Insert the demo roster when the store holds no users.

        Returns:
            bool: True if demo data was inserted
        """
        if self.count(models.USERS) > 0:
            return False

        operations: List[Operation] = []
        for user in DEMO_USERS:
            operations.append(('set', models.USERS, user['id'], user))
        for student in DEMO_STUDENTS:
            operations.append(('set', models.STUDENTS, student['id'], student))
        for committee in DEMO_COMMITTEES:
            operations.append(('set', models.COMMITTEES, committee['id'], committee))
        for envelope in DEMO_ENVELOPES:
            operations.append(('set', models.ENVELOPES, envelope['id'], envelope))

        self.apply_operations(operations)
        self.logger.info("Demo data inserted successfully")
        return True

    def close_all_connections(self):
        """Close the connection held by the current thread."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            del self._local.connection


DEMO_USERS = [
    {'id': 'u1', 'name': 'أ. محمد الغامدي', 'role': 'ADMIN', 'barcode': 'USR-001'},
    {'id': 'u2', 'name': 'أ. فهد العتيبي', 'role': 'TEACHER', 'barcode': 'TCH-101'},
    {'id': 'u3', 'name': 'أ. خالد الدوسري', 'role': 'TEACHER', 'barcode': 'TCH-102'},
    {'id': 'u4', 'name': 'أ. صالح العمري', 'role': 'COUNSELOR', 'barcode': 'CNS-201'},
]

DEMO_STUDENTS = [
    {'id': 's1', 'name': 'سلطان القحطاني', 'nationalId': '1001234567', 'grade': 'الثالث ثانوي', 'class': 'أ', 'parentPhone': '0500000001'},
    {'id': 's2', 'name': 'فيصل المطيري', 'nationalId': '1001234568', 'grade': 'الثالث ثانوي', 'class': 'أ', 'parentPhone': '0500000002'},
    {'id': 's3', 'name': 'عبدالله السبيعي', 'nationalId': '1001234569', 'grade': 'الثالث ثانوي', 'class': 'أ', 'parentPhone': '0500000003'},
    {'id': 's4', 'name': 'ياسر الحربي', 'nationalId': '1001234570', 'grade': 'الثالث ثانوي', 'class': 'ب', 'parentPhone': '0500000004'},
    {'id': 's5', 'name': 'ماجد العنزي', 'nationalId': '1001234571', 'grade': 'الثالث ثانوي', 'class': 'ب', 'parentPhone': '0500000005'},
]

DEMO_COMMITTEES = [
    {'id': 'c1', 'name': 'لجنة (1) - قاعة المتنبي', 'location': 'الدور الأول'},
    {'id': 'c2', 'name': 'لجنة (2) - قاعة الخوارزمي', 'location': 'الدور الثاني'},
]

DEMO_ENVELOPES = [
    {'id': 'e1', 'subject': 'الرياضيات', 'grade': 'الثالث ثانوي', 'date': '2023-10-20', 'barcode': 'ENV-MATH-101', 'committeeId': 'c1', 'status': 'STORAGE'},
    {'id': 'e2', 'subject': 'الفيزياء', 'grade': 'الثالث ثانوي', 'date': '2023-10-22', 'barcode': 'ENV-PHYS-102', 'committeeId': 'c1', 'status': 'STORAGE'},
    {'id': 'e3', 'subject': 'الرياضيات', 'grade': 'الثالث ثانوي', 'date': '2023-10-20', 'barcode': 'ENV-MATH-103', 'committeeId': 'c2', 'status': 'STORAGE'},
]
