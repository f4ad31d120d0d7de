"""
Revision Repository - SQLite persistence for documents, versions and jobs.

Every piece of state the pipeline needs to resume lives here; nothing
required for progress is kept only in process memory.
"""

import sqlite3
import json
import time
from pathlib import Path
from typing import Dict, Optional, List, Any, Iterable
from datetime import datetime
from contextlib import contextmanager

from config.logging_config import get_logger
from core.models import (
    Chunk,
    Version,
    OperationJob,
    OperationKind,
    OperationStatus,
    Suggestion,
    new_id,
)

logger = get_logger(__name__)


# pipeline_jobs columns that hold JSON
_PIPELINE_JSON_COLUMNS = {
    "operations": "operations_json",
    "operation_configs": "operation_configs_json",
    "operation_results": "operation_results_json",
}

_PIPELINE_PLAIN_COLUMNS = {
    "status",
    "current_operation_index",
    "current_version_id",
    "final_version_id",
    "final_artifact_path",
    "error_message",
    "total_cost_usd",
    "total_duration_seconds",
    "started_at",
    "completed_at",
}


class RevisionRepository:
    """
    SQLite repository for the revision workflow.

    Tables: documents, chapters, versions, chunks, operation_jobs,
    job_references, pipeline_jobs, pipeline_artifacts, document_compilations.
    """

    def __init__(self, db_path: str = "data/revisions.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"RevisionRepository initialized: {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS chapters (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    chapter_order INTEGER NOT NULL,
                    current_version_id TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS versions (
                    id TEXT PRIMARY KEY,
                    chapter_id TEXT NOT NULL,
                    parent_id TEXT,
                    sequence INTEGER NOT NULL,
                    storage_path TEXT NOT NULL,
                    file_ext TEXT NOT NULL,
                    pages INTEGER DEFAULT 0,
                    chunks_count INTEGER DEFAULT 0,
                    operation_kind TEXT NOT NULL,
                    metadata_json TEXT DEFAULT '{}',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_versions_chapter
                ON versions(chapter_id);

                CREATE TABLE IF NOT EXISTS chunks (
                    version_id TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    page_from INTEGER NOT NULL,
                    page_to INTEGER NOT NULL,
                    PRIMARY KEY (version_id, chunk_index)
                );

                CREATE TABLE IF NOT EXISTS operation_jobs (
                    id TEXT PRIMARY KEY,
                    chapter_id TEXT NOT NULL,
                    version_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    config_json TEXT DEFAULT '{}',
                    status TEXT NOT NULL DEFAULT 'pending',
                    progress REAL DEFAULT 0.0,

                    -- Stored as JSON, present once completed
                    suggestions_json TEXT,
                    full_text TEXT,

                    error_message TEXT,
                    new_version_id TEXT,
                    cost_usd REAL DEFAULT 0.0,
                    usage_json TEXT DEFAULT '{}',
                    created_at REAL NOT NULL,
                    started_at REAL,
                    completed_at REAL
                );

                CREATE TABLE IF NOT EXISTS job_references (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    title TEXT,
                    source TEXT,
                    content TEXT,
                    status TEXT NOT NULL,
                    error TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_job_references_job
                ON job_references(job_id);

                CREATE TABLE IF NOT EXISTS pipeline_jobs (
                    id TEXT PRIMARY KEY,
                    chapter_id TEXT NOT NULL,
                    operations_json TEXT NOT NULL,
                    operation_configs_json TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    current_operation_index INTEGER DEFAULT 0,
                    operation_results_json TEXT DEFAULT '[]',
                    current_version_id TEXT,
                    final_version_id TEXT,
                    final_artifact_path TEXT,
                    error_message TEXT,
                    total_cost_usd REAL DEFAULT 0.0,
                    total_duration_seconds REAL,
                    created_at REAL NOT NULL,
                    started_at REAL,
                    completed_at REAL
                );

                CREATE INDEX IF NOT EXISTS idx_pipeline_jobs_status
                ON pipeline_jobs(status);

                CREATE TABLE IF NOT EXISTS pipeline_artifacts (
                    pipeline_id TEXT NOT NULL,
                    operation_index INTEGER NOT NULL,
                    operation TEXT NOT NULL,
                    storage_path TEXT NOT NULL,
                    size_bytes INTEGER DEFAULT 0,
                    version_id TEXT,
                    created_at REAL NOT NULL,
                    PRIMARY KEY (pipeline_id, operation_index)
                );

                CREATE TABLE IF NOT EXISTS document_compilations (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    storage_path TEXT NOT NULL,
                    file_ext TEXT NOT NULL,
                    total_pages INTEGER DEFAULT 0,
                    chapters_json TEXT NOT NULL,
                    options_json TEXT DEFAULT '{}',
                    created_at REAL NOT NULL,
                    UNIQUE (document_id, sequence)
                );
            """)

            logger.debug("Database schema initialized")

    # ==================== DOCUMENTS & CHAPTERS ====================

    def create_document(self, title: str) -> str:
        """Create a document and return its id."""
        document_id = new_id("doc_")
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO documents (id, title, created_at) VALUES (?, ?, ?)",
                (document_id, title, datetime.now().isoformat())
            )
        return document_id

    def get_document(self, document_id: str) -> Optional[Dict]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            return dict(row) if row else None

    def create_chapter(self, document_id: str, title: str, chapter_order: Optional[int] = None) -> str:
        """Create a chapter; order defaults to the next free position."""
        chapter_id = new_id("ch_")
        with self._get_connection() as conn:
            if chapter_order is None:
                row = conn.execute(
                    "SELECT COALESCE(MAX(chapter_order), 0) AS max_order FROM chapters WHERE document_id = ?",
                    (document_id,)
                ).fetchone()
                chapter_order = row["max_order"] + 1
            conn.execute("""
                INSERT INTO chapters (id, document_id, title, chapter_order, current_version_id, created_at)
                VALUES (?, ?, ?, ?, NULL, ?)
            """, (chapter_id, document_id, title, chapter_order, datetime.now().isoformat()))
        return chapter_id

    def get_chapter(self, chapter_id: str) -> Optional[Dict]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM chapters WHERE id = ?", (chapter_id,)
            ).fetchone()
            return dict(row) if row else None

    def list_chapters(self, document_id: str) -> List[Dict]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM chapters WHERE document_id = ? ORDER BY chapter_order ASC",
                (document_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    # ==================== VERSIONS & CHUNKS ====================

    def insert_version(self, version: Version, chunks: Iterable[Chunk], make_current: bool = True) -> None:
        """Insert a version row and its chunks in one transaction."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO versions (
                    id, chapter_id, parent_id, sequence, storage_path, file_ext,
                    pages, chunks_count, operation_kind, metadata_json, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                version.id,
                version.chapter_id,
                version.parent_id,
                version.sequence,
                version.storage_path,
                version.file_ext,
                version.pages,
                version.chunks_count,
                version.operation_kind,
                json.dumps(version.metadata or {}),
                version.created_at or datetime.now().isoformat(),
            ))
            conn.executemany("""
                INSERT INTO chunks (version_id, chunk_index, text, page_from, page_to)
                VALUES (?, ?, ?, ?, ?)
            """, [
                (c.version_id, c.chunk_index, c.text, c.page_from, c.page_to)
                for c in chunks
            ])
            if make_current:
                conn.execute(
                    "UPDATE chapters SET current_version_id = ? WHERE id = ?",
                    (version.id, version.chapter_id)
                )

    def get_version(self, version_id: str) -> Optional[Version]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM versions WHERE id = ?", (version_id,)
            ).fetchone()
            return self._row_to_version(row) if row else None

    def list_versions(self, chapter_id: str) -> List[Version]:
        """All versions of a chapter, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM versions WHERE chapter_id = ?
                ORDER BY sequence ASC, created_at ASC
            """, (chapter_id,)).fetchall()
            return [self._row_to_version(row) for row in rows]

    def get_chunks(self, version_id: str) -> List[Chunk]:
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM chunks WHERE version_id = ?
                ORDER BY chunk_index ASC
            """, (version_id,)).fetchall()
            return [
                Chunk(
                    version_id=row["version_id"],
                    chunk_index=row["chunk_index"],
                    text=row["text"],
                    page_from=row["page_from"],
                    page_to=row["page_to"],
                )
                for row in rows
            ]

    def _row_to_version(self, row: sqlite3.Row) -> Version:
        return Version(
            id=row["id"],
            chapter_id=row["chapter_id"],
            parent_id=row["parent_id"],
            sequence=row["sequence"],
            storage_path=row["storage_path"],
            file_ext=row["file_ext"],
            pages=row["pages"],
            chunks_count=row["chunks_count"],
            operation_kind=row["operation_kind"],
            metadata=json.loads(row["metadata_json"] or "{}"),
            created_at=row["created_at"],
        )

    # ==================== OPERATION JOBS ====================

    def save_operation_job(self, job: OperationJob) -> None:
        """Insert a new operation job."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO operation_jobs (
                    id, chapter_id, version_id, kind, config_json, status,
                    progress, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job.id,
                job.chapter_id,
                job.version_id,
                job.kind.value,
                json.dumps(job.config or {}),
                job.status.value,
                job.progress,
                job.created_at,
            ))

    def get_operation_job(self, job_id: str) -> Optional[OperationJob]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM operation_jobs WHERE id = ?", (job_id,)
            ).fetchone()
            return self._row_to_operation_job(row) if row else None

    def claim_operation_job(self, job_id: str) -> bool:
        """pending -> processing. False if the job was already started."""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                UPDATE operation_jobs
                SET status = 'processing', started_at = ?
                WHERE id = ? AND status = 'pending'
            """, (time.time(), job_id))
            return cursor.rowcount == 1

    def update_operation_progress(self, job_id: str, progress: float) -> None:
        """Progress only moves forward while processing."""
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE operation_jobs
                SET progress = MAX(progress, ?)
                WHERE id = ? AND status = 'processing'
            """, (min(100.0, max(0.0, progress)), job_id))

    def complete_operation_job(
        self,
        job_id: str,
        suggestions: List[Suggestion],
        full_text: str,
        cost_usd: float = 0.0,
        usage: Optional[Dict] = None,
    ) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE operation_jobs
                SET status = 'completed', progress = 100.0,
                    suggestions_json = ?, full_text = ?,
                    cost_usd = ?, usage_json = ?, completed_at = ?
                WHERE id = ?
            """, (
                json.dumps([s.to_dict() for s in suggestions]),
                full_text,
                cost_usd,
                json.dumps(usage or {}),
                time.time(),
                job_id,
            ))

    def fail_operation_job(self, job_id: str, error: str) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE operation_jobs
                SET status = 'error', error_message = ?, completed_at = ?
                WHERE id = ?
            """, (error, time.time(), job_id))

    def set_operation_new_version(self, job_id: str, version_id: str) -> bool:
        """Record the version produced by applying this job; only once."""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                UPDATE operation_jobs SET new_version_id = ?
                WHERE id = ? AND new_version_id IS NULL
            """, (version_id, job_id))
            return cursor.rowcount == 1

    def _row_to_operation_job(self, row: sqlite3.Row) -> OperationJob:
        suggestions = None
        if row["suggestions_json"] is not None:
            suggestions = [Suggestion.from_dict(s) for s in json.loads(row["suggestions_json"])]
        return OperationJob(
            id=row["id"],
            chapter_id=row["chapter_id"],
            version_id=row["version_id"],
            kind=OperationKind(row["kind"]),
            config=json.loads(row["config_json"] or "{}"),
            status=OperationStatus(row["status"]),
            progress=row["progress"],
            suggestions=suggestions,
            full_text=row["full_text"],
            error_message=row["error_message"],
            new_version_id=row["new_version_id"],
            cost_usd=row["cost_usd"] or 0.0,
            usage=json.loads(row["usage_json"] or "{}"),
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    # ==================== REFERENCES ====================

    def save_references(self, job_id: str, references: List[Dict]) -> None:
        with self._get_connection() as conn:
            conn.executemany("""
                INSERT INTO job_references (id, job_id, kind, title, source, content, status, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    ref["id"], job_id, ref["kind"], ref.get("title"), ref.get("source"),
                    ref.get("content"), ref["status"], ref.get("error"),
                )
                for ref in references
            ])

    def get_references(self, job_id: str) -> List[Dict]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM job_references WHERE job_id = ? ORDER BY rowid ASC",
                (job_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    # ==================== PIPELINES ====================

    def create_pipeline(self, record: Dict[str, Any]) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO pipeline_jobs (
                    id, chapter_id, operations_json, operation_configs_json,
                    status, current_operation_index, operation_results_json,
                    current_version_id, total_cost_usd, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record["id"],
                record["chapter_id"],
                json.dumps(record["operations"]),
                json.dumps(record.get("operation_configs", {})),
                record.get("status", "pending"),
                record.get("current_operation_index", 0),
                json.dumps(record.get("operation_results", [])),
                record.get("current_version_id"),
                record.get("total_cost_usd", 0.0),
                record.get("created_at", time.time()),
            ))

    def get_pipeline(self, pipeline_id: str) -> Optional[Dict]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM pipeline_jobs WHERE id = ?", (pipeline_id,)
            ).fetchone()
            return self._row_to_pipeline(row) if row else None

    def get_pipelines_by_status(self, statuses: Iterable[str]) -> List[Dict]:
        statuses = list(statuses)
        placeholders = ", ".join("?" for _ in statuses)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM pipeline_jobs WHERE status IN ({placeholders}) ORDER BY created_at ASC",
                statuses
            ).fetchall()
            return [self._row_to_pipeline(row) for row in rows]

    def update_pipeline(
        self,
        pipeline_id: str,
        expected_status: Optional[Iterable[str]] = None,
        **fields
    ) -> bool:
        """
        Update pipeline columns.

        With expected_status the write only happens while the persisted
        status is one of those values; returns whether a row changed.
        """
        assignments = []
        values: List[Any] = []
        for name, value in fields.items():
            if name in _PIPELINE_JSON_COLUMNS:
                assignments.append(f"{_PIPELINE_JSON_COLUMNS[name]} = ?")
                values.append(json.dumps(value))
            elif name in _PIPELINE_PLAIN_COLUMNS:
                assignments.append(f"{name} = ?")
                values.append(value)
            else:
                raise ValueError(f"Unknown pipeline field: {name}")

        if not assignments:
            return False

        sql = f"UPDATE pipeline_jobs SET {', '.join(assignments)} WHERE id = ?"
        values.append(pipeline_id)
        if expected_status is not None:
            expected = list(expected_status)
            sql += f" AND status IN ({', '.join('?' for _ in expected)})"
            values.extend(expected)

        with self._get_connection() as conn:
            cursor = conn.execute(sql, values)
            return cursor.rowcount == 1

    def append_operation_result(self, pipeline_id: str, result: Dict, cost_usd: float = 0.0) -> bool:
        """
        Append an operation result and add its cost in one transaction.

        Returns False (and writes nothing) if the pipeline has been cancelled.
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT status, operation_results_json, total_cost_usd FROM pipeline_jobs WHERE id = ?",
                (pipeline_id,)
            ).fetchone()
            if not row or row["status"] == "cancelled":
                return False
            results = json.loads(row["operation_results_json"] or "[]")
            results.append(result)
            conn.execute("""
                UPDATE pipeline_jobs
                SET operation_results_json = ?, total_cost_usd = ?
                WHERE id = ?
            """, (
                json.dumps(results),
                round((row["total_cost_usd"] or 0.0) + (cost_usd or 0.0), 6),
                pipeline_id,
            ))
            return True

    def _row_to_pipeline(self, row: sqlite3.Row) -> Dict:
        """Convert database row to pipeline dict."""
        return {
            "id": row["id"],
            "chapter_id": row["chapter_id"],
            "operations": json.loads(row["operations_json"]),
            "operation_configs": json.loads(row["operation_configs_json"]),
            "status": row["status"],
            "current_operation_index": row["current_operation_index"],
            "operation_results": json.loads(row["operation_results_json"] or "[]"),
            "current_version_id": row["current_version_id"],
            "final_version_id": row["final_version_id"],
            "final_artifact_path": row["final_artifact_path"],
            "error_message": row["error_message"],
            "total_cost_usd": row["total_cost_usd"] or 0.0,
            "total_duration_seconds": row["total_duration_seconds"],
            "created_at": row["created_at"],
            "started_at": row["started_at"],
            "completed_at": row["completed_at"],
        }

    # ==================== PIPELINE ARTIFACTS ====================

    def save_artifact(
        self,
        pipeline_id: str,
        operation_index: int,
        operation: str,
        storage_path: str,
        size_bytes: int,
        version_id: Optional[str] = None,
    ) -> None:
        """Record an intermediate artifact; an existing one for the index is kept."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR IGNORE INTO pipeline_artifacts (
                    pipeline_id, operation_index, operation, storage_path,
                    size_bytes, version_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (pipeline_id, operation_index, operation, storage_path, size_bytes, version_id, time.time()))

    def get_artifact(self, pipeline_id: str, operation_index: int) -> Optional[Dict]:
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT * FROM pipeline_artifacts
                WHERE pipeline_id = ? AND operation_index = ?
            """, (pipeline_id, operation_index)).fetchone()
            return dict(row) if row else None

    def list_artifacts(self, pipeline_id: str) -> List[Dict]:
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM pipeline_artifacts
                WHERE pipeline_id = ? ORDER BY operation_index ASC
            """, (pipeline_id,)).fetchall()
            return [dict(row) for row in rows]

    # ==================== COMPILATIONS ====================

    def save_compilation(self, record: Dict[str, Any]) -> int:
        """Insert a compilation with the next sequence for its document; returns the sequence."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(sequence), 0) + 1 FROM document_compilations WHERE document_id = ?",
                (record["document_id"],)
            ).fetchone()
            sequence = row[0]
            conn.execute("""
                INSERT INTO document_compilations (
                    id, document_id, sequence, storage_path, file_ext,
                    total_pages, chapters_json, options_json, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record["id"],
                record["document_id"],
                sequence,
                record["storage_path"],
                record["file_ext"],
                record.get("total_pages", 0),
                json.dumps(record.get("chapters", [])),
                json.dumps(record.get("options", {})),
                record.get("created_at", time.time()),
            ))
            return sequence

    def get_compilation(self, compilation_id: str) -> Optional[Dict]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM document_compilations WHERE id = ?", (compilation_id,)
            ).fetchone()
            return self._row_to_compilation(row) if row else None

    def list_compilations(self, document_id: str) -> List[Dict]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM document_compilations WHERE document_id = ? ORDER BY sequence ASC",
                (document_id,)
            ).fetchall()
            return [self._row_to_compilation(row) for row in rows]

    def _row_to_compilation(self, row: sqlite3.Row) -> Dict:
        data = dict(row)
        data["chapters"] = json.loads(data.pop("chapters_json") or "[]")
        data["options"] = json.loads(data.pop("options_json") or "{}")
        return data


# Singleton instance
_repository: Optional[RevisionRepository] = None


def get_repository(db_path: Optional[str] = None) -> RevisionRepository:
    """Get or create the repository singleton."""
    global _repository
    if _repository is None:
        if db_path is None:
            from config.settings import settings
            db_path = str(settings.db_path)
        _repository = RevisionRepository(db_path)
    return _repository
