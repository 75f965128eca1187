"""
Automation repository - reads and writes for the automation tables.

Every query goes through the pool handle passed to the constructor; rows are
decoded into biosynth.automation.models types before they leave this module.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from typing import Any

from biosynth.automation.models import (
    AlgorithmRecord,
    AlgorithmType,
    AnalysisType,
    AutomationLogEntry,
    Problem,
    StoredAlgorithm,
)
from biosynth.config import SYSTEM_USER_EMAIL, SYSTEM_USER_NAME, SYSTEM_USER_ROLE
from biosynth.infrastructure.database import DatabaseConnectionPool, retry_on_db_lock
from biosynth.observability.logging import get_logger

logger = get_logger(__name__)

_ALGORITHM_COLUMNS = """
    a.id, a.user_id, a.name, a.inspiration, a.domain, a.description, a.principle,
    a.steps, a.applications, a.pseudo_code, a.tags, a.type, a.parent_ids,
    a.visibility, a.like_count, a.view_count, a.created_at
"""

# Pool visible to automation: public algorithms plus the system user's own
_VISIBLE_TO_SYSTEM = "(a.visibility = 'public' OR a.user_id = (SELECT id FROM users WHERE email = ?))"


def _days_ago(days: int) -> str:
    return f"-{int(days)} days"


class AutomationRepository:
    """
    Persistence for the automation pipeline.

    Inserting an algorithm and logging it are separate statements on purpose:
    a crash between the two leaves the algorithm without a log row, which is
    acceptable for best-effort logs.
    """

    def __init__(self, pool: DatabaseConnectionPool, system_email: str = SYSTEM_USER_EMAIL):
        self.pool = pool
        self.system_email = system_email

    # ------------------------------------------------------------------
    # System user
    # ------------------------------------------------------------------

    @retry_on_db_lock()
    def ensure_system_user(self) -> int:
        """
        Id of the system user, creating it on first use.

        Side Effects:
            - Inserts a users row if none exists for the system email
        """
        # Random, never-disclosed secret: the system account cannot log in
        password_hash = hashlib.sha256(secrets.token_bytes(32)).hexdigest()

        with self.pool.transaction() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO users (email, password_hash, name, role) VALUES (?, ?, ?, ?)",
                (self.system_email, password_hash, SYSTEM_USER_NAME, SYSTEM_USER_ROLE),
            )
            if cursor.rowcount:
                logger.info("Created system user %s", self.system_email)
            row = conn.execute(
                "SELECT id FROM users WHERE email = ?", (self.system_email,)
            ).fetchone()

        return int(row["id"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_problem_candidates(self, limit: int) -> list[Problem]:
        """Most recent open problems with high or critical priority."""
        with self.pool.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, title, description, domain, category, priority, status
                FROM problems
                WHERE status IN ('draft', 'active')
                  AND priority IN ('high', 'critical')
                ORDER BY CASE priority WHEN 'critical' THEN 2 ELSE 1 END DESC,
                         created_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [Problem.from_row(row) for row in rows]

    def get_algorithm(self, algorithm_id: int) -> StoredAlgorithm | None:
        with self.pool.connection() as conn:
            row = conn.execute(
                f"SELECT {_ALGORITHM_COLUMNS} FROM algorithms a WHERE a.id = ?",
                (algorithm_id,),
            ).fetchone()
        return StoredAlgorithm.from_row(row) if row else None

    def top_algorithms(self, limit: int) -> list[StoredAlgorithm]:
        """Visible algorithms ranked by likes*2 + views + avg score*10."""
        with self.pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ALGORITHM_COLUMNS},
                       COALESCE(s.avg_score, 0) AS avg_score
                FROM algorithms a
                LEFT JOIN (
                    SELECT algorithm_id, AVG(overall_score) AS avg_score
                    FROM algorithm_scores
                    GROUP BY algorithm_id
                ) s ON s.algorithm_id = a.id
                WHERE {_VISIBLE_TO_SYSTEM}
                ORDER BY (a.like_count * 2 + a.view_count + COALESCE(s.avg_score, 0) * 10) DESC,
                         a.id ASC
                LIMIT ?
                """,
                (self.system_email, limit),
            ).fetchall()
        return [StoredAlgorithm.from_row(row) for row in rows]

    def unanalyzed_algorithms(self, limit: int, interval_days: int) -> list[StoredAlgorithm]:
        """Visible algorithms with no analysis row newer than interval_days."""
        with self.pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ALGORITHM_COLUMNS}
                FROM algorithms a
                WHERE NOT EXISTS (
                    SELECT 1 FROM algorithm_analysis aa
                    WHERE aa.algorithm_id = a.id
                      AND aa.created_at >= datetime('now', ?)
                )
                AND {_VISIBLE_TO_SYSTEM}
                ORDER BY a.created_at DESC, a.id DESC
                LIMIT ?
                """,
                (_days_ago(interval_days), self.system_email, limit),
            ).fetchall()
        return [StoredAlgorithm.from_row(row) for row in rows]

    def list_system_algorithms(self, limit: int, offset: int = 0) -> list[StoredAlgorithm]:
        with self.pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ALGORITHM_COLUMNS}
                FROM algorithms a
                JOIN users u ON a.user_id = u.id
                WHERE u.email = ?
                ORDER BY a.created_at DESC, a.id DESC
                LIMIT ? OFFSET ?
                """,
                (self.system_email, limit, offset),
            ).fetchall()
        return [StoredAlgorithm.from_row(row) for row in rows]

    def count_recent_system_algorithms(self, days: int) -> int:
        with self.pool.connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS count
                FROM algorithms a
                JOIN users u ON a.user_id = u.id
                WHERE u.email = ? AND a.created_at >= datetime('now', ?)
                """,
                (self.system_email, _days_ago(days)),
            ).fetchone()
        return int(row["count"])

    def task_statistics(self, days: int) -> list[dict[str, Any]]:
        """Log counts per (task_type, status) over the last `days` days."""
        with self.pool.connection() as conn:
            rows = conn.execute(
                """
                SELECT task_type, status, COUNT(*) AS count, MAX(created_at) AS last_run
                FROM automation_logs
                WHERE created_at >= datetime('now', ?)
                GROUP BY task_type, status
                ORDER BY last_run DESC
                """,
                (_days_ago(days),),
            ).fetchall()
        return [
            {
                "taskType": row["task_type"],
                "status": row["status"],
                "count": int(row["count"]),
                "lastRun": row["last_run"],
            }
            for row in rows
        ]

    def list_logs(
        self,
        task_type: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AutomationLogEntry]:
        query = "SELECT * FROM automation_logs WHERE 1=1"
        params: list[Any] = []
        if task_type:
            query += " AND task_type = ?"
            params.append(task_type)
        if status:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self.pool.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [AutomationLogEntry.from_row(row) for row in rows]

    def recent_logs(self, limit: int) -> list[AutomationLogEntry]:
        return self.list_logs(limit=limit)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @retry_on_db_lock()
    def save_algorithm(self, user_id: int, record: AlgorithmRecord, visibility: str = "public") -> int:
        """
        Insert an algorithm and return its id.

        Side Effects:
            - Inserts one algorithms row (list fields stored as JSON arrays)
        """
        with self.pool.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO algorithms (
                    user_id, name, inspiration, domain, description, principle,
                    steps, applications, pseudo_code, tags, type, parent_ids, visibility
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    record.name,
                    record.inspiration,
                    record.domain,
                    record.description,
                    record.principle,
                    json.dumps(record.steps),
                    json.dumps(record.applications),
                    record.pseudo_code,
                    json.dumps(record.tags),
                    AlgorithmType(record.type).value,
                    json.dumps(record.parent_ids) if record.parent_ids else None,
                    visibility,
                ),
            )
            algorithm_id = int(cursor.lastrowid)

        logger.info("Saved %s algorithm %d: %s", AlgorithmType(record.type).value, algorithm_id, record.name)
        return algorithm_id

    @retry_on_db_lock()
    def save_analysis(
        self, algorithm_id: int, analysis_type: AnalysisType, result: dict[str, Any]
    ) -> int:
        """
        Side Effects:
            - Inserts one algorithm_analysis row
        """
        with self.pool.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO algorithm_analysis (algorithm_id, analysis_type, result) VALUES (?, ?, ?)",
                (algorithm_id, AnalysisType(analysis_type).value, json.dumps(result)),
            )
            return int(cursor.lastrowid)

    @retry_on_db_lock()
    def log_activity(self, entry: AutomationLogEntry) -> int:
        """
        Append one automation_logs row.

        Side Effects:
            - Inserts one automation_logs row
        """
        with self.pool.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO automation_logs (task_type, status, details, algorithm_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entry.task_type.value,
                    entry.status.value,
                    json.dumps(entry.details, default=str),
                    entry.algorithm_id,
                    entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                ),
            )
            return int(cursor.lastrowid)
