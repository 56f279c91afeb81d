"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import (
    ApprovalRecord,
    ApprovalStatus,
    StepRecord,
    WorkflowState,
    WorkflowStatus,
    utcnow,
)
from .repository import WorkflowRepository

_WORKFLOW_COLUMNS = (
    "id, workflow_type, team_id, agent_id, current_node, status, state_data, "
    "pause_reason, paused_at, resumed_at, completed_at, created_at, updated_at"
)
_APPROVAL_COLUMNS = (
    "id, workflow_id, team_id, title, content_preview, full_content, source_name, "
    "urgency, status, created_at, resolved_at, resolved_by, rejection_reason"
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_states (
                id TEXT PRIMARY KEY,
                workflow_type TEXT NOT NULL,
                team_id TEXT,
                agent_id TEXT,
                current_node TEXT NOT NULL,
                status TEXT NOT NULL,
                state_data TEXT NOT NULL,
                pause_reason TEXT,
                paused_at TEXT,
                resumed_at TEXT,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT,
                status TEXT,
                output TEXT,
                error TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS approvals (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                team_id TEXT,
                title TEXT NOT NULL,
                content_preview TEXT,
                full_content TEXT,
                source_name TEXT,
                urgency TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                resolved_at TEXT,
                resolved_by TEXT,
                rejection_reason TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_state(row: sqlite3.Row) -> WorkflowState:
        data = dict(row)
        data["state_data"] = json.loads(data["state_data"]) if data["state_data"] else {}
        return WorkflowState.model_validate(data)

    @staticmethod
    def _to_approval(row: sqlite3.Row) -> ApprovalRecord:
        return ApprovalRecord.model_validate(dict(row))

    # ------------------------------------------------------------------
    # Workflow states
    async def create_workflow(self, state: WorkflowState) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO workflow_states ({_WORKFLOW_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            state.id,
            state.workflow_type,
            state.team_id,
            state.agent_id,
            state.current_node,
            state.status.value,
            json.dumps(state.state_data),
            state.pause_reason,
            _iso(state.paused_at),
            _iso(state.resumed_at),
            _iso(state.completed_at),
            _iso(state.created_at),
            _iso(state.updated_at),
        )

    async def save_workflow(self, state: WorkflowState) -> None:
        state.updated_at = utcnow()
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_states
            SET current_node = ?, status = ?, state_data = ?, pause_reason = ?,
                paused_at = ?, resumed_at = ?, completed_at = ?, updated_at = ?
            WHERE id = ?
            """,
            state.current_node,
            state.status.value,
            json.dumps(state.state_data),
            state.pause_reason,
            _iso(state.paused_at),
            _iso(state.resumed_at),
            _iso(state.completed_at),
            _iso(state.updated_at),
            state.id,
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowState | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_WORKFLOW_COLUMNS} FROM workflow_states WHERE id = ?",
            workflow_id,
        )
        return self._to_state(row) if row else None

    async def list_workflows(
        self, team_id: str | None = None, status: WorkflowStatus | None = None
    ) -> list[WorkflowState]:
        query = f"SELECT {_WORKFLOW_COLUMNS} FROM workflow_states WHERE 1 = 1"
        params: list[Any] = []
        if team_id is not None:
            query += " AND team_id = ?"
            params.append(team_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        rows = await asyncio.to_thread(
            self._fetchall, query + " ORDER BY created_at", *params
        )
        return [self._to_state(r) for r in rows]

    async def compare_and_set_status(
        self, workflow_id: str, expected: WorkflowStatus, new: WorkflowStatus
    ) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_states SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            new.value,
            utcnow().isoformat(),
            workflow_id,
            expected.value,
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Step history
    async def mark_step_started(self, workflow_id: str, step_name: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO step_history (workflow_id, step_name, started_at) VALUES (?, ?, ?)",
            workflow_id,
            step_name,
            utcnow().isoformat(),
        )

    async def mark_step_completed(
        self,
        workflow_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE step_history
            SET completed_at = ?, status = ?, output = ?, error = ?
            WHERE id = (
                SELECT MAX(id) FROM step_history
                WHERE workflow_id = ? AND step_name = ? AND completed_at IS NULL
            )
            """,
            utcnow().isoformat(),
            status,
            json.dumps(output or {}),
            error,
            workflow_id,
            step_name,
        )

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, workflow_id, step_name, started_at, completed_at, status, output, error "
            "FROM step_history WHERE workflow_id = ? ORDER BY id",
            workflow_id,
        )
        return [
            StepRecord(
                id=r["id"],
                workflow_id=r["workflow_id"],
                step_name=r["step_name"],
                started_at=datetime.fromisoformat(r["started_at"]) if r["started_at"] else None,
                completed_at=datetime.fromisoformat(r["completed_at"]) if r["completed_at"] else None,
                status=r["status"],
                output=json.loads(r["output"]) if r["output"] else None,
                error=r["error"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Approvals
    async def create_approval(self, approval: ApprovalRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO approvals ({_APPROVAL_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            approval.id,
            approval.workflow_id,
            approval.team_id,
            approval.title,
            approval.content_preview,
            approval.full_content,
            approval.source_name,
            approval.urgency.value,
            approval.status.value,
            _iso(approval.created_at),
            _iso(approval.resolved_at),
            approval.resolved_by,
            approval.rejection_reason,
        )

    async def save_approval(self, approval: ApprovalRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE approvals
            SET status = ?, resolved_at = ?, resolved_by = ?, rejection_reason = ?
            WHERE id = ?
            """,
            approval.status.value,
            _iso(approval.resolved_at),
            approval.resolved_by,
            approval.rejection_reason,
            approval.id,
        )

    async def get_approval(self, approval_id: str) -> ApprovalRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE id = ?",
            approval_id,
        )
        return self._to_approval(row) if row else None

    async def find_pending_approval(self, workflow_id: str) -> ApprovalRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE workflow_id = ? AND status = ? "
            "ORDER BY created_at LIMIT 1",
            workflow_id,
            ApprovalStatus.PENDING.value,
        )
        return self._to_approval(row) if row else None

    async def list_approvals(
        self, team_id: str | None = None, status: ApprovalStatus | None = None
    ) -> list[ApprovalRecord]:
        query = f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE 1 = 1"
        params: list[Any] = []
        if team_id is not None:
            query += " AND team_id = ?"
            params.append(team_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        rows = await asyncio.to_thread(
            self._fetchall, query + " ORDER BY created_at", *params
        )
        return [self._to_approval(r) for r in rows]
