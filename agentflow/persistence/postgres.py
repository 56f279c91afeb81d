"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

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


def _filters(team_id: str | None, status: Any) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if team_id is not None:
        params.append(team_id)
        clauses.append(f"team_id = ${len(params)}")
    if status is not None:
        params.append(status.value)
        clauses.append(f"status = ${len(params)}")
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_states (
                id TEXT PRIMARY KEY,
                workflow_type TEXT NOT NULL,
                team_id TEXT,
                agent_id TEXT,
                current_node TEXT NOT NULL,
                status TEXT NOT NULL,
                state_data JSONB NOT NULL,
                pause_reason TEXT,
                paused_at TIMESTAMPTZ,
                resumed_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id SERIAL PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                status TEXT,
                output JSONB,
                error TEXT
            )
            """
        )
        await conn.execute(
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
                created_at TIMESTAMPTZ NOT NULL,
                resolved_at TIMESTAMPTZ,
                resolved_by TEXT,
                rejection_reason TEXT
            )
            """
        )

    @staticmethod
    def _to_state(row: asyncpg.Record) -> WorkflowState:
        data = dict(row)
        data["state_data"] = json.loads(data["state_data"]) if data["state_data"] else {}
        return WorkflowState.model_validate(data)

    # ------------------------------------------------------------------
    async def create_workflow(self, state: WorkflowState) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO workflow_states ({_WORKFLOW_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)",
                state.id,
                state.workflow_type,
                state.team_id,
                state.agent_id,
                state.current_node,
                state.status.value,
                json.dumps(state.state_data),
                state.pause_reason,
                state.paused_at,
                state.resumed_at,
                state.completed_at,
                state.created_at,
                state.updated_at,
            )
        finally:
            await conn.close()

    async def save_workflow(self, state: WorkflowState) -> None:
        state.updated_at = utcnow()
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflow_states
                SET current_node = $1, status = $2, state_data = $3, pause_reason = $4,
                    paused_at = $5, resumed_at = $6, completed_at = $7, updated_at = $8
                WHERE id = $9
                """,
                state.current_node,
                state.status.value,
                json.dumps(state.state_data),
                state.pause_reason,
                state.paused_at,
                state.resumed_at,
                state.completed_at,
                state.updated_at,
                state.id,
            )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> WorkflowState | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_WORKFLOW_COLUMNS} FROM workflow_states WHERE id = $1",
                workflow_id,
            )
        finally:
            await conn.close()
        return self._to_state(row) if row else None

    async def list_workflows(
        self, team_id: str | None = None, status: WorkflowStatus | None = None
    ) -> list[WorkflowState]:
        where, params = _filters(team_id, status)
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_WORKFLOW_COLUMNS} FROM workflow_states{where} ORDER BY created_at",
                *params,
            )
        finally:
            await conn.close()
        return [self._to_state(r) for r in rows]

    async def compare_and_set_status(
        self, workflow_id: str, expected: WorkflowStatus, new: WorkflowStatus
    ) -> bool:
        conn = await self._connect()
        try:
            result = await conn.execute(
                "UPDATE workflow_states SET status = $1, updated_at = $2 "
                "WHERE id = $3 AND status = $4",
                new.value,
                utcnow(),
                workflow_id,
                expected.value,
            )
        finally:
            await conn.close()
        return result == "UPDATE 1"

    # ------------------------------------------------------------------
    async def mark_step_started(self, workflow_id: str, step_name: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO step_history (workflow_id, step_name, started_at) VALUES ($1, $2, $3)",
                workflow_id,
                step_name,
                utcnow(),
            )
        finally:
            await conn.close()

    async def mark_step_completed(
        self,
        workflow_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE step_history
                SET completed_at = $1, status = $2, output = $3, error = $4
                WHERE id = (
                    SELECT MAX(id) FROM step_history
                    WHERE workflow_id = $5 AND step_name = $6 AND completed_at IS NULL
                )
                """,
                utcnow(),
                status,
                json.dumps(output or {}),
                error,
                workflow_id,
                step_name,
            )
        finally:
            await conn.close()

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, workflow_id, step_name, started_at, completed_at, status, output, error "
                "FROM step_history WHERE workflow_id = $1 ORDER BY id",
                workflow_id,
            )
        finally:
            await conn.close()
        return [
            StepRecord(
                id=r["id"],
                workflow_id=r["workflow_id"],
                step_name=r["step_name"],
                started_at=r["started_at"],
                completed_at=r["completed_at"],
                status=r["status"],
                output=json.loads(r["output"]) if r["output"] else None,
                error=r["error"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    async def create_approval(self, approval: ApprovalRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO approvals ({_APPROVAL_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)",
                approval.id,
                approval.workflow_id,
                approval.team_id,
                approval.title,
                approval.content_preview,
                approval.full_content,
                approval.source_name,
                approval.urgency.value,
                approval.status.value,
                approval.created_at,
                approval.resolved_at,
                approval.resolved_by,
                approval.rejection_reason,
            )
        finally:
            await conn.close()

    async def save_approval(self, approval: ApprovalRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE approvals
                SET status = $1, resolved_at = $2, resolved_by = $3, rejection_reason = $4
                WHERE id = $5
                """,
                approval.status.value,
                approval.resolved_at,
                approval.resolved_by,
                approval.rejection_reason,
                approval.id,
            )
        finally:
            await conn.close()

    async def get_approval(self, approval_id: str) -> ApprovalRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE id = $1", approval_id
            )
        finally:
            await conn.close()
        return ApprovalRecord.model_validate(dict(row)) if row else None

    async def find_pending_approval(self, workflow_id: str) -> ApprovalRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_APPROVAL_COLUMNS} FROM approvals "
                "WHERE workflow_id = $1 AND status = $2 ORDER BY created_at LIMIT 1",
                workflow_id,
                ApprovalStatus.PENDING.value,
            )
        finally:
            await conn.close()
        return ApprovalRecord.model_validate(dict(row)) if row else None

    async def list_approvals(
        self, team_id: str | None = None, status: ApprovalStatus | None = None
    ) -> list[ApprovalRecord]:
        where, params = _filters(team_id, status)
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_APPROVAL_COLUMNS} FROM approvals{where} ORDER BY created_at",
                *params,
            )
        finally:
            await conn.close()
        return [ApprovalRecord.model_validate(dict(r)) for r in rows]
