from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from .constants import DOCUMENT_TYPES, SESSION_ACTIVE
from .models import (
    Characteristics,
    DocumentStub,
    Session,
    SubscriptionPlan,
    SubscriptionSnapshot,
    Turn,
    UsageIdentity,
    UsageRecord,
)

DEFAULT_PLAN_NAME = "Профессиональный"
DEFAULT_PLAN_PRICE_RUB = 199


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StoreError(RuntimeError):
    pass


class Database:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_user_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    step INTEGER NOT NULL DEFAULT 0,
                    item_name TEXT,
                    characteristics_json TEXT NOT NULL DEFAULT '{}',
                    selected_catalog_code TEXT,
                    started_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    export_path TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_user_status
                    ON sessions (telegram_user_id, status);

                CREATE TABLE IF NOT EXISTS turns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    turn_index INTEGER NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_turns_session_idx
                    ON turns (session_id, turn_index);

                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    document_type TEXT NOT NULL,
                    content_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE,
                    UNIQUE(session_id, document_type)
                );

                CREATE TABLE IF NOT EXISTS user_questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER,
                    session_id TEXT,
                    question_text TEXT NOT NULL,
                    answer_text TEXT,
                    is_free_question INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_questions_user
                    ON user_questions (user_id, is_free_question);
                CREATE INDEX IF NOT EXISTS idx_questions_session
                    ON user_questions (session_id, is_free_question);

                CREATE TABLE IF NOT EXISTS subscription_plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    price_rub INTEGER NOT NULL,
                    billing_period TEXT NOT NULL DEFAULT 'month',
                    question_limit INTEGER,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS user_subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    plan_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    current_period_start TEXT NOT NULL,
                    current_period_end TEXT NOT NULL,
                    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
                    cancelled_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(plan_id) REFERENCES subscription_plans(id)
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_user_status
                    ON user_subscriptions (user_id, status);
                """
            )

            row = conn.execute("SELECT COUNT(*) AS cnt FROM subscription_plans").fetchone()
            if int(row["cnt"]) == 0:
                conn.execute(
                    """
                    INSERT INTO subscription_plans (name, price_rub, billing_period, question_limit, created_at)
                    VALUES (?, ?, 'month', NULL, ?)
                    """,
                    (DEFAULT_PLAN_NAME, DEFAULT_PLAN_PRICE_RUB, utc_now_iso()),
                )

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            telegram_user_id=row["telegram_user_id"],
            status=row["status"],
            step=row["step"],
            item_name=row["item_name"],
            characteristics_json=row["characteristics_json"],
            selected_catalog_code=row["selected_catalog_code"],
            started_at=row["started_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
            export_path=row["export_path"],
        )

    def _row_to_turn(self, row: sqlite3.Row) -> Turn:
        return Turn(
            id=row["id"],
            session_id=row["session_id"],
            turn_index=row["turn_index"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_plan(row: sqlite3.Row) -> SubscriptionPlan:
        return SubscriptionPlan(
            id=row["id"],
            name=row["name"],
            price_rub=row["price_rub"],
            billing_period=row["billing_period"],
            question_limit=row["question_limit"],
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_snapshot(row: sqlite3.Row) -> SubscriptionSnapshot:
        return SubscriptionSnapshot(
            status=row["status"],
            current_period_end=_parse_timestamp(row["current_period_end"]),
            auto_renew=not bool(row["cancel_at_period_end"]),
            plan_id=row["plan_id"],
        )

    # Sessions

    def create_session(self, telegram_user_id: int) -> Session:
        now = utc_now_iso()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO sessions (telegram_user_id, status, started_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (telegram_user_id, SESSION_ACTIVE, now, now),
            )
            session_id = int(cur.lastrowid)

            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
            if row is None:
                raise StoreError("Failed to create session")
            return self._row_to_session(row)

    def get_session(self, session_id: int) -> Session | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
            return self._row_to_session(row) if row else None

    def get_active_session(self, telegram_user_id: int) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM sessions
                WHERE telegram_user_id = ? AND status = 'active'
                ORDER BY id DESC LIMIT 1
                """,
                (telegram_user_id,),
            ).fetchone()
            return self._row_to_session(row) if row else None

    def get_latest_session(self, telegram_user_id: int) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM sessions
                WHERE telegram_user_id = ?
                ORDER BY id DESC LIMIT 1
                """,
                (telegram_user_id,),
            ).fetchone()
            return self._row_to_session(row) if row else None

    def append_turn(self, session_id: int, role: str, content: str) -> Turn:
        created_at = utc_now_iso()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(turn_index), 0) AS max_idx FROM turns WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            next_idx = int(row["max_idx"]) + 1
            cur = conn.execute(
                """
                INSERT INTO turns (session_id, turn_index, role, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (session_id, next_idx, role, content, created_at),
            )
            turn_id = int(cur.lastrowid)
            turn_row = conn.execute("SELECT * FROM turns WHERE id = ?", (turn_id,)).fetchone()
            if turn_row is None:
                raise StoreError("Failed to create turn")
            return self._row_to_turn(turn_row)

    def list_turns(self, session_id: int) -> list[Turn]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM turns WHERE session_id = ? ORDER BY turn_index ASC",
                (session_id,),
            ).fetchall()
            return [self._row_to_turn(r) for r in rows]

    def set_characteristics(
        self,
        session_id: int,
        characteristics: Characteristics,
        step: int,
        expected_step: int,
        item_name: str | None = None,
    ) -> bool:
        """Store the new cursor only if nobody advanced the session meanwhile."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE sessions
                SET characteristics_json = ?,
                    step = ?,
                    item_name = COALESCE(?, item_name),
                    updated_at = ?
                WHERE id = ? AND step = ? AND status = 'active'
                """,
                (
                    json.dumps(characteristics, ensure_ascii=False),
                    step,
                    item_name,
                    utc_now_iso(),
                    session_id,
                    expected_step,
                ),
            )
            return cur.rowcount == 1

    def complete(
        self,
        session_id: int,
        characteristics: Characteristics,
        catalog_code: str,
        documents: list[DocumentStub],
        step: int,
        expected_step: int,
    ) -> bool:
        """Close the session with its documents, only from the expected cursor.

        Cursor, characteristics, status and documents are written in one
        transaction: a failure leaves the session exactly as it was before.
        """
        types = sorted(doc.document_type for doc in documents)
        if types != sorted(DOCUMENT_TYPES):
            raise StoreError(f"Incomplete document set: {', '.join(types)}")

        now = utc_now_iso()
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    UPDATE sessions
                    SET status = 'completed',
                        step = ?,
                        characteristics_json = ?,
                        selected_catalog_code = ?,
                        completed_at = ?,
                        updated_at = ?
                    WHERE id = ? AND step = ? AND status = 'active'
                    """,
                    (
                        step,
                        json.dumps(characteristics, ensure_ascii=False),
                        catalog_code,
                        now,
                        now,
                        session_id,
                        expected_step,
                    ),
                )
                if cur.rowcount != 1:
                    return False

                conn.executemany(
                    """
                    INSERT INTO documents (session_id, document_type, content_json, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (session_id, doc.document_type, json.dumps(doc.content(), ensure_ascii=False), now)
                        for doc in documents
                    ],
                )
                return True
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to complete session {session_id}: {exc}") from exc

    def cancel(self, session_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE sessions SET status = 'cancelled', updated_at = ?
                WHERE id = ? AND status = 'active'
                """,
                (utc_now_iso(), session_id),
            )
            return cur.rowcount == 1

    def set_export_path(self, session_id: int, export_path: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE sessions SET export_path = ? WHERE id = ?",
                (export_path, session_id),
            )

    def list_documents(self, session_id: int) -> list[DocumentStub]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE session_id = ? ORDER BY id ASC",
                (session_id,),
            ).fetchall()

        documents: list[DocumentStub] = []
        for row in rows:
            content = json.loads(row["content_json"] or "{}")
            documents.append(
                DocumentStub(
                    document_type=row["document_type"],
                    title=content.get("title", row["document_type"]),
                    status=content.get("status", ""),
                    amount=content.get("amount"),
                    value=content.get("value"),
                    count=content.get("count"),
                )
            )
        return documents

    # Usage records

    @staticmethod
    def _identity_filter(identity: UsageIdentity) -> tuple[str, object]:
        if identity.user_id is not None:
            return "user_id = ?", identity.user_id
        if identity.session_id:
            return "session_id = ?", identity.session_id
        raise StoreError("Usage identity needs a user id or a session id")

    def insert_question(self, record: UsageRecord) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO user_questions (
                    user_id, session_id, question_text, answer_text, is_free_question, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.identity.user_id,
                    record.identity.session_id,
                    record.question_text,
                    record.answer_text,
                    1 if record.is_free_question else 0,
                    record.created_at or utc_now_iso(),
                ),
            )
            return int(cur.lastrowid)

    def set_answer(self, question_id: int, answer_text: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE user_questions SET answer_text = ? WHERE id = ?",
                (answer_text, question_id),
            )

    def count_free(self, identity: UsageIdentity) -> int:
        clause, value = self._identity_filter(identity)
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS cnt FROM user_questions WHERE {clause} AND is_free_question = 1",
                (value,),
            ).fetchone()
            return int(row["cnt"])

    def count_total(self, identity: UsageIdentity) -> int:
        clause, value = self._identity_filter(identity)
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS cnt FROM user_questions WHERE {clause}",
                (value,),
            ).fetchone()
            return int(row["cnt"])

    # Subscriptions

    def list_plans(self) -> list[SubscriptionPlan]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM subscription_plans WHERE is_active = 1 ORDER BY price_rub ASC"
            ).fetchall()
            return [self._row_to_plan(r) for r in rows]

    def get_plan(self, plan_id: int) -> SubscriptionPlan | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM subscription_plans WHERE id = ?", (plan_id,)).fetchone()
            return self._row_to_plan(row) if row else None

    def get_active(self, telegram_user_id: int) -> SubscriptionSnapshot | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM user_subscriptions
                WHERE user_id = ? AND status = 'active'
                ORDER BY current_period_end DESC LIMIT 1
                """,
                (telegram_user_id,),
            ).fetchone()
            return self._row_to_snapshot(row) if row else None

    def grant(self, telegram_user_id: int, plan_id: int, days: int) -> SubscriptionSnapshot:
        if self.get_plan(plan_id) is None:
            raise StoreError(f"Plan not found: {plan_id}")

        start = datetime.now(timezone.utc)
        end = start + timedelta(days=days)
        now = start.isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE user_subscriptions SET status = 'expired', updated_at = ?
                WHERE user_id = ? AND status = 'active'
                """,
                (now, telegram_user_id),
            )
            cur = conn.execute(
                """
                INSERT INTO user_subscriptions (
                    user_id, plan_id, status, current_period_start, current_period_end,
                    cancel_at_period_end, created_at, updated_at
                ) VALUES (?, ?, 'active', ?, ?, 0, ?, ?)
                """,
                (telegram_user_id, plan_id, now, end.isoformat(), now, now),
            )
            row = conn.execute(
                "SELECT * FROM user_subscriptions WHERE id = ?",
                (int(cur.lastrowid),),
            ).fetchone()
            if row is None:
                raise StoreError("Failed to create subscription")
            return self._row_to_snapshot(row)

    def set_auto_renew(self, telegram_user_id: int, enabled: bool) -> bool:
        now = utc_now_iso()
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE user_subscriptions
                SET cancel_at_period_end = ?,
                    cancelled_at = ?,
                    updated_at = ?
                WHERE user_id = ? AND status = 'active'
                """,
                (0 if enabled else 1, None if enabled else now, now, telegram_user_id),
            )
            return cur.rowcount > 0
