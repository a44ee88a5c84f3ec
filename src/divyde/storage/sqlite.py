"""SQLite storage backend for Divyde."""

import json
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from ..exceptions import NotFoundError
from ..ledger import apply_update
from ..models import Debt, DebtDraft, DebtUpdate, Direction, Friend
from .base import LedgerStore

_DEBT_COLUMNS = """
    id, friend_id, amount, direction, description, date,
    is_paid, paid_at, created_at
"""


class SqliteStore(LedgerStore):
    """Relational store backed by a local SQLite database."""

    def __init__(self, db_path: Path, owner_id: str = "local"):
        """Initialize database connection."""
        self.db_path = db_path
        self.owner_id = owner_id
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS friends (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                email TEXT,
                avatar_color TEXT,
                avatar TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # Amounts are stored as decimal strings to keep cent precision exact
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS debts (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                friend_id TEXT NOT NULL
                    REFERENCES friends(id) ON DELETE CASCADE,
                amount TEXT NOT NULL,
                direction TEXT NOT NULL
                    CHECK (direction IN ('they-owe', 'you-owe')),
                description TEXT,
                date DATE NOT NULL,
                is_paid INTEGER NOT NULL DEFAULT 0,
                paid_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL,
                CHECK ((is_paid = 1) = (paid_at IS NOT NULL))
            )
        """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_debts_owner_friend
            ON debts (owner_id, friend_id)
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Friend operations
    # ========================================================================

    def list_friends(self) -> list[Friend]:
        """List all friends for the owner, ordered by name."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, email, avatar_color, avatar
            FROM friends
            WHERE owner_id = ?
            ORDER BY name ASC
            """,
            (self.owner_id,),
        )
        return [_row_to_friend(row) for row in cursor.fetchall()]

    def get_friend(self, friend_id: str) -> Friend | None:
        """Get a friend by ID."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, email, avatar_color, avatar
            FROM friends
            WHERE id = ? AND owner_id = ?
            """,
            (friend_id, self.owner_id),
        )
        row = cursor.fetchone()
        return _row_to_friend(row) if row else None

    def create_friend(self, friend: Friend) -> Friend:
        """Save a new friend."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO friends (id, owner_id, name, email, avatar_color, avatar)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                friend.id,
                self.owner_id,
                friend.name,
                friend.email,
                friend.avatar_color,
                json.dumps(friend.avatar) if friend.avatar else None,
            ),
        )
        self.conn.commit()
        return friend

    def delete_friend(self, friend_id: str) -> None:
        """Delete a friend; the foreign key cascades to its debts."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM friends WHERE id = ? AND owner_id = ?",
            (friend_id, self.owner_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError("friend", [friend_id])

    # ========================================================================
    # Debt operations
    # ========================================================================

    def list_debts(self, friend_id: str | None = None) -> list[Debt]:
        """List debts, newest first."""
        query = f"SELECT {_DEBT_COLUMNS} FROM debts WHERE owner_id = ?"
        params: list[str] = [self.owner_id]
        if friend_id is not None:
            query += " AND friend_id = ?"
            params.append(friend_id)
        query += " ORDER BY date DESC, created_at DESC"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [_row_to_debt(row) for row in cursor.fetchall()]

    def get_debt(self, debt_id: str) -> Debt | None:
        """Get a debt by ID."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_DEBT_COLUMNS} FROM debts WHERE id = ? AND owner_id = ?",
            (debt_id, self.owner_id),
        )
        row = cursor.fetchone()
        return _row_to_debt(row) if row else None

    def create_debts(self, drafts: list[DebtDraft]) -> list[Debt]:
        """Insert a batch of debts in a single transaction."""
        if not drafts:
            return []

        friend_ids = sorted({draft.friend_id for draft in drafts})
        placeholders = ", ".join("?" for _ in friend_ids)
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT id FROM friends WHERE owner_id = ? AND id IN ({placeholders})",
            (self.owner_id, *friend_ids),
        )
        found = {row["id"] for row in cursor.fetchall()}
        missing = [friend_id for friend_id in friend_ids if friend_id not in found]
        if missing:
            raise NotFoundError("friend", missing)

        debts = [draft.to_debt() for draft in drafts]
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO debts (
                    id, owner_id, friend_id, amount, direction, description,
                    date, is_paid, paid_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        debt.id,
                        self.owner_id,
                        debt.friend_id,
                        str(debt.amount),
                        debt.direction.value,
                        debt.description,
                        debt.date.isoformat(),
                        int(debt.is_paid),
                        None,
                        debt.created_at.isoformat(),
                    )
                    for debt in debts
                ],
            )
        return debts

    def update_debt(self, debt_id: str, patch: DebtUpdate) -> Debt:
        """Apply a patch through the ledger state machine and save the result."""
        current = self.get_debt(debt_id)
        if current is None:
            raise NotFoundError("debt", [debt_id])

        updated = apply_update(current, patch)

        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE debts
            SET amount = ?, description = ?, is_paid = ?, paid_at = ?
            WHERE id = ? AND owner_id = ?
            """,
            (
                str(updated.amount),
                updated.description,
                int(updated.is_paid),
                updated.paid_at.isoformat() if updated.paid_at else None,
                debt_id,
                self.owner_id,
            ),
        )
        self.conn.commit()
        return updated

    def delete_debt(self, debt_id: str) -> None:
        """Delete a debt."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM debts WHERE id = ? AND owner_id = ?",
            (debt_id, self.owner_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError("debt", [debt_id])


def _row_to_friend(row: sqlite3.Row) -> Friend:
    return Friend(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        avatar_color=row["avatar_color"],
        avatar=json.loads(row["avatar"]) if row["avatar"] else None,
    )


def _row_to_debt(row: sqlite3.Row) -> Debt:
    return Debt(
        id=row["id"],
        friend_id=row["friend_id"],
        amount=Decimal(row["amount"]),
        direction=Direction(row["direction"]),
        description=row["description"],
        date=date.fromisoformat(row["date"]),
        is_paid=bool(row["is_paid"]),
        paid_at=datetime.fromisoformat(row["paid_at"]) if row["paid_at"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )
