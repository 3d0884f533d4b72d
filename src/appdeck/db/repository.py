"""Repository for all appdeck database operations.

Single interface for: apps, chats, and the conversation messages that a
revert prunes.
"""

from __future__ import annotations

import sqlite3

from appdeck.db.models import App, Chat, Message


class Repository:
    """Data access layer for apps, chats and messages.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see appdeck.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    def add_app(self, app: App) -> App:
        """Insert a new app and return it with ``id`` and ``created_at`` set."""
        cur = self._conn.execute(
            "INSERT INTO apps (name, path) VALUES (?, ?)",
            (app.name, app.path),
        )
        self._conn.commit()
        return self.get_app(cur.lastrowid)

    def get_app(self, app_id: int) -> App | None:
        """Return an app by ID, or None if not found."""
        row = self._conn.execute(
            "SELECT id, name, path, created_at FROM apps WHERE id = ?",
            (app_id,),
        ).fetchone()
        return _row_to_app(row) if row else None

    def get_app_by_name(self, name: str) -> App | None:
        row = self._conn.execute(
            "SELECT id, name, path, created_at FROM apps WHERE name = ?",
            (name,),
        ).fetchone()
        return _row_to_app(row) if row else None

    def get_app_by_path(self, path: str) -> App | None:
        row = self._conn.execute(
            "SELECT id, name, path, created_at FROM apps WHERE path = ?",
            (path,),
        ).fetchone()
        return _row_to_app(row) if row else None

    def list_apps(self) -> list[App]:
        """Return all apps, newest first."""
        rows = self._conn.execute(
            "SELECT id, name, path, created_at FROM apps ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [_row_to_app(r) for r in rows]

    def update_app(self, app_id: int, *, name: str, path: str) -> App | None:
        """Rename an app and/or change its path. Returns the updated app."""
        self._conn.execute(
            "UPDATE apps SET name = ?, path = ? WHERE id = ?",
            (name, path, app_id),
        )
        self._conn.commit()
        return self.get_app(app_id)

    def delete_app(self, app_id: int) -> None:
        """Delete an app; its chats and messages cascade."""
        self._conn.execute("DELETE FROM apps WHERE id = ?", (app_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def add_chat(self, chat: Chat) -> Chat:
        cur = self._conn.execute(
            "INSERT INTO chats (app_id, title) VALUES (?, ?)",
            (chat.app_id, chat.title),
        )
        self._conn.commit()
        row = self._conn.execute(
            "SELECT id, app_id, title, created_at FROM chats WHERE id = ?",
            (cur.lastrowid,),
        ).fetchone()
        return _row_to_chat(row)

    def list_chats(self, app_id: int) -> list[Chat]:
        """Return the chats of an app, newest first."""
        rows = self._conn.execute(
            "SELECT id, app_id, title, created_at FROM chats WHERE app_id = ? ORDER BY id DESC",
            (app_id,),
        ).fetchall()
        return [_row_to_chat(r) for r in rows]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> Message:
        """Append a message. Its ``id`` is the ordinal position used for pruning."""
        cur = self._conn.execute(
            """
            INSERT INTO messages (chat_id, role, content, commit_hash)
            VALUES (?, ?, ?, ?)
            """,
            (message.chat_id, message.role, message.content, message.commit_hash),
        )
        self._conn.commit()
        row = self._conn.execute(
            "SELECT id, chat_id, role, content, commit_hash, created_at FROM messages WHERE id = ?",
            (cur.lastrowid,),
        ).fetchone()
        return _row_to_message(row)

    def list_messages(self, chat_id: int) -> list[Message]:
        """Return the messages of a chat in ordinal order (oldest first)."""
        rows = self._conn.execute(
            """
            SELECT id, chat_id, role, content, commit_hash, created_at
            FROM messages WHERE chat_id = ? ORDER BY id
            """,
            (chat_id,),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def find_message_by_commit(self, commit_hash: str) -> Message | None:
        """Return the earliest message tagged with *commit_hash*, or None."""
        row = self._conn.execute(
            """
            SELECT id, chat_id, role, content, commit_hash, created_at
            FROM messages WHERE commit_hash = ? ORDER BY id LIMIT 1
            """,
            (commit_hash,),
        ).fetchone()
        return _row_to_message(row) if row else None

    def delete_messages_after(self, chat_id: int, message_id: int) -> int:
        """Delete every message in *chat_id* with an id greater than *message_id*.

        Returns:
            Number of deleted rows.
        """
        cur = self._conn.execute(
            "DELETE FROM messages WHERE chat_id = ? AND id > ?",
            (chat_id, message_id),
        )
        self._conn.commit()
        return cur.rowcount


# ------------------------------------------------------------------
# Row mappers
# ------------------------------------------------------------------

def _row_to_app(row: sqlite3.Row) -> App:
    return App(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        created_at=row["created_at"],
    )


def _row_to_chat(row: sqlite3.Row) -> Chat:
    return Chat(
        id=row["id"],
        app_id=row["app_id"],
        title=row["title"],
        created_at=row["created_at"],
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        chat_id=row["chat_id"],
        role=row["role"],
        content=row["content"],
        commit_hash=row["commit_hash"],
        created_at=row["created_at"],
    )
