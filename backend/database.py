#!/usr/bin/env python3
"""
Database module for the Watch Party server.

Manages SQLite database for:
- Users and login sessions
- Show catalog (shows, seasons, videos)
- Parties, their members and sync state
- Party invitations and chat messages
"""

import hashlib
import hmac
import os
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

# Project root is one level up from backend/
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DATABASE_FILE = Path(os.environ.get("WATCHPARTY_DATABASE", DATA_DIR / "watchparty.db"))

SESSION_TTL_HOURS = 720
PASSWORD_ITERATIONS = 120_000


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Initialize database tables."""
    Path(DATABASE_FILE).parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                username TEXT NOT NULL UNIQUE COLLATE NOCASE,
                password_hash TEXT NOT NULL,
                avatar TEXT DEFAULT '',
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_sessions (
                token TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                expires_at TEXT NOT NULL
            )
        """)

        # Catalog
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS shows (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                title_type TEXT NOT NULL DEFAULT 'movie',
                synopsis TEXT DEFAULT '',
                language TEXT DEFAULT '',
                air_start TEXT,
                air_end TEXT,
                preview_image TEXT DEFAULT '',
                age_rating TEXT DEFAULT ''
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS show_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                show_id INTEGER NOT NULL REFERENCES shows(id) ON DELETE CASCADE,
                title TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS show_videos (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                show_id INTEGER NOT NULL REFERENCES shows(id) ON DELETE CASCADE,
                show_group_id INTEGER REFERENCES show_groups(id) ON DELETE CASCADE,
                title TEXT DEFAULT '',
                video_url TEXT NOT NULL,
                subtitle_url TEXT DEFAULT '',
                duration INTEGER NOT NULL DEFAULT 0,
                synopsis TEXT DEFAULT ''
            )
        """)

        # Parties (sync state lives on the party row)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS parties (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id INTEGER NOT NULL REFERENCES users(id),
                video_id INTEGER NOT NULL REFERENCES show_videos(id),
                position REAL NOT NULL DEFAULT 0,
                is_playing INTEGER NOT NULL DEFAULT 0,
                state_updated_at TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS party_members (
                party_id INTEGER NOT NULL REFERENCES parties(id) ON DELETE CASCADE,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                joined_at TEXT NOT NULL,
                PRIMARY KEY (party_id, user_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS party_invitations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                party_id INTEGER NOT NULL REFERENCES parties(id) ON DELETE CASCADE,
                sender_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                recipient_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT NOT NULL,
                responded_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS party_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                party_id INTEGER NOT NULL REFERENCES parties(id) ON DELETE CASCADE,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                text TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        conn.commit()


# ============================================
# USERS
# ============================================

def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Hash a password with PBKDF2. Returns 'salt$hexdigest'."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), PASSWORD_ITERATIONS
    )
    return f"{salt}${digest.hex()}"


def check_password(password: str, password_hash: str) -> bool:
    salt, _, _ = password_hash.partition("$")
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def public_user(row: Optional[dict]) -> Optional[dict]:
    """Strip private columns from a user row."""
    if row is None:
        return None
    return {
        "id": row["id"],
        "name": row["name"],
        "username": row["username"],
        "avatar": row.get("avatar") or "",
    }


def create_user(name: str, username: str, password: str, avatar: str = "") -> Optional[int]:
    """Create a user. Returns the new ID, or None if the username is taken."""
    with get_db() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute(
                """INSERT INTO users (name, username, password_hash, avatar, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (name, username, hash_password(password), avatar or "", utcnow())
            )
        except sqlite3.IntegrityError:
            return None
        return cursor.lastrowid


def get_user_by_id(user_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_user_by_username(username: str) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM users WHERE username = ?", (username,))
        row = cursor.fetchone()
        return dict(row) if row else None


def authenticate_user(username: str, password: str) -> Optional[dict]:
    """Return the user row when the credentials match."""
    user = get_user_by_username(username)
    if user and check_password(password, user["password_hash"]):
        return user
    return None


def _like_pattern(term: str) -> str:
    """Substring LIKE pattern matching `term` literally (use with ESCAPE '\\')."""
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_users(term: str, exclude_user_id: Optional[int] = None, limit: int = 10) -> list[dict]:
    """Search users by name or username (case-insensitive substring)."""
    term = term.strip()
    if not term:
        return []

    pattern = _like_pattern(term)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT * FROM users
               WHERE (LOWER(name) LIKE ? ESCAPE '\\' OR LOWER(username) LIKE ? ESCAPE '\\')
                 AND id != ?
               ORDER BY name, id
               LIMIT ?""",
            (pattern, pattern, exclude_user_id or 0, limit)
        )
        return [public_user(dict(row)) for row in cursor.fetchall()]


# ============================================
# USER SESSIONS
# ============================================

def create_session(user_id: int, ttl_hours: int = SESSION_TTL_HOURS) -> str:
    """Create a new login session. Returns the session token."""
    token = secrets.token_urlsafe(32)
    now = datetime.now(timezone.utc)
    expires_at = (now + timedelta(hours=ttl_hours)).isoformat()

    with get_db() as conn:
        cursor = conn.cursor()
        # Clean up expired sessions
        cursor.execute(
            "DELETE FROM user_sessions WHERE expires_at < ?",
            (now.isoformat(),)
        )
        cursor.execute(
            "INSERT INTO user_sessions (token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
            (token, user_id, now.isoformat(), expires_at)
        )

    return token


def get_session_user(token: str) -> Optional[dict]:
    """Return the user owning a valid session token."""
    if not token:
        return None

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT users.* FROM user_sessions
               JOIN users ON users.id = user_sessions.user_id
               WHERE user_sessions.token = ? AND user_sessions.expires_at > ?""",
            (token, utcnow())
        )
        row = cursor.fetchone()
        return dict(row) if row else None


def delete_session(token: str) -> bool:
    """Delete a session (logout). Returns True if session existed."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM user_sessions WHERE token = ?", (token,))
        return cursor.rowcount > 0


# ============================================
# CATALOG
# ============================================

SHOW_COLUMNS = (
    "title", "title_type", "synopsis", "language", "air_start",
    "air_end", "preview_image", "age_rating",
)
VIDEO_COLUMNS = (
    "show_id", "show_group_id", "title", "video_url",
    "subtitle_url", "duration", "synopsis",
)


def clear_catalog():
    """Delete every show, group and video (and the parties watching them)."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM parties")
        cursor.execute("DELETE FROM show_videos")
        cursor.execute("DELETE FROM show_groups")
        cursor.execute("DELETE FROM shows")


def _insert(table: str, columns: tuple, values: dict) -> int:
    present = [c for c in columns if c in values]
    placeholders = ", ".join("?" for _ in present)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"INSERT INTO {table} ({', '.join(present)}) VALUES ({placeholders})",
            [values[c] for c in present]
        )
        return cursor.lastrowid


def create_show(**fields) -> int:
    return _insert("shows", SHOW_COLUMNS, fields)


def create_show_group(show_id: int, title: str) -> int:
    return _insert("show_groups", ("show_id", "title"), {"show_id": show_id, "title": title})


def create_show_video(**fields) -> int:
    return _insert("show_videos", VIDEO_COLUMNS, fields)


def get_shows(search: Optional[str] = None, title_type: Optional[str] = None) -> list[dict]:
    """List shows ordered by title, optionally filtered."""
    clauses = []
    params = []

    if search:
        clauses.append("LOWER(title) LIKE ? ESCAPE '\\'")
        params.append(_like_pattern(search.strip()))

    if title_type:
        clauses.append("title_type = ?")
        params.append(title_type)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"SELECT * FROM shows {where} ORDER BY title COLLATE NOCASE, id", params)
        return [dict(row) for row in cursor.fetchall()]


def get_show_by_id(show_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM shows WHERE id = ?", (show_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_show_groups(show_id: int) -> list[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM show_groups WHERE show_id = ? ORDER BY id", (show_id,))
        return [dict(row) for row in cursor.fetchall()]


def get_group_by_id(group_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM show_groups WHERE id = ?", (group_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_show_videos(show_id: int, group_id: Optional[int] = None) -> list[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        if group_id is None:
            cursor.execute("SELECT * FROM show_videos WHERE show_id = ? ORDER BY id", (show_id,))
        else:
            cursor.execute(
                "SELECT * FROM show_videos WHERE show_id = ? AND show_group_id = ? ORDER BY id",
                (show_id, group_id)
            )
        return [dict(row) for row in cursor.fetchall()]


def get_video_by_id(video_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM show_videos WHERE id = ?", (video_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_catalog_counts() -> dict:
    with get_db() as conn:
        cursor = conn.cursor()
        counts = {}
        for key, table in (("shows", "shows"), ("videos", "show_videos"), ("parties", "parties")):
            cursor.execute(f"SELECT COUNT(*) AS count FROM {table}")
            counts[key] = cursor.fetchone()["count"]
        return counts


# ============================================
# PARTIES
# ============================================

def _party_row(row) -> dict:
    party = dict(row)
    party["is_playing"] = bool(party["is_playing"])
    party["current_time"] = float(party.pop("position"))
    return party


def create_party(owner_id: int, video_id: int) -> int:
    """Create a party and add the owner as its first member."""
    now = utcnow()
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """INSERT INTO parties (owner_id, video_id, position, is_playing, state_updated_at, created_at)
               VALUES (?, ?, 0, 0, ?, ?)""",
            (owner_id, video_id, now, now)
        )
        party_id = cursor.lastrowid
        cursor.execute(
            "INSERT INTO party_members (party_id, user_id, joined_at) VALUES (?, ?, ?)",
            (party_id, owner_id, now)
        )
        return party_id


def get_party_by_id(party_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM parties WHERE id = ?", (party_id,))
        row = cursor.fetchone()
        return _party_row(row) if row else None


def get_user_parties(user_id: int) -> list[dict]:
    """Get parties the user is a member of, newest first."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT parties.* FROM parties
               JOIN party_members ON party_members.party_id = parties.id
               WHERE party_members.user_id = ?
               ORDER BY parties.id DESC""",
            (user_id,)
        )
        return [_party_row(row) for row in cursor.fetchall()]


def update_party_state(party_id: int, is_playing: bool, current_time: float) -> bool:
    """Persist sync state. Last write wins."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """UPDATE parties
               SET is_playing = ?, position = ?, state_updated_at = ?
               WHERE id = ?""",
            (1 if is_playing else 0, current_time, utcnow(), party_id)
        )
        return cursor.rowcount > 0


def set_party_video(party_id: int, video_id: int) -> bool:
    """Switch the party's video and rewind it."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """UPDATE parties
               SET video_id = ?, position = 0, is_playing = 0, state_updated_at = ?
               WHERE id = ?""",
            (video_id, utcnow(), party_id)
        )
        return cursor.rowcount > 0


def delete_party(party_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM parties WHERE id = ?", (party_id,))
        return cursor.rowcount > 0


# ============================================
# PARTY MEMBERS
# ============================================

def get_party_members(party_id: int) -> list[dict]:
    """Get members of a party in join order."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT users.* FROM party_members
               JOIN users ON users.id = party_members.user_id
               WHERE party_members.party_id = ?
               ORDER BY party_members.joined_at, party_members.rowid""",
            (party_id,)
        )
        return [public_user(dict(row)) for row in cursor.fetchall()]


def is_party_member(party_id: int, user_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT 1 FROM party_members WHERE party_id = ? AND user_id = ?",
            (party_id, user_id)
        )
        return cursor.fetchone() is not None


def add_party_member(party_id: int, user_id: int) -> bool:
    """Add a member. Returns False if already a member."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT OR IGNORE INTO party_members (party_id, user_id, joined_at) VALUES (?, ?, ?)",
            (party_id, user_id, utcnow())
        )
        return cursor.rowcount > 0


def remove_party_member(party_id: int, user_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "DELETE FROM party_members WHERE party_id = ? AND user_id = ?",
            (party_id, user_id)
        )
        return cursor.rowcount > 0


def set_party_owner(party_id: int, user_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE parties SET owner_id = ? WHERE id = ?", (user_id, party_id))
        return cursor.rowcount > 0


# ============================================
# INVITATIONS
# ============================================

def create_invitation(party_id: int, sender_id: int, recipient_id: int) -> int:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """INSERT INTO party_invitations (party_id, sender_id, recipient_id, status, created_at)
               VALUES (?, ?, ?, 'pending', ?)""",
            (party_id, sender_id, recipient_id, utcnow())
        )
        return cursor.lastrowid


def get_invitation_by_id(invitation_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM party_invitations WHERE id = ?", (invitation_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_pending_invitation(party_id: int, recipient_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT * FROM party_invitations
               WHERE party_id = ? AND recipient_id = ? AND status = 'pending'""",
            (party_id, recipient_id)
        )
        row = cursor.fetchone()
        return dict(row) if row else None


def get_party_invitations(party_id: int, status: Optional[str] = "pending") -> list[dict]:
    """Get invitations of a party, oldest first."""
    with get_db() as conn:
        cursor = conn.cursor()
        if status:
            cursor.execute(
                "SELECT * FROM party_invitations WHERE party_id = ? AND status = ? ORDER BY id",
                (party_id, status)
            )
        else:
            cursor.execute("SELECT * FROM party_invitations WHERE party_id = ? ORDER BY id", (party_id,))
        return [dict(row) for row in cursor.fetchall()]


def get_received_invitations(recipient_id: int) -> list[dict]:
    """Get pending invitations sent to a user, newest first."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT * FROM party_invitations
               WHERE recipient_id = ? AND status = 'pending'
               ORDER BY id DESC""",
            (recipient_id,)
        )
        return [dict(row) for row in cursor.fetchall()]


def update_invitation_status(invitation_id: int, status: str) -> bool:
    """Update an invitation's status. Returns True if found and updated."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """UPDATE party_invitations
               SET status = ?, responded_at = ?
               WHERE id = ?""",
            (status, utcnow(), invitation_id)
        )
        return cursor.rowcount > 0


# ============================================
# MESSAGES
# ============================================

def create_message(party_id: int, user_id: int, text: str) -> int:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO party_messages (party_id, user_id, text, created_at) VALUES (?, ?, ?, ?)",
            (party_id, user_id, text, utcnow())
        )
        return cursor.lastrowid


def get_messages(party_id: int, since: int = 0) -> list[dict]:
    """Get messages posted after message ID `since`, oldest first."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT party_messages.*, users.name AS user_name, users.username AS user_username,
                      users.avatar AS user_avatar
               FROM party_messages
               JOIN users ON users.id = party_messages.user_id
               WHERE party_messages.party_id = ? AND party_messages.id > ?
               ORDER BY party_messages.id""",
            (party_id, since)
        )
        messages = []
        for row in cursor.fetchall():
            row = dict(row)
            messages.append({
                "id": row["id"],
                "party_id": row["party_id"],
                "text": row["text"],
                "created_at": row["created_at"],
                "user": {
                    "id": row["user_id"],
                    "name": row["user_name"],
                    "username": row["user_username"],
                    "avatar": row["user_avatar"] or "",
                },
            })
        return messages


# Initialize database on import
init_db()
