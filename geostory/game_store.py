import json
import logging
import os
import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join(os.path.dirname(__file__), "geostory.db")

# Sub-select resolving an opaque game id to its internal key, only for its owner.
OWNED_GAME = "(SELECT id FROM games WHERE game_id = ? AND owner_id = ?)"

CHARACTER_COLUMNS = ["name", "summary", "image_url", "category"]
POI_COLUMNS = ["name", "description", "contextual_data", "image_url", "type", "tags", "latitude", "longitude"]
CARD_COLUMNS = ["title", "prompt", "type", "hero_steps", "character_category", "card_category", "keywords", "poi_id"]
AI_CONFIG_COLUMNS = ["name", "avatar_url", "tone", "personality", "relationship",
                     "humor_level", "formality", "additional_context", "system_prompt"]

JSON_LIST_FIELDS = ["categories", "tags", "hero_steps"]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode(column: str, value: Any) -> Any:
    if column in JSON_LIST_FIELDS:
        return json.dumps(value or [])
    return getattr(value, "value", value)


def _decode(row: sqlite3.Row | None) -> Dict[str, Any] | None:
    if row is None:
        return None
    data = dict(row)
    for field in JSON_LIST_FIELDS:
        if field in data:
            try:
                data[field] = json.loads(data[field]) if data[field] else []
            except json.JSONDecodeError:
                data[field] = []
    return data


def _decode_game(row: sqlite3.Row | None) -> Dict[str, Any] | None:
    data = _decode(row)
    if data is None:
        return None
    latitude = data.pop("latitude", None)
    longitude = data.pop("longitude", None)
    if latitude is not None and longitude is not None:
        data["location"] = {"lat": latitude, "lng": longitude}
    else:
        data["location"] = None
    return data


class GameStore:

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or os.getenv("GEOSTORY_DB_PATH", DEFAULT_DB_PATH)
        self.init_db()
        logger.info(f"GameStore initialized with SQLite at {self.db_path}.")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self):
        """Creates the tables if they don't exist."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS auth_tokens (
                    token TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS games (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    game_id TEXT UNIQUE NOT NULL,
                    owner_id TEXT NOT NULL,
                    title TEXT DEFAULT '',
                    description TEXT DEFAULT '',
                    latitude REAL,
                    longitude REAL,
                    cover_image_url TEXT,
                    categories TEXT,
                    status TEXT DEFAULT 'draft',
                    visibility TEXT DEFAULT 'private',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP,
                    FOREIGN KEY (owner_id) REFERENCES users(id)
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS characters (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    game_id INTEGER NOT NULL,
                    name TEXT,
                    summary TEXT,
                    image_url TEXT,
                    category TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (game_id) REFERENCES games(id) ON DELETE CASCADE
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS pois (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    game_id INTEGER NOT NULL,
                    name TEXT,
                    description TEXT,
                    contextual_data TEXT,
                    image_url TEXT,
                    type TEXT,
                    tags TEXT,
                    latitude REAL,
                    longitude REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (game_id) REFERENCES games(id) ON DELETE CASCADE
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS cards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    game_id INTEGER NOT NULL,
                    title TEXT,
                    prompt TEXT,
                    type TEXT,
                    hero_steps TEXT,
                    character_category TEXT,
                    card_category TEXT DEFAULT 'general',
                    keywords TEXT,
                    poi_id INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP,
                    FOREIGN KEY (game_id) REFERENCES games(id) ON DELETE CASCADE,
                    FOREIGN KEY (poi_id) REFERENCES pois(id) ON DELETE SET NULL
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS ai_companion_configs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    game_id INTEGER UNIQUE NOT NULL,
                    name TEXT,
                    avatar_url TEXT,
                    tone TEXT,
                    personality TEXT,
                    relationship TEXT,
                    humor_level INTEGER,
                    formality INTEGER,
                    additional_context TEXT,
                    system_prompt TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP,
                    FOREIGN KEY (game_id) REFERENCES games(id) ON DELETE CASCADE
                )
            ''')
            conn.commit()
        finally:
            conn.close()

    # --- Users & sessions ---

    def create_user_session(self, email: str) -> Dict[str, str]:
        """Signs a user in, creating the account on first sight, and issues a token."""
        email = email.strip().lower()
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM users WHERE email = ?", (email,))
            row = cursor.fetchone()
            if row:
                user_id = row["id"]
            else:
                user_id = str(uuid.uuid4())
                cursor.execute("INSERT INTO users (id, email) VALUES (?, ?)", (user_id, email))
                logger.info(f"Created user {user_id} for {email}")
            token = secrets.token_urlsafe(32)
            cursor.execute("INSERT INTO auth_tokens (token, user_id) VALUES (?, ?)", (token, user_id))
            conn.commit()
        finally:
            conn.close()
        return {"token": token, "user_id": user_id}

    def get_user_id_for_token(self, token: str) -> Optional[str]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT user_id FROM auth_tokens WHERE token = ?", (token,))
            row = cursor.fetchone()
        finally:
            conn.close()
        return row["user_id"] if row else None

    # --- Games ---

    def create_game(self, owner_id: str) -> str:
        """Creates an empty draft game and returns its opaque id."""
        game_id = uuid.uuid4().hex
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO games (game_id, owner_id, categories, status, visibility, updated_at) "
                "VALUES (?, ?, ?, 'draft', 'private', ?)",
                (game_id, owner_id, json.dumps([]), now_iso())
            )
            conn.commit()
        finally:
            conn.close()
        return game_id

    def list_games(self, owner_id: str) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM games WHERE owner_id = ? ORDER BY created_at DESC, id DESC", (owner_id,))
            rows = cursor.fetchall()
        finally:
            conn.close()
        return [_decode_game(row) for row in rows]

    def get_game(self, game_id: str, owner_id: str) -> Dict[str, Any] | None:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM games WHERE game_id = ? AND owner_id = ?", (game_id, owner_id))
            row = cursor.fetchone()
        finally:
            conn.close()
        return _decode_game(row)

    def owns_game(self, game_id: str, owner_id: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM games WHERE game_id = ? AND owner_id = ?", (game_id, owner_id))
            exists = cursor.fetchone() is not None
        finally:
            conn.close()
        return exists

    def update_general_info(self, game_id: str, owner_id: str, data: Dict[str, Any]) -> bool:
        location = data.get("location")
        latitude = location["lat"] if location else None
        longitude = location["lng"] if location else None
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('''
                UPDATE games SET title = ?, description = ?, latitude = ?, longitude = ?,
                    cover_image_url = ?, categories = ?, updated_at = ?
                WHERE game_id = ? AND owner_id = ?
            ''', (
                data["title"], data["description"], latitude, longitude,
                data.get("cover_image_url") or None, json.dumps(data.get("categories") or []), now_iso(),
                game_id, owner_id
            ))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def set_publication(self, game_id: str, owner_id: str, status: str, visibility: str) -> bool:
        """Moves a game between draft/private and published/public, only for its owner."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE games SET status = ?, visibility = ?, updated_at = ? WHERE game_id = ? AND owner_id = ?",
                (status, visibility, now_iso(), game_id, owner_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # --- Child collections ---

    def _list_children(self, table: str, game_id: str, owner_id: str, order_by: str = "created_at, id") -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f"SELECT * FROM {table} WHERE game_id = {OWNED_GAME} ORDER BY {order_by}",
                           (game_id, owner_id))
            rows = cursor.fetchall()
        finally:
            conn.close()
        return [_decode(row) for row in rows]

    def _insert_child(self, table: str, columns: List[str], data: Dict[str, Any],
                      game_id: str, owner_id: str) -> Optional[int]:
        placeholders = ", ".join("?" for _ in columns)
        values = [_encode(column, data.get(column)) for column in columns]
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"INSERT INTO {table} (game_id, {', '.join(columns)}) "
                f"SELECT id, {placeholders} FROM games WHERE game_id = ? AND owner_id = ?",
                (*values, game_id, owner_id)
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            return cursor.lastrowid
        finally:
            conn.close()

    def _update_child(self, table: str, columns: List[str], data: Dict[str, Any],
                      row_id: int, game_id: str, owner_id: str, touch: bool = False) -> bool:
        assignments = [f"{column} = ?" for column in columns]
        values = [_encode(column, data.get(column)) for column in columns]
        if touch:
            assignments.append("updated_at = ?")
            values.append(now_iso())
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ? AND game_id = {OWNED_GAME}",
                (*values, row_id, game_id, owner_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def _delete_child(self, table: str, row_id: int, game_id: str, owner_id: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f"DELETE FROM {table} WHERE id = ? AND game_id = {OWNED_GAME}",
                           (row_id, game_id, owner_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_characters(self, game_id: str, owner_id: str) -> List[Dict[str, Any]]:
        return self._list_children("characters", game_id, owner_id)

    def add_character(self, game_id: str, owner_id: str, data: Dict[str, Any]) -> Optional[int]:
        return self._insert_child("characters", CHARACTER_COLUMNS, data, game_id, owner_id)

    def update_character(self, game_id: str, owner_id: str, character_id: int, data: Dict[str, Any]) -> bool:
        return self._update_child("characters", CHARACTER_COLUMNS, data, character_id, game_id, owner_id)

    def delete_character(self, game_id: str, owner_id: str, character_id: int) -> bool:
        return self._delete_child("characters", character_id, game_id, owner_id)

    def list_pois(self, game_id: str, owner_id: str) -> List[Dict[str, Any]]:
        return self._list_children("pois", game_id, owner_id)

    def add_poi(self, game_id: str, owner_id: str, data: Dict[str, Any]) -> Optional[int]:
        return self._insert_child("pois", POI_COLUMNS, data, game_id, owner_id)

    def update_poi(self, game_id: str, owner_id: str, poi_id: int, data: Dict[str, Any]) -> bool:
        return self._update_child("pois", POI_COLUMNS, data, poi_id, game_id, owner_id)

    def delete_poi(self, game_id: str, owner_id: str, poi_id: int) -> bool:
        return self._delete_child("pois", poi_id, game_id, owner_id)

    def poi_in_game(self, game_id: str, owner_id: str, poi_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f"SELECT 1 FROM pois WHERE id = ? AND game_id = {OWNED_GAME}", (poi_id, game_id, owner_id))
            exists = cursor.fetchone() is not None
        finally:
            conn.close()
        return exists

    def get_poi_for_owner(self, poi_id: int, owner_id: str) -> Dict[str, Any] | None:
        """Fetches a POI from any game owned by ``owner_id``."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT pois.* FROM pois JOIN games ON games.id = pois.game_id
                WHERE pois.id = ? AND games.owner_id = ?
            ''', (poi_id, owner_id))
            row = cursor.fetchone()
        finally:
            conn.close()
        return _decode(row)

    def list_cards(self, game_id: str, owner_id: str) -> List[Dict[str, Any]]:
        return self._list_children("cards", game_id, owner_id)

    def add_card(self, game_id: str, owner_id: str, data: Dict[str, Any]) -> Optional[int]:
        return self._insert_child("cards", CARD_COLUMNS, data, game_id, owner_id)

    def update_card(self, game_id: str, owner_id: str, card_id: int, data: Dict[str, Any]) -> bool:
        return self._update_child("cards", CARD_COLUMNS, data, card_id, game_id, owner_id, touch=True)

    def delete_card(self, game_id: str, owner_id: str, card_id: int) -> bool:
        return self._delete_child("cards", card_id, game_id, owner_id)

    # --- AI companion ---

    def get_ai_config(self, game_id: str, owner_id: str) -> Dict[str, Any] | None:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f"SELECT * FROM ai_companion_configs WHERE game_id = {OWNED_GAME}", (game_id, owner_id))
            row = cursor.fetchone()
        finally:
            conn.close()
        return _decode(row)

    def save_ai_config(self, game_id: str, owner_id: str, data: Dict[str, Any]) -> bool:
        """Inserts or updates the single companion config of a game."""
        values = [_encode(column, data.get(column)) for column in AI_CONFIG_COLUMNS]
        updates = ", ".join(f"{column} = excluded.{column}" for column in AI_CONFIG_COLUMNS)
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"INSERT INTO ai_companion_configs (game_id, {', '.join(AI_CONFIG_COLUMNS)}, updated_at) "
                f"SELECT id, {', '.join('?' for _ in AI_CONFIG_COLUMNS)}, ? FROM games "
                f"WHERE game_id = ? AND owner_id = ? "
                f"ON CONFLICT(game_id) DO UPDATE SET {updates}, updated_at = excluded.updated_at",
                (*values, now_iso(), game_id, owner_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # --- Publishing ---

    def load_snapshot(self, game_id: str, owner_id: str) -> Dict[str, Any] | None:
        """Fetches a game and its four related collections for readiness checks.

        A failed collection fetch is logged and reported as absent rather than
        raised, so the readiness check still runs on what could be read.
        """
        game = self.get_game(game_id, owner_id)
        if not game:
            return None

        snapshot = {"game": game}
        loaders = {
            "characters": self.list_characters,
            "pois": self.list_pois,
            "cards": self.list_cards,
            "ai_config": self.get_ai_config,
        }
        for key, loader in loaders.items():
            try:
                snapshot[key] = loader(game_id, owner_id)
            except sqlite3.Error as e:
                logger.error(f"Error fetching {key} for game {game_id}: {type(e).__name__}: {e}")
                snapshot[key] = None
        return snapshot
