"""User registration, lookup and search."""

from __future__ import annotations

from loguru import logger

from polychat.chat.models import User
from polychat.chat.paths import StorePaths
from polychat.errors import PersistenceError, ValidationError
from polychat.store import SERVER_TIMESTAMP, DocumentStore, Query

SEARCH_LIMIT = 20
# Highest BMP private-use code point; sorts after any ordinary character.
PREFIX_END = "\uf8ff"


class UserDirectory:
    """Public user profiles."""

    def __init__(self, store: DocumentStore, paths: StorePaths):
        self.store = store
        self.paths = paths

    async def register(
        self,
        user_id: str,
        display_name: str,
        target_lang: str = "Spanish",
        photo_url: str = "",
    ) -> User:
        """Create a profile. Display names are unique (case-sensitive) and cannot be changed later.

        Registering a user who already has a named profile returns that profile untouched.
        """
        name = display_name.strip()
        if not name:
            raise ValidationError("Display name is required.")
        current = await self.get(user_id)
        if current and current.display_name:
            logger.debug("{} already registered as {}", user_id, current.display_name)
            return current
        existing = await self.store.query(self.paths.users, Query().where("displayName", "==", name))
        if existing:
            raise ValidationError("Username taken.")

        user = User(id=user_id, display_name=name, target_lang=target_lang, photo_url=photo_url)
        try:
            await self.store.set(self.paths.users, user_id, {**user.to_dict(), "lastActive": SERVER_TIMESTAMP})
        except Exception as e:
            raise PersistenceError(f"Error joining: {e}") from e
        logger.info("Registered {} as {}", user_id, name)
        return (await self.get(user_id)) or user

    async def get(self, user_id: str) -> User | None:
        doc = await self.store.get(self.paths.users, user_id)
        return User.from_dict(doc.id, doc.data) if doc else None

    async def display_name(self, user_id: str) -> str | None:
        user = await self.get(user_id)
        return user.display_name if user else None

    async def search(self, prefix: str, exclude: str | None = None, limit: int = SEARCH_LIMIT) -> list[User]:
        """Users whose display name starts with ``prefix``."""
        prefix = prefix.strip()
        if not prefix:
            return []
        query = (
            Query()
            .where("displayName", ">=", prefix)
            .where("displayName", "<=", prefix + PREFIX_END)
            .ordered("displayName")
            .limited(limit + 1 if exclude else limit)
        )
        docs = await self.store.query(self.paths.users, query)
        users = [User.from_dict(d.id, d.data) for d in docs]
        return [u for u in users if u.id != exclude][:limit]
