"""User administration endpoints (admin pages and own profile)."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from wartungsteile import cache
from wartungsteile.client import BackendClient
from wartungsteile.errors import ClientValidationError
from wartungsteile.guard import parse_role
from wartungsteile.models import User

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


def validate_user(data: Dict[str, Any], require_password: bool) -> List[str]:
    errors: List[str] = []
    if not (data.get("username") or "").strip():
        errors.append("Benutzername ist erforderlich.")
    if not EMAIL_PATTERN.match(data.get("email") or ""):
        errors.append("Bitte geben Sie eine gültige E-Mail-Adresse ein.")
    if data.get("role") is not None and parse_role(data["role"]) is None:
        errors.append("Unbekannte Rolle.")
    if require_password:
        errors.extend(validate_password(data.get("password")))
    return errors


def validate_password(password: Optional[str]) -> List[str]:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return [f"Das Passwort muss mindestens {MIN_PASSWORD_LENGTH} Zeichen lang sein."]
    return []


class UserService:
    def __init__(self, client: BackendClient, queries: cache.QueryCache) -> None:
        self.client = client
        self.queries = queries

    async def list(self, include_deleted: bool = False) -> List[User]:
        params = {"includeDeleted": "true"} if include_deleted else None

        async def load() -> List[User]:
            return [User.from_api(u) for u in await self.client.get("/users", params=params) or []]

        return await self.queries.fetch(cache.USERS + (include_deleted,), load)

    async def get(self, user_id: str) -> User:
        return User.from_api(await self.client.get(f"/users/{user_id}"))

    async def create(self, data: Dict[str, Any]) -> User:
        errors = validate_user(data, require_password=True)
        if errors:
            raise ClientValidationError(errors)
        created = await self.client.post("/users", json=data)
        self.queries.invalidate(cache.USERS)
        return User.from_api(created)

    async def update(self, user_id: str, data: Dict[str, Any]) -> User:
        errors = validate_user(data, require_password=False)
        if errors:
            raise ClientValidationError(errors)
        updated = await self.client.put(f"/users/{user_id}", json=data)
        self.queries.invalidate(cache.USERS)
        return User.from_api(updated)

    async def delete(self, user_id: str) -> None:
        await self.client.delete(f"/users/{user_id}")
        self.queries.invalidate(cache.USERS)

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        errors = validate_password(new_password)
        if errors:
            raise ClientValidationError(errors)
        await self.client.post(
            f"/users/{user_id}/change-password",
            json={"currentPassword": current_password, "newPassword": new_password},
        )

    async def reset_password(self, user_id: str, new_password: str) -> None:
        errors = validate_password(new_password)
        if errors:
            raise ClientValidationError(errors)
        await self.client.post(f"/users/{user_id}/reset-password", json={"newPassword": new_password})

    async def _action(self, user_id: str, action: str) -> None:
        await self.client.post(f"/users/{user_id}/{action}")
        self.queries.invalidate(cache.USERS)

    async def activate(self, user_id: str) -> None:
        await self._action(user_id, "activate")

    async def deactivate(self, user_id: str) -> None:
        await self._action(user_id, "deactivate")

    async def restore(self, user_id: str) -> None:
        await self._action(user_id, "restore")
