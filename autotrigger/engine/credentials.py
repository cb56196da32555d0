"""Credential service — authorization state for the trigger backend.

The OAuth dance itself happens outside autotrigger; a credential obtained
elsewhere is imported into the store (``autotrigger auth import``) and this
service reads it back.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from autotrigger.core.schedule.types import AuthorizationState
from autotrigger.memory.store import TriggerStore


class OAuthCredential(BaseModel):
    access_token: str = ""
    refresh_token: str = ""
    expires_at: str | None = None  # ISO 8601
    project_id: str | None = None
    email: str | None = None
    scopes: list[str] = Field(default_factory=list)


class CredentialService(Protocol):
    """What the controller needs from a credential backend."""

    async def authorize(self) -> bool: ...

    async def revoke(self) -> None: ...

    async def get_authorization(self) -> AuthorizationState: ...

    async def get_access_token(self) -> str | None: ...


class StoredCredentialService:
    """Credential service backed by the SQLite store.

    Authorized iff a credential with a refresh token is stored.
    """

    def __init__(self, db: TriggerStore):
        self.db = db

    def _load(self) -> OAuthCredential | None:
        data = self.db.get_credential()
        if not data:
            return None
        try:
            return OAuthCredential(**data)
        except ValueError as e:
            logger.error(f"Stored credential is unreadable: {e}")
            return None

    def import_credential(self, credential: OAuthCredential | dict[str, Any]) -> None:
        if isinstance(credential, dict):
            credential = OAuthCredential(**credential)
        self.db.save_credential(credential.model_dump())
        logger.info(f"Credential imported for {credential.email or 'unknown account'}")

    async def authorize(self) -> bool:
        cred = self._load()
        if cred is None or not cred.refresh_token:
            logger.warning("Authorization failed: no credential with a refresh token")
            return False
        logger.info(f"Authorized as {cred.email or 'unknown account'}")
        return True

    async def revoke(self) -> None:
        self.db.delete_credential()
        logger.info("Authorization revoked")

    async def get_authorization(self) -> AuthorizationState:
        cred = self._load()
        if cred is None or not cred.refresh_token:
            return AuthorizationState(is_authorized=False)
        return AuthorizationState(
            is_authorized=True, email=cred.email, expires_at=cred.expires_at
        )

    async def get_access_token(self) -> str | None:
        """Stored access token, None when missing or about to expire."""
        cred = self._load()
        if cred is None or not cred.access_token:
            return None
        if cred.expires_at:
            try:
                expires = datetime.fromisoformat(cred.expires_at.replace("Z", "+00:00"))
            except ValueError:
                return cred.access_token
            now = datetime.now(expires.tzinfo) if expires.tzinfo else datetime.now()
            if expires - now < timedelta(minutes=5):
                logger.warning("Access token expired or about to expire")
                return None
        return cred.access_token
