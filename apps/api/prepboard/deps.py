from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.db import SessionLocal
from prepboard.errors import InvalidInput, Unauthenticated
from prepboard.models import ApiToken, User
from prepboard.realtime.broadcaster import RoomBroadcaster
from prepboard.security import api_token_hash
from prepboard.storage.blobs import LocalBlobStore, blob_store


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def bearer_token(request: Request) -> str | None:
  auth = request.headers.get("authorization")
  if auth and auth.lower().startswith("bearer "):
    return auth.split(" ", 1)[1].strip() or None
  return None


async def resolve_token(db: AsyncSession, token: str | None) -> User:
  if not token:
    raise Unauthenticated("Not authenticated")
  tres = await db.execute(select(ApiToken).where(ApiToken.token_hash == api_token_hash(token), ApiToken.revoked_at.is_(None)))
  t = tres.scalar_one_or_none()
  if not t:
    raise Unauthenticated("Invalid token")
  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise Unauthenticated("User not found")
  t.last_used_at = datetime.now(timezone.utc)
  await db.commit()
  return u


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  return await resolve_token(db, bearer_token(request))


def get_broadcaster(request: Request) -> RoomBroadcaster:
  return request.app.state.broadcaster


def get_blob_store() -> LocalBlobStore:
  return blob_store


def valid_id(value: str, what: str = "id") -> str:
  try:
    return str(uuid.UUID(value))
  except (ValueError, AttributeError, TypeError):
    raise InvalidInput(f"Malformed {what}") from None
