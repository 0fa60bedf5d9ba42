from __future__ import annotations

import hashlib
import hmac
import secrets

from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.config import settings
from prepboard.models import ApiToken, User

API_TOKEN_PREFIX = "pb_"


def api_token_new() -> str:
  return API_TOKEN_PREFIX + secrets.token_urlsafe(32)


def api_token_hash(token: str) -> str:
  # Keyed hash so DB leaks don't allow offline token matching.
  key = (settings.app_secret or "").encode("utf-8")
  msg = (token or "").strip().encode("utf-8")
  return hmac.new(key, msg, hashlib.sha256).hexdigest()


def invite_code_new() -> str:
  return secrets.token_urlsafe(settings.invite_code_bytes)


async def issue_api_token(db: AsyncSession, *, user: User, name: str = "default") -> str:
  """Create a token row for `user` and return the plaintext (shown once)."""
  token = api_token_new()
  db.add(ApiToken(user_id=user.id, name=name, token_hash=api_token_hash(token), token_hint=token[-4:]))
  return token
