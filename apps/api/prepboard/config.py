from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://prepboard:prepboard@db:5432/prepboard"
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  log_level: str = "INFO"
  api_docs_enabled: bool = True
  app_secret: str = "change-me"

  cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,test"

  upload_dir: str = "data/uploads"
  max_attachment_bytes: int = 10 * 1024 * 1024

  invite_code_bytes: int = 9
  invite_code_max_attempts: int = 5
  ws_auth_timeout_seconds: float = 10.0

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def is_sqlite(self) -> bool:
    return self.database_url.startswith("sqlite")


settings = Settings()
