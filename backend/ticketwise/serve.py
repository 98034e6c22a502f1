from __future__ import annotations

import os
import secrets
from pathlib import Path

import uvicorn

from ticketwise.core.config import get_settings


def main() -> None:
    """Run the pod backend with uvicorn.

    Cookie sealing needs a stable secret, so one is generated into `.env`
    on first start when none is configured.
    """

    ensure_app_secret_key(Path.cwd())
    get_settings.cache_clear()
    settings = get_settings()
    uvicorn.run(
        "ticketwise.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )


def ensure_app_secret_key(config_dir: Path) -> None:
    if os.getenv("APP_SECRET_KEY"):
        return

    env_path = config_dir / ".env"
    existing = env_path.read_text(encoding="utf-8").splitlines() if env_path.exists() else []
    for line in existing:
        if line.strip().startswith("APP_SECRET_KEY="):
            raw_value = line.split("=", 1)[1].strip().strip('"').strip("'")
            if raw_value:
                return

    upsert_env_value(env_path, "APP_SECRET_KEY", secrets.token_urlsafe(48))


def upsert_env_value(env_path: Path, key: str, value: str) -> None:
    env_path.parent.mkdir(parents=True, exist_ok=True)
    lines = env_path.read_text(encoding="utf-8").splitlines() if env_path.exists() else []
    updated: list[str] = []
    found = False
    for line in lines:
        if line.strip().startswith(f"{key}=") and not line.lstrip().startswith("#"):
            updated.append(f'{key}="{value}"')
            found = True
            continue
        updated.append(line)

    if not found:
        if updated and updated[-1].strip():
            updated.append("")
        updated.append(f'{key}="{value}"')

    env_path.write_text("\n".join(updated).rstrip() + "\n", encoding="utf-8")


if __name__ == "__main__":
    main()
