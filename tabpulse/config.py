"""Policy model and process configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_PORT = 5588


class Policy(BaseModel):
    """ユーザー設定（しきい値・除外トグル・ホワイトリスト）."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    enabled: bool = True
    idle_minutes: float = 10
    grace_period_sec: float = 60
    check_interval_sec: float = 10
    keep_alive_minutes: float = 120
    whitelist_domains: tuple[str, ...] = (
        "youtube.com",
        "music.youtube.com",
        "docs.google.com",
    )
    whitelist_pinned: bool = True
    do_not_suspend_audible: bool = True
    do_not_suspend_media_playing: bool = True
    do_not_suspend_network_active: bool = True
    do_not_suspend_realtime_apps: bool = True

    @field_validator(
        "idle_minutes", "check_interval_sec", "keep_alive_minutes"
    )
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            msg = "must be greater than zero"
            raise ValueError(msg)
        return v

    @field_validator("grace_period_sec")
    @classmethod
    def must_not_be_negative(cls, v: float) -> float:
        if v < 0:
            msg = "must not be negative"
            raise ValueError(msg)
        return v

    @field_validator("whitelist_domains", mode="before")
    @classmethod
    def normalize_domains(cls, v: object) -> tuple[str, ...]:
        if isinstance(v, str):
            v = v.splitlines()
        if not isinstance(v, (list, tuple)):
            msg = "whitelist_domains must be a list of domains"
            raise ValueError(msg)  # noqa: TRY004
        return tuple(str(d).strip().lower() for d in v if str(d).strip())

    def merged(self, patch: dict[str, object]) -> Policy:
        """Return a validated copy with ``patch`` applied (camelCase or snake_case keys)."""
        names = {}
        for name, info in Policy.model_fields.items():
            names[name] = name
            if info.alias:
                names[info.alias] = name
        data = self.model_dump()
        for key, value in patch.items():
            if key in names:
                data[names[key]] = value
        return Policy.model_validate(data)


@dataclass
class AppConfig:
    """Process level settings read from the environment."""

    storage_path: Path | None = None
    icon_path: Path | None = None
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    autostart: bool = True


def _env_flag(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_local_env() -> None:
    load_dotenv(dotenv_path=REPO_ROOT / ".env.local", override=False)


def load_app_config() -> AppConfig:
    """環境変数（.env.local も含む）から AppConfig を組み立てる.

    - TABPULSE_STORAGE_PATH: JSONファイルで状態を永続化する場合のパス
    - TABPULSE_ICON_PATH: 通知アイコン
    - TABPULSE_HOST / TABPULSE_PORT: APIの待ち受け先
    - TABPULSE_AUTOSTART: 起動時にスケジューラを開始するか
    """
    load_local_env()
    storage = os.getenv("TABPULSE_STORAGE_PATH")
    icon = os.getenv("TABPULSE_ICON_PATH")
    port = os.getenv("TABPULSE_PORT")
    return AppConfig(
        storage_path=Path(storage) if storage else None,
        icon_path=Path(icon) if icon else None,
        host=os.getenv("TABPULSE_HOST", "127.0.0.1"),
        port=int(port) if port else DEFAULT_PORT,
        autostart=_env_flag("TABPULSE_AUTOSTART", default=True),
    )
