from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    resend_api_key: str | None = None
    resend_from: str = "Barfer <ventas@barferalimento.com>"
    whatsapp_token: str | None = None
    whatsapp_phone_id: str | None = None
    report_recipients: tuple[str, ...] = ()
    campaign_tolerance_minutes: int = 5


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "PetDash") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = Path(os.environ["PETDASH_DB_PATH"]) if os.environ.get("PETDASH_DB_PATH") else base / "petdash.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def load_settings(env: dict[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env
    recipients = tuple(
        addr.strip() for addr in env.get("REPORT_RECIPIENTS", "").split(",") if addr.strip()
    )
    tolerance = int(env.get("CAMPAIGN_TOLERANCE_MINUTES", "5") or 5)
    return Settings(
        resend_api_key=env.get("RESEND_API_KEY") or None,
        resend_from=env.get("RESEND_FROM") or Settings.resend_from,
        whatsapp_token=env.get("WHATSAPP_TOKEN") or None,
        whatsapp_phone_id=env.get("WHATSAPP_PHONE_ID") or None,
        report_recipients=recipients,
        campaign_tolerance_minutes=tolerance,
    )
