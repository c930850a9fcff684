from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"
DEFAULT_CATALOG_TEMPLATE_PATH = DEFAULT_DATA_DIR / "catalog.json"


def _resolve_path(raw_path: str | None, default_path: Path) -> Path:
    if not raw_path:
        return default_path
    path = Path(raw_path).expanduser()
    if path.is_absolute():
        return path
    return (BASE_DIR / path).resolve()


# Load .env early so path env vars are available for module-level constants.
load_dotenv()

DATA_DIR = _resolve_path(os.getenv("DATA_DIR"), DEFAULT_DATA_DIR)
EXPORTS_DIR = DATA_DIR / "exports"
DB_PATH = _resolve_path(os.getenv("DB_PATH"), DATA_DIR / "procurement.db")
CATALOG_PATH = _resolve_path(os.getenv("CATALOG_PATH"), DATA_DIR / "catalog.json")
CATALOG_TEMPLATE_PATH = _resolve_path(
    os.getenv("CATALOG_TEMPLATE_PATH"),
    DEFAULT_CATALOG_TEMPLATE_PATH,
)


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str
    openai_api_key: str
    openai_model: str = "gpt-4.1-mini"
    currency: str = "₽"
    supplier_seed: int | None = None
    admin_user_ids: frozenset[int] = field(default_factory=frozenset)


class ConfigError(RuntimeError):
    pass


def _parse_admin_ids(raw: str) -> frozenset[int]:
    ids: set[int] = set()
    for chunk in raw.replace(";", ",").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ids.add(int(chunk))
        except ValueError as exc:
            raise ConfigError(f"ADMIN_USER_IDS must be a comma-separated list of integers, got {chunk!r}") from exc
    return frozenset(ids)


def load_config() -> AppConfig:
    load_dotenv()

    telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
    openai_model = os.getenv("OPENAI_MODEL", "gpt-4.1-mini").strip() or "gpt-4.1-mini"
    currency = os.getenv("CURRENCY", "₽").strip() or "₽"
    supplier_seed_raw = os.getenv("SUPPLIER_SEED", "").strip()
    admin_ids_raw = os.getenv("ADMIN_USER_IDS", "").strip()

    if not telegram_bot_token:
        raise ConfigError("Missing TELEGRAM_BOT_TOKEN in environment/.env")
    if not openai_api_key:
        raise ConfigError("Missing OPENAI_API_KEY in environment/.env")

    supplier_seed: int | None = None
    if supplier_seed_raw:
        try:
            supplier_seed = int(supplier_seed_raw)
        except ValueError as exc:
            raise ConfigError("SUPPLIER_SEED must be an integer") from exc

    return AppConfig(
        telegram_bot_token=telegram_bot_token,
        openai_api_key=openai_api_key,
        openai_model=openai_model,
        currency=currency,
        supplier_seed=supplier_seed,
        admin_user_ids=_parse_admin_ids(admin_ids_raw),
    )


def ensure_data_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    CATALOG_PATH.parent.mkdir(parents=True, exist_ok=True)

    # If CATALOG_PATH points to an empty mounted volume, seed it from template.
    if not CATALOG_PATH.exists():
        if CATALOG_TEMPLATE_PATH.exists():
            shutil.copy2(CATALOG_TEMPLATE_PATH, CATALOG_PATH)
        else:
            raise ConfigError(
                f"Catalog file missing at {CATALOG_PATH} and template not found at {CATALOG_TEMPLATE_PATH}"
            )
