"""
Central configuration for the event pass generator.

Layout constants are fixed (the template artwork is aligned to them).
Runtime settings (credentials, paths, policies) come from the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_APP_DIR = Path(__file__).resolve().parent

# Canvas (portrait pass). Template images are resized to exactly this.
CANVAS_WIDTH = 591
CANVAS_HEIGHT = 1004
JPEG_QUALITY = 75

# QR region: square, centred horizontally, above the text block
QR_SIZE = 260
QR_PADDING = 12
QR_BOX = ((CANVAS_WIDTH - QR_SIZE) // 2, 330, QR_SIZE)  # x, y, size
QR_ERROR_CORRECTION = "M"

# Text block: (field, centre y, font size, weight)
TEXT_FIELDS = (
    ("team_id", 660, 44, "bold"),
    ("participant_name", 722, 34, "bold"),
    ("team_name", 778, 26, "regular"),
    ("event_name", 822, 26, "regular"),
    ("college_name", 866, 22, "regular"),
)
TEXT_CENTER_X = CANVAS_WIDTH // 2
TEXT_MAX_WIDTH = int(CANVAS_WIDTH * 0.9)
TEXT_MIN_FONT_SIZE = 14

TEXT_COLOR = (232, 228, 221, 255)  # #E8E4DD
STROKE_COLOR = (17, 17, 17, 255)
STROKE_WIDTH = 3
GLOW_COLOR = (0, 0, 0, 110)
GLOW_WIDTH = 7

# Bundled fonts
DEFAULT_BOLD_FONT = _APP_DIR / "fonts" / "SourceCodePro-Bold.ttf"
DEFAULT_REGULAR_FONT = _APP_DIR / "fonts" / "Lato-Regular.ttf"
DEFAULT_TEMPLATE = _APP_DIR / "assets" / "pass-template.png"

# Publishing
PASS_KEY_MAX_NAME_LEN = 20
DEFAULT_STORAGE_FOLDER = "IDs"
DEFAULT_KEY_PREFIX = "Event-Pass"

# Batching: the caller bounds teams per invocation
DEFAULT_BATCH_LIMIT = 10

# HTTP
HTTP_TIMEOUT_S = 30
HTTP_MAX_ATTEMPTS = 3


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    template_path: Path = DEFAULT_TEMPLATE
    bold_font_path: Path = DEFAULT_BOLD_FONT
    regular_font_path: Path = DEFAULT_REGULAR_FONT
    local_dir: Optional[Path] = None
    key_prefix: str = DEFAULT_KEY_PREFIX

    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    storage_folder: str = DEFAULT_STORAGE_FOLDER

    resend_api_key: Optional[str] = None
    resend_domain: Optional[str] = None
    email_from_address: Optional[str] = None
    email_from_name: Optional[str] = None

    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    mark_policy: str = "always"
    notify_empty: bool = False
    reuse_existing: bool = False
    captain_fallback: bool = False
    batch_limit: int = DEFAULT_BATCH_LIMIT

    brand_name: str = "Event Passes"
    support_email: Optional[str] = None
    event_dates: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        limit_raw = _env("PASS_BATCH_LIMIT")
        try:
            batch_limit = int(limit_raw) if limit_raw else DEFAULT_BATCH_LIMIT
        except ValueError:
            raise RuntimeError(f"Invalid PASS_BATCH_LIMIT: {limit_raw}")
        local_dir = _env("PASS_LOCAL_DIR")
        return cls(
            template_path=Path(_env("PASS_TEMPLATE_PATH") or DEFAULT_TEMPLATE),
            bold_font_path=Path(_env("PASS_FONT_BOLD") or DEFAULT_BOLD_FONT),
            regular_font_path=Path(_env("PASS_FONT_REGULAR") or DEFAULT_REGULAR_FONT),
            local_dir=Path(local_dir) if local_dir else None,
            key_prefix=_env("PASS_KEY_PREFIX") or DEFAULT_KEY_PREFIX,
            cloudinary_cloud_name=_env("CLOUDINARY_CLOUD_NAME"),
            cloudinary_api_key=_env("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=_env("CLOUDINARY_API_SECRET"),
            storage_folder=_env("CLOUDINARY_FOLDER") or DEFAULT_STORAGE_FOLDER,
            resend_api_key=_env("RESEND_API_KEY"),
            resend_domain=_env("RESEND_DOMAIN"),
            email_from_address=_env("EMAIL_FROM_ADDRESS"),
            email_from_name=_env("EMAIL_FROM_NAME"),
            supabase_url=_env("SUPABASE_URL"),
            supabase_service_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            mark_policy=(_env("PASS_MARK_POLICY") or "always").lower(),
            notify_empty=_bool_env(_env("PASS_NOTIFY_EMPTY")),
            reuse_existing=_bool_env(_env("PASS_REUSE_EXISTING")),
            captain_fallback=_bool_env(_env("PASS_CAPTAIN_FALLBACK")),
            batch_limit=batch_limit,
            brand_name=_env("BRAND_NAME") or "Event Passes",
            support_email=_env("SUPPORT_EMAIL"),
            event_dates=_env("EVENT_DATES"),
            log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        )
