"""
config/settings.py — Scrim Bot Configuration

Loads bot configuration from environment variables (.env is read by
load_dotenv() in bot.py before this module is used).
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ScrimConfig:
    """Configuration for the scrim bot.

    Attributes:
        discord_token: Bot token
        db_path: SQLite database file
        log_level: Root logging level name
        dathost_username / dathost_password: DatHost account (Basic auth)
        dathost_server_id: Game server used for every match
        dathost_match_end_url: Webhook DatHost calls when a match ends
        scrimbot_api_url / _user / _password: Stats API (auto-draft, webhook auth)
        team_a_channel_id / team_b_channel_id: Voice channels teams are moved to
        assign_role_id: Role given to players when they join the queue
        autoclear_hour: Local hour (0-23) the queue is cleared daily
        post_setup_msg: Extra message posted after a successful launch
        ready_timeout / map_vote_timeout / draft_timeout: Phase timeouts (seconds)
    """

    discord_token: str
    db_path: str = "scrim_bot.db"
    log_level: str = "INFO"
    dathost_username: str = ""
    dathost_password: str = ""
    dathost_server_id: str = ""
    dathost_match_end_url: str = ""
    scrimbot_api_url: str = ""
    scrimbot_api_user: str = ""
    scrimbot_api_password: str = ""
    team_a_channel_id: Optional[int] = None
    team_b_channel_id: Optional[int] = None
    assign_role_id: Optional[int] = None
    autoclear_hour: Optional[int] = None
    post_setup_msg: str = ""
    ready_timeout: float = 180.0
    map_vote_timeout: float = 60.0
    draft_timeout: float = 600.0

    @property
    def dathost_enabled(self) -> bool:
        return bool(self.dathost_username and self.dathost_password and self.dathost_server_id)

    @property
    def stats_enabled(self) -> bool:
        return bool(self.scrimbot_api_url and self.scrimbot_api_user and self.scrimbot_api_password)


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_scrim_config() -> ScrimConfig:
    """Load scrim bot configuration from environment variables.

    Raises:
        ValueError: If a numeric variable cannot be parsed or
            AUTOCLEAR_HOUR is outside 0-23
    """
    autoclear_hour = _optional_int("AUTOCLEAR_HOUR")
    if autoclear_hour is not None and not 0 <= autoclear_hour <= 23:
        raise ValueError(f"AUTOCLEAR_HOUR must be between 0 and 23, got {autoclear_hour}")

    return ScrimConfig(
        discord_token=os.getenv("DISCORD_TOKEN", "").strip(),
        db_path=os.getenv("SCRIM_DB", "scrim_bot.db").strip(),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        dathost_username=os.getenv("DATHOST_USERNAME", "").strip(),
        dathost_password=os.getenv("DATHOST_PASSWORD", "").strip(),
        dathost_server_id=os.getenv("DATHOST_SERVER_ID", "").strip(),
        dathost_match_end_url=os.getenv("DATHOST_MATCH_END_URL", "").strip(),
        scrimbot_api_url=os.getenv("SCRIMBOT_API_URL", "").strip(),
        scrimbot_api_user=os.getenv("SCRIMBOT_API_USER", "").strip(),
        scrimbot_api_password=os.getenv("SCRIMBOT_API_PASSWORD", "").strip(),
        team_a_channel_id=_optional_int("TEAM_A_CHANNEL_ID"),
        team_b_channel_id=_optional_int("TEAM_B_CHANNEL_ID"),
        assign_role_id=_optional_int("ASSIGN_ROLE_ID"),
        autoclear_hour=autoclear_hour,
        post_setup_msg=os.getenv("POST_SETUP_MSG", "").strip(),
        ready_timeout=_float("READY_TIMEOUT", 180.0),
        map_vote_timeout=_float("MAP_VOTE_TIMEOUT", 60.0),
        draft_timeout=_float("DRAFT_TIMEOUT", 600.0),
    )


# Singleton instance for import convenience
_config: Optional[ScrimConfig] = None


def get_scrim_config() -> ScrimConfig:
    """Get the scrim configuration (cached singleton)."""
    global _config
    if _config is None:
        _config = load_scrim_config()
    return _config
