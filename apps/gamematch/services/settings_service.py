"""
Settings service for session configuration with store overrides.

Values come from the settings collection first, then environment variables,
then built-in defaults.
"""

import os
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from gamematch.utils.constants import (
    DEFAULT_COURTS_COUNT,
    DEFAULT_GAME_DURATION_MIN,
    DEFAULT_SESSION_NAME,
    DEFAULT_TEAM_SIZE,
    MAX_COURTS,
    MIN_COURTS,
    MIN_TEAM_SIZE,
    SETTING_COURTS_COUNT,
    SETTING_GAME_DURATION,
    SETTING_SESSION_NAME,
    SETTING_TEAM_SIZE,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable from a string value.

    Args:
        key: Environment variable name
        default: Default value if the variable is not set

    Returns:
        bool: Parsed boolean value
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def get_setting_with_fallback(
    settings: Optional[Dict[str, str]],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Get a setting value from the store first, then env var, then default.

    Args:
        settings: Settings read from the store (optional)
        key: Setting key in the store
        env_var: Environment variable name to fall back to
        default: Default value if neither store nor env var is set

    Returns:
        Setting value as string, or None
    """
    if settings:
        value = settings.get(key)
        if value is not None and value != "":
            return value

    if env_var:
        value = os.getenv(env_var)
        if value is not None:
            return value

    return default


def get_int_setting(
    settings: Optional[Dict[str, str]],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[int] = None,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> Optional[int]:
    """
    Get an integer setting value.

    Values that do not parse or fall outside ``[minimum, maximum]`` are
    logged and replaced by the default.
    """
    value = get_setting_with_fallback(settings, key, env_var, None)
    if value is None:
        return default

    try:
        parsed = int(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer value for setting {key}: {value}")
        return default

    if (minimum is not None and parsed < minimum) or (maximum is not None and parsed > maximum):
        logger.warning(f"Setting {key}={parsed} is out of range; using {default}")
        return default
    return parsed


def session_values(settings: Optional[Dict[str, str]]) -> Dict[str, Any]:
    """Valid session values present in the store; nothing else."""
    values: Dict[str, Any] = {}
    courts_count = get_int_setting(settings, SETTING_COURTS_COUNT, minimum=MIN_COURTS, maximum=MAX_COURTS)
    if courts_count is not None:
        values["courts_count"] = courts_count
    team_size = get_int_setting(settings, SETTING_TEAM_SIZE, minimum=MIN_TEAM_SIZE)
    if team_size is not None:
        values["team_size"] = team_size
    duration = get_int_setting(settings, SETTING_GAME_DURATION, minimum=1)
    if duration is not None:
        values["game_duration_min"] = duration
    name = get_setting_with_fallback(settings, SETTING_SESSION_NAME)
    if name:
        values["name"] = name
    return values


def session_defaults(settings: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Session configuration for a fresh engine: store, then environment, then defaults."""
    return {
        "name": get_setting_with_fallback(
            settings, SETTING_SESSION_NAME, "SESSION_NAME", DEFAULT_SESSION_NAME
        ),
        "courts_count": get_int_setting(
            settings,
            SETTING_COURTS_COUNT,
            "DEFAULT_COURTS_COUNT",
            DEFAULT_COURTS_COUNT,
            minimum=MIN_COURTS,
            maximum=MAX_COURTS,
        ),
        "team_size": get_int_setting(
            settings, SETTING_TEAM_SIZE, "DEFAULT_TEAM_SIZE", DEFAULT_TEAM_SIZE, minimum=MIN_TEAM_SIZE
        ),
        "game_duration_min": get_int_setting(
            settings, SETTING_GAME_DURATION, "GAME_DURATION_MIN", DEFAULT_GAME_DURATION_MIN, minimum=1
        ),
        "auto_seat_next": get_bool_env("AUTO_SEAT_NEXT", default=True),
    }
