"""Load and validate interview bot profiles."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import ValidationError

from bot_platform.profile_models import BotProfile
from question_sets import available_question_sets


PLATFORM_NAME = "Meeting Interview Bot"

DEFAULT_PROFILE_PATH = Path(__file__).resolve().parent / "profiles" / "default.json"


def resolve_profile_path(profile_path: str | None = None) -> Path:
    """Resolve explicit path, then BOT_PROFILE_PATH, then the bundled default."""
    raw_path = (profile_path or os.environ.get("BOT_PROFILE_PATH") or "").strip()
    if not raw_path:
        return DEFAULT_PROFILE_PATH
    return Path(raw_path).expanduser()


def load_bot_profile(profile_path: str | None = None) -> tuple[BotProfile, Path]:
    """Load a bot profile JSON from disk with strict validation."""
    resolved_path = resolve_profile_path(profile_path).resolve()
    if not resolved_path.exists():
        raise RuntimeError(
            f"Bot profile file not found at '{resolved_path}'. "
            "Set BOT_PROFILE_PATH or provide a valid --profile path."
        )

    try:
        with open(resolved_path, "r", encoding="utf-8") as profile_file:
            raw_profile = json.load(profile_file)
    except OSError as exc:
        raise RuntimeError(
            f"Failed to read bot profile '{resolved_path}': {exc}"
        ) from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(
            f"Bot profile at '{resolved_path}' is not valid JSON: {exc}"
        ) from exc

    try:
        profile = BotProfile.model_validate(raw_profile)
    except ValidationError as exc:
        raise RuntimeError(
            f"Bot profile validation failed for '{resolved_path}': {exc}"
        ) from exc

    if profile.question_set not in available_question_sets():
        supported = ", ".join(available_question_sets())
        raise RuntimeError(
            f"Bot profile '{resolved_path}' names unknown question_set "
            f"'{profile.question_set}'. Supported: {supported}."
        )

    return profile, resolved_path
