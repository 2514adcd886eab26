from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TOOLBUNDLE_"

KILL_GRACE_DEFAULT_S = 5.0
POLL_INTERVAL_DEFAULT_S = 0.2

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_bool_setting(value: str | None, *, default: bool) -> bool:
    clean = (value or "").strip().lower()
    if clean in _TRUE_VALUES:
        return True
    if clean in _FALSE_VALUES:
        return False
    return default


def parse_float_setting(
    value: str | None,
    *,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    try:
        parsed = float(value or "")
    except (TypeError, ValueError, OverflowError):
        return default
    if math.isnan(parsed):
        return default
    return max(minimum, min(maximum, parsed))


def parse_path_setting(value: str | None) -> Path | None:
    clean = (value or "").strip()
    if not clean:
        return None
    return Path(clean).expanduser()


@dataclass(frozen=True)
class Settings:
    temp_root: Path | None = None
    bundle_root: Path | None = None
    process_group: bool = False
    kill_grace_s: float = KILL_GRACE_DEFAULT_S
    poll_interval_s: float = POLL_INTERVAL_DEFAULT_S


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        temp_root=parse_path_setting(env.get(f"{ENV_PREFIX}TEMP_ROOT")),
        bundle_root=parse_path_setting(env.get(f"{ENV_PREFIX}BUNDLE_ROOT")),
        process_group=parse_bool_setting(
            env.get(f"{ENV_PREFIX}PROCESS_GROUP"),
            default=False,
        ),
        kill_grace_s=parse_float_setting(
            env.get(f"{ENV_PREFIX}KILL_GRACE_S"),
            default=KILL_GRACE_DEFAULT_S,
            minimum=0.0,
            maximum=60.0,
        ),
        poll_interval_s=parse_float_setting(
            env.get(f"{ENV_PREFIX}POLL_INTERVAL_S"),
            default=POLL_INTERVAL_DEFAULT_S,
            minimum=0.01,
            maximum=5.0,
        ),
    )
