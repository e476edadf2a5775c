from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional


ENV_DEBUG_MODE = "LMC_DEBUG_MODE"
ENV_PROMPT = "LMC_PROMPT"
ENV_ALLOW_DUPLICATE_LABELS = "LMC_ALLOW_DUPLICATE_LABELS"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    debug: bool = False
    prompt: str = "> "
    allow_duplicate_labels: bool = False


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "0").strip() == "1"


def load_settings(env: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    source = os.environ if env is None else env
    settings = Settings(
        debug=_env_flag(source, ENV_DEBUG_MODE),
        prompt=source.get(ENV_PROMPT, Settings.prompt),
        allow_duplicate_labels=_env_flag(source, ENV_ALLOW_DUPLICATE_LABELS),
    )
    applied = {key: value for key, value in overrides.items() if value is not None}
    return replace(settings, **applied)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )
