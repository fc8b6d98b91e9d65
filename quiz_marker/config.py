from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# -----------------------------
# Settings persistence
# -----------------------------

DEFAULT_CONFIG_PATH = Path.home() / ".quiz_marker_config.json"
DEFAULT_STORE_PATH = Path.home() / ".quiz_marker_sessions.json"


def config_path() -> Path:
    """
    Resolve the settings file.

    Resolution order:
    1) QUIZ_MARKER_CONFIG env var
    2) ~/.quiz_marker_config.json
    """
    env_path = os.environ.get("QUIZ_MARKER_CONFIG", "").strip()
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


@dataclass
class MarkerSettings:
    # crop policy for question-bank graphics
    expansion_factor: float = 0.3
    min_box_px: int = 10

    # mask editor
    brush_size: int = 30
    brush_min: int = 5
    brush_max: int = 100
    save_quality: float = 0.95
    min_zoom: float = 0.1
    max_zoom: float = 10.0

    store_path: str = str(DEFAULT_STORE_PATH)
    log_level: str = "INFO"

    def __post_init__(self):
        if self.expansion_factor < 0:
            raise ValueError("expansion_factor must be >= 0")
        if self.min_box_px < 1:
            raise ValueError("min_box_px must be >= 1")
        if self.brush_min > self.brush_max:
            raise ValueError("brush_min must not exceed brush_max")
        if not (0.0 < self.save_quality <= 1.0):
            raise ValueError("save_quality must be in (0, 1]")
        if not (0.0 < self.min_zoom <= self.max_zoom):
            raise ValueError("min_zoom must be positive and not exceed max_zoom")
        self.brush_size = max(self.brush_min, min(self.brush_max, int(self.brush_size)))


def load_settings(path: Optional[Path] = None) -> MarkerSettings:
    path = Path(path) if path is not None else config_path()
    if not path.exists():
        return MarkerSettings()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("settings file must hold a JSON object")
        known = {f.name for f in fields(MarkerSettings)}
        merged = {**asdict(MarkerSettings()), **{k: v for k, v in data.items() if k in known}}
        return MarkerSettings(**merged)
    except (OSError, ValueError, TypeError) as e:
        # A corrupt settings file must not block app usage.
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return MarkerSettings()


def save_settings(settings: MarkerSettings, path: Optional[Path] = None) -> None:
    path = Path(path) if path is not None else config_path()
    path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
