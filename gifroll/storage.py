from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import OUTPUT_DIR, STATE_FILE

ANIMATION_NAME = "animation.gif"
LATEST_FRAME_NAME = "latest_frame.gif"

_lock = threading.Lock()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _default_state() -> dict[str, Any]:
    return {
        "fetch": {"last_at": None, "count": 0},
        "publish": {"last_at": None, "count": 0, "last_target": None},
    }


def _normalize_state(state: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    changed = False
    defaults = _default_state()

    for section, values in defaults.items():
        if not isinstance(state.get(section), dict):
            state[section] = values
            changed = True
            continue
        for key, value in values.items():
            if key not in state[section]:
                state[section][key] = value
                changed = True

    return state, changed


def load_state(state_file: Path = STATE_FILE) -> dict[str, Any]:
    if not state_file.exists():
        state = _default_state()
        save_state(state, state_file)
        return state

    with _lock, state_file.open("r", encoding="utf-8") as f:
        state = json.load(f)

    state, changed = _normalize_state(state)
    if changed:
        save_state(state, state_file)
    return state


def save_state(state: dict[str, Any], state_file: Path = STATE_FILE) -> None:
    state_file.parent.mkdir(parents=True, exist_ok=True)
    with _lock, state_file.open("w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)


def record_fetch(state_file: Path = STATE_FILE) -> None:
    state = load_state(state_file)
    state["fetch"]["last_at"] = _now()
    state["fetch"]["count"] = int(state["fetch"]["count"]) + 1
    save_state(state, state_file)


def record_publish(target: str, state_file: Path = STATE_FILE) -> None:
    state = load_state(state_file)
    state["publish"]["last_at"] = _now()
    state["publish"]["count"] = int(state["publish"]["count"]) + 1
    state["publish"]["last_target"] = target
    save_state(state, state_file)


def save_animation(payload: bytes, output_dir: Path = OUTPUT_DIR) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / ANIMATION_NAME
    path.write_bytes(payload)
    return path


def save_latest_frame(payload: bytes, output_dir: Path = OUTPUT_DIR) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / LATEST_FRAME_NAME
    path.write_bytes(payload)
    return path
