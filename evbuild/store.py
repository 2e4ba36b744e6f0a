"""Persisted EV map and ref state, used to bootstrap cold starts."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from evbuild.models import EffectiveVersionMap, RefState

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "EVBUILD_DATA_DIR"
_DEFAULT_DATA_DIR = Path.home() / ".evbuild"

EV_MAP_FILE = "ev-map.json"
REF_STATE_FILE = "ref-state.json"


def default_data_dir() -> Path:
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return _DEFAULT_DATA_DIR


class VersionStore:
    """Two whole-file JSON documents: unit -> EV and unit -> commit.

    Loads never fail (missing or corrupt files read as empty); saves raise
    OSError so callers know persistence did not happen.
    """

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir) if data_dir else default_data_dir()

    @property
    def ev_map_path(self) -> Path:
        return self.data_dir / EV_MAP_FILE

    @property
    def ref_state_path(self) -> Path:
        return self.data_dir / REF_STATE_FILE

    def load_ev_map(self) -> EffectiveVersionMap:
        return self._load(self.ev_map_path)

    def save_ev_map(self, ev_map: EffectiveVersionMap) -> None:
        self._save(self.ev_map_path, ev_map)

    def load_ref_state(self) -> RefState:
        return self._load(self.ref_state_path)

    def save_ref_state(self, state: RefState) -> None:
        self._save(self.ref_state_path, state)

    def _load(self, path: Path) -> dict[str, str]:
        try:
            if not path.exists():
                return {}
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object", path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, path: Path, data: dict[str, str]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
