from __future__ import annotations

import logging
from pathlib import Path

import yaml

from posefx.models.config import AppConfig, ConfigUpdate

logger = logging.getLogger(__name__)


class ConfigStore:
    """YAML-backed ``AppConfig``; a missing file is created with defaults."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.config = self._load_or_create()

    def _load_or_create(self) -> AppConfig:
        if not self.path.exists():
            cfg = AppConfig()
            self.save(cfg)
            logger.info("wrote default config to %s", self.path)
            return cfg
        payload = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        return AppConfig.model_validate(payload)

    def save(self, cfg: AppConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(cfg.model_dump(), sort_keys=False)
        self.path.write_text(text, encoding="utf-8")
        self.config = cfg

    def update(self, update: ConfigUpdate) -> AppConfig:
        """Replace the given sections and re-validate the whole document."""
        changes = update.model_dump(exclude_none=True)
        payload = self.config.model_dump()
        payload.update(changes)
        merged = AppConfig.model_validate(payload)
        self.save(merged)
        logger.info("config updated: %s", ", ".join(sorted(changes)) or "no sections")
        return merged
