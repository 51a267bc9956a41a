
import json
import logging
import os
from typing import Optional

from platformdirs import user_config_dir
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("Config")

APP_NAME = "api-client"


class AppConfig(BaseModel):
    """Application configuration"""

    last_opened_folder: Optional[str] = None


def default_config_path():
    return os.path.join(user_config_dir(APP_NAME), "config.json")


class ConfigStorage:
    """Where AppConfig lives between runs"""

    def load(self) -> AppConfig:
        raise NotImplementedError

    def save(self, config: AppConfig):
        raise NotImplementedError


class JsonConfigStorage(ConfigStorage):
    def __init__(self, path=None):
        self.path = path or default_config_path()

    def load(self) -> AppConfig:
        # Missing or broken file means defaults
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return AppConfig.model_validate(json.load(f))
        except FileNotFoundError:
            return AppConfig()
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable config {self.path}: {e}")
            return AppConfig()

    def save(self, config: AppConfig):
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(config.model_dump_json(indent=2))
        except OSError as e:
            logger.warning(f"Failed to save config {self.path}: {e}")
