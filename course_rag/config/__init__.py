"""Configuration: pydantic-settings ``Settings`` and the YAML loader."""

from course_rag.config.loader import load_config, settings_from_config
from course_rag.config.settings import Settings

__all__ = ["Settings", "load_config", "settings_from_config"]
