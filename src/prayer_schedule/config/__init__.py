from prayer_schedule.config.loader import YamlConfigLoader
from prayer_schedule.config.models import AppConfig, ConfigLoadRequest

__all__ = ["AppConfig", "ConfigLoadRequest", "YamlConfigLoader"]
