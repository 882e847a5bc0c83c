"""Configuration: YAML or config directory, plus env overlay."""

from smsxmpp.config.directory import load_config_directory
from smsxmpp.config.loader import load_config, load_config_with_env
from smsxmpp.config.schema import Config, ProviderConfig, UserConfig

__all__ = ["Config", "ProviderConfig", "UserConfig", "load_config", "load_config_directory", "load_config_with_env"]
