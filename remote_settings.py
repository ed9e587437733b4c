import logging
from pathlib import Path
from typing import Annotated, Type

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource

CONFIG_FILE = Path.home() / '.config' / 'git-remote-forks' / 'config.yaml'


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='GIT_REMOTE_FORKS_', yaml_file=CONFIG_FILE)

    git_path: str = "git"
    # Repository locators (github.com/user/repo) or bare host names.
    excluded_hosts: Annotated[list[str], NoDecode] = []
    default_scheme: str = "https"
    fork_depth: int = 1
    fork_namespace: str = "refs/forks"
    log_level: str = "WARNING"

    @field_validator('excluded_hosts', mode='before')
    @classmethod
    def split_excluded_hosts(cls, value: object) -> object:
        if isinstance(value, str):
            return [host.strip() for host in value.split(',') if host.strip()]
        return value

    @field_validator('log_level')
    @classmethod
    def known_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level '{value}'")
        return value

    @field_validator('fork_namespace')
    @classmethod
    def strip_namespace(cls, value: str) -> str:
        return value.rstrip('/')

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, env_settings, YamlConfigSettingsSource(settings_cls))
