"""Settings resolution: CLI overrides > env vars / .env > config.toml > defaults."""

from contextvars import ContextVar
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import tomlkit
from pydantic import BaseModel, ConfigDict, SecretStr, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from jofsync.errors import ConfigError
from jofsync.keychain import lookup_credentials

CONFIG_PATH = Path.home() / ".config" / "jofsync" / "config.toml"

PLACEHOLDER_HOSTNAME = "http://please-configure-me-in-jofsync.yaml.atlassian.net"
DEFAULT_FILTER = "resolution = Unresolved and issue in watchedissues()"


class JiraSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    hostname: str = PLACEHOLDER_HOSTNAME
    auth_method: Literal["basic_auth", "cookie"] = "basic_auth"
    use_keychain: bool = False
    username: str = ""
    password: SecretStr = SecretStr("")
    filter: str = DEFAULT_FILTER

    @field_validator("hostname")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")


class OmniFocusSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    context: str | None = "Office"  # tag new tasks get
    project: str = "Jira"  # project new tasks go into
    flag: bool = True
    inbox: bool = False  # create inbox tasks instead; wins over newproj
    newproj: bool = False  # create one project per issue inside `folder`
    folder: str = "Jira"


# Set by get_settings() for the duration of one settings construction.
_active_config: ContextVar[Path | None] = ContextVar("jofsync_active_config", default=None)


@lru_cache(maxsize=4)
def _load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load a config.toml, returning empty document if missing."""
    if not path.exists():
        return tomlkit.document()
    with path.open() as fh:
        return tomlkit.load(fh)


class _ConfigFileSource(PydanticBaseSettingsSource):
    """Feeds the [jira] and [omnifocus] tables of the config file to pydantic-settings."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        doc = _load_toml(_active_config.get() or CONFIG_PATH).unwrap()
        return {k: v for k, v in doc.items() if k in self.settings_cls.model_fields and isinstance(v, dict)}


class JofsyncSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JOFSYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    jira: JiraSettings = JiraSettings()
    omnifocus: OmniFocusSettings = OmniFocusSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, env_settings, dotenv_settings, _ConfigFileSource(settings_cls)


def get_settings(config_path: Path | None = None, **overrides: dict[str, Any]) -> JofsyncSettings:
    """Return settings with CLI overrides applied on top of env and config file.

    overrides are partial section dicts, e.g. jira={"hostname": "..."}; keys
    whose value is None are dropped so unset CLI flags fall through.
    """
    init: dict[str, dict[str, Any]] = {}
    for section, values in overrides.items():
        cleaned = {k: v for k, v in (values or {}).items() if v is not None}
        if cleaned:
            init[section] = cleaned

    token = _active_config.set(config_path)
    try:
        return JofsyncSettings(**init)
    finally:
        _active_config.reset(token)


def check_settings(settings: JofsyncSettings) -> None:
    """Raise ConfigError for settings that would make the run pointless."""
    jira = settings.jira
    if not jira.hostname or jira.hostname == PLACEHOLDER_HOSTNAME:
        raise ConfigError(f"The hostname is not set. Did you create {CONFIG_PATH}?")
    if not jira.use_keychain and not jira.username:
        raise ConfigError(
            f"The Jira username is not set. Set username in the [jira] section of {CONFIG_PATH}, "
            "export JOFSYNC_JIRA__USERNAME, or enable use_keychain."
        )
    if not jira.filter.strip():
        raise ConfigError("The JQL filter is empty.")


def resolve_credentials(settings: JofsyncSettings) -> JofsyncSettings:
    """Return settings with username/password taken from the keychain when use_keychain is set."""
    if not settings.jira.use_keychain:
        return settings
    username, password = lookup_credentials(settings.jira.hostname)
    jira = settings.jira.model_copy(update={"username": username, "password": SecretStr(password)})
    return settings.model_copy(update={"jira": jira})
