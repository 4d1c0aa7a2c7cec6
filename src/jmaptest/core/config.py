"""jmaptest configuration loaded from env vars + optional jmaptest.yaml."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource

from jmaptest.clients.jmap import DEFAULT_USING
from jmaptest.harness.entities import KNOWN_PROPERTIES


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = "info"


def _resolve_config_path() -> str | None:
    """Resolve the YAML config path: JMAPTEST_CONFIG env var or cwd default.

    The default ``jmaptest.yaml`` is optional. A path named explicitly via
    JMAPTEST_CONFIG must exist; otherwise exit with a helpful message.
    """
    explicit = os.environ.get("JMAPTEST_CONFIG")
    if explicit is None:
        default = Path("jmaptest.yaml")
        return str(default) if default.exists() else None

    path = Path(explicit)
    if not path.exists():
        print(
            f"Error: Config file not found: {path.resolve()}\n"
            f"Unset JMAPTEST_CONFIG or point it at an existing YAML file.",
            file=sys.stderr,
        )
        raise SystemExit(1)
    return str(path)


class SuiteSettings(BaseSettings):
    """Harness settings: server credentials, strict mode, logging.

    Credentials come from JMAPTEST_-prefixed environment variables. The
    strict-property flag keeps its historical name, JMAP_STRICT_PROPERTIES.
    Everything may also be set from the YAML file.
    """

    model_config = SettingsConfigDict(
        env_prefix="JMAPTEST_",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Server under test -- empty means "no live server configured"
    session_url: str = ""
    token: str = ""
    # Token for an account guaranteed to hold no data; empty = unsupported
    pristine_token: str = ""

    using: list[str] = Field(default_factory=lambda: list(DEFAULT_USING))
    strict_properties: bool = Field(
        default=False, validation_alias="JMAP_STRICT_PROPERTIES"
    )
    # Server-specific extension properties per type, e.g. {"Mailbox": ["color"]}
    extra_properties: dict[str, list[str]] = Field(default_factory=dict)

    logging: LoggingSettings = LoggingSettings()

    @field_validator("strict_properties", mode="before")
    @classmethod
    def empty_flag_is_false(cls, v: object) -> object:
        """Treat an empty env var like an unset one."""
        if isinstance(v, str) and not v.strip():
            return False
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Configure source priority: init > env vars > YAML config file."""
        config_path = _resolve_config_path()
        if config_path is None:
            return (init_settings, env_settings)
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_path),
        )

    @property
    def has_server(self) -> bool:
        """Return True when a live server is configured."""
        return bool(self.session_url and self.token)

    @property
    def known_properties(self) -> dict[str, frozenset[str]]:
        """Return the per-type property allowlist used by strict mode."""
        merged = {kind: set(props) for kind, props in KNOWN_PROPERTIES.items()}
        for kind, extra in self.extra_properties.items():
            merged.setdefault(kind, set()).update(extra)
        return {kind: frozenset(props) for kind, props in merged.items()}
