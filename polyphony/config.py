"""Configuration management for Polyphony."""

from typing import Any, Dict, List, Literal, Optional
from pathlib import Path
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml
import logging

from polyphony.errors import ConfigError

logger = logging.getLogger("polyphony.config")

DEFAULT_CONFIG_PATH = "polyphony.yaml"


class QobuzConfig(BaseModel):
    """Qobuz provider configuration."""

    enabled: bool = True
    app_id: Optional[str] = None
    secret: Optional[str] = None
    user_auth_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    url_ttl: Optional[int] = None  # seconds; falls back to stream_cache.default_ttl


class SpotifyConfig(BaseModel):
    """Spotify provider configuration."""

    enabled: bool = True
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    redirect_uri: Optional[str] = None
    url_ttl: Optional[int] = None


class ProvidersConfig(BaseModel):
    """Streaming provider configuration."""

    qobuz: QobuzConfig = Field(default_factory=QobuzConfig)
    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)


class SearchConfig(BaseModel):
    """Aggregate search options."""

    provider_timeout: float = 5.0  # seconds, per provider call
    default_limit: int = 20
    priority: List[str] = Field(default_factory=lambda: ["qobuz", "spotify"])
    max_workers: int = 4


class StreamCacheConfig(BaseModel):
    """Stream URL cache options."""

    default_ttl: int = 600  # seconds, used when a provider declares no expiry
    max_entries: int = 512


class QueueConfig(BaseModel):
    """Playback queue options."""

    db_path: str = "polyphony_queue.db"
    default_loop_mode: Literal["once", "repeat", "infinite"] = "once"
    repeat_count: int = 1
    stream_quality: Literal["hi_res", "lossless", "lossy", "preview"] = "lossless"


class HttpConfig(BaseModel):
    """Outbound HTTP options shared by provider adapters."""

    timeout: float = 10.0
    user_agent: str = "polyphony/0.1"


class PolyphonyConfig(BaseSettings):
    """Main Polyphony configuration."""

    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    stream_cache: StreamCacheConfig = Field(default_factory=StreamCacheConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    # YAML is loaded manually via from_file(); env vars fill what the file omits
    model_config = SettingsConfigDict(
        env_prefix="POLYPHONY_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
    )

    @classmethod
    def from_file(cls, config_path: str | Path = "polyphony.yaml") -> "PolyphonyConfig":
        """Load configuration from YAML file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "providers": self.providers.model_dump(),
            "search": self.search.model_dump(),
            "stream_cache": self.stream_cache.model_dump(),
            "queue": self.queue.model_dump(),
            "http": self.http.model_dump(),
        }

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)

    def save(self, path: str | Path = "polyphony.yaml") -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            f.write(self.to_yaml())

        logger.info(f"Configuration saved to {path}")


def load_config(config_path: Optional[str | Path] = None) -> PolyphonyConfig:
    """Load an explicit config file, else ``polyphony.yaml`` when present, else defaults."""
    if config_path is not None:
        return PolyphonyConfig.from_file(config_path)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return PolyphonyConfig.from_file(DEFAULT_CONFIG_PATH)
    logger.debug(f"No {DEFAULT_CONFIG_PATH} found; using defaults and environment")
    return PolyphonyConfig()


def get_config_value(config: PolyphonyConfig, path: str, default: Any = None) -> Any:
    """Get a nested config value using dot notation."""
    keys = path.split(".")
    current = config.model_dump()

    for key in keys:
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default

    return current
