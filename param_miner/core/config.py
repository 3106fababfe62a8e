"""
Configuration management for Param Miner using Pydantic settings.
"""

from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScanningConfig(BaseModel):
    """Scanning configuration settings."""

    max_concurrent_requests: int = Field(
        default=10, ge=1,
        description="Upper bound on in-flight requests to the target"
    )
    request_timeout: float = Field(default=10, gt=0)
    rate_limit: float = Field(
        default=0, ge=0,
        description="Requests per second, 0 disables rate limiting"
    )
    user_agent: str = Field(default="Param-Miner/1.0 (Security Research Tool)")


class SecurityConfig(BaseModel):
    """Transport security settings."""

    verify_ssl: bool = Field(default=False)
    proxy_url: Optional[str] = Field(default=None)
    follow_redirects: bool = Field(default=False)
    max_redirects: int = Field(default=10, ge=0)


class GuesserConfig(BaseModel):
    """Parameter guessing settings: method toggles, wordlists and engine tuning."""

    url_get_request: bool = Field(default=True, description="Guess query string parameters")
    url_post_request: bool = Field(default=False, description="Guess url-encoded body parameters")
    url_xml_request: bool = Field(default=False, description="Guess XML body parameters")
    url_json_request: bool = Field(default=False, description="Guess JSON body parameters")

    use_predefined_wordlist: bool = Field(default=True)
    use_custom_wordlist: bool = Field(default=False)
    custom_wordlist_path: Optional[Path] = Field(default=None)

    initial_group_size: int = Field(
        default=2, ge=1,
        description="Size of the candidate groups probed in the first generation"
    )
    retry_ceiling: int = Field(
        default=3, ge=1,
        description="Attempts per group and generation before it is given up"
    )
    kill_threshold: int = Field(
        default=10, ge=1,
        description="Consecutive transport failures that abort a run"
    )
    baseline_samples: int = Field(
        default=1, ge=1,
        description="Control requests used to build (and calibrate) the baseline"
    )
    control_param: str = Field(default="zap", min_length=1)
    control_value: str = Field(default="123", min_length=1)

    @model_validator(mode="after")
    def check_wordlist_sources(self):
        """A custom wordlist needs a path, and at least one source must be on."""
        if self.use_custom_wordlist and not self.custom_wordlist_path:
            raise ValueError("custom_wordlist_path is required when use_custom_wordlist is set")
        if not (self.use_predefined_wordlist or self.use_custom_wordlist):
            raise ValueError("at least one wordlist source must be enabled")
        return self

    def enabled_methods(self) -> List[str]:
        """Names of the submission methods switched on, in run order."""
        toggles = [
            ("GET", self.url_get_request),
            ("POST", self.url_post_request),
            ("XML", self.url_xml_request),
            ("JSON", self.url_json_request),
        ]
        return [name for name, enabled in toggles if enabled]


class Config(BaseSettings):
    """Main configuration class for Param Miner."""

    # Application settings
    app_name: str = Field(default="Param Miner")
    version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component configurations
    scanning: ScanningConfig = Field(default_factory=ScanningConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    guesser: GuesserConfig = Field(default_factory=GuesserConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Config":
        """Load a configuration file; keys it leaves out keep their defaults."""
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls(**data)

    def is_debug_mode(self) -> bool:
        """Check if debug mode is enabled."""
        return self.debug


# Global configuration instance
config = Config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config


def reload_config(path: Optional[Union[str, Path]] = None) -> Config:
    """Reload the configuration from environment variables or a YAML file."""
    global config
    config = Config.from_yaml(path) if path else Config()
    return config
