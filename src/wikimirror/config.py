from dotenv import load_dotenv
from dataclasses import dataclass, field, fields
from pathlib import Path
import json
import os

from wikimirror.constants import (
    DEFAULT_ANCHOR_PREFIX,
    DEFAULT_DATABASE_URL,
    DEFAULT_EDIT_PAGE,
    DEFAULT_EXCLUDED_PREFIXES,
    DEFAULT_HOST,
    DEFAULT_LANG,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MIRROR_ROOT,
    DEFAULT_NORMAL_PAGE,
    DEFAULT_PROTOCOL,
    DEFAULT_START_PAGE,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    DATABASE_URL = os.getenv("WIKIMIRROR_DATABASE_URL", DEFAULT_DATABASE_URL)
    STORE_BACKEND = os.getenv("WIKIMIRROR_STORE_BACKEND", "sqlite")  # 'sqlite' or 'files'
    MIRROR_ROOT = os.getenv("WIKIMIRROR_MIRROR_ROOT", DEFAULT_MIRROR_ROOT)
    USER_AGENT = os.getenv("WIKIMIRROR_USER_AGENT", DEFAULT_USER_AGENT)


settings = Settings()

ENV_PREFIX = "WIKIMIRROR_"


@dataclass
class MirrorConfig:
    """Configuration for one mirror crawl."""
    protocol: str = DEFAULT_PROTOCOL
    host: str = DEFAULT_HOST
    lang: str = DEFAULT_LANG
    normal_page: str = DEFAULT_NORMAL_PAGE
    edit_page: str = DEFAULT_EDIT_PAGE
    start_page: str = DEFAULT_START_PAGE

    # 'brackets', 'wikitext' or 'rendered' (see extractor.get_link_strategy)
    link_strategy: str = "brackets"
    anchor_prefix: str = DEFAULT_ANCHOR_PREFIX

    store_backend: str = settings.STORE_BACKEND
    database_url: str = settings.DATABASE_URL
    mirror_root: str = settings.MIRROR_ROOT

    user_agent: str = settings.USER_AGENT
    timeout: int = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    max_workers: int = 1
    log_level: str = "INFO"
    log_file: str = ""
    # Per-logger levels, e.g. {"wikimirror.fetcher": "DEBUG"}
    log_levels: dict = field(default_factory=dict)

    excluded_prefixes: tuple = DEFAULT_EXCLUDED_PREFIXES

    @property
    def base_url(self) -> str:
        """Site root, e.g. https://en.cppreference.com."""
        return f"{self.protocol}://{self.lang}.{self.host}"

    @classmethod
    def from_env(cls) -> "MirrorConfig":
        """Load configuration from environment variables.

        Every field can be overridden with a WIKIMIRROR_ prefixed variable,
        e.g. WIKIMIRROR_MAX_WORKERS=4 or WIKIMIRROR_LINK_STRATEGY=wikitext.
        EXCLUDED_PREFIXES takes a comma-separated list, LOG_LEVELS a
        comma-separated list of logger=LEVEL pairs.

        Returns:
            MirrorConfig with values from environment
        """
        config = cls()

        for f in fields(config):
            env_value = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
            if env_value is None:
                continue
            if f.type in (int, "int"):
                try:
                    setattr(config, f.name, int(env_value))
                except ValueError:
                    pass  # Keep default if conversion fails
            elif f.name == "excluded_prefixes":
                config.excluded_prefixes = tuple(
                    p.strip() for p in env_value.split(",") if p.strip()
                )
            elif f.name == "log_levels":
                config.log_levels = dict(
                    (name.strip(), level.strip())
                    for name, _, level in (
                        item.partition("=") for item in env_value.split(",") if "=" in item
                    )
                )
            else:
                setattr(config, f.name, env_value)

        return config

    @classmethod
    def from_file(cls, path: str) -> "MirrorConfig":
        """Load configuration from a JSON file.

        The values may sit at the top level or under a "mirror" key.

        Args:
            path: Path to JSON configuration file

        Returns:
            MirrorConfig with values from file (defaults if the file is missing)
        """
        config = cls()
        file_path = Path(path)

        if not file_path.exists():
            return config

        with open(file_path, 'r') as f:
            data = json.load(f)

        mirror_data = data.get('mirror', data)

        for f in fields(config):
            if f.name in mirror_data:
                value = mirror_data[f.name]
                if f.name == "excluded_prefixes":
                    value = tuple(value)
                elif f.name == "log_levels":
                    value = dict(value)
                setattr(config, f.name, value)

        return config

    def to_dict(self) -> dict:
        """Convert configuration to a JSON-friendly dictionary."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["excluded_prefixes"] = list(self.excluded_prefixes)
        return data

    def save_to_file(self, path: str) -> None:
        """Save current configuration to a JSON file.

        Args:
            path: Path to save configuration
        """
        with open(path, 'w') as f:
            json.dump({'mirror': self.to_dict()}, f, indent=2)
