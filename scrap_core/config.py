"""
Translator configuration.

Settings resolve in two tiers: environment variable, then the hard-coded
default. ``get_config()`` is what every subsystem should call.
"""

import logging
import os
from dataclasses import dataclass


ENGINE_VERSION = "1.0.0"


def resolve_setting(env_var: str, default: str) -> str:
    """Return the environment value for ``env_var`` or ``default`` when unset or blank."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


@dataclass
class TranslatorConfig:
    """Configuration shared by the generator, importer and web interface."""
    indent: str = "\t"
    comment_wrap: int = 60
    engine_version: str = ENGINE_VERSION
    engine_cdn: str = ""
    import_yield_delay: float = 0.0
    host: str = "127.0.0.1"
    port: int = 5003
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.engine_cdn:
            self.engine_cdn = f"https://unpkg.com/scrap-engine@{self.engine_version}"
        if self.comment_wrap < 10:
            raise ValueError("comment_wrap must be at least 10 characters")
        if self.import_yield_delay < 0:
            raise ValueError("import_yield_delay cannot be negative")
        if not (0 < self.port < 65536):
            raise ValueError(f"Invalid port: {self.port}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        self.log_level = self.log_level.upper()


def get_config() -> TranslatorConfig:
    """Build a configuration from the environment."""
    version = resolve_setting('SCRAP_ENGINE_VERSION', ENGINE_VERSION)
    indent = resolve_setting('SCRAP_INDENT', 'tab')
    return TranslatorConfig(
        indent="\t" if indent == 'tab' else " " * int(indent),
        comment_wrap=int(resolve_setting('SCRAP_COMMENT_WRAP', '60')),
        engine_version=version,
        engine_cdn=resolve_setting('SCRAP_ENGINE_CDN', ''),
        import_yield_delay=float(resolve_setting('SCRAP_IMPORT_YIELD', '0')),
        host=resolve_setting('SCRAP_HOST', '127.0.0.1'),
        port=int(resolve_setting('SCRAP_PORT', '5003')),
        log_level=resolve_setting('SCRAP_LOG_LEVEL', 'INFO'),
    )
