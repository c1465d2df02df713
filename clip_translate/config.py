"""
Centralized configuration for the page translator
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, Protocol
from dotenv import load_dotenv

# Setup debug logger for configuration
_config_logger = logging.getLogger('config')

# Check for DEBUG_MODE early (before .env is loaded, check environment)
_debug_mode = os.getenv('DEBUG_MODE', 'false').lower() == 'true'
if _debug_mode:
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("DEBUG_MODE enabled - verbose logging active")

_env_file = Path.cwd() / '.env'
_env_exists = _env_file.exists()

if _debug_mode:
    _config_logger.debug(f"Looking for .env at: {_env_file.absolute()} (exists: {_env_exists})")

# Load .env file if it exists
if _env_exists:
    load_dotenv(_env_file)

# Languages and strategy
DEFAULT_TARGET_LANGUAGE = os.getenv('DEFAULT_TARGET_LANGUAGE', 'zh-CN')
TRANSLATE_STRATEGY = os.getenv('TRANSLATE_STRATEGY', 'mt_first')

# Premium (LLM) provider
PREMIUM_API_KEY = os.getenv('PREMIUM_API_KEY', os.getenv('OPENAI_API_KEY', ''))
PREMIUM_API_ENDPOINT = os.getenv('PREMIUM_API_ENDPOINT', 'https://api.openai.com/v1/chat/completions')
PREMIUM_MODEL = os.getenv('PREMIUM_MODEL', 'gpt-4o-mini')

# Cheap (machine translation) provider
MT_API_ENDPOINT = os.getenv('MT_API_ENDPOINT', 'https://translate.googleapis.com/translate_a/single')

# Timeouts (seconds)
MT_TIMEOUT = float(os.getenv('MT_TIMEOUT', '4'))
PREMIUM_TIMEOUT = float(os.getenv('PREMIUM_TIMEOUT', '8'))
CALL_CEILING_TIMEOUT = float(os.getenv('CALL_CEILING_TIMEOUT', '12'))

# Concurrency limits
MT_CONCURRENCY = int(os.getenv('MT_CONCURRENCY', '128'))
PREMIUM_CONCURRENCY = int(os.getenv('PREMIUM_CONCURRENCY', '5'))

# Batching and circuit breaking
BATCH_SIZE = int(os.getenv('BATCH_SIZE', '16'))
FAILURE_THRESHOLD = int(os.getenv('FAILURE_THRESHOLD', '5'))
MAX_NODE_ATTEMPTS = int(os.getenv('MAX_NODE_ATTEMPTS', '4'))
RATE_LIMIT_MAX_ATTEMPTS = int(os.getenv('RATE_LIMIT_MAX_ATTEMPTS', '3'))

# Sweep loop (seconds)
SWEEP_INITIAL_DELAY = float(os.getenv('SWEEP_INITIAL_DELAY', '8'))
SWEEP_DELAY = float(os.getenv('SWEEP_DELAY', '8'))
SWEEP_MAX_DELAY = float(os.getenv('SWEEP_MAX_DELAY', '20'))
SWEEP_PENDING_DELAY = float(os.getenv('SWEEP_PENDING_DELAY', '6'))
SWEEP_BACKOFF_FACTOR = float(os.getenv('SWEEP_BACKOFF_FACTOR', '1.5'))

# Visibility scheduling (pixels / seconds)
NEAR_VIEWPORT_MARGIN = int(os.getenv('NEAR_VIEWPORT_MARGIN', '300'))
PREFETCH_MARGIN = int(os.getenv('PREFETCH_MARGIN', '800'))
RUSH_WINDOW = float(os.getenv('RUSH_WINDOW', '10'))
RUSH_INITIAL_DELAY = float(os.getenv('RUSH_INITIAL_DELAY', '0.2'))
RUSH_INTERVAL = float(os.getenv('RUSH_INTERVAL', '2'))
URL_POLL_INTERVAL = float(os.getenv('URL_POLL_INTERVAL', '1'))

# Debug mode (reload after .env is loaded)
DEBUG_MODE = os.getenv('DEBUG_MODE', 'false').lower() == 'true'

# Sentinel used to multiplex several texts into one request
SENTINEL_SEPARATOR = "|||CLIP_SEP|||"

# Sample text used when probing providers
DIAGNOSTIC_SAMPLE = "Hello"

VALID_STRATEGIES = ("mt_only", "mt_first", "llm_first", "race")

# Names persisted by older builds
LEGACY_STRATEGY_ALIASES = {
    "gtx_first": "mt_first",
    "gtx_only": "mt_only",
}

if DEBUG_MODE or _debug_mode:
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("=" * 60)
    _config_logger.debug("LOADED CONFIGURATION VALUES:")
    _config_logger.debug(f"   DEFAULT_TARGET_LANGUAGE: {DEFAULT_TARGET_LANGUAGE}")
    _config_logger.debug(f"   TRANSLATE_STRATEGY: {TRANSLATE_STRATEGY}")
    _config_logger.debug(f"   PREMIUM_API_ENDPOINT: {PREMIUM_API_ENDPOINT}")
    _config_logger.debug(f"   PREMIUM_MODEL: {PREMIUM_MODEL}")
    _config_logger.debug(f"   PREMIUM_API_KEY: {'***' + PREMIUM_API_KEY[-4:] if PREMIUM_API_KEY else '(not set)'}")
    _config_logger.debug(f"   MT_CONCURRENCY: {MT_CONCURRENCY}, PREMIUM_CONCURRENCY: {PREMIUM_CONCURRENCY}")
    _config_logger.debug("=" * 60)


def normalize_strategy(value: Optional[str]) -> str:
    """Map a persisted strategy selector to a known strategy, defaulting to mt_first."""
    if not isinstance(value, str):
        return "mt_first"
    value = LEGACY_STRATEGY_ALIASES.get(value.strip().lower(), value.strip().lower())
    return value if value in VALID_STRATEGIES else "mt_first"


@dataclass
class TranslatorConfig:
    """Tunables for one page translator instance"""

    target_language: str = DEFAULT_TARGET_LANGUAGE

    # Providers
    premium_api_endpoint: str = PREMIUM_API_ENDPOINT
    premium_model: str = PREMIUM_MODEL
    mt_api_endpoint: str = MT_API_ENDPOINT

    # Timeouts
    mt_timeout: float = MT_TIMEOUT
    premium_timeout: float = PREMIUM_TIMEOUT
    call_ceiling_timeout: float = CALL_CEILING_TIMEOUT

    # Concurrency
    mt_concurrency: int = MT_CONCURRENCY
    premium_concurrency: int = PREMIUM_CONCURRENCY

    # Batching and circuit breaking
    batch_size: int = BATCH_SIZE
    failure_threshold: int = FAILURE_THRESHOLD
    max_node_attempts: int = MAX_NODE_ATTEMPTS
    rate_limit_max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS

    # Sweep loop
    sweep_initial_delay: float = SWEEP_INITIAL_DELAY
    sweep_delay: float = SWEEP_DELAY
    sweep_max_delay: float = SWEEP_MAX_DELAY
    sweep_pending_delay: float = SWEEP_PENDING_DELAY
    sweep_backoff_factor: float = SWEEP_BACKOFF_FACTOR

    # Visibility
    near_viewport_margin: int = NEAR_VIEWPORT_MARGIN
    prefetch_margin: int = PREFETCH_MARGIN
    rush_window: float = RUSH_WINDOW
    rush_initial_delay: float = RUSH_INITIAL_DELAY
    rush_interval: float = RUSH_INTERVAL
    url_poll_interval: float = URL_POLL_INTERVAL

    sentinel: str = SENTINEL_SEPARATOR
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration."""
        # Imported here to avoid a config <-> core import cycle
        from clip_translate.core.exceptions import ConfigurationError

        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1", {'batch_size': self.batch_size})
        if self.mt_concurrency < 1 or self.premium_concurrency < 1:
            raise ConfigurationError(
                "concurrency caps must be >= 1",
                {'mt_concurrency': self.mt_concurrency, 'premium_concurrency': self.premium_concurrency}
            )
        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be >= 1")
        if self.sweep_delay > self.sweep_max_delay:
            raise ConfigurationError(
                "sweep_delay must not exceed sweep_max_delay",
                {'sweep_delay': self.sweep_delay, 'sweep_max_delay': self.sweep_max_delay}
            )
        if self.sweep_backoff_factor < 1:
            raise ConfigurationError("sweep_backoff_factor must be >= 1",
                                     {'sweep_backoff_factor': self.sweep_backoff_factor})
        if self.max_node_attempts < 1:
            raise ConfigurationError("max_node_attempts must be >= 1")
        if not self.sentinel:
            raise ConfigurationError("sentinel separator must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranslatorConfig':
        """Create config from a plain dictionary, ignoring unknown keys"""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        extra = {k: v for k, v in data.items() if k not in cls.__dataclass_fields__}
        config = cls(**known)
        config.extra.update(extra)
        return config

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return asdict(self)


class SettingsStore(Protocol):
    """Persistent settings collaborator owned by the host application"""

    def get(self, key: str, default: Any = None) -> Any:
        ...


class DictSettings:
    """In-memory settings, used by tests and embedding hosts"""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class EnvSettings:
    """Settings backed by the environment / .env values loaded above"""

    _KEYS = {
        'translate_strategy': 'TRANSLATE_STRATEGY',
        'premium_api_key': 'PREMIUM_API_KEY',
    }

    _DEFAULTS = {
        'translate_strategy': TRANSLATE_STRATEGY,
        'premium_api_key': PREMIUM_API_KEY,
    }

    def get(self, key: str, default: Any = None) -> Any:
        value = os.getenv(self._KEYS.get(key, key.upper()))
        if value:
            return value
        return self._DEFAULTS.get(key) or default
