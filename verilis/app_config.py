"""Application configuration module for the translation pipeline."""
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Any

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from verilis.errors import ConfigurationError
from verilis.languages import build_language_table, dedupe_languages
from verilis.logging_config import setup_logger

DEFAULT_CONFIG_NAME = 'verilis.config.yaml'
DEFAULT_OUTPUT = './i18n/resources'
DEFAULT_LANGUAGES = ['en', 'zh-CN']
DEFAULT_MODEL_NAME = 'google/gemini-2.5-flash-preview'
DEFAULT_BASE_URL = 'https://openrouter.ai/api/v1'
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_REQUESTS_PER_MINUTE = 60
DEFAULT_LOG_FILE_PATH = 'logs/verilis.log'

# Extra headers OpenRouter uses to attribute requests to an application.
OPENROUTER_HEADERS = {
    "HTTP-Referer": "http://localhost",
    "X-Title": "Verilis I18N",
}


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Paths
    project_root: str
    config_file: str
    output: str

    # Translation inputs
    resource: Dict[str, str]
    support_languages: List[str]
    language_table: Mapping[str, str]

    # Provider configuration
    model_name: str
    base_url: str
    request_timeout: float
    requests_per_minute: int

    # Pipeline settings
    max_attempts: int
    max_request_tokens: Optional[int]
    verify_placeholders: bool
    dry_run: bool

    # OpenAI-compatible client, None in dry-run mode
    openai_client: Optional[AsyncOpenAI] = field(default=None, repr=False)


def default_config_document() -> Dict[str, Any]:
    """The configuration written by ``verilis init``."""
    return {
        'access_token': '',
        'output': DEFAULT_OUTPUT,
        'support_languages': list(DEFAULT_LANGUAGES),
        'resource': {'initial_example': 'this is example'},
    }


def resolve_config_path(project_root: str, config_path: Optional[str] = None) -> str:
    """Resolve which configuration file to read: argument, then env var, then the default name."""
    config_file = config_path or os.environ.get(
        'VERILIS_CONFIG_FILE', os.path.join(project_root, DEFAULT_CONFIG_NAME)
    )
    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)
    return config_file


def _load_dotenv_files(project_root: str) -> Optional[str]:
    """Load the .env file from the project root, if there is one."""
    dotenv_path = os.path.join(project_root, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)
        return dotenv_path
    return None


def _load_yaml_config(config_file: str) -> Dict[str, Any]:
    """
    Load the YAML (or JSON) configuration file.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or not a mapping.
    """
    if not os.path.exists(config_file):
        raise ConfigurationError(
            f"Configuration file '{config_file}' not found. Run 'verilis init' to create one first."
        )

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file '{config_file}': {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Could not read configuration file '{config_file}': {e}") from e

    if loaded_config is None:
        raise ConfigurationError(f"Configuration file '{config_file}' is empty.")
    if not isinstance(loaded_config, dict):
        raise ConfigurationError(f"Configuration file '{config_file}' must contain a mapping at the top level.")
    return loaded_config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging') or {}
    log_level_str = str(log_config.get('log_level', 'INFO')).upper()
    log_file_path = log_config.get('log_file_path', DEFAULT_LOG_FILE_PATH)
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _validate_resource(resource: Any) -> Dict[str, str]:
    """Check that the resource section is a flat string-to-string mapping."""
    if resource is None:
        return {}
    if not isinstance(resource, dict):
        raise ConfigurationError("'resource' must be a mapping of keys to source texts.")
    invalid_keys = [str(k) for k, v in resource.items() if not isinstance(k, str) or not isinstance(v, str)]
    if invalid_keys:
        raise ConfigurationError(
            f"'resource' must map string keys to string values; offending keys: {', '.join(sorted(invalid_keys))}"
        )
    return dict(resource)


def _validate_languages(languages: Any) -> List[str]:
    """Check that the language list is a list of non-empty strings."""
    if languages is None:
        return []
    if not isinstance(languages, list) or not all(isinstance(lang, str) and lang for lang in languages):
        raise ConfigurationError("'support_languages' must be a list of language identifiers.")
    return dedupe_languages(languages)


def _optional_positive_int(config: Dict[str, Any], name: str) -> Optional[int]:
    value = config.get(name)
    if value is None:
        return None
    try:
        value = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'{name}' must be an integer.") from e
    if value <= 0:
        raise ConfigurationError(f"'{name}' must be positive.")
    return value


def _optional_bool(config: Dict[str, Any], name: str, default: bool) -> bool:
    value = config.get(name)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"'{name}' must be true or false.")
    return value


def _positive_float(config: Dict[str, Any], name: str, default: float) -> float:
    value = config.get(name)
    if value is None:
        return default
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'{name}' must be a number.") from e
    if value <= 0:
        raise ConfigurationError(f"'{name}' must be positive.")
    return value


def _resolve_access_token(config: Dict[str, Any]) -> Optional[str]:
    """The token from the config file wins; OPENROUTER_API_KEY is the fallback."""
    return config.get('access_token') or os.environ.get('OPENROUTER_API_KEY') or None


def _create_openai_client(
        access_token: Optional[str],
        base_url: str,
        request_timeout: float,
        dry_run: bool,
        logger: logging.Logger
) -> Optional[AsyncOpenAI]:
    """Create the OpenAI-compatible client unless running in dry-run mode."""
    if dry_run:
        logger.info("Running in dry-run mode, the provider client will not be initialized")
        return None

    if not access_token:
        raise ConfigurationError(
            "Access token not provided. Set 'access_token' in the configuration file or the "
            "OPENROUTER_API_KEY environment variable (keys: https://openrouter.ai/settings/keys)."
        )

    # The repair loop owns retrying, so the client must not retry on its own.
    client = AsyncOpenAI(
        api_key=access_token,
        base_url=base_url,
        timeout=request_timeout,
        max_retries=0,
        default_headers=OPENROUTER_HEADERS,
    )
    logger.info("Provider client initialized for %s", base_url)
    return client


def load_app_config(config_path: Optional[str] = None, dry_run: Optional[bool] = None) -> AppConfig:
    """
    Load application configuration from the YAML file and environment variables.

    Args:
        config_path: Explicit configuration file path; overrides VERILIS_CONFIG_FILE.
        dry_run: When given, overrides the ``dry_run`` setting from the file.

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        ConfigurationError: If the configuration is missing or invalid.
    """
    project_root = os.getcwd()
    dotenv_path = _load_dotenv_files(project_root)

    config_file = resolve_config_path(project_root, config_path)
    config = _load_yaml_config(config_file)

    logger = _setup_logger_from_config(config)
    logger.info("Successfully loaded configuration from: %s", config_file)
    if dotenv_path:
        logger.info("Loaded environment variables from: %s", dotenv_path)

    resource = _validate_resource(config.get('resource'))
    support_languages = _validate_languages(config.get('support_languages', list(DEFAULT_LANGUAGES)))
    if not resource:
        logger.warning("No resources configured in '%s'; nothing will be translated.", config_file)
    if not support_languages:
        logger.warning("No target languages configured in '%s'.", config_file)

    language_table = build_language_table(config.get('supported_locales'))

    if dry_run is None:
        dry_run = _optional_bool(config, 'dry_run', False)
    model_name = os.environ.get('VERILIS_MODEL_NAME', config.get('model_name', DEFAULT_MODEL_NAME))
    base_url = config.get('base_url', DEFAULT_BASE_URL)
    request_timeout = _positive_float(config, 'request_timeout', DEFAULT_REQUEST_TIMEOUT)

    max_attempts = _optional_positive_int(config, 'max_attempts') or DEFAULT_MAX_ATTEMPTS
    requests_per_minute = _optional_positive_int(config, 'requests_per_minute') or DEFAULT_REQUESTS_PER_MINUTE

    openai_client = _create_openai_client(
        _resolve_access_token(config), base_url, request_timeout, dry_run, logger
    )

    return AppConfig(
        project_root=project_root,
        config_file=config_file,
        output=config.get('output') or DEFAULT_OUTPUT,
        resource=resource,
        support_languages=support_languages,
        language_table=language_table,
        model_name=model_name,
        base_url=base_url,
        request_timeout=request_timeout,
        requests_per_minute=requests_per_minute,
        max_attempts=max_attempts,
        max_request_tokens=_optional_positive_int(config, 'max_request_tokens'),
        verify_placeholders=_optional_bool(config, 'verify_placeholders', False),
        dry_run=dry_run,
        openai_client=openai_client
    )


def write_default_config(config_file: str) -> None:
    """Write the starter configuration file used by ``verilis init``."""
    config_dir = os.path.dirname(config_file)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)
    with open(config_file, 'w', encoding='utf-8') as f:
        yaml.safe_dump(default_config_document(), f, allow_unicode=True, sort_keys=False)


def print_config_error(error: ConfigurationError) -> None:
    """Report a configuration error before logging has been configured."""
    print(f"Error: {error}", file=sys.stderr)
