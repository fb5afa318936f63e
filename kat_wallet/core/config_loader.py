"""Configuration loading utilities."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from kat_wallet.core.logger import log


DEFAULT_SESSION = {
    'menu_timeout_seconds': 300,
    'input_timeout_seconds': 60,
    'idle_ttl_seconds': 3600,
    'sweep_interval_seconds': 600,
}

DEFAULT_RATE_LIMITS = {
    'network_selection': {'max_requests': 5, 'window_seconds': 60},
    'wallet_actions': {'max_requests': 20, 'window_seconds': 60},
    'check_balance': {'max_requests': 1, 'window_seconds': 10},
    'transaction_history': {'max_requests': 1, 'window_seconds': 10},
    'help': {'max_requests': 3, 'window_seconds': 60},
    'clear_chat': {'max_requests': 1, 'window_seconds': 60},
}

DEFAULT_KASPA_API = {
    'networks': {
        'Mainnet': 'https://api.kaspa.org',
        'Testnet-10': 'https://api-tn10.kaspa.org',
        'Testnet-11': 'https://api-tn11.kaspa.org',
    },
    'krc20_networks': {},
    'timeout_seconds': 10,
    'max_retries': 3,
    'backoff_seconds': 1,
}


def load_config(path: str = "config/config.yaml") -> dict:
    """
    Load YAML configuration file from specified path and return as dictionary.

    Args:
        path: Configuration file path (default: config/config.yaml)

    Returns:
        Configuration dictionary with defaults filled in

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If configuration file is empty or invalid
    """
    # kat_wallet/core/config_loader.py -> project root
    root_dir = Path(__file__).parent.parent.parent
    env_path = root_dir / '.env'
    if env_path.exists():
        load_dotenv(env_path)
        log.info(f"Loaded .env file: {env_path}")
    else:
        log.info(".env file not found, using system environment variables")

    config_path = Path(path)

    # If path is not absolute, try to find from project root
    if not config_path.is_absolute():
        config_path = root_dir / path

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file does not exist: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f)

    if not config:
        raise ValueError(f"Configuration file is empty or has invalid format: {path}")

    return normalize_config(config)


def normalize_config(config: dict) -> dict:
    """
    Validate every known section and fill in defaults.

    Args:
        config: Raw configuration dictionary

    Returns:
        The same dictionary, validated and completed

    Raises:
        ValueError: Configuration validation failed
    """
    if not isinstance(config, dict):
        raise ValueError("Configuration root must be a dictionary")

    telegram = config.setdefault('telegram', {}) or {}
    telegram.setdefault('bot_token_env', 'TELEGRAM_BOT_TOKEN')
    telegram.setdefault('command', 'wallet')
    config['telegram'] = telegram

    config['session'] = _validate_session(config.get('session') or {})
    config['rate_limits'] = _validate_rate_limits(config.get('rate_limits') or {})
    config['kaspa_api'] = _validate_kaspa_api(config.get('kaspa_api') or {})

    config.setdefault('wallet', {})
    logging_config = config.setdefault('logging', {}) or {}
    logging_config.setdefault('level', 'INFO')
    config['logging'] = logging_config

    return config


def _validate_session(session: dict) -> dict:
    """
    Validate session timing configuration.

    Args:
        session: ``session`` section

    Returns:
        Validated section with defaults

    Raises:
        ValueError: A timing value is not a positive number
    """
    validated = dict(DEFAULT_SESSION)
    validated.update(session)

    for key in DEFAULT_SESSION:
        value = validated[key]
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"session.{key} must be a positive number, current value: {value}")

    # Sessions waiting on a menu must never look idle to the sweeper
    if validated['idle_ttl_seconds'] <= validated['menu_timeout_seconds']:
        raise ValueError(
            "session.idle_ttl_seconds must be greater than session.menu_timeout_seconds"
        )

    return validated


def _validate_rate_limits(rate_limits: dict) -> dict:
    """
    Validate per-action rate limit rules.

    Args:
        rate_limits: Mapping of action key to ``{max_requests, window_seconds}``

    Returns:
        Validated rules, defaults merged in for missing action keys

    Raises:
        ValueError: A rule is malformed
    """
    validated = {key: dict(rule) for key, rule in DEFAULT_RATE_LIMITS.items()}

    for action_key, rule in rate_limits.items():
        if not isinstance(rule, dict):
            raise ValueError(f"Rate limit '{action_key}' must be a dictionary")

        merged = dict(validated.get(action_key, {}))
        merged.update(rule)

        max_requests = merged.get('max_requests')
        window_seconds = merged.get('window_seconds')

        if not isinstance(max_requests, int) or isinstance(max_requests, bool) or max_requests < 1:
            raise ValueError(
                f"Rate limit '{action_key}' max_requests must be a positive integer, "
                f"current value: {max_requests}"
            )
        if not isinstance(window_seconds, (int, float)) or isinstance(window_seconds, bool) or window_seconds <= 0:
            raise ValueError(
                f"Rate limit '{action_key}' window_seconds must be a positive number, "
                f"current value: {window_seconds}"
            )

        validated[action_key] = merged

    return validated


def _validate_kaspa_api(kaspa_api: dict) -> dict:
    """
    Validate Kaspa REST API configuration.

    Args:
        kaspa_api: ``kaspa_api`` section

    Returns:
        Validated section with defaults

    Raises:
        ValueError: Configuration validation failed
    """
    validated = dict(DEFAULT_KASPA_API)
    validated.update(kaspa_api)

    networks = validated.get('networks') or {}
    if not isinstance(networks, dict):
        raise ValueError("kaspa_api.networks must map network names to base URLs")
    validated['networks'] = {name: str(url).rstrip('/') for name, url in networks.items()}

    krc20 = validated.get('krc20_networks') or {}
    if not isinstance(krc20, dict):
        raise ValueError("kaspa_api.krc20_networks must map network names to base URLs")
    validated['krc20_networks'] = {name: str(url).rstrip('/') for name, url in krc20.items()}

    if int(validated['max_retries']) < 1:
        raise ValueError(f"kaspa_api.max_retries must be >= 1, current value: {validated['max_retries']}")
    validated['max_retries'] = int(validated['max_retries'])

    return validated


def load_bot_token(config: dict) -> str:
    """
    Securely load the Telegram bot token.

    Args:
        config: Configuration dictionary

    Returns:
        Bot token string

    Raises:
        ValueError: Token loading failed
    """
    env_var = config.get('telegram', {}).get('bot_token_env', 'TELEGRAM_BOT_TOKEN')
    token = os.environ.get(env_var)
    if not token:
        raise ValueError(f"Environment variable '{env_var}' not set, cannot start the bot")
    return token
