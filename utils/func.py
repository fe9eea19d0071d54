import datetime
import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from colorama import Fore, Style, init


CONFIG_FILE = os.environ.get("CHIMP_CONFIG", "config.yml")

LOG_COLORS = {
    "DEBUG": Fore.CYAN,
    "INFO": Fore.GREEN,
    "WARNING": Fore.YELLOW,
    "ERROR": Fore.RED,
    "CRITICAL": Fore.RED + Style.BRIGHT,
}

# Loggers that drown the pipeline's own output at DEBUG
NOISY_LOGGERS = {
    "httpcore": logging.WARNING,
    "httpx": logging.WARNING,
    "openai": logging.WARNING,
    "aiohttp": logging.WARNING,
    "discord": logging.INFO,
    "discord.http": logging.WARNING,
    "discord.gateway": logging.WARNING,
}


class ColoredFormatter(logging.Formatter):
    """Console formatter: one colored line per record, tagged with the module that logged it."""

    def format(self, record):
        color = LOG_COLORS.get(record.levelname, Fore.WHITE)
        timestamp = datetime.datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        # [HH:MM:SS] LEVEL    [module:line] - message
        line = f"{color}[{timestamp}] {record.levelname:<8} [{record.module}:{record.lineno}] {Fore.RESET}- {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def load_config(path: str = CONFIG_FILE) -> Dict[str, Any]:
    """
    Loads configuration from the YAML file without using logging.

    A missing or unreadable file yields an empty config; every setting
    has a default, so the bot can still start far enough to complain.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Dict[str, Any]: Configuration data from config.yml
    """
    try:
        with open(path, "r", encoding="utf-8") as file:
            data = yaml.safe_load(file)
    except (OSError, yaml.YAMLError):
        data = {}
    return data if isinstance(data, dict) else {}


def setup_logging(debug_mode: bool = False, log_file: Optional[str] = "app.log") -> logging.Logger:
    """
    Configures the root logger: everything goes to ``log_file``, and a
    colored console handler shows INFO and up (DEBUG in debug mode).

    Args:
        debug_mode: Whether to show debug records on the console
        log_file: File receiving every record; None disables it

    Returns:
        logging.Logger: Configured root logger
    """
    init(autoreset=True)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s : %(message)s"
        ))
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug_mode else logging.INFO)
    console_handler.setFormatter(ColoredFormatter())
    root_logger.addHandler(console_handler)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return root_logger


# Load the configuration before any logger exists
config_yaml = load_config()
_options = config_yaml.get("Options") if isinstance(config_yaml.get("Options"), dict) else {}
debug_mode = bool(_options.get("debug_mode", False))

log = setup_logging(debug_mode, _options.get("log_file", "app.log"))


def get_section(name: str) -> Dict[str, Any]:
    """
    Get a top-level section of config.yml.

    Missing or malformed sections resolve to an empty dict so callers
    can chain ``.get`` with their own defaults.
    """
    section = config_yaml.get(name)
    return section if isinstance(section, dict) else {}


def get_setting(section: str, key: str, default: Any = None) -> Any:
    """Get a single value from a config section, falling back to ``default``."""
    value = get_section(section).get(key)
    return default if value is None else value


def get_allowed_channels() -> List[str]:
    """
    Get the channel allow-list as strings.

    YAML happily parses long Discord snowflakes as ints, so every
    entry is normalized to ``str`` here.
    """
    channels = get_section("Discord").get("allowed_channels") or []
    return [str(channel_id) for channel_id in channels]


def get_blocklist_file() -> str:
    """
    Get the blocked users file path from configuration.

    Returns:
        str: Path to the blocked users file
    """
    return get_setting("Data", "blocklist_file", "data/blocked_users.json")


def get_conversations_file() -> str:
    """
    Get the conversations file path from configuration.

    Returns:
        str: Path to the conversations file
    """
    return get_setting("Data", "conversations_file", "data/conversations.json")
