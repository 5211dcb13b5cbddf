"""
Settings for the kingtime client

Values are read from the environment, after loading an optional .env file.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import find_dotenv, load_dotenv
import pytz

from .integrations.base import ConfigurationError
from .integrations.kingtime_adapter import (
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT,
    DEFAULT_TIME_ZONE,
)


def _getenv(*names: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty variable among names"""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class Settings:
    access_token: str = field(repr=False)
    employee_code: Optional[str] = None
    employee_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    time_zone: str = DEFAULT_TIME_ZONE
    log_level: str = 'WARNING'


def load_settings(dotenv: bool = True, dotenv_path: Optional[str] = None) -> Settings:
    """
    Build the settings from the environment.

    The .env file is looked up from the working directory unless
    dotenv_path is given. Variables already set take precedence.

    Raises:
        ConfigurationError: If the access token or the employee is missing,
            or if the timeout, time zone or log level is invalid
    """
    if dotenv:
        load_dotenv(dotenv_path or find_dotenv(usecwd=True), override=False)

    access_token = _getenv('KINGTIME_ACCESS_TOKEN', 'TC_KINGTIME_ACCESS_TOKEN')
    if not access_token:
        raise ConfigurationError("KINGTIME_ACCESS_TOKEN is not set")

    employee_code = _getenv('KINGTIME_EMPLOYEE_CODE', 'TC_EMPLOYEE_NUMBER')
    employee_key = _getenv('KINGTIME_EMPLOYEE_KEY')
    if not employee_code and not employee_key:
        raise ConfigurationError("KINGTIME_EMPLOYEE_CODE or KINGTIME_EMPLOYEE_KEY is not set")

    raw_timeout = _getenv('KINGTIME_TIMEOUT', default=str(DEFAULT_TIMEOUT))
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ConfigurationError(
            f"KINGTIME_TIMEOUT must be a number, got {raw_timeout!r}"
        ) from None

    time_zone = _getenv('KINGTIME_TIME_ZONE', default=DEFAULT_TIME_ZONE)
    try:
        pytz.timezone(time_zone)
    except pytz.UnknownTimeZoneError:
        raise ConfigurationError(
            f"KINGTIME_TIME_ZONE is not a known time zone, got {time_zone!r}"
        ) from None

    log_level = _getenv('LOG_LEVEL', default='WARNING').upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"LOG_LEVEL is not a logging level, got {log_level!r}")

    return Settings(
        access_token=access_token,
        employee_code=employee_code,
        employee_key=employee_key,
        base_url=_getenv('KINGTIME_BASE_URL', default=DEFAULT_BASE_URL),
        timeout=timeout,
        time_zone=time_zone,
        log_level=log_level,
    )


def logging_config(level: str = 'WARNING') -> dict:
    """Logging configuration for the command line"""
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'verbose': {
                'format': '{levelname} {asctime} {module} {message}',
                'style': '{',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'verbose',
                'stream': 'ext://sys.stderr',
            },
        },
        'loggers': {
            'kingtime': {
                'handlers': ['console'],
                'level': level,
                'propagate': False,
            },
            'httpx': {
                'handlers': ['console'],
                'level': 'WARNING',
                'propagate': False,
            },
        },
    }
