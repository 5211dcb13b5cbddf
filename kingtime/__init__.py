"""
kingtime - client for the KING OF TIME attendance API
"""

from .integrations import (
    AttendanceStatus,
    ApiError,
    AuthError,
    ClockEvent,
    ConfigurationError,
    ConflictError,
    Credential,
    DailyWorking,
    DecodeError,
    Employee,
    KingTimeAdapter,
    KingTimeError,
    RateLimitError,
    TimeRecord,
    TimeRecordCode,
    TransportError,
)

__version__ = '0.1.0'

__all__ = [
    'AttendanceStatus',
    'ApiError',
    'AuthError',
    'ClockEvent',
    'ConfigurationError',
    'ConflictError',
    'Credential',
    'DailyWorking',
    'DecodeError',
    'Employee',
    'KingTimeAdapter',
    'KingTimeError',
    'RateLimitError',
    'TimeRecord',
    'TimeRecordCode',
    'TransportError',
]
