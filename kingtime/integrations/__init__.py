"""
Integrations - adapters for remote attendance services

Each adapter implements the AttendanceAdapter interface.
"""

from .base import (
    AttendanceAdapter,
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
    KingTimeError,
    RateLimitError,
    TimeRecord,
    TimeRecordCode,
    TransportError,
)
from .kingtime_adapter import KingTimeAdapter

__all__ = [
    'AttendanceAdapter',
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
    'KingTimeError',
    'RateLimitError',
    'TimeRecord',
    'TimeRecordCode',
    'TransportError',
    'KingTimeAdapter',
]
