"""
Base classes for the KING OF TIME integration

Defines the error taxonomy, the value objects returned to callers and the
common interface an attendance adapter must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class KingTimeError(Exception):
    """Base exception for adapter errors"""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or 'KINGTIME_ERROR'
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            'error': self.message,
            'code': self.code,
            'details': self.details,
        }


class ConfigurationError(KingTimeError):
    """A required setting is missing or invalid"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, 'CONFIGURATION_ERROR', details)


class TransportError(KingTimeError):
    """The network call could not complete"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, 'TRANSPORT_ERROR', details)


class AuthError(KingTimeError):
    """The credential was rejected (401/403)"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, 'AUTH_ERROR', details)


class DecodeError(KingTimeError):
    """The response body does not match the expected schema"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, 'DECODE_ERROR', details)


class ConflictError(KingTimeError):
    """The service refused the punch because of its current state (409)"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, 'CONFLICT_ERROR', details)


class ApiError(KingTimeError):
    """The service answered with an error payload"""

    def __init__(self, message: str, errors: List[dict] = None,
                 status_code: int = None, code: str = None, details: dict = None):
        details = details or {}
        details['status_code'] = status_code
        details['errors'] = errors or []
        super().__init__(message, code or 'API_ERROR', details)
        self.errors = errors or []
        self.status_code = status_code


class RateLimitError(ApiError):
    """Rate limit reached (429)"""
    def __init__(self, message: str, retry_after: int = None, details: dict = None):
        details = details or {}
        details['retry_after'] = retry_after
        super().__init__(message, status_code=429, code='RATE_LIMIT_ERROR', details=details)
        self.retry_after = retry_after


class TimeRecordCode(str, Enum):
    """Punch codes used by the timerecord endpoints"""

    IN = '1'
    OUT = '2'
    BREAK_START = '3'
    BREAK_END = '4'

    @property
    def label(self) -> str:
        return self.name.lower().replace('_', ' ')


class AttendanceStatus(str, Enum):
    """Current attendance state as reported by the service"""

    IN = 'in'
    OUT = 'out'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class Credential:
    """
    Access token issued by KING OF TIME.

    The token is excluded from repr so it never ends up in logs.
    """

    token: str = field(repr=False)

    def __post_init__(self):
        if not self.token:
            raise ConfigurationError("Access token is empty")

    @property
    def authorization(self) -> str:
        return f'Bearer {self.token}'


@dataclass(frozen=True)
class Employee:
    """Employee resolved from an employee code"""

    key: str
    code: str
    last_name: str = ''
    first_name: str = ''

    @property
    def full_name(self) -> str:
        return f'{self.last_name} {self.first_name}'.strip()


@dataclass(frozen=True)
class TimeRecord:
    """A single punch listed by the service"""

    time: datetime
    code: str
    name: str = ''
    division_code: Optional[str] = None
    division_name: Optional[str] = None

    @property
    def kind(self) -> Optional[TimeRecordCode]:
        try:
            return TimeRecordCode(self.code)
        except ValueError:
            return None

    def to_dict(self) -> dict:
        return {
            'time': self.time.isoformat(),
            'code': self.code,
            'name': self.name,
            'division_code': self.division_code,
            'division_name': self.division_name,
        }


@dataclass(frozen=True)
class ClockEvent:
    """A punch confirmed by the service"""

    kind: TimeRecordCode
    timestamp: datetime
    date: Optional[date] = None
    employee_key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.name,
            'timestamp': self.timestamp.isoformat(),
            'date': self.date.isoformat() if self.date else None,
            'employee_key': self.employee_key,
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class DailyWorking:
    """
    Daily totals of one employee, as computed by the service.

    Durations are in minutes.
    """

    date: date
    employee_key: str
    total_work: int
    assigned: int = 0
    unassigned: int = 0
    overtime: int = 0
    late_night: int = 0
    break_time: int = 0
    late: int = 0
    early_leave: int = 0
    is_closing: bool = False
    is_error: bool = False
    workday_type_name: str = ''
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'employee_key': self.employee_key,
            'total_work': self.total_work,
            'assigned': self.assigned,
            'unassigned': self.unassigned,
            'overtime': self.overtime,
            'late_night': self.late_night,
            'break_time': self.break_time,
            'late': self.late,
            'early_leave': self.early_leave,
            'is_closing': self.is_closing,
            'is_error': self.is_error,
            'workday_type_name': self.workday_type_name,
            'metadata': self.metadata,
        }


def status_from_records(records: List[TimeRecord]) -> AttendanceStatus:
    """
    Derive the attendance status from the records of a single day.

    No record yet means the employee has not started working.
    """
    if not records:
        return AttendanceStatus.OUT

    last = max(records, key=lambda record: record.time)
    if last.kind in (TimeRecordCode.IN, TimeRecordCode.BREAK_END):
        return AttendanceStatus.IN
    if last.kind in (TimeRecordCode.OUT, TimeRecordCode.BREAK_START):
        return AttendanceStatus.OUT

    logger.warning(f"Unknown time record code: {last.code}")
    return AttendanceStatus.UNKNOWN


class AttendanceAdapter(ABC):
    """
    Common interface for attendance service adapters.

    Each adapter must implement the abstract methods to:
    - Read the current attendance status
    - Record a clock-in or clock-out
    """

    CONTENT_TYPE = 'application/json; charset=utf-8'

    def __init__(self, credential: Credential, base_url: str):
        """
        Initialise the adapter.

        Args:
            credential: Access token sent with every request
            base_url: Root URL of the remote API
        """
        self._credential = credential
        self.base_url = base_url
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def get_status(self) -> AttendanceStatus:
        """Return whether the user is currently clocked in"""
        pass

    @abstractmethod
    async def clock_in(self) -> ClockEvent:
        """Record an "in" punch"""
        pass

    @abstractmethod
    async def clock_out(self) -> ClockEvent:
        """Record an "out" punch"""
        pass

    def get_headers(self) -> Dict[str, str]:
        """Build the HTTP headers, authentication included"""
        return {
            'Content-Type': self.CONTENT_TYPE,
            'Accept': 'application/json',
            'Authorization': self._credential.authorization,
        }

    def build_url(self, endpoint: str) -> str:
        """Build the full URL from an endpoint"""
        base = self.base_url.rstrip('/')
        endpoint = endpoint.lstrip('/')
        return f"{base}/{endpoint}"
