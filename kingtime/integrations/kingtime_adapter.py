"""
KING OF TIME adapter - client for the KOT public REST API

Implements the AttendanceAdapter interface on top of httpx:
- Bearer token authentication
- Configurable timeout and time zone
- Normalised errors (AuthError, TransportError, DecodeError, ...)

No retry is attempted: every error is raised to the caller.
"""

import httpx
import logging
from typing import Any, List, Optional
from datetime import date, datetime

import pytz

from .base import (
    AttendanceAdapter,
    ApiError,
    AttendanceStatus,
    AuthError,
    ClockEvent,
    ConfigurationError,
    ConflictError,
    Credential,
    DailyWorking,
    DecodeError,
    Employee,
    RateLimitError,
    TimeRecord,
    TimeRecordCode,
    TransportError,
    status_from_records,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.kingtime.jp/v1.0'
DEFAULT_TIMEOUT = 30.0
DEFAULT_TIME_ZONE = 'Asia/Tokyo'

EMPLOYEES_ENDPOINT = '/employees/{code}'
DAILY_WORKINGS_ENDPOINT = '/daily-workings'
TIMERECORD_ENDPOINT = '/daily-workings/timerecord'

DAILY_WORKING_MINUTES = {
    'assigned': 'assigned',
    'unassigned': 'unassigned',
    'overtime': 'overtime',
    'lateNight': 'late_night',
    'breakTime': 'break_time',
    'late': 'late',
    'earlyLeave': 'early_leave',
}
DAILY_WORKING_FLAGS = {
    'isClosing': 'is_closing',
    'isError': 'is_error',
}


class KingTimeAdapter(AttendanceAdapter):
    """
    Adapter for the KING OF TIME attendance API.

    Usage:
        async with KingTimeAdapter(Credential(token), employee_code='1000') as kot:
            status = await kot.get_status()
            event = await kot.clock_in()

    The punch endpoints are addressed by employee key. When only the employee
    code is known, the key is looked up once and reused.
    """

    def __init__(
        self,
        credential: Credential,
        employee_code: Optional[str] = None,
        employee_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        tz: str = DEFAULT_TIME_ZONE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credential, base_url)
        self.employee_code = employee_code
        self.timeout = timeout
        try:
            self.tz = pytz.timezone(tz)
        except pytz.UnknownTimeZoneError:
            raise ConfigurationError(f"Unknown time zone: {tz}") from None
        self._employee_key = employee_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the HTTP client, creating it on first use"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self.get_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: dict = None,
        params: dict = None,
    ) -> httpx.Response:
        """
        Send an HTTP request and map failures to adapter errors.

        The status code is checked before the body is looked at, so a
        rejected credential is always reported as AuthError.

        Raises:
            TransportError: If the request cannot complete
            AuthError: If the credential is rejected (401/403)
            ConflictError: If the service reports a state conflict (409)
            RateLimitError: If the rate limit is reached (429)
            ApiError: For any other error status
        """
        client = await self._get_client()
        url = self.build_url(endpoint)
        self.logger.debug(f"{method} {url}")

        try:
            response = await client.request(
                method=method,
                url=url,
                json=json,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timeout while calling {url}",
                {'original_error': str(e)}
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Unable to reach {url}",
                {'original_error': str(e)}
            ) from e

        self.logger.debug(f"{method} {url} -> {response.status_code}")

        if response.status_code == 401:
            raise AuthError(
                "Authentication failed - access token invalid or expired",
                {'status_code': 401}
            )

        if response.status_code == 403:
            raise AuthError(
                "Access denied - token not allowed for this resource",
                {'status_code': 403}
            )

        if response.status_code == 409:
            raise ConflictError(
                "The service refused the request in its current state",
                {'status_code': 409, 'errors': self._error_list(response)}
            )

        if response.status_code == 429:
            retry_after = response.headers.get('Retry-After')
            raise RateLimitError(
                "Rate limit reached",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if response.status_code >= 400:
            errors = self._error_list(response)
            message = '; '.join(str(e.get('message')) for e in errors if isinstance(e, dict))
            raise ApiError(
                message or f"HTTP error {response.status_code}",
                errors=errors,
                status_code=response.status_code,
                details={'body': response.text[:500]} if not errors else None,
            )

        return response

    @staticmethod
    def _error_list(response: httpx.Response) -> List[dict]:
        """Extract the KOT error list from an error body, if any"""
        try:
            body = response.json()
        except ValueError:
            return []
        if isinstance(body, dict) and isinstance(body.get('errors'), list):
            return body['errors']
        return []

    def _decode(self, response: httpx.Response) -> Any:
        """Decode a successful JSON body"""
        try:
            body = response.json()
        except ValueError as e:
            raise DecodeError(
                "Response body is not valid JSON",
                {'status_code': response.status_code, 'body': response.text[:500]}
            ) from e

        if isinstance(body, dict) and isinstance(body.get('errors'), list):
            errors = body['errors']
            raise ApiError(
                '; '.join(str(e.get('message')) for e in errors if isinstance(e, dict))
                or "The service returned errors",
                errors=errors,
                status_code=response.status_code,
            )
        return body

    def _parse_time(self, value: Any, field_name: str = 'time') -> datetime:
        """Parse an ISO 8601 timestamp, localising naive values"""
        if not isinstance(value, str):
            raise DecodeError(f"Field '{field_name}' is missing or not a string", {'value': value})
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError as e:
            raise DecodeError(f"Field '{field_name}' is not an ISO 8601 timestamp", {'value': value}) from e
        if parsed.tzinfo is None:
            parsed = self.tz.localize(parsed)
        return parsed

    @staticmethod
    def _parse_date(value: Any) -> date:
        if not isinstance(value, str):
            raise DecodeError("Field 'date' is missing or not a string", {'value': value})
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise DecodeError("Field 'date' is not an ISO 8601 date", {'value': value}) from e

    def now(self) -> datetime:
        """Current time in the configured time zone"""
        return datetime.now(self.tz).replace(microsecond=0)

    def today(self) -> date:
        """Current business date in the configured time zone"""
        return self.now().date()

    async def get_employee(self, code: str) -> Employee:
        """
        Look up an employee by employee code.

        Args:
            code: Employee code as shown in KING OF TIME

        Returns:
            The employee, including the key used by the punch endpoints
        """
        response = await self._request('GET', EMPLOYEES_ENDPOINT.format(code=code))
        body = self._decode(response)

        if not isinstance(body, dict) or not isinstance(body.get('key'), str) or not body['key']:
            raise DecodeError("Employee response has no 'key'", {'code': code})

        return Employee(
            key=body['key'],
            code=str(body.get('code', code)),
            last_name=body.get('lastName') or '',
            first_name=body.get('firstName') or '',
        )

    async def employee_key(self) -> str:
        """Return the employee key, resolving it from the code if needed"""
        if self._employee_key:
            return self._employee_key
        if not self.employee_code:
            raise ConfigurationError("An employee key or employee code is required")

        employee = await self.get_employee(self.employee_code)
        self.logger.info(f"Resolved employee {employee.code}")
        self._employee_key = employee.key
        return self._employee_key

    async def get_time_records(self, day: Optional[date] = None) -> List[TimeRecord]:
        """
        List the punches of one day, oldest first.

        Args:
            day: Business date to read, today by default
        """
        key = await self.employee_key()
        day = day or self.today()
        response = await self._request(
            'GET',
            TIMERECORD_ENDPOINT,
            params={
                'employeeKeys': key,
                'start': day.isoformat(),
                'end': day.isoformat(),
            },
        )
        body = self._decode(response)
        records = self._parse_daily_records(body, key)
        return sorted(records, key=lambda record: record.time)

    def _parse_daily_records(self, body: Any, key: str) -> List[TimeRecord]:
        """
        Parse the daily-workings timerecord payload.

        Expected format:
            [{"date": ..., "dailyWorkings": [{"employeeKey": ..., "timeRecord": [...]}]}]
        """
        if not isinstance(body, list):
            raise DecodeError("Time record response is not a list", {'type': type(body).__name__})

        records = []
        for day_entry in body:
            if not isinstance(day_entry, dict) or not isinstance(day_entry.get('dailyWorkings'), list):
                raise DecodeError("Time record entry has no 'dailyWorkings' list")

            for working in day_entry['dailyWorkings']:
                if not isinstance(working, dict):
                    raise DecodeError("Daily working is not an object")
                if working.get('employeeKey') not in (None, key):
                    continue
                raw_records = working.get('timeRecord')
                if not isinstance(raw_records, list):
                    raise DecodeError("Daily working has no 'timeRecord' list")
                records.extend(self._parse_time_record(raw) for raw in raw_records)

        return records

    def _parse_time_record(self, raw: Any) -> TimeRecord:
        if not isinstance(raw, dict):
            raise DecodeError("Time record is not an object")
        if raw.get('code') is None:
            raise DecodeError("Time record has no 'code'", {'record': raw})

        return TimeRecord(
            time=self._parse_time(raw.get('time')),
            code=str(raw['code']),
            name=raw.get('name') or '',
            division_code=raw.get('divisionCode'),
            division_name=raw.get('divisionName'),
        )

    async def get_daily_workings(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[DailyWorking]:
        """
        Read the daily totals computed by the service.

        Args:
            start: First business date, today by default
            end: Last business date, same as start by default

        Returns:
            One DailyWorking per employee and day, in response order
        """
        start = start or self.today()
        end = end or start
        response = await self._request(
            'GET',
            DAILY_WORKINGS_ENDPOINT,
            params={'start': start.isoformat(), 'end': end.isoformat()},
        )
        body = self._decode(response)

        if not isinstance(body, list):
            raise DecodeError("Daily workings response is not a list", {'type': type(body).__name__})

        workings = []
        for day_entry in body:
            if not isinstance(day_entry, dict) or not isinstance(day_entry.get('dailyWorkings'), list):
                raise DecodeError("Daily workings entry has no 'dailyWorkings' list")
            workings.extend(self._parse_daily_working(raw) for raw in day_entry['dailyWorkings'])

        self.logger.debug(f"{len(workings)} daily workings from {start} to {end}")
        return workings

    def _parse_daily_working(self, raw: Any) -> DailyWorking:
        if not isinstance(raw, dict):
            raise DecodeError("Daily working is not an object")
        if not isinstance(raw.get('employeeKey'), str) or not raw['employeeKey']:
            raise DecodeError("Daily working has no 'employeeKey'", {'date': raw.get('date')})

        def minutes(name: str, required: bool = False) -> int:
            value = raw.get(name)
            if value is None and not required:
                return 0
            # bool is an int subclass
            if not isinstance(value, int) or isinstance(value, bool):
                raise DecodeError(f"Field '{name}' is missing or not an integer", {'value': value})
            return value

        def flag(name: str) -> bool:
            value = raw.get(name, False)
            if not isinstance(value, bool):
                raise DecodeError(f"Field '{name}' is not a boolean", {'value': value})
            return value

        fields = {attr: minutes(name) for name, attr in DAILY_WORKING_MINUTES.items()}
        fields.update({attr: flag(name) for name, attr in DAILY_WORKING_FLAGS.items()})

        known = {'date', 'employeeKey', 'totalWork', 'workdayTypeName'}
        known.update(DAILY_WORKING_MINUTES, DAILY_WORKING_FLAGS)
        return DailyWorking(
            date=self._parse_date(raw.get('date')),
            employee_key=raw['employeeKey'],
            total_work=minutes('totalWork', required=True),
            workday_type_name=raw.get('workdayTypeName') or '',
            metadata={k: v for k, v in raw.items() if k not in known},
            **fields,
        )

    async def get_status(self) -> AttendanceStatus:
        """Return the current status, derived from today's punches"""
        records = await self.get_time_records()
        status = status_from_records(records)
        self.logger.debug(f"{len(records)} records today, status={status.value}")
        return status

    async def punch(self, code: TimeRecordCode) -> ClockEvent:
        """
        Record a punch and return the event confirmed by the service.

        The request carries the local time because the endpoint requires it;
        the returned timestamp is the one acknowledged by the service.
        """
        key = await self.employee_key()
        now = self.now()
        payload = {
            'date': now.date().isoformat(),
            'time': now.isoformat(),
            'code': code.value,
        }

        response = await self._request(
            'POST',
            f'{TIMERECORD_ENDPOINT}/{key}',
            json=payload,
        )
        body = self._decode(response)
        event = self._parse_clock_event(body, key)

        self.logger.info(f"Punch {event.kind.name} confirmed at {event.timestamp.isoformat()}")
        return event

    def _parse_clock_event(self, body: Any, key: str) -> ClockEvent:
        """
        Parse the punch acknowledgment.

        The record is read either at the top level or under 'timeRecord'.
        """
        if not isinstance(body, dict):
            raise DecodeError("Punch response is not an object", {'type': type(body).__name__})

        record = body.get('timeRecord', body)
        if isinstance(record, list):
            if len(record) != 1:
                raise DecodeError("Punch response must contain exactly one time record")
            record = record[0]
        if not isinstance(record, dict):
            raise DecodeError("Punch response record is not an object")

        timestamp = self._parse_time(record.get('time'))

        if record.get('code') is None:
            raise DecodeError("Punch response has no 'code'", {'record': record})
        raw_code = record['code']
        try:
            kind = TimeRecordCode(str(raw_code))
        except ValueError as e:
            raise DecodeError(f"Unknown punch code: {raw_code}") from e

        raw_date = record.get('date', body.get('date'))
        event_date = self._parse_date(raw_date) if raw_date is not None else timestamp.astimezone(self.tz).date()

        known = {'time', 'code', 'date', 'employeeKey', 'timeRecord'}
        return ClockEvent(
            kind=kind,
            timestamp=timestamp,
            date=event_date,
            employee_key=body.get('employeeKey', key),
            metadata={k: v for k, v in record.items() if k not in known},
        )

    async def clock_in(self) -> ClockEvent:
        return await self.punch(TimeRecordCode.IN)

    async def clock_out(self) -> ClockEvent:
        return await self.punch(TimeRecordCode.OUT)

    async def start_break(self) -> ClockEvent:
        return await self.punch(TimeRecordCode.BREAK_START)

    async def end_break(self) -> ClockEvent:
        return await self.punch(TimeRecordCode.BREAK_END)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

