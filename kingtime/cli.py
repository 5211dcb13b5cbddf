"""
Command line entry point

    kingtime [--json] [-v] status | in | out | break-start | break-end | ls | summary
"""

import argparse
import asyncio
import json
import logging
import logging.config
import sys
from typing import Awaitable, Callable, Dict, List, Optional

from .integrations import (
    AttendanceStatus,
    ClockEvent,
    ConfigurationError,
    Credential,
    KingTimeAdapter,
    KingTimeError,
)
from .settings import Settings, load_settings, logging_config

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ADAPTER_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2

STATUS_MESSAGES = {
    AttendanceStatus.IN: "at work",
    AttendanceStatus.OUT: "not at work (or on a break)",
    AttendanceStatus.UNKNOWN: "status unknown",
}


def build_adapter(settings: Settings) -> KingTimeAdapter:
    return KingTimeAdapter(
        Credential(settings.access_token),
        employee_code=settings.employee_code,
        employee_key=settings.employee_key,
        base_url=settings.base_url,
        timeout=settings.timeout,
        tz=settings.time_zone,
    )


def format_event(event: ClockEvent, as_json: bool) -> str:
    if as_json:
        return json.dumps(event.to_dict(), ensure_ascii=False)
    return f"{event.kind.label}: {event.timestamp.isoformat()}"


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60}:{minutes % 60:02d}"


async def show_status(adapter: KingTimeAdapter, as_json: bool) -> str:
    status = await adapter.get_status()
    if as_json:
        return json.dumps({'status': status.value})
    return STATUS_MESSAGES[status]


async def list_records(adapter: KingTimeAdapter, as_json: bool) -> str:
    records = await adapter.get_time_records()
    if as_json:
        return json.dumps([record.to_dict() for record in records], ensure_ascii=False)
    if not records:
        return "no punches today"
    return '\n'.join(
        f"{record.time.strftime('%H:%M:%S')}  {record.kind.label if record.kind else record.code}"
        f"  {record.name}".rstrip()
        for record in records
    )


async def show_summary(adapter: KingTimeAdapter, as_json: bool) -> str:
    key = await adapter.employee_key()
    workings = [w for w in await adapter.get_daily_workings() if w.employee_key == key]
    if as_json:
        return json.dumps([working.to_dict() for working in workings], ensure_ascii=False)
    if not workings:
        return "no daily working today"
    return '\n'.join(
        f"{working.date.isoformat()}  worked {format_minutes(working.total_work)}"
        f"  overtime {format_minutes(working.overtime)}"
        f"  break {format_minutes(working.break_time)}"
        for working in workings
    )


def punch_command(method: str) -> Callable[[KingTimeAdapter, bool], Awaitable[str]]:
    async def run(adapter: KingTimeAdapter, as_json: bool) -> str:
        event = await getattr(adapter, method)()
        return format_event(event, as_json)
    return run


COMMANDS: Dict[str, Callable[[KingTimeAdapter, bool], Awaitable[str]]] = {
    'status': show_status,
    'in': punch_command('clock_in'),
    'out': punch_command('clock_out'),
    'break-start': punch_command('start_break'),
    'break-end': punch_command('end_break'),
    'ls': list_records,
    'summary': show_summary,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='kingtime',
        description="Check attendance status and clock in/out on KING OF TIME",
    )
    parser.add_argument(
        'command',
        choices=list(COMMANDS),
        help="status: current state, in/out: clock in/out, "
             "break-start/break-end: breaks, ls: today's punches, "
             "summary: today's totals",
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help="print the result as JSON",
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help="log requests (DEBUG level)",
    )
    return parser.parse_args(argv)


async def run_command(adapter: KingTimeAdapter, command: str, as_json: bool = False) -> str:
    """Run one command and return the text to print"""
    async with adapter:
        return await COMMANDS[command](adapter, as_json)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"kingtime: {e.message}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    logging.config.dictConfig(
        logging_config('DEBUG' if args.verbose else settings.log_level)
    )

    try:
        output = asyncio.run(run_command(build_adapter(settings), args.command, args.json))
    except ConfigurationError as e:
        print(f"kingtime: {e.message}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR
    except KingTimeError as e:
        logger.debug(f"{args.command} failed: {e.to_dict()}")
        print(f"kingtime: {e.message}", file=sys.stderr)
        return EXIT_ADAPTER_ERROR

    print(output)
    return EXIT_OK
