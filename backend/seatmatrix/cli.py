#!/usr/bin/env python3
"""CLI tool for seat matrix and availability lookups.

Runs the same operations as the HTTP API from a terminal, using the
credentials configured in the environment (``SECRET_RAILWAY_AUTH_TOKEN`` and
``SECRET_RAILWAY_DEVICE_KEY``).

Usage:
    # Fare matrix of a train on a date
    uv run python -m seatmatrix.cli matrix 787 2025-09-28

    # Purchasable routes between two stops of a train
    uv run python -m seatmatrix.cli routes 787 2025-09-28 Dhaka Chattogram

    # Seat availability of every train between two stations
    uv run python -m seatmatrix.cli availability Dhaka Chattogram 2025-09-28

    # Trains running between two stations
    uv run python -m seatmatrix.cli search Dhaka Chattogram

    # Check the configured credentials
    uv run python -m seatmatrix.cli verify
"""

import argparse
import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from seatmatrix.core.concurrency import CancelToken
from seatmatrix.core.config import settings
from seatmatrix.core.credentials import SettingsCredentialsProvider
from seatmatrix.core.errors import Canceled, RailwayError
from seatmatrix.core.logging import configure_logging
from seatmatrix.helpers.route_composer import InvalidRouteQuery, compose_routes
from seatmatrix.helpers.time_parsing import iso_to_display
from seatmatrix.schemas.matrix import MatrixResult, SeatClass
from seatmatrix.services.availability_service import AvailabilityService
from seatmatrix.services.matrix_service import MatrixService
from seatmatrix.services.railway_client import RailwayClient

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CREDENTIALS = 2
EXIT_INTERRUPTED = 130  # 128 + SIGINT

CommandHandler = Callable[[argparse.Namespace, RailwayClient, CancelToken | None], Awaitable[int]]


def _print_progress(message: str, percent: int) -> None:
    print(f"   [{percent:3d}%] {message}", file=sys.stderr)


@contextmanager
def cancel_on_interrupt(token: CancelToken) -> Iterator[None]:
    """
    Turn Ctrl-C into a cancellation of ``token`` while the block runs.

    Queued railway calls are then skipped and in-flight ones aborted, so the
    command ends with ``Canceled`` instead of a KeyboardInterrupt traceback.
    Event loops without signal handler support (Windows) keep the default
    behaviour, which ``main`` reports the same way.
    """
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except NotImplementedError:
        installed = False
    else:
        installed = True
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _compute_matrix(
    args: argparse.Namespace, client: RailwayClient, cancel_token: CancelToken | None
) -> MatrixResult:
    service = MatrixService(client)
    progress = None if args.quiet else _print_progress
    return await service.compute_matrix(
        args.train_model, iso_to_display(args.date), args.date, progress, cancel_token=cancel_token
    )


async def cmd_matrix(
    args: argparse.Namespace, client: RailwayClient, cancel_token: CancelToken | None = None
) -> int:
    """
    Compute and summarize a train's fare matrix.

    Args:
        args: Parsed command-line arguments
        client: Railway API client
        cancel_token: Aborts the computation when cancelled

    Returns:
        Exit code (0 for success)
    """
    result = await _compute_matrix(args, client, cancel_token)

    print(f"✅ {result.train_name} on {result.date}")
    print(f"   Stations:   {' → '.join(result.stations)}")
    print(f"   Runs on:    {', '.join(result.days)}")
    print(f"   Duration:   {result.total_duration}")
    print(f"   Classes:    {', '.join(result.available_seat_types()) or 'none'}")
    if result.has_segmented_dates:
        print(f"   ⚠️  Route crosses midnight; early stops after midnight fall on {result.next_day_str}")

    if args.output:
        Path(args.output).write_text(result.model_dump_json(indent=2), encoding="utf-8")
        print(f"💾 Matrix written to {args.output}")
    return EXIT_OK


async def cmd_routes(
    args: argparse.Namespace, client: RailwayClient, cancel_token: CancelToken | None = None
) -> int:
    """
    Compute a train's matrix and list purchasable routes between two of its stops.

    Returns:
        Exit code (0 when at least one route exists, 1 otherwise)
    """
    result = await _compute_matrix(args, client, cancel_token)
    try:
        routes = compose_routes(result, args.origin, args.destination, settings.SERVICE_CHARGE)
    except InvalidRouteQuery as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not routes:
        print(f"❌ No tickets available from {args.origin} to {args.destination}")
        return EXIT_ERROR

    for route in routes:
        label = route.seat_type or "mixed classes"
        print(f"✅ {route.kind} ({label}) - total ৳{route.total_fare:.2f}")
        for segment in route.segments:
            print(
                f"   {segment.from_station} → {segment.to_station} [{segment.seat_type}] "
                f"{segment.date}: ৳{segment.total:.2f}, {segment.seats} seats"
            )
    return EXIT_OK


async def cmd_availability(
    args: argparse.Namespace, client: RailwayClient, cancel_token: CancelToken | None = None
) -> int:
    """
    Show seat availability of every train between two stations.

    Returns:
        Exit code (0 for success)
    """
    service = AvailabilityService(client)
    progress = None if args.quiet else _print_progress
    trains = await service.check_availability(
        args.origin, args.destination, iso_to_display(args.date), args.seat_class, progress, cancel_token
    )

    for trip_number, train in trains.items():
        print(f"🚆 {trip_number}: {train.departure_time} → {train.arrival_time} ({train.journey_duration})")
        for seat in train.seat_data:
            if seat.layout is not None:
                print(
                    f"   {seat.seat_type}: {seat.layout.available_count} available, "
                    f"{seat.layout.booking_process_count} in booking process"
                )
            else:
                print(f"   {seat.seat_type}: ❌ {seat.error_message}")
    return EXIT_OK


async def cmd_search(
    args: argparse.Namespace, client: RailwayClient, cancel_token: CancelToken | None = None
) -> int:
    """
    List trains running between two stations.

    Returns:
        Exit code (0 for success)
    """
    service = AvailabilityService(client)
    result = await service.search_trains(args.origin, args.destination, cancel_token=cancel_token)

    print(f"✅ Found {len(result.trains)} trains (searched {', '.join(result.dates)})")
    for train in result.trains:
        departs = train.departure_time or "N/A"
        print(f"   {train.trip_number}: departs {departs}, travel time {train.travel_time or 'N/A'}")
    return EXIT_OK


async def cmd_verify(
    args: argparse.Namespace, client: RailwayClient, cancel_token: CancelToken | None = None
) -> int:
    """
    Verify the configured credentials against the railway account profile.

    Returns:
        Exit code (0 for success)
    """
    profile = await client.verify_credentials(cancel_token)
    print("✅ Credentials verified successfully!")
    if name := profile.get("display_name") or profile.get("name"):
        print(f"   Account: {name}")
    return EXIT_OK


def main() -> int:
    """
    Main entry point for the CLI tool.

    Returns:
        Exit code (0 for success, 1 for errors, 2 when credentials need updating, 130 when interrupted)
    """
    parser = argparse.ArgumentParser(
        description="Bangladesh Railway seat matrix CLI tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fare matrix, saved as JSON
  uv run python -m seatmatrix.cli matrix 787 2025-09-28 --output matrix.json

  # Routes between two stops
  uv run python -m seatmatrix.cli routes 787 2025-09-28 Dhaka Chattogram

  # Seat availability in a specific class
  uv run python -m seatmatrix.cli availability Dhaka Chattogram 2025-09-28 --seat-class SNIGDHA
        """,
    )
    parser.add_argument("--quiet", action="store_true", help="Do not print progress")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # matrix command
    matrix_parser = subparsers.add_parser(
        "matrix",
        help="Compute a train's fare/availability matrix",
        description="Query every station pair of a train and summarize seat availability per class.",
    )
    matrix_parser.add_argument("train_model", type=str, help="Train number (e.g., 787)")
    matrix_parser.add_argument("date", type=str, help="Journey date as YYYY-MM-DD")
    matrix_parser.add_argument("--output", type=str, help="Write the full matrix as JSON to this file")

    # routes command
    routes_parser = subparsers.add_parser(
        "routes",
        help="Find purchasable routes between two stops of a train",
        description="Direct tickets first, then single-class chains, then mixed-class chains.",
    )
    routes_parser.add_argument("train_model", type=str, help="Train number (e.g., 787)")
    routes_parser.add_argument("date", type=str, help="Journey date as YYYY-MM-DD")
    routes_parser.add_argument("origin", type=str, help="Boarding station")
    routes_parser.add_argument("destination", type=str, help="Alighting station")

    # availability command
    availability_parser = subparsers.add_parser(
        "availability",
        help="Show seat availability of every train between two stations",
    )
    availability_parser.add_argument("origin", type=str, help="Boarding station")
    availability_parser.add_argument("destination", type=str, help="Alighting station")
    availability_parser.add_argument("date", type=str, help="Journey date as YYYY-MM-DD")
    availability_parser.add_argument(
        "--seat-class",
        type=str,
        choices=[str(seat_class) for seat_class in SeatClass],
        default=str(SeatClass.S_CHAIR),
        help="Seat class used for the train listing (default: S_CHAIR)",
    )

    # search command
    search_parser = subparsers.add_parser("search", help="List trains running between two stations")
    search_parser.add_argument("origin", type=str, help="Boarding station")
    search_parser.add_argument("destination", type=str, help="Alighting station")

    # verify command
    subparsers.add_parser("verify", help="Verify the configured railway credentials")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    command_handlers: dict[str, CommandHandler] = {
        "matrix": cmd_matrix,
        "routes": cmd_routes,
        "availability": cmd_availability,
        "search": cmd_search,
        "verify": cmd_verify,
    }

    if handler := command_handlers.get(args.command):
        configure_logging(log_level="WARNING")

        async def run_with_client() -> int:
            token = CancelToken()
            async with RailwayClient(SettingsCredentialsProvider()) as client:
                try:
                    with cancel_on_interrupt(token):
                        return await handler(args, client, token)
                except Canceled:
                    print("⚠️  Interrupted", file=sys.stderr)
                    return EXIT_INTERRUPTED
                except RailwayError as e:
                    print(f"❌ {e.user_message}", file=sys.stderr)
                    return EXIT_CREDENTIALS if e.requires_credentials else EXIT_ERROR

        try:
            return asyncio.run(run_with_client())
        except KeyboardInterrupt:
            print("⚠️  Interrupted", file=sys.stderr)
            return EXIT_INTERRUPTED

    print(f"❌ Unknown command: {args.command}", file=sys.stderr)
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
