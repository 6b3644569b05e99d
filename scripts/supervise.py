"""Interactive console for supervising a bus trip."""

from __future__ import annotations

import argparse
import logging

from bustrack.config import configure_logging, load_config
from bustrack.data.bus_client import BusClient
from bustrack.presentation import RouteListView, SupervisorSession, TapResult, TripView

HELP = (
    "commands: open N | adv N | abs N | start | end | retry | back | reload | quit"
)

logger = logging.getLogger("supervise")


def _print_routes(view: RouteListView) -> None:
    if view.loading:
        print("Loading routes...")
        return
    if view.error:
        print(f"! {view.error}  (type 'reload' to retry)")
        return
    if view.notice:
        print(f"! {view.notice}")
    if view.empty_message:
        print(view.empty_message)
    for idx, row in enumerate(view.rows, start=1):
        print(f"{idx:>2}. {row.name:<24} {row.vehicle_plate:<10} {row.time}")


def _print_trip(view: TripView) -> None:
    flags = []
    if view.busy:
        flags.append("busy")
    if view.stale:
        flags.append("stale")
    print(f"Trip {view.trip_id}  [{view.status_label}] {' '.join(flags)}")
    for idx, row in enumerate(view.rows, start=1):
        actions = []
        if row.can_advance and row.advance_label:
            actions.append(f"adv={row.advance_label}")
        if row.can_mark_absent:
            actions.append("abs")
        print(
            f"{idx:>2}. ({row.initial}) {row.student_name:<24} ID: {row.short_id:<6} "
            f"{row.status_label:<12} {' '.join(actions)}"
        )
    summary = view.summary
    print(
        f"Total {summary.total} | On bus {summary.on_bus} | "
        f"Dropped {summary.dropped} | Absent {summary.absent}"
    )
    if view.can_start:
        print("'start' to start the trip")
    if view.can_end:
        print("'end' to end the trip")
    if view.can_retry:
        print("'retry' to sync with the server")


def _print_result(result: TapResult) -> None:
    if result.notice:
        print(f"! {result.notice}")


def _pick(items: list, raw: str):
    try:
        index = int(raw) - 1
    except ValueError:
        return None
    if 0 <= index < len(items):
        return items[index]
    return None


def _handle(session: SupervisorSession, command: str, arg: str) -> None:
    screen = session.trip_screen
    if screen is None:
        if command == "open":
            row = _pick(session.route_view().rows, arg)
            if row is None:
                print("No such route.")
                return
            _print_result(session.select_route(row.route_id))
        elif command == "reload":
            session.retry_routes()
        else:
            print(HELP)
        return

    if command in ("adv", "abs"):
        row = _pick(screen.view().rows, arg)
        if row is None:
            print("No such student.")
            return
        tap = screen.tap_advance if command == "adv" else screen.tap_mark_absent
        _print_result(tap(row.entry_id))
    elif command == "start":
        _print_result(screen.tap_start())
    elif command == "end":
        _print_result(screen.tap_end())
    elif command == "retry":
        _print_result(screen.tap_retry())
    elif command == "back":
        _print_result(session.back())
    else:
        print(HELP)


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--config", default="config/config.yaml", help="Path to config YAML")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.log)
    client = BusClient(config.api)
    session = SupervisorSession(
        client, waiting_target_supported=config.api.waiting_target_supported
    )
    session.load_routes()
    logger.info("Supervisor console started against %s", config.api.base_url)

    while True:
        screen = session.trip_screen
        if screen is None:
            _print_routes(session.route_view())
        else:
            _print_trip(screen.view())
        try:
            line = input("> ").strip()
        except EOFError:
            return 0
        if not line:
            continue
        command, _, arg = line.partition(" ")
        if command == "quit":
            return 0
        _handle(session, command, arg.strip())


if __name__ == "__main__":
    raise SystemExit(main())
