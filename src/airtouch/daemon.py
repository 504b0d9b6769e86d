"""Monitor daemon -- keeps a controller connection open and logs status.

Foreground loop driven by a TOML config file.  Polls AC and group
status every ``interval`` seconds, logs each update, and reconnects
when the connection asks for it.  Shuts down cleanly on SIGINT or
SIGTERM.

Example:
    Run from the command line::

        airtouch airtouch.toml -v
"""

import argparse
import asyncio
import logging
import signal

from airtouch.config import load_config
from airtouch.connection import AirtouchConnection
from airtouch.status import ACStatus, GroupStatus, fmt_temp

log = logging.getLogger(__name__)


def log_ac_status(units: list[ACStatus]) -> None:
    """Log one line per AC unit."""
    for u in units:
        log.info(
            "AC %d: power=%d mode=%d fan=%d target=%s temp=%s error=%d",
            u.unit_number, u.power_state, u.mode, u.fan_speed,
            fmt_temp(u.target), fmt_temp(u.temperature), u.error_code,
        )


def log_group_status(groups: list[GroupStatus]) -> None:
    """Log one line per group; groups without a sensor show no temperature."""
    for g in groups:
        log.info(
            "group %d: power=%d damper=%d%% target=%s temp=%s%s",
            g.group_number, g.power_state, g.damper_position,
            fmt_temp(g.target),
            fmt_temp(g.temperature if g.has_sensor else None),
            " battery-low" if g.battery_low else "",
        )


async def run(cfg: dict, shutdown: asyncio.Event, conn=None) -> int:
    """Run the poll loop until *shutdown* is set.

    Connects to ``cfg["host"]``, then calls ``request_status()`` every
    ``cfg["interval"]`` seconds while connected.  Returns the number of
    polls sent.

    Example:
        >>> await run({"host": "10.0.0.5", "port": 9004, "interval": 60,
        ...            "auto_reconnect": False}, ev)
        5
    """
    if conn is None:
        conn = AirtouchConnection(cfg["port"], auto_reconnect=cfg["auto_reconnect"])
    conn.add_ac_status_listener(log_ac_status)
    conn.add_group_status_listener(log_group_status)

    reconnecting = set()

    def on_reconnect() -> None:
        if conn.auto_reconnect:
            return
        task = asyncio.get_running_loop().create_task(conn.connect(cfg["host"]))
        reconnecting.add(task)
        task.add_done_callback(reconnecting.discard)

    conn.add_reconnect_listener(on_reconnect)

    await conn.connect(cfg["host"])
    polls = 0
    try:
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=cfg["interval"])
                break
            except asyncio.TimeoutError:
                pass
            if not conn.connected:
                log.debug("not connected, skipping poll")
                continue
            if conn.request_status():
                polls += 1
    finally:
        for task in list(reconnecting):
            task.cancel()
        await conn.close()
    return polls


async def _serve(cfg: dict) -> None:
    """Run the daemon until SIGINT or SIGTERM."""
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown.set)
    polls = await run(cfg, shutdown)
    log.info("shutting down after %d polls", polls)


def main() -> None:
    """CLI entry point -- parse args, load config, run the daemon.

    Example:
        From the shell::

            airtouch airtouch.toml
            airtouch airtouch.toml -v
    """
    parser = argparse.ArgumentParser(description="AirTouch controller monitor")
    parser.add_argument("config", help="path to TOML config file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    cfg = load_config(args.config)
    log.info(
        "starting: host=%s port=%d interval=%ds auto_reconnect=%s",
        cfg["host"], cfg["port"], cfg["interval"], cfg["auto_reconnect"],
    )
    asyncio.run(_serve(cfg))


if __name__ == "__main__":
    main()
