#!/usr/bin/env python3
"""Virtual touchpad controller for manual testing.

Listens on a TCP port and answers AC and group status queries with
synthetic records.  Control messages are applied to the simulated
state, so a following status query reflects them.  Temperatures drift
slightly on every query.

Usage:
    python simulator.py [--port 9004] [--units 1] [--groups 4]

Example:
    python tools/simulator.py --port 9004 &
    airtouch airtouch.toml -v
"""

import argparse
import asyncio
import logging
import random
import sys

# Add parent src to path so we can import airtouch
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from airtouch.protocol import (
    MSGTYPE_AC_CTRL,
    MSGTYPE_AC_STAT,
    MSGTYPE_GRP_CTRL,
    MSGTYPE_GRP_STAT,
    REPLY_ADDRESS,
    FrameReader,
    encode_frame,
)
from airtouch.status import (
    ACStatus,
    GroupStatus,
    encode_ac_status,
    encode_group_status,
)

log = logging.getLogger("simulator")


class Controller:
    """Simulated controller state."""

    def __init__(self, units: int, groups: int):
        self.units = [
            ACStatus(i, 1, 4, 2, False, False, 22.0, 24.5, 0)
            for i in range(units)
        ]
        self.groups = [
            GroupStatus(i, 1, 0, 50, False, False, 22.0, True, 23.0, False)
            for i in range(groups)
        ]

    def apply_ac_control(self, payload: bytes) -> None:
        unit = payload[0] & 0x3F
        if unit >= len(self.units):
            return
        u = self.units[unit]
        power = payload[0] >> 6
        if power in (2, 3):
            u.power_state = 1 if power == 3 else 0
        mode = payload[1] >> 4
        if mode <= 4:
            u.mode = mode
        fan = payload[1] & 0x0F
        if fan <= 6:
            u.fan_speed = fan
        target = payload[2] & 0x3F
        if target != 0x3F and payload[2] >> 6 in (0, 1):
            u.target = float(target)

    def apply_group_control(self, payload: bytes) -> None:
        group = payload[0]
        if group >= len(self.groups):
            return
        g = self.groups[group]
        power = payload[1] & 0x07
        if power in (2, 3):
            g.power_state = 1 if power == 3 else 0
        control = (payload[1] >> 3) & 0x03
        if control in (2, 3):
            g.control_type = control - 2
        target_type = payload[1] >> 5
        if target_type == 4:
            g.damper_position = min(payload[2], 100)
        elif target_type == 5:
            g.target = float(payload[2] & 0x3F)

    def drift(self) -> None:
        for record in self.units + self.groups:
            record.temperature = round(record.temperature + random.uniform(-0.3, 0.3), 1)


async def handle_client(controller: Controller, reader, writer) -> None:
    peer = writer.get_extra_info("peername")
    log.info("client connected: %s", peer)
    frames = FrameReader()
    try:
        while True:
            data = await reader.read(4096)
            if not data:
                break
            for frame in frames.feed(data):
                reply = None
                if frame.msg_type == MSGTYPE_AC_STAT:
                    controller.drift()
                    reply = encode_ac_status(controller.units)
                elif frame.msg_type == MSGTYPE_GRP_STAT:
                    controller.drift()
                    reply = encode_group_status(controller.groups)
                elif frame.msg_type == MSGTYPE_AC_CTRL:
                    controller.apply_ac_control(frame.payload)
                elif frame.msg_type == MSGTYPE_GRP_CTRL:
                    controller.apply_group_control(frame.payload)
                log.info("message type 0x%02X: %s", frame.msg_type, frame.payload.hex())
                if reply is not None:
                    writer.write(encode_frame(
                        frame.msg_type, reply, address=REPLY_ADDRESS,
                        msg_id=frame.msg_id,
                    ))
    except ConnectionError as exc:
        log.info("client error: %s", exc)
    finally:
        writer.close()
        log.info("client disconnected: %s", peer)


async def serve(port: int, units: int, groups: int) -> None:
    controller = Controller(units, groups)
    server = await asyncio.start_server(
        lambda r, w: handle_client(controller, r, w), "0.0.0.0", port,
    )
    log.info("simulating %d AC unit(s), %d group(s) on port %d", units, groups, port)
    async with server:
        await server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description="AirTouch controller simulator")
    parser.add_argument("--port", type=int, default=9004)
    parser.add_argument("--units", type=int, default=1)
    parser.add_argument("--groups", type=int, default=4)
    args = parser.parse_args()
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=logging.INFO,
    )
    try:
        asyncio.run(serve(args.port, args.units, args.groups))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
