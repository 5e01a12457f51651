#!/usr/bin/env python3
"""PivotPlay session transfer simulator.

Records synthetic match sessions on a virtual pitch and delivers them to a
running companion service through the transfer engine and the HTTP channel.

Usage:
    # 5 players, 20-minute sessions, on a pitch in San Francisco
    python -m tools.simulator.simulate --server http://localhost:8000 --players 5 --session-minutes 20

    # Force the queued transports by failing every DirectMessage
    python -m tools.simulator.simulate --server http://localhost:8000 --skip-direct

    # Some sessions recorded without corners (legacy)
    python -m tools.simulator.simulate --server http://localhost:8000 --legacy-ratio 0.3
"""

from __future__ import annotations

import argparse
import asyncio
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx

from pivotplay.config import TransferConfig
from pivotplay.core.codec import PayloadCodec
from pivotplay.core.errors import TransportError
from pivotplay.core.models import GeoPoint, HeartRateSample, TrackSample, WorkoutPayload
from pivotplay.core.recorder import SessionRecorder
from pivotplay.core.stats import TransferStats
from pivotplay.transfer.attempt import TransferResult
from pivotplay.transfer.engine import TransferEngine
from pivotplay.transfer.scheduler import AsyncioScheduler
from pivotplay.transport.http import HttpChannel

PITCH_LENGTH_M = 105.0
PITCH_WIDTH_M = 68.0


@dataclass
class SimPlayer:
    name: str
    x: float
    y: float
    heading: float
    speed_mps: float
    distance_m: float = 0.0


class VirtualPitch:
    """A rotated rectangle on the globe, addressed in pitch metres."""

    def __init__(self, center_lat: float, center_lon: float, bearing_deg: float) -> None:
        self.center_lat = center_lat
        self.center_lon = center_lon
        self._bearing = math.radians(bearing_deg)

    def to_geo(self, x: float, y: float) -> GeoPoint:
        # Pitch metres relative to the centre, rotated by the bearing
        dx = x - PITCH_LENGTH_M / 2
        dy = y - PITCH_WIDTH_M / 2
        east = dx * math.cos(self._bearing) - dy * math.sin(self._bearing)
        north = dx * math.sin(self._bearing) + dy * math.cos(self._bearing)
        # Approximate: 1 degree latitude ≈ 111,000 m
        lat = self.center_lat + north / 111_000
        lon = self.center_lon + east / (111_000 * math.cos(math.radians(self.center_lat)))
        return GeoPoint(lat, lon)

    def corners(self) -> list[GeoPoint]:
        return [
            self.to_geo(0.0, 0.0),
            self.to_geo(PITCH_LENGTH_M, 0.0),
            self.to_geo(PITCH_LENGTH_M, PITCH_WIDTH_M),
            self.to_geo(0.0, PITCH_WIDTH_M),
        ]


def move_player(player: SimPlayer, dt_seconds: float) -> None:
    """Move a player along their heading, turning randomly and bouncing off the lines."""
    player.heading = (player.heading + random.uniform(-30, 30)) % 360
    player.speed_mps = max(0.5, min(8.0, player.speed_mps + random.uniform(-1, 1)))

    step = player.speed_mps * dt_seconds
    heading = math.radians(player.heading)
    x = player.x + step * math.cos(heading)
    y = player.y + step * math.sin(heading)
    if not 0 <= x <= PITCH_LENGTH_M or not 0 <= y <= PITCH_WIDTH_M:
        player.heading = (player.heading + 180) % 360
        return

    player.distance_m += step
    player.x, player.y = x, y


def record_session(
    pitch: VirtualPitch,
    player: SimPlayer,
    minutes: float,
    with_corners: bool,
    bad_fix_ratio: float,
) -> tuple[WorkoutPayload, SessionRecorder]:
    """Record one session at 1 Hz of synthetic (not wall-clock) time."""
    recorder = SessionRecorder()
    if with_corners:
        recorder.set_corners(pitch.corners())

    start = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    recorder.start(at=start)

    seconds = int(minutes * 60)
    for t in range(seconds):
        move_player(player, 1.0)
        at = start + timedelta(seconds=t)
        accuracy = random.uniform(3, 10)
        if random.random() < bad_fix_ratio:
            accuracy = random.uniform(20, 60)
        recorder.add_location(TrackSample(pitch.to_geo(player.x, player.y), at, accuracy))
        if t % 5 == 0:
            bpm = 90 + 80 * min(1.0, player.speed_mps / 8.0) + random.uniform(-5, 5)
            recorder.add_heart_rate(HeartRateSample(bpm, at))

    payload = recorder.finish(duration=float(seconds), total_distance=round(player.distance_m, 1))
    return payload, recorder


class NoDirectMessageChannel(HttpChannel):
    """HttpChannel whose DirectMessage always fails, to exercise queued kinds."""

    async def send_message(self, data: bytes) -> bytes:
        raise TransportError.channel("direct message disabled by simulator")


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    center_lat, center_lon = args.center
    pitch = VirtualPitch(center_lat, center_lon, bearing_deg=random.uniform(0, 180))
    players = [
        SimPlayer(
            name=f"player-{i + 1}",
            x=random.uniform(10, PITCH_LENGTH_M - 10),
            y=random.uniform(10, PITCH_WIDTH_M - 10),
            heading=random.uniform(0, 360),
            speed_mps=random.uniform(1, 5),
        )
        for i in range(args.players)
    ]

    print(f"Starting simulation: {args.players} players, {args.session_minutes} min sessions")
    print(f"  Pitch centre: {center_lat:.4f}, {center_lon:.4f}")
    print(f"  Server: {args.server}")
    print(f"  Legacy ratio: {args.legacy_ratio}")
    print(f"  Direct messages: {'disabled' if args.skip_direct else 'enabled'}")
    print()

    codec = PayloadCodec()
    stats = TransferStats()
    config = TransferConfig(ack_timeout_seconds=args.ack_timeout)
    start = time.monotonic()

    async with httpx.AsyncClient(base_url=args.server, timeout=10.0) as client:
        channel_cls = NoDirectMessageChannel if args.skip_direct else HttpChannel
        channel = channel_cls(client, poll_interval=config.poll_interval_seconds)
        scheduler = AsyncioScheduler()
        engine = TransferEngine(channel, codec, scheduler, stats, config)
        channel.bind(on_message=engine.handle_message)

        await channel.refresh_reachability()
        channel.start_polling()
        engine.start()
        try:
            sealed = []
            for player in players:
                with_corners = random.random() >= args.legacy_ratio
                payload, recorder = record_session(
                    pitch, player, args.session_minutes, with_corners, args.bad_fix_ratio,
                )
                print(f"  {player.name}: {recorder.sample_count} samples, "
                      f"{recorder.discarded_locations} discarded, "
                      f"{payload.total_distance:.0f} m, pitch={payload.has_pitch}")
                sealed.append(codec.seal(payload))

            results: list[TransferResult] = await asyncio.gather(
                *(engine.deliver(v) for v in sealed)
            )
        finally:
            engine.stop()
            await channel.stop_polling()
            await scheduler.drain()

        elapsed = time.monotonic() - start
        print(f"\nSimulation complete in {elapsed:.1f}s")
        for result in results:
            status = "ok" if result.succeeded else f"FAILED ({result.reason.value})"
            print(f"  {result.workout_id}: {status} via {result.transport_kind.value} "
                  f"after {result.attempt_count} attempt(s)")

        snapshot = stats.snapshot()["transfers"]
        print(f"\nEngine stats:")
        print(f"  Succeeded: {snapshot['succeeded']}")
        print(f"  Failed: {snapshot['failed']}")
        print(f"  Retries: {snapshot['retries_scheduled']}")
        print(f"  Attempts by kind: {snapshot['attempts_by_kind']}")

        # Check server stats
        try:
            resp = await client.get("/api/v1/stats")
            if resp.status_code == 200:
                receiver = resp.json()["receiver"]
                print(f"\nServer stats:")
                print(f"  Payloads received: {receiver['payloads_received']}")
                print(f"  Payloads accepted: {receiver['payloads_accepted']}")
                print(f"  Duplicates: {receiver['payloads_duplicate']}")
                print(f"  Rejected: {receiver['payloads_rejected']}")
        except httpx.RequestError as exc:
            print(f"\nServer stats unavailable: {exc}")


def main():
    parser = argparse.ArgumentParser(description="PivotPlay session transfer simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--players", type=int, default=3, help="Number of simulated players")
    parser.add_argument("--session-minutes", type=float, default=10,
                        help="Length of each recorded session")
    parser.add_argument("--center", type=str, default="37.7749,-122.4194",
                        help="Pitch centre lat,lon (default: San Francisco)")
    parser.add_argument("--legacy-ratio", type=float, default=0.0,
                        help="Fraction of sessions recorded without corners")
    parser.add_argument("--bad-fix-ratio", type=float, default=0.05,
                        help="Fraction of GPS samples with poor accuracy")
    parser.add_argument("--ack-timeout", type=float, default=30.0,
                        help="Seconds to wait for a queued-transport confirmation")
    parser.add_argument("--skip-direct", action="store_true",
                        help="Fail every DirectMessage attempt")

    args = parser.parse_args()

    # Parse center
    lat, lon = args.center.split(",")
    args.center = (float(lat), float(lon))

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
