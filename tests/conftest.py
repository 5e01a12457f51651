"""Shared test fixtures."""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from pivotplay.config import AppConfig
from pivotplay.core.codec import PayloadCodec
from pivotplay.core.errors import TransportError
from pivotplay.core.models import (
    GeoPoint,
    HeartRateSample,
    TrackSample,
    TransferConfirmation,
    WorkoutPayload,
)
from pivotplay.core.stats import TransferStats
from pivotplay.main import app, build_components
from pivotplay.transfer.attempt import TransportKind

# Bottom-left corner of the test pitch (San Francisco).
ORIGIN_LAT = 37.7749
ORIGIN_LON = -122.4194
M_PER_DEG_LON = 111_000.0 * math.cos(math.radians(ORIGIN_LAT))

START = datetime(2026, 5, 2, 18, 30, tzinfo=timezone.utc)


def pitch_point(x: float, y: float) -> GeoPoint:
    """GeoPoint at (x east, y north) metres from the test pitch origin."""
    return GeoPoint(ORIGIN_LAT + y / 111_000.0, ORIGIN_LON + x / M_PER_DEG_LON)


def pitch_corners(length: float = 105.0, width: float = 68.0) -> tuple[GeoPoint, ...]:
    return (
        pitch_point(0.0, 0.0),
        pitch_point(length, 0.0),
        pitch_point(length, width),
        pitch_point(0.0, width),
    )


def make_payload(
    *,
    workout_id: uuid.UUID | None = None,
    start_date: datetime = START,
    duration: float = 1800.0,
    total_distance: float = 4200.5,
    corners: tuple[GeoPoint, ...] | None = None,
    track: list[tuple[float, float]] | None = None,
    heart_rate: list[float] | None = None,
) -> WorkoutPayload:
    """A session on the test pitch. ``track`` is given in pitch metres."""
    if corners is None:
        corners = pitch_corners()
    if track is None:
        track = [(10.0, 10.0), (20.0, 15.5), (52.5, 34.0), (52.5, 34.0)]
    if heart_rate is None:
        heart_rate = [120.0, 142.0, 155.0]
    return WorkoutPayload(
        workout_id=workout_id or uuid.uuid4(),
        start_date=start_date,
        duration=duration,
        total_distance=total_distance,
        heart_rate=tuple(
            HeartRateSample(bpm, start_date + timedelta(seconds=5 * i))
            for i, bpm in enumerate(heart_rate)
        ),
        corners=tuple(corners),
        track=tuple(
            TrackSample(pitch_point(x, y), start_date + timedelta(seconds=i), 4.0)
            for i, (x, y) in enumerate(track)
        ),
    )


class ManualTimer:
    def __init__(self, when: float, seq: int, callback) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler with a fake clock. Timers only run inside ``advance``."""

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = 0
        self._timers: list[ManualTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self._now + max(delay, 0.0), self._seq, callback)
        self._timers.append(timer)
        return timer

    def jump(self, seconds: float) -> None:
        """Move the clock without running timers (a slow blocking call)."""
        self._now += seconds

    def pending(self) -> list[float]:
        """Delays from now of every live timer, soonest first."""
        return sorted(t.when - self._now for t in self._timers if not t.cancelled)

    async def advance(self, seconds: float = 0.0) -> None:
        """Run every timer due within ``seconds``, including ones armed meanwhile."""
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self._now = max(self._now, timer.when)
            await timer.callback()
        self._now = max(self._now, target)
        self._timers = [t for t in self._timers if not t.cancelled]


class FakeChannel:
    """TransportChannel that records calls and fails on demand.

    DirectMessage replies with a positive confirmation unless ``reply`` is
    replaced.
    """

    def __init__(self) -> None:
        self.reachable = True
        self.calls: list[TransportKind] = []
        self.payloads: list[bytes] = []
        self.failing: set[TransportKind] = set()
        self.reply = self._accept

    @staticmethod
    def _accept(data: bytes) -> bytes:
        transfer_id = PayloadCodec.peek_transfer_id(data)
        return PayloadCodec.encode_confirmation(TransferConfirmation(transfer_id, success=True))

    def fail_all(self) -> None:
        self.failing = set(TransportKind)

    def is_reachable(self) -> bool:
        return self.reachable

    def _record(self, kind: TransportKind, data: bytes) -> None:
        self.calls.append(kind)
        self.payloads.append(data)
        if kind in self.failing:
            raise TransportError.channel(f"{kind.value} failed")

    async def send_message(self, data: bytes) -> bytes:
        self._record(TransportKind.DIRECT_MESSAGE, data)
        return self.reply(data)

    async def transfer_user_info(self, data: bytes) -> None:
        self._record(TransportKind.BACKGROUND_INFO, data)

    async def transfer_file(self, data: bytes) -> None:
        self._record(TransportKind.FILE_HANDOFF, data)


@pytest.fixture
def codec():
    return PayloadCodec()


@pytest.fixture
def stats():
    return TransferStats()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def payload():
    return make_payload()


@pytest.fixture(autouse=True)
def _init_server(tmp_path):
    """Initialize the service components for every test, using a temp directory."""
    config = AppConfig()
    config.storage.base_dir = str(tmp_path / "data")
    config.logging.level = "warning"

    app.state.components = build_components(config)

    yield app.state.components

    # Cleanup
    app.state.components = None


@pytest.fixture
def components(_init_server):
    return _init_server


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
