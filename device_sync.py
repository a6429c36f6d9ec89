"""
Reactive device-state synchronizer.

Keeps an immutable snapshot of the power device (icon, charge, time to
empty) in step with the power service. Property-change notifications are
fanned into a single queue and each queued event triggers one
recomputation of the snapshot from the device's cached properties.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, Awaitable, Callable, List, Optional

import config

logger = logging.getLogger(__name__)

ICON_NAME = "IconName"
PERCENTAGE = "Percentage"
TIME_TO_EMPTY = "TimeToEmpty"

OBSERVED_PROPERTIES = (ICON_NAME, PERCENTAGE, TIME_TO_EMPTY)

INITIAL_SOURCE = "initial"


class SyncError(Exception):
    """Base class for synchronizer errors."""


class ConnectError(SyncError):
    """The system bus could not be reached."""


class ResolveError(SyncError):
    """The power service did not provide a usable display device."""


class PropertyReadError(SyncError):
    """A cached device property could not be read."""


@dataclass(frozen=True)
class StateSnapshot:
    icon_name: str
    battery_percent: float
    time_remaining: timedelta


def default_snapshot() -> StateSnapshot:
    """Return the snapshot shown before the device has reported anything."""
    return StateSnapshot(
        icon_name=config.DEFAULT_ICON_NAME,
        battery_percent=0.0,
        time_remaining=timedelta(0),
    )


class ControlTarget(enum.Enum):
    DISPLAY_BRIGHTNESS = "display-brightness"
    KEYBOARD_BRIGHTNESS = "keyboard-brightness"


@dataclass(frozen=True)
class ControlIntent:
    target: ControlTarget
    value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _clamp_percent(self.value))


@dataclass(frozen=True)
class ChangeEvent:
    source: str


def _clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


class ChangeStream:
    """
    Fan-in of tagged change events from several subscriptions.

    Iterating the stream never finishes; it is abandoned by cancelling
    the task that consumes it.
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue()

    def push(self, source: str) -> None:
        self._queue.put_nowait(ChangeEvent(source))

    def __aiter__(self) -> "ChangeStream":
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self._queue.get()


async def merge_changes(device: Any, properties=OBSERVED_PROPERTIES) -> ChangeStream:
    """
    Subscribe to every property in ``properties`` and merge the notifications.

    All subscriptions are in place before the synthetic initial event is
    queued, so no change that happens during setup is lost.

    Args:
        device: A device handle exposing ``async subscribe(name, callback)``.
        properties: Names of the properties to observe.

    Returns:
        A ChangeStream whose first event has source ``"initial"``.
    """
    stream = ChangeStream()
    for name in properties:
        await device.subscribe(name, stream.push)
    stream.push(INITIAL_SOURCE)
    return stream


def _read(device: Any, name: str) -> Optional[Any]:
    try:
        return device.cached(name)
    except PropertyReadError as err:
        logger.debug("Keeping previous %s: %s", name, err)
        return None


def recompute(snapshot: StateSnapshot, device: Any) -> StateSnapshot:
    """
    Build the next snapshot from the device's cached properties.

    Each field is read on its own. A field is replaced only when its read
    succeeds with a value; absent values and read errors keep the previous
    one.
    """
    changes = {}

    icon_name = _read(device, ICON_NAME)
    if icon_name is not None:
        changes["icon_name"] = str(icon_name)

    percentage = _read(device, PERCENTAGE)
    if percentage is not None:
        changes["battery_percent"] = _clamp_percent(percentage)

    seconds = _read(device, TIME_TO_EMPTY)
    if seconds is not None:
        changes["time_remaining"] = timedelta(seconds=max(0, int(seconds)))

    if not changes:
        return snapshot
    return replace(snapshot, **changes)


Observer = Callable[[StateSnapshot], None]


class DeviceSynchronizer:
    """
    Owns the snapshot and the background task that keeps it current.

    ``connect`` and ``resolve`` are the bus connector and display-device
    factory; they are injected so the synchronizer itself never touches
    the bus directly.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[Any]],
        resolve: Callable[[Any], Awaitable[Any]],
        snapshot: Optional[StateSnapshot] = None,
    ) -> None:
        self._connect = connect
        self._resolve = resolve
        self.snapshot: StateSnapshot = snapshot if snapshot is not None else default_snapshot()
        self.device: Optional[Any] = None
        self.error: Optional[SyncError] = None
        self.display_brightness: float = config.DEFAULT_BRIGHTNESS
        self.keyboard_brightness: float = config.DEFAULT_BRIGHTNESS
        self._observers: List[Observer] = []
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _publish(self) -> None:
        # A failing observer must not stop the change stream or starve the others.
        for observer in list(self._observers):
            try:
                observer(self.snapshot)
            except Exception:
                logger.exception("Snapshot observer %r failed", observer)

    def set_device(self, device: Any) -> None:
        self.device = device

    def update(self) -> None:
        """Recompute the snapshot from the held device and notify observers."""
        if self.device is None:
            return
        self.snapshot = recompute(self.snapshot, self.device)
        self._publish()

    def apply(self, intent: ControlIntent) -> None:
        # No brightness backend is wired up; only the displayed value changes.
        logger.debug("Brightness intent %s -> %.0f%%", intent.target.value, intent.value)
        if intent.target is ControlTarget.DISPLAY_BRIGHTNESS:
            self.display_brightness = intent.value
        elif intent.target is ControlTarget.KEYBOARD_BRIGHTNESS:
            self.keyboard_brightness = intent.value

    def start(self) -> asyncio.Task:
        """Spawn ``run`` on the running loop and return its task."""
        if self._task is None:
            self._task = asyncio.ensure_future(self.run())
        return self._task

    async def run(self) -> None:
        """
        Connect, resolve the display device and follow its changes.

        Connection and resolution failures are logged and stored in
        ``error``; the snapshot then stays at its current values.
        """
        try:
            connection = await self._connect()
            device = await self._resolve(connection)
        except (ConnectError, ResolveError) as err:
            self.error = err
            logger.error("Failed to open UPower display device: %s", err)
            return

        self.set_device(device)
        stream = await merge_changes(device)
        logger.info("Following display device changes")
        async for event in stream:
            logger.debug("Change from %s", event.source)
            self.update()
