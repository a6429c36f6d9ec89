"""Pytest configuration and shared fixtures for battery applet tests."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from device_sync import DeviceSynchronizer, PropertyReadError, StateSnapshot


class FakeDevice:
    """In-memory stand-in for a UPower device handle."""

    def __init__(self, **values: Any) -> None:
        self.values: Dict[str, Any] = dict(values)
        self.failing: set = set()
        self.reads: List[str] = []
        self.callbacks: Dict[str, List[Callable[[str], None]]] = {}

    async def subscribe(self, name: str, callback: Callable[[str], None]) -> None:
        self.callbacks.setdefault(name, []).append(callback)

    def cached(self, name: str) -> Optional[Any]:
        self.reads.append(name)
        if name in self.failing:
            raise PropertyReadError(f"cannot read {name}")
        return self.values.get(name)

    def change(self, name: str, value: Any) -> None:
        self.values[name] = value
        for callback in self.callbacks.get(name, []):
            callback(name)


class SnapshotRecorder:
    """Observer that keeps every published snapshot."""

    def __init__(self) -> None:
        self.snapshots: List[StateSnapshot] = []

    def __call__(self, snapshot: StateSnapshot) -> None:
        self.snapshots.append(snapshot)

    async def wait_for(self, count: int, timeout: float = 1.0) -> None:
        async def _poll() -> None:
            while len(self.snapshots) < count:
                await asyncio.sleep(0)
        await asyncio.wait_for(_poll(), timeout)


def make_synchronizer(device: Any) -> DeviceSynchronizer:
    async def connect() -> object:
        return object()

    async def resolve(connection: object) -> Any:
        return device

    return DeviceSynchronizer(connect, resolve)


async def settle(rounds: int = 10) -> None:
    """Give queued callbacks and tasks a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def stop(task: asyncio.Task) -> None:
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def recorder() -> SnapshotRecorder:
    return SnapshotRecorder()
