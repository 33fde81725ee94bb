import asyncio
from datetime import datetime, timedelta

import pytest

from mask_queue.models import MaskQueueConfig
from mask_queue.queue import (
    CredentialRotator,
    CropRect,
    InMemoryJobStore,
    ProcessingLoop,
    ResultCache,
    SegmentationClient,
    SegmentationResult,
)

IMAGE_SIZE = (1000, 800)
IMAGE = "iVBORw0KGgoAAAANSUhEUgAA" * 100

# Items with their expected padded crops at IMAGE_SIZE
SOFA = {"name": "sofa", "category": "furniture", "value": 450,
        "boundingBox": {"x": 50, "y": 50, "width": 20, "height": 10}}
LAMP = {"name": "lamp", "category": "lighting", "value": 60,
        "boundingBox": {"x": 5, "y": 5, "width": 20, "height": 20}}
TV = {"name": "tv", "category": "electronics", "value": 320,
      "boundingBox": {"x": 95, "y": 95, "width": 20, "height": 20}}

SOFA_BOX = "380 352 620 448"
LAMP_BOX = "0 0 170 136"
TV_BOX = "830 664 1000 800"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Sleep replacement: records delays and advances the fake clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)
        await asyncio.sleep(0)


class ScriptedClient(SegmentationClient):
    """Segmentation client whose failures are scripted per crop box."""

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.on_call = None
        self.closed = False

    def fail(self, box: str, *errors: Exception) -> None:
        self.failures.setdefault(box, []).extend(errors)

    async def segment(self, image: str, credential: str, crop: CropRect) -> SegmentationResult:
        box = crop.as_box()
        self.calls.append((credential, box))
        if self.on_call is not None:
            await self.on_call(box)

        pending = self.failures.get(box)
        if pending:
            raise pending.pop(0)

        await asyncio.sleep(0)
        return SegmentationResult(mask=f"mask:{box}", crop=crop)

    @property
    def boxes(self):
        return [box for _, box in self.calls]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return RecordingSleep(clock)


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def make_loop(clock, sleeper, client):
    """Factory building a ProcessingLoop around the fake collaborators."""

    def _make(tokens=("tok-a",), overrides=None):
        config = MaskQueueConfig().merge_overrides(overrides or {})
        return ProcessingLoop(
            store=InMemoryJobStore(),
            cache=ResultCache(capacity=config.cache.capacity, clock=clock),
            rotator=CredentialRotator(
                list(tokens), cooldown_s=config.credentials.cooldown_s, clock=clock
            ),
            client=client,
            config=config,
            clock=clock,
            sleep=sleeper,
        )

    return _make
