import asyncio

import numpy as np
import pytest

from counter_scan.pipeline.models import CodePayload, Frame, RecognizedText


def make_frame(seq: int, width: int = 40, height: int = 30, fill: int = 0) -> Frame:
    pixels = np.full((height, width, 4), fill, dtype=np.uint8)
    return Frame(seq=seq, pixels=pixels)


class FakeRecognizer:
    """
    Scripted recognition adapter.

    responses: list of RecognizedText / Exception consumed in order; the
    last entry repeats once the list runs out.
    """

    def __init__(self, responses=None, fail_configure=False, delay=0.0):
        self.responses = list(responses or [RecognizedText("", 0.0)])
        self.fail_configure = fail_configure
        self.delay = delay
        self.calls = 0
        self.shapes = []
        self.configured_with = None
        self.closed = False
        self.gate: asyncio.Event | None = None

    async def configure(self, options):
        if self.fail_configure:
            raise RuntimeError("model files missing")
        self.configured_with = options

    async def recognize(self, image):
        self.calls += 1
        self.shapes.append(image.shape)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        idx = min(self.calls - 1, len(self.responses) - 1)
        item = self.responses[idx]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeDecoder:
    def __init__(self, payload=None, is_async=False):
        self.payload = payload
        self.is_async = is_async
        self.calls = 0
        self.seen = []

    def decode(self, frame):
        self.calls += 1
        self.seen.append(frame.seq)
        if self.is_async:
            return self._later()
        return self.payload

    async def _later(self):
        await asyncio.sleep(0)
        return self.payload


@pytest.fixture
def frame_factory():
    return make_frame


@pytest.fixture
def fake_recognizer():
    return FakeRecognizer


@pytest.fixture
def fake_decoder():
    return FakeDecoder


@pytest.fixture
def code_payload():
    return CodePayload(data="Dover, changer 3, 963373 = $120", location=[(0.0, 0.0), (10.0, 0.0)])
