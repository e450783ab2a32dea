from __future__ import annotations

from pathlib import Path

import pytest

SAMPLE_TEI = """<?xml version="1.0" encoding="utf-8"?>
<TEI>
  <text>
    <body>
      <div type="page" id="p0">
        <graphic url="page0.png"/>
        <p id="p0p0">
          <s id="s0"><w id="w0">Hello</w> <w id="w1">there</w>, <w id="w2">friend</w>.</s>
        </p>
      </div>
      <div type="page" id="p1">
        <p id="p1p0">
          <s id="s1"><w id="w3">Second</w> <w id="w4">page</w></s>
        </p>
      </div>
    </body>
  </text>
</TEI>
"""

SAMPLE_SMIL = """<?xml version="1.0" encoding="UTF-8"?>
<smil xmlns="http://www.w3.org/ns/SMIL" version="3.0">
  <body>
    <par id="par-w0"><text src="story.xml#w0"/><audio src="story.mp3" clipBegin="0.000" clipEnd="0.500"/></par>
    <par id="par-w1"><text src="story.xml#w1"/><audio src="story.mp3" clipBegin="0.500" clipEnd="1.200"/></par>
    <par id="par-w2"><text src="story.xml#w2"/><audio src="story.mp3" clipBegin="1.200" clipEnd="1.500"/></par>
    <par id="par-w3"><text src="story.xml#w3"/><audio src="story.mp3" clipBegin="1.600" clipEnd="2.000"/></par>
    <par id="par-w4"><text src="story.xml#w4"/><audio src="story.mp3" clipBegin="2.000" clipEnd="2.600"/></par>
  </body>
</smil>
"""


class FakeTimer:
    def __init__(self, interval: float, callback) -> None:
        self.interval = interval
        self.callback = callback
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.callback()


class FakeTimers:
    """Timer factory that never runs anything until told to."""

    def __init__(self) -> None:
        self.created: list[FakeTimer] = []

    def __call__(self, interval: float, callback) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [timer for timer in self.created if timer.started and not timer.cancelled]

    def fire_all(self) -> None:
        for timer in self.pending:
            timer.fire()
            timer.cancelled = True


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sample_tei() -> str:
    return SAMPLE_TEI


@pytest.fixture
def sample_smil() -> str:
    return SAMPLE_SMIL


@pytest.fixture
def sample_files(tmp_path: Path) -> tuple[Path, Path]:
    text_path = tmp_path / "story.xml"
    smil_path = tmp_path / "story.smil"
    text_path.write_text(SAMPLE_TEI, encoding="utf-8")
    smil_path.write_text(SAMPLE_SMIL, encoding="utf-8")
    return text_path, smil_path


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
