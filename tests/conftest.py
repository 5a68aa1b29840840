"""Shared fixtures: a scriptable stand-in for the ffmpeg executable."""

import stat
import sys
import textwrap
from pathlib import Path
from typing import List

import pytest

SAMPLE_ASS = textwrap.dedent("""\
    [Script Info]
    ScriptType: v4.00+

    [V4+ Styles]
    Format: Name, Fontname, Fontsize
    Style: Default,Arial,20

    [Events]
    Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
    Dialogue: 0,0:00:01.00,0:00:02.50,Default,,0,0,0,,Hello {\\i1}world{\\i0}
    Dialogue: 0,0:00:03.00,0:00:04.00,Default,,0,0,0,,Second\\Nline
""")

# Behaviour is selected through environment variables so that the argument
# vector stays exactly what the encoder passes.
#   FAKE_ENCODER_MODE   ok | fail | no-output | partial | trap-term | ignore-term
#   FAKE_ENCODER_DELAY  seconds to sleep before finishing
#   FAKE_ENCODER_CALLS  file that gets one line (the arguments) per spawn
#   FAKE_ENCODER_PIDS   file that gets the process id of each spawn
_SCRIPT = '''\
#!{python}
import os
import signal
import sys
import time

calls = os.environ.get("FAKE_ENCODER_CALLS")
if calls:
    with open(calls, "a") as fh:
        fh.write(" ".join(sys.argv[1:]) + "\\n")

pids = os.environ.get("FAKE_ENCODER_PIDS")
if pids:
    with open(pids, "a") as fh:
        fh.write(str(os.getpid()) + "\\n")

mode = os.environ.get("FAKE_ENCODER_MODE", "ok")
output = sys.argv[-1]
sys.stderr.write("fake encoder running in mode " + mode + "\\n")
sys.stderr.flush()

if mode == "partial":
    with open(output, "w") as fh:
        fh.write("[Script Info]\\npartial")
    time.sleep(60)
elif mode == "trap-term":
    def on_term(signum, frame):
        with open(output, "w") as fh:
            fh.write("partial")
        sys.exit(0)
    signal.signal(signal.SIGTERM, on_term)
    time.sleep(60)
elif mode == "ignore-term":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    time.sleep(60)

time.sleep(float(os.environ.get("FAKE_ENCODER_DELAY", "0")))
if mode == "fail":
    sys.exit(3)
if mode == "ok":
    with open(output, "w", encoding="utf-8") as fh:
        fh.write({content!r})
sys.exit(0)
'''


class FakeEncoder:
    """Handle on the fake encoder script and the calls it recorded."""

    def __init__(
        self, path: Path, calls: Path, pids: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self.path = path
        self.calls_file = calls
        self.pids_file = pids
        self._monkeypatch = monkeypatch

    def set_mode(self, mode: str, delay: float = 0.0) -> None:
        self._monkeypatch.setenv("FAKE_ENCODER_MODE", mode)
        self._monkeypatch.setenv("FAKE_ENCODER_DELAY", str(delay))

    @property
    def calls(self) -> List[str]:
        if not self.calls_file.exists():
            return []
        return self.calls_file.read_text().splitlines()

    @property
    def pids(self) -> List[int]:
        if not self.pids_file.exists():
            return []
        return [int(line) for line in self.pids_file.read_text().split()]


@pytest.fixture
def fake_encoder(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeEncoder:
    script = tmp_path / "bin" / "fake-ffmpeg"
    script.parent.mkdir()
    script.write_text(_SCRIPT.format(python=sys.executable, content=SAMPLE_ASS))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    calls = tmp_path / "calls.txt"
    pids = tmp_path / "pids.txt"
    monkeypatch.setenv("FAKE_ENCODER_CALLS", str(calls))
    monkeypatch.setenv("FAKE_ENCODER_PIDS", str(pids))
    encoder = FakeEncoder(script, calls, pids, monkeypatch)
    encoder.set_mode("ok")
    return encoder


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"
