from __future__ import annotations

import sys
from pathlib import Path

import pytest


BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from config.settings import Settings
from models.job_models import UploadedArtifact


FAKE_FFMPEG_SOURCE = '''
import json
import os
import sys
import time

args = sys.argv[1:]
argv_log = os.environ.get("FAKE_FFMPEG_ARGV_LOG")
if argv_log:
    with open(argv_log, "w", encoding="utf-8") as fh:
        json.dump(args, fh)

sys.stderr.write("fake ffmpeg " + " ".join(args) + "\\n")
mode = os.environ.get("FAKE_FFMPEG_MODE", "ok")
if mode == "fail":
    sys.stderr.write("Invalid data found when processing input\\n")
    sys.exit(1)
if mode == "hang":
    time.sleep(60)

if "-f" in args and args[args.index("-f") + 1] == "concat":
    list_path = args[args.index("-i") + 1]
    with open(list_path, encoding="utf-8") as fh:
        entries = [line[5:].strip() for line in fh.read().splitlines() if line.startswith("file ")]
    if not entries:
        sys.stderr.write(list_path + ": Invalid data found when processing input\\n")
        sys.exit(1)
    # Like the real demuxer: relative entries are opened from the list's directory.
    # A missing first segment aborts; a missing later one only stops the copy
    # (exit 0, truncated output) unless -xerror is given.
    list_dir = os.path.dirname(os.path.abspath(list_path))
    for index, entry in enumerate(entries):
        if entry.startswith("'") and entry.endswith("'"):
            entry = entry[1:-1].replace("'\\\\''", "'")
        entry = os.path.join(list_dir, entry)
        if os.path.exists(entry):
            continue
        sys.stderr.write(entry + ": No such file or directory\\n")
        if index == 0:
            sys.exit(1)
        if "-xerror" in args:
            sys.exit(254)
        with open(args[-1], "wb") as fh:
            fh.write(b"truncated")
        sys.exit(0)

with open(args[-1], "wb") as fh:
    fh.write(b"fake mp4 data")
'''


class FakeUploader:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[Path, str, bool]] = []

    def upload(self, local_path: Path, name: str) -> UploadedArtifact:
        local_path = Path(local_path)
        self.calls.append((local_path, name, local_path.exists()))
        if self.error is not None:
            raise self.error
        return UploadedArtifact(
            file_id=f"gs://test-bucket/{name}",
            link=f"https://storage.cloud.google.com/test-bucket/{name}",
        )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        renders_dir=tmp_path / "renders",
        uploads_dir=tmp_path / "uploads",
        gcs_bucket="test-bucket",
    )


@pytest.fixture
def fake_uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def fake_ffmpeg(tmp_path: Path, monkeypatch) -> Path:
    """Executable stand-in for ffmpeg. Behaviour is set with FAKE_FFMPEG_MODE."""
    script = tmp_path / "bin" / "fake-ffmpeg"
    script.parent.mkdir()
    script.write_text(f"#!{sys.executable}\n{FAKE_FFMPEG_SOURCE}", encoding="utf-8")
    script.chmod(0o755)
    monkeypatch.setenv("FAKE_FFMPEG_MODE", "ok")
    monkeypatch.setenv("FAKE_FFMPEG_ARGV_LOG", str(tmp_path / "argv.json"))
    return script


@pytest.fixture
def argv_log(tmp_path: Path) -> Path:
    return tmp_path / "argv.json"
