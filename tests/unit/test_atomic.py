"""Tests for atomic document writes."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from zapstate.persistence import atomic
from zapstate.persistence.atomic import replace_file, write_json_atomic


def test_durable_write_invokes_fsync(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []
    monkeypatch.setattr(os, "fsync", lambda fd: calls.append(fd))

    write_json_atomic(tmp_path / "a.zap", {"creator": "zap"})
    write_json_atomic(tmp_path / "b.zap", {"creator": "zap"}, durable=False)

    assert len(calls) == 1


def test_write_replaces_existing_file(tmp_path: Path) -> None:
    target = tmp_path / "state.zap"
    target.write_text("old", encoding="utf-8")

    write_json_atomic(target, {"name": "Lumière"}, durable=False)

    text = target.read_text(encoding="utf-8")
    assert json.loads(text) == {"name": "Lumière"}
    assert "Lumière" in text
    assert text.endswith("}\n")


def test_replace_file_retries_transient_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "source.tmp"
    source.write_text("data", encoding="utf-8")
    target = tmp_path / "target.zap"
    original_replace = Path.replace
    attempts: list[int] = []

    def flaky_replace(self: Path, other: Path) -> Path:
        attempts.append(1)
        if len(attempts) < 3:
            raise PermissionError(13, "Access is denied")
        return original_replace(self, other)

    monkeypatch.setattr(Path, "replace", flaky_replace)
    monkeypatch.setattr(atomic.time, "sleep", lambda _: None)

    replace_file(source, target)

    assert len(attempts) == 3
    assert target.read_text(encoding="utf-8") == "data"


def test_replace_file_raises_non_transient_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        replace_file(tmp_path / "missing.tmp", tmp_path / "target.zap")
