"""Shared fixtures: in-memory local streams and a fake local terminal."""

import io
from contextlib import contextmanager

import pytest

from sshsession.terminal import LocalStreams


@pytest.fixture
def local_streams():
    """In-memory local streams with an empty stdin."""
    return LocalStreams(stdin=io.BytesIO(), stdout=io.BytesIO(), stderr=io.BytesIO(), fd=0)


@pytest.fixture
def fake_terminal(monkeypatch):
    """Replace raw mode and size queries with an 80x24 fake terminal."""
    calls = {"entered": 0, "restored": 0}

    @contextmanager
    def fake_raw_mode(fd):
        calls["entered"] += 1
        try:
            yield
        finally:
            calls["restored"] += 1

    monkeypatch.setattr("sshsession.session.raw_mode", fake_raw_mode)
    monkeypatch.setattr("sshsession.session.get_terminal_size", lambda fd: (80, 24))
    return calls
