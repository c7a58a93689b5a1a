"""Shared fixtures for TryHarder tests."""

import os
import sys

import pytest

# Make the fake target importable as a plain module
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from tryharder.config import Settings
from tryharder.engine import ProbeEngine, ResultStore

from fake_target import FakeTarget


@pytest.fixture
def settings():
    """No pacing, small batches."""
    return Settings(delay=0, concurrent=5, timeout=2000)


@pytest.fixture
def store():
    return ResultStore()


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def engine(store, settings, target):
    """Engine wired to the fake target."""
    return ProbeEngine(store=store, settings=settings, transport=target)
