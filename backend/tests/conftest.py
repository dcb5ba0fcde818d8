"""
Pytest fixtures for the test suite.
"""
import pytest
import random
import sys
import os
from datetime import datetime, timezone

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import SimulatorConfig
from position_ledger import PositionLedger
from session_controller import SessionController
from ticker import ScheduledTask
from wallet_store import WalletStore


FIXED_NOW = datetime(2026, 10, 19, 15, 4, 0, tzinfo=timezone.utc)


class ScriptedRandom:
    """Random source that replays fixed draws (fails loudly when exhausted)."""

    def __init__(self, randoms=None, uniforms=None):
        self.randoms = list(randoms or [])
        self.uniforms = list(uniforms or [])

    def random(self) -> float:
        return self.randoms.pop(0)

    def uniform(self, a: float, b: float) -> float:
        return self.uniforms.pop(0)


class ManualTimer(ScheduledTask):
    """Timer driven by the test: fire() runs the callback while started."""

    def __init__(self, callback, interval_sec):
        self.callback = callback
        self.interval_sec = interval_sec
        self.started = False
        self.stop_calls = 0

    @property
    def is_running(self) -> bool:
        return self.started

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False
        self.stop_calls += 1

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if self.started:
                self.callback()


@pytest.fixture
def scripted():
    """Factory for ScriptedRandom(randoms=[...], uniforms=[...])."""
    return ScriptedRandom


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def timers():
    """Every ManualTimer created by the controller, in creation order."""
    return []


@pytest.fixture
def timer_factory(timers):
    def factory(callback, interval_sec):
        timer = ManualTimer(callback, interval_sec)
        timers.append(timer)
        return timer
    return factory


@pytest.fixture
def sim_config():
    return SimulatorConfig(random_seed=42)


@pytest.fixture
def inactive_controller(sim_config, fixed_clock, timer_factory):
    """Controller with a deterministic price walk, not yet activated."""
    return SessionController(
        config=sim_config,
        rng=random.Random(42),
        clock=fixed_clock,
        timer_factory=timer_factory,
    )


@pytest.fixture
def controller(inactive_controller):
    """Activated controller."""
    inactive_controller.activate(session_id="test-session")
    return inactive_controller


@pytest.fixture
def ledger(fixed_clock):
    return PositionLedger(clock=fixed_clock)


@pytest.fixture
def wallets(fixed_clock):
    return WalletStore(
        trading_balance_usd=25000.0,
        physical_balance_grams=50.1234,
        physical_balance_usd=11528.38,
        clock=fixed_clock,
    )
