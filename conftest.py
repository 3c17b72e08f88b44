"""
Pytest configuration for the marketplace client tests.

Adds --chaos flag: push transports in the sync tests then deliver every
event twice and drop their subscriptions at random.
"""

import random

import pytest


def pytest_addoption(parser):
    """Add custom command line options"""
    parser.addoption(
        "--chaos",
        action="store_true",
        default=False,
        help="Run sync tests under chaos conditions (duplicate deliveries, push disconnects)"
    )


def pytest_configure(config):
    """Configure pytest based on command line options"""
    config.addinivalue_line(
        "markers", "chaos: marks tests that get harsher push conditions under --chaos"
    )
    if config.getoption("--chaos"):
        print("\n🌪️  CHAOS MODE ENABLED - duplicate deliveries and push disconnects\n")


@pytest.fixture(scope="session")
def chaos_mode(request):
    """Fixture that provides chaos mode status"""
    return request.config.getoption("--chaos")


@pytest.fixture
def chaos_rng(chaos_mode):
    """Seeded RNG for chaos decisions (None when chaos is off)"""
    return random.Random(1337) if chaos_mode else None
