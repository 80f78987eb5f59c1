import os

import pytest

from dispatchkit.services.orchestration.registry import UnitRegistry


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow timing tests",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: mark slow timing tests (use --run-slow)"
    )


def pytest_collection_modifyitems(config, items):
    run_slow = (
        config.getoption("--run-slow")
        or os.getenv("DISPATCHKIT_RUN_SLOW_TESTS") == "1"
    )
    if not run_slow:
        skip_slow = pytest.mark.skip(
            reason="slow tests skipped (use --run-slow or DISPATCHKIT_RUN_SLOW_TESTS=1)"
        )
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


@pytest.fixture
def clean_environment(monkeypatch):
    """Unset DISPATCHKIT_* variables so settings come from defaults only."""
    for key in [k for k in os.environ if k.startswith("DISPATCHKIT_")]:
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def registry_data() -> dict:
    """Three domains with a cross-domain dependency.

    db.index -> db.tuning and db.index -> cache.policy are declared; the
    security domain has no default unit.
    """
    return {
        "domains": [
            {
                "domain": "db",
                "units": [
                    {
                        "unit_id": "db.index",
                        "trigger_keywords": ["index", "btree"],
                        "default_if_ambiguous": True,
                        "weight_class": "primary",
                    },
                    {
                        "unit_id": "db.tuning",
                        "trigger_keywords": ["fill", "vacuum"],
                        "depends_on": ["db.index"],
                    },
                ],
            },
            {
                "domain": "cache",
                "units": [
                    {
                        "unit_id": "cache.policy",
                        "trigger_keywords": ["cache", "ttl"],
                        "default_if_ambiguous": True,
                        "depends_on": ["db.index"],
                    },
                ],
            },
            {
                "domain": "security",
                "units": [
                    {
                        "unit_id": "security.auth",
                        "trigger_keywords": ["auth", "token"],
                        "weight_class": "auxiliary",
                    },
                ],
            },
        ],
        "system_priority": ["security", "db", "cache"],
    }


@pytest.fixture
def registry(registry_data) -> UnitRegistry:
    return UnitRegistry.from_dict(registry_data)
