from collections.abc import Sequence

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run e2e tests that need a Google credential or a Maps API key.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: requires runtime services or user configuration"
    )
    config.addinivalue_line("markers", "e2e: end-to-end runtime tests")
    config.addinivalue_line("markers", "property: property-based deterministic tests")


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: Sequence[pytest.Item],
) -> None:
    run_integration = config.getoption("--run-integration")
    skip_integration = pytest.mark.skip(
        reason="integration/e2e is opt-in; rerun with --run-integration"
    )

    for item in items:
        if "tests/e2e/" in item.nodeid:
            item.add_marker("integration")
            item.add_marker("e2e")
        if (
            item.get_closest_marker("integration") or item.get_closest_marker("e2e")
        ) and not run_integration:
            item.add_marker(skip_integration)
