# conftest.py
import pytest


OPTIONAL_SKIP_REASON = (
    "needs a PostgreSQL server with pg_pb3_ld installed, use --run-optional to include"
)


def pytest_addoption(parser):
    parser.addoption(
        "--run-optional",
        action="store_true",
        default=False,
        help="Run tests marked as optional (live PostgreSQL server with pg_pb3_ld)",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "optional: needs a PostgreSQL server with pg_pb3_ld installed"
    )


def _selected_by_keyword(item, keyword):
    return keyword in item.name or keyword in item.nodeid


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-optional"):
        return

    keyword = config.getoption("keyword")  # the -k expression
    skip_optional = pytest.mark.skip(reason=OPTIONAL_SKIP_REASON)

    for item in items:
        if "optional" not in item.keywords:
            continue
        # naming an optional test with -k runs it without --run-optional
        if keyword and _selected_by_keyword(item, keyword):
            continue
        item.add_marker(skip_optional)
