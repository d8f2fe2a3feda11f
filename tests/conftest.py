import logging
import sys

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


logger = logging.getLogger()


def pytest_configure(config):
    """
    Raise the root log level to DEBUG when pytest runs with -v, so runtime
    diagnostics show up next to failing tests.
    """
    verbose_level = config.getoption("verbose")

    if verbose_level > 0:
        print("\nPytest running in verbose mode, setting log level to DEBUG.")
        logger.setLevel(logging.DEBUG)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            handler.setFormatter(formatter)
            logger.addHandler(handler)


def pytest_collection_modifyitems(config, items):
    if sys.platform != "win32":
        return
    skip_posix = pytest.mark.skip(reason="named pipes require a POSIX system")
    for item in items:
        if "posix_only" in item.keywords:
            item.add_marker(skip_posix)
