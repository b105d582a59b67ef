"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Custom marks
------------
large_scale
    Applied to tests that build or search trees large enough to take
    noticeable time on a single CPU core.  Opt out with
    ``-m 'not large_scale'``.

    Registration here suppresses PytestUnknownMarkWarning and makes the mark
    visible in ``pytest --markers``.

Warning filters
---------------
NumbaPerformanceWarning messages are filtered out during tests.  Warnings
about the compiled kernels' efficiency on tiny inputs are not informative
for correctness testing.
"""

import warnings

from numba.core.errors import NumbaPerformanceWarning


def pytest_configure(config):
    """
    Configure pytest before test collection begins.

    This runs before any test modules are imported, so the filter is in
    place before the first kernel is compiled.
    """
    config.addinivalue_line(
        "markers",
        "large_scale: tests on trees with thousands of leaves "
        "(slow; skip with -m 'not large_scale')",
    )

    warnings.filterwarnings("ignore", category=NumbaPerformanceWarning)


def pytest_unconfigure(config):
    """Restore default warning behavior after all tests complete."""
    warnings.resetwarnings()
