""" Order-preserving parallel map for batches of independent group operations.

The pool size is read from the ``ECASHLIB_WORKERS`` environment variable and
can be changed with ``set_workers``. With a single worker (the default) the
map runs sequentially in the calling thread.
"""

import logging
import os
import warnings
from concurrent.futures import ThreadPoolExecutor

import pytest

logger = logging.getLogger(__name__)

WORKERS_ENV = "ECASHLIB_WORKERS"


def _workers_from_env():
    raw = os.environ.get(WORKERS_ENV)
    if raw is None:
        return 1
    try:
        workers = int(raw)
    except ValueError:
        workers = 0
    if workers < 1:
        warnings.warn("%s=%r is not a positive integer, running sequentially"
                      % (WORKERS_ENV, raw))
        return 1
    return workers


_workers = _workers_from_env()


def get_workers():
    return _workers


def set_workers(workers):
    """ Sets the number of worker threads used by ``par_map``. """
    global _workers
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ValueError("The number of workers must be a positive integer")
    _workers = workers
    logger.debug("Using %d worker(s)", workers)


def par_map(func, items, workers=None):
    """ Applies func to every item and returns the results as a list in the
    order of items, whatever the order in which they complete.

        Example:
            >>> par_map(lambda x: x * x, range(4))
            [0, 1, 4, 9]
    """
    items = list(items)
    n = _workers if workers is None else workers
    if n <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    with ThreadPoolExecutor(max_workers=min(n, len(items))) as executor:
        return list(executor.map(func, items))

# ---------- TESTS -------------

def test_sequential():
    assert par_map(lambda x: x + 1, [1, 2, 3], workers=1) == [2, 3, 4]
    assert par_map(lambda x: x, []) == []

def test_ordered():
    import time

    def slow(i):
        time.sleep(0.01 * (5 - i))
        return i

    assert par_map(slow, range(5), workers=4) == list(range(5))

def test_set_workers():
    old = get_workers()
    try:
        set_workers(3)
        assert get_workers() == 3
        assert par_map(str, [1, 2]) == ["1", "2"]
        with pytest.raises(ValueError):
            set_workers(0)
    finally:
        set_workers(old)

def test_env(monkeypatch):
    monkeypatch.setenv(WORKERS_ENV, "4")
    assert _workers_from_env() == 4
    monkeypatch.setenv(WORKERS_ENV, "many")
    with pytest.warns(UserWarning):
        assert _workers_from_env() == 1
