import asyncio
import time

import pytest

from locallibrary.errors import DataAccessError
from locallibrary.tasks import parallel


def test_results_are_collected_by_name():
    results = asyncio.run(parallel(a=lambda: 1, b=lambda: "two"))
    assert results == {"a": 1, "b": "two"}


def test_first_failure_propagates():
    def fail():
        raise DataAccessError("boom")

    def slow():
        time.sleep(0.05)
        return "late"

    with pytest.raises(DataAccessError, match="boom"):
        asyncio.run(parallel(ok=slow, bad=fail))
