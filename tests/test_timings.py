import pytest

from dinnernight.infra import timings


@pytest.fixture(autouse=True)
def _clean():
    timings.reset()
    yield
    timings.reset()


def test_running_stats():
    for v in (1.0, 2.0, 3.0, 4.0):
        timings.record_timing("gateway.verify", v)
    (row,) = timings.snapshot()
    assert row["kind"] == "gateway.verify"
    assert row["n"] == 4
    assert row["mean"] == pytest.approx(2.5)
    assert row["std"] == pytest.approx(1.2909944, rel=1e-6)
    assert row["max"] == 4.0
    assert row["errors"] == 0


def test_single_sample_has_zero_std():
    timings.record_timing("x", 0.5)
    assert timings.snapshot()[0]["std"] == 0.0


async def test_timeit_counts_failures():
    async with timings.timeit("db.get_order"):
        pass
    with pytest.raises(RuntimeError):
        async with timings.timeit("db.get_order"):
            raise RuntimeError("boom")
    rows = {r["kind"]: r for r in timings.snapshot()}
    assert rows["db.get_order"]["n"] == 2
    assert rows["db.get_order"]["errors"] == 1
