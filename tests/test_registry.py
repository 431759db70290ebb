import threading

import pytest

from harvester.registry import RunRegistry
from harvester.types import RunResult


def _r(run_id):
    return RunResult(run_id=run_id, message="ok")


def test_registry_evicts_oldest_beyond_bound():
    reg = RunRegistry(max_runs=2)
    for rid in ("a", "b", "c"):
        reg.put(_r(rid))

    assert reg.get("a") is None
    assert reg.list_ids() == ["c", "b"]
    assert reg.latest().run_id == "c"
    assert len(reg) == 2


def test_registry_empty_latest_is_none():
    assert RunRegistry().latest() is None


def test_registry_rejects_zero_size():
    with pytest.raises(ValueError):
        RunRegistry(max_runs=0)


def test_registry_len_stays_bounded_under_concurrent_puts():
    reg = RunRegistry(max_runs=5)
    sizes = []

    def writer(prefix):
        for i in range(200):
            reg.put(_r(f"{prefix}-{i}"))
            sizes.append(len(reg))

    threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(reg) == 5
    assert max(sizes) <= 5
