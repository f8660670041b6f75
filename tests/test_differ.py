import random

from footprint.differ import Diff, diff
from footprint.records import FolderRecord, ServiceRecord, UninstallRecord


def svc(name, state="running"):
    return ServiceRecord(name, name.upper(), "auto", state, f"C:\\{name}.exe")


def keys(records):
    return {r.key for r in records}


def test_added_service():
    d = diff([svc("svcA")], [svc("svcA"), svc("svcB")])
    assert d.added == [svc("svcB")]
    assert d.removed == []


def test_removed_uninstall_entry():
    app = UninstallRecord("H1", "App1", "App One", "1.0")
    d = diff([app], [])
    assert d.added == []
    assert d.removed == [app]


def test_identical_input_is_empty():
    records = [svc("a"), svc("b"), svc("c")]
    d = diff(records, list(records))
    assert d.is_empty
    assert d.added == [] and d.removed == []


def test_changed_non_key_fields_are_not_reported():
    d = diff([svc("a", "running")], [svc("a", "stopped")])
    assert d.is_empty


def test_duplicate_keys_last_one_wins():
    first = svc("dup", "running")
    last = svc("dup", "stopped")
    d = diff([], [first, last])
    assert d.added == [last]

    d = diff([first, last], [])
    assert d.removed == [last]


def test_partition_and_symmetry():
    rng = random.Random(7)
    universe = [FolderRecord(f"C:\\dir{i}") for i in range(40)]
    for _ in range(20):
        pre = rng.sample(universe, rng.randint(0, 40))
        post = rng.sample(universe, rng.randint(0, 40))

        forward = diff(pre, post)
        backward = diff(post, pre)

        assert keys(forward.added).isdisjoint(keys(forward.removed))
        assert keys(forward.added) | keys(forward.removed) == keys(pre) ^ keys(post)
        assert keys(forward.added) == keys(backward.removed)
        assert keys(forward.removed) == keys(backward.added)


def test_custom_key_function():
    d = diff([svc("a")], [svc("A")], key=lambda r: (r.name.lower(),))
    assert d.is_empty


def test_sorted_is_case_insensitive_and_stable():
    d = Diff(added=[svc("beta"), svc("Alpha"), svc("alpha"), svc("Gamma")])
    names = [r.name for r in d.sorted().added]
    assert names == ["Alpha", "alpha", "beta", "Gamma"]
