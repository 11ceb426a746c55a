from __future__ import annotations

from licensing.baseline import BASELINE_KEY, BaselineMonitor, FileComponentSource


def _monitor(store, components):
    return BaselineMonitor(store, components.source(), ["primary.py", "secondary.py", "gate.py"])


def test_first_check_records_baseline(store, components):
    monitor = _monitor(store, components)

    assert monitor.check_integrity() is True
    assert set(store.get(BASELINE_KEY)) == {"primary.py", "secondary.py", "gate.py"}


def test_unchanged_components_pass(store, components):
    monitor = _monitor(store, components)
    monitor.check_integrity()

    assert monitor.check_integrity() is True


def test_modified_component_fails(store, components):
    monitor = _monitor(store, components)
    monitor.check_integrity()

    components.files["gate.py"] = b"gate patched"

    assert monitor.check_integrity() is False
    # the snapshot is not rewritten, so the mismatch persists
    assert monitor.check_integrity() is False


def test_missing_component_is_ignored(store, components):
    monitor = _monitor(store, components)
    monitor.check_integrity()

    del components.files["secondary.py"]

    assert monitor.check_integrity() is True


def test_modification_before_first_run_goes_unnoticed(store, components):
    components.files["primary.py"] = b"patched before install"
    monitor = _monitor(store, components)

    assert monitor.check_integrity() is True
    assert monitor.check_integrity() is True


def test_reset_drops_snapshot(store, components):
    monitor = _monitor(store, components)
    monitor.check_integrity()
    monitor.reset()

    assert monitor.snapshot() == {}


def test_file_source_reads_relative_to_root(tmp_path):
    (tmp_path / "gate.py").write_bytes(b"content")
    source = FileComponentSource(str(tmp_path))

    assert source.read("gate.py") == b"content"
    assert source.read("missing.py") is None
