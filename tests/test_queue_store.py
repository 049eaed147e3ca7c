"""
Tests for queue state persistence.
"""

import pytest

from elmos.queue_store import (
    PersistenceError,
    QueueState,
    QueueStore,
    parse_state,
    serialize_state,
)


@pytest.fixture
def store(tmp_path):
    return QueueStore(tmp_path / "module.cfg")


def test_load_missing_file_is_empty(store):
    """A missing queue file is an empty state, not an error."""
    state = store.load()
    assert state.ins_queue == []
    assert state.rem_queue == []


def test_serialize_exact_shape():
    """The file shape is what the emulator launch step sources."""
    state = QueueState(ins_queue=["hello", "*"], rem_queue=["gpio_drv"])

    assert serialize_state(state) == (
        "# Auto-generated module state\n"
        'MODULE_INS=("hello" "*")\n'
        'MODULE_REM=("gpio_drv")\n'
    )


def test_serialize_empty_arrays():
    assert serialize_state(QueueState()) == (
        "# Auto-generated module state\n"
        "MODULE_INS=()\n"
        "MODULE_REM=()\n"
    )


@pytest.mark.parametrize(
    "state",
    [
        QueueState(),
        QueueState(ins_queue=["hello"]),
        QueueState(ins_queue=["b", "a", "*"], rem_queue=["c", "d"]),
    ],
)
def test_save_then_load_preserves_state(store, state):
    store.save(state)
    assert store.load() == state


def test_save_regenerates_file(store):
    store.path.write_text("junk\n")
    store.save(QueueState(ins_queue=["a"]))

    text = store.path.read_text()
    assert "junk" not in text
    assert text.startswith("# Auto-generated module state\n")
    assert not store.path.with_suffix(".cfg.tmp").exists()


def test_parse_tolerates_old_empty_array_format():
    """Older writers emitted ("" ) for empty arrays and a trailing space."""
    text = (
        "# Auto-generated module state\n"
        'MODULE_INS=("" )\n'
        'MODULE_REM=("hello" "world" )\n'
    )
    state = parse_state(text)

    assert state.ins_queue == []
    assert state.rem_queue == ["hello", "world"]


def test_parse_ignores_unknown_content():
    text = (
        "# some other tool wrote this\n"
        "EXTRA_VAR=(\"x\")\n"
        "\n"
        'MODULE_INS=("a")\n'
        "echo hi\n"
    )
    state = parse_state(text)

    assert state.ins_queue == ["a"]
    assert state.rem_queue == []


def test_parse_drops_duplicates():
    state = parse_state('MODULE_INS=("a" "b" "a")\n')
    assert state.ins_queue == ["a", "b"]


def test_save_failure_raises_persistence_error(tmp_path):
    """Writing into a path whose parent is a file cannot succeed."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = QueueStore(blocker / "module.cfg")

    with pytest.raises(PersistenceError):
        store.save(QueueState(ins_queue=["a"]))


def test_load_tolerates_invalid_utf8(store):
    store.path.write_bytes(b'# \xff\xfe junk\nMODULE_INS=("a")\n')
    assert store.load().ins_queue == ["a"]


def test_unreadable_queue_path_raises_persistence_error(store):
    store.path.mkdir()

    with pytest.raises(PersistenceError):
        store.load()
