import threading

import pytest

from arcellite.storage.errors import DeviceBusyError
from arcellite.storage.locks import KeyedLock


def test_same_key_is_serialised():
    locks = KeyedLock()
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("sdb"):
            entered.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    entered.wait(5)

    assert locks.is_locked("sdb")
    with pytest.raises(DeviceBusyError):
        with locks.hold("sdb", timeout=0.05):
            pass

    release.set()
    thread.join(5)
    assert not locks.is_locked("sdb")


def test_different_keys_do_not_block():
    locks = KeyedLock()

    with locks.hold("sdb"):
        with locks.hold("sdc", timeout=0.05):
            assert locks.is_locked("sdc")


def test_locks_are_dropped_after_use():
    locks = KeyedLock()

    with locks.hold("sdb"):
        pass

    assert locks._locks == {}
    assert locks._users == {}


def test_lock_released_when_body_raises():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        with locks.hold("sdb"):
            raise RuntimeError("mount exploded")

    with locks.hold("sdb", timeout=0.05):
        pass
