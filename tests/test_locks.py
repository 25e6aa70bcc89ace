"""Striped in-process locks."""

import threading
import time

from playconnect.core.locks import KeyedLock, pair_key


def test_pair_key_is_order_independent():
    assert pair_key(7, 3) == pair_key(3, 7) == (3, 7)


def test_same_key_serialises():
    lock = KeyedLock(stripes=8)
    inside = []
    overlaps = []

    def worker():
        with lock.hold("3:7"):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
