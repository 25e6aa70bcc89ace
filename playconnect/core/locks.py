import threading
import zlib
from contextlib import contextmanager

from sqlalchemy.orm import Session

from playconnect.models.child import Child
from playconnect.models.skeleton_account import SkeletonAccount


class KeyedLock:
    """
    Striped in-process mutex.

    Each key always maps to the same stripe, so two callers working on the
    same key serialise while unrelated keys mostly run in parallel. A caller
    only ever holds one stripe of a given KeyedLock at a time.
    """

    def __init__(self, stripes: int = 64):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def _stripe(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode()) % len(self._locks)]

    @contextmanager
    def hold(self, key: str):
        lock = self._stripe(key)
        with lock:
            yield


_pair_locks = KeyedLock()
_skeleton_locks = KeyedLock()


def pair_key(child_a_id: int, child_b_id: int) -> tuple[int, int]:
    return (child_a_id, child_b_id) if child_a_id < child_b_id else (child_b_id, child_a_id)


@contextmanager
def pair_lock(db: Session, child_a_id: int, child_b_id: int):
    """
    Serialise work on one undirected child pair.

    Must wrap the whole transaction, commit included. On PostgreSQL the two
    child rows are also locked with SELECT ... FOR UPDATE (lowest id first)
    so separate worker processes serialise too; SQLite ignores FOR UPDATE.
    """
    low, high = pair_key(child_a_id, child_b_id)

    with _pair_locks.hold(f"{low}:{high}"):
        (
            db.query(Child.id)
            .filter(Child.id.in_([low, high]))
            .order_by(Child.id)
            .with_for_update()
            .all()
        )
        yield


@contextmanager
def skeleton_account_lock(db: Session, skeleton_account_id: int):
    with _skeleton_locks.hold(str(skeleton_account_id)):
        (
            db.query(SkeletonAccount.id)
            .filter(SkeletonAccount.id == skeleton_account_id)
            .with_for_update()
            .all()
        )
        yield
