import threading

from .models import Streamer


class Registry:
    """Ordered ``uid -> Streamer`` map for one site.

    Insertion order is kept so batches are formed the same way every cycle.
    ``on_remove`` is called with the uid before the entry is deleted; it is
    where the owning site halts a running capture.  Removal never waits for
    that halt to finish.
    """

    def __init__(self, log, on_remove=None):
        self.log = log
        self.on_remove = on_remove
        self._streamers = {}
        self._lock = threading.RLock()

    def add(self, uid, name=None, site="", is_temp=False):
        """Track ``uid``.  Returns False (and reports it) when already tracked."""
        with self._lock:
            if uid in self._streamers:
                self.log.error(f"{self._streamers[uid].name} is already tracked")
                return False
            self._streamers[uid] = Streamer(uid=uid, name=name or uid, site=site, is_temp=is_temp)
        return True

    def remove(self, uid):
        with self._lock:
            streamer = self._streamers.get(uid)
            if streamer is None:
                return False
            if self.on_remove is not None:
                self.on_remove(uid)
            # The capture process (if any) keeps running, detached from this record
            del self._streamers[uid]
        return True

    def get(self, uid):
        with self._lock:
            return self._streamers.get(uid)

    def list(self):
        with self._lock:
            return list(self._streamers.values())

    def uids(self):
        with self._lock:
            return list(self._streamers)

    def __contains__(self, uid):
        with self._lock:
            return uid in self._streamers

    def __len__(self):
        with self._lock:
            return len(self._streamers)
