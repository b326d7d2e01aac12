import logging
import threading


def plan_batches(uids, batch_size):
    """Break the streamer list up into batches.

    This throttles the number of simultaneous lookups by not being fully
    parallel, and reduces the lookup latency by not being fully serial.
    ``batch_size`` 0 is fully parallel, 1 is fully serial.
    """
    uids = list(uids)
    if batch_size < 0:
        raise ValueError(f"batch_size must be >= 0, got {batch_size}")
    if not uids:
        return []
    if batch_size == 0:
        return [uids]
    return [uids[i:i + batch_size] for i in range(0, len(uids), batch_size)]


class BatchScheduler:
    """Runs status checks one batch at a time, each batch fully concurrent."""

    def __init__(self, batch_size=5, log=None):
        self.batch_size = batch_size
        self.log = log or logging.getLogger(__name__)

    def plan(self, uids):
        return plan_batches(uids, self.batch_size)

    def execute(self, plan, check, cancel=None, on_error=None):
        """Run ``check(uid)`` for every uid in ``plan``.

        Returns ``{uid: result}``; a member whose check raised maps to None,
        is reported, and ``on_error(uid, exc)`` is called for it.  Batches
        not yet started are skipped once ``cancel`` is set.
        """
        results = {}
        lock = threading.Lock()

        def _run(uid):
            try:
                result = check(uid)
            except Exception as e:
                self.log.error(f"Status check for {uid} failed: {e}")
                result = None
                if on_error is not None:
                    on_error(uid, e)
            with lock:
                results[uid] = result

        for batch in plan:
            if cancel is not None and cancel.is_set():
                self.log.debug("Skipping lookup while exit in progress...")
                break
            threads = [
                threading.Thread(target=_run, args=(uid,), daemon=True, name=f"check-{uid}")
                for uid in batch
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        return results
