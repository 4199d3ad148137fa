"""Watch loop feeding node names to the reconciler.

Node and pod watches push node names onto a :class:`WorkQueue`. Worker threads
take names off the queue and reconcile them. The queue hands a given node to at
most one worker at a time, and failed reconciliations come back after an
exponential backoff.
"""

import heapq
import threading
import time
from collections import deque
from collections.abc import Callable

from kubernetes import watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from readiness_gate.config import ControllerConfig
from readiness_gate.logging_config import get_logger
from readiness_gate.reconciler import Reconciler
from readiness_gate.triggers import node_for_node_event, node_for_pod_event

logger = get_logger(__name__)

BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 300.0
WATCH_TIMEOUT_SECONDS = 300
WATCH_RETRY_SECONDS = 5.0


class WorkQueue:
    """De-duplicating queue of node names with per-key backoff."""

    def __init__(
        self,
        base_delay: float = BACKOFF_BASE_SECONDS,
        max_delay: float = BACKOFF_MAX_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.clock = clock
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._waiting: list[tuple[float, str]] = []
        self._failures: dict[str, int] = {}
        self._shutting_down = False
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, key: str) -> None:
        """Queue a key unless it is already queued.

        A key added while it is being processed is queued again once
        :meth:`done` is called for it.
        """
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key not in self._processing:
                self._queue.append(key)
                self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key once the delay has elapsed."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (self.clock() + delay, key))
            self._cond.notify()

    def backoff(self, key: str) -> float:
        """Next retry delay for a key: doubles per failure, capped."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * 2**failures, self.max_delay)

    def add_rate_limited(self, key: str) -> None:
        self.add_after(key, self.backoff(key))

    def forget(self, key: str) -> None:
        """Reset the failure count of a key."""
        with self._cond:
            self._failures.pop(key, None)

    def _promote_waiting(self) -> float | None:
        """Move due delayed keys onto the queue; return seconds to the next one."""
        now = self.clock()
        while self._waiting and self._waiting[0][0] <= now:
            _, key = heapq.heappop(self._waiting)
            if key not in self._dirty:
                self._dirty.add(key)
                if key not in self._processing:
                    self._queue.append(key)
        if self._waiting:
            return self._waiting[0][0] - now
        return None

    def get(self, timeout: float | None = None) -> str | None:
        """Take the next key, blocking until one is available.

        Returns:
            The key, or None on shutdown or when the timeout expires
        """
        deadline = None if timeout is None else self.clock() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                next_due = self._promote_waiting()
                if self._queue:
                    key = self._queue.popleft()
                    self._dirty.discard(key)
                    self._processing.add(key)
                    return key

                wait = next_due
                if deadline is not None:
                    remaining = deadline - self.clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: str) -> None:
        """Mark a key as processed, re-queueing it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()


class Controller:
    """Runs the node and pod watches and the reconcile workers."""

    def __init__(
        self,
        api,
        reconciler: Reconciler,
        config: ControllerConfig,
        workers: int = 1,
        queue: WorkQueue | None = None,
    ):
        """Initialize the controller.

        Args:
            api: CoreV1Api used for the watches
            reconciler: Reconciler run for every queued node
            config: Controller configuration; its namespaces scope the pod watches
            workers: Number of reconcile worker threads
            queue: Work queue, created when omitted
        """
        self.api = api
        self.reconciler = reconciler
        self.config = config
        self.workers = workers
        self.queue = queue if queue is not None else WorkQueue()
        self._stop = threading.Event()
        self._watches: list[watch.Watch] = []
        self._threads: list[threading.Thread] = []

    def process_next(self, timeout: float | None = None) -> bool:
        """Reconcile one queued node.

        Returns:
            False once the queue is shut down or the timeout expired
        """
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            result = self.reconciler.reconcile(key)
            if result.failed:
                delay = self.queue.backoff(key)
                logger.warning(f"Reconciling node {key} failed, retrying in {delay:.0f}s")
                self.queue.add_after(key, delay)
            else:
                logger.debug(f"Reconciled node {key}: {result.outcome.value}")
                self.queue.forget(key)
        except Exception as e:
            logger.error(f"Unexpected error reconciling node {key}: {e}", exc_info=True)
            self.queue.add_rate_limited(key)
        finally:
            self.queue.done(key)
        return True

    def _worker(self) -> None:
        while self.process_next():
            pass

    def _watch(self, description: str, list_func, mapper, **kwargs) -> None:
        while not self._stop.is_set():
            w = watch.Watch()
            self._watches.append(w)
            try:
                for event in w.stream(list_func, timeout_seconds=WATCH_TIMEOUT_SECONDS, **kwargs):
                    key = mapper(event)
                    if key:
                        self.queue.add(key)
                    if self._stop.is_set():
                        break
            except (ApiException, HTTPError) as e:
                logger.warning(f"Watch on {description} ended: {e}")
                self._stop.wait(WATCH_RETRY_SECONDS)
            except Exception as e:
                logger.error(f"Unexpected error watching {description}: {e}", exc_info=True)
                self._stop.wait(WATCH_RETRY_SECONDS)
            finally:
                w.stop()
                self._watches.remove(w)

    def start(self) -> None:
        """Start the watch and worker threads."""
        logger.info(
            f"Starting controller with {self.workers} workers watching "
            f"{len(self.config.daemonsets)} daemonsets"
        )
        targets = [("nodes", self.api.list_node, node_for_node_event, {})]
        for namespace in self.config.namespaces():
            targets.append(
                (
                    f"pods in {namespace}",
                    self.api.list_namespaced_pod,
                    node_for_pod_event,
                    {"namespace": namespace},
                )
            )

        for description, list_func, mapper, kwargs in targets:
            thread = threading.Thread(
                target=self._watch,
                args=(description, list_func, mapper),
                kwargs=kwargs,
                name=f"watch-{description}",
                daemon=True,
            )
            self._threads.append(thread)
        for i in range(self.workers):
            self._threads.append(
                threading.Thread(target=self._worker, name=f"worker-{i}", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Stop watching and let the workers drain."""
        logger.info("Stopping controller")
        self._stop.set()
        self.queue.shutdown()
        for w in list(self._watches):
            w.stop()

    def run(self) -> None:
        """Start the controller and block until :meth:`stop` is called."""
        self.start()
        self._stop.wait()
        for thread in self._threads:
            thread.join(timeout=5)
