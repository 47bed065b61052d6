# SPDX-License-Identifier: MIT

"""Node agent readiness protocol and snapshot collection.

The node agent is a DaemonSet we do not own. It writes one JSON snapshot to
its container log and then idles. Before collecting we make sure every
running agent has produced output, and that the output is not older than
the staleness threshold. Stale data triggers a single rollout restart of
the DaemonSet followed by one more polling pass.

Every wait here is bounded by a deadline fixed when the wait starts. Running
out of time yields ``READY_PARTIAL`` (or a logged rollout timeout), never an
exception.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from kub_audit.collector.host_snapshot import AgentStamp, HostSnapshot, parse_snapshot
from kub_audit.config import HostAgentConfig
from kub_audit.errors import CollectionError

logger = logging.getLogger(__name__)

RESTART_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


class AgentState(str, Enum):
    NOT_DEPLOYED = "not_deployed"
    READY = "ready"
    RESTARTED_AND_READY = "restarted_and_ready"
    READY_PARTIAL = "ready_partial"


@dataclass(frozen=True)
class AgentFleet:
    """Handle on the agent DaemonSet; the only thing the protocol may write to."""

    namespace: str
    daemonset: str
    label_selector: str
    container: str | None = None

    @classmethod
    def from_config(cls, cfg: HostAgentConfig) -> AgentFleet:
        return cls(cfg.namespace, cfg.daemonset, cfg.label_selector, cfg.container or None)


@dataclass(frozen=True)
class HostAgentStatus:
    state: AgentState
    ready: int = 0
    total: int = 0

    @property
    def usable(self) -> bool:
        return self.state != AgentState.NOT_DEPLOYED

    @property
    def partial(self) -> bool:
        return self.state == AgentState.READY_PARTIAL

    def describe(self) -> str:
        if self.state == AgentState.NOT_DEPLOYED:
            return "Node agent not deployed or not running; node inspection skipped."
        if self.state == AgentState.READY:
            return f"Node agent ready ({self.ready}/{self.total} nodes reporting)."
        if self.state == AgentState.RESTARTED_AND_READY:
            return (f"Node agent data was stale; DaemonSet restarted and "
                    f"{self.ready}/{self.total} nodes now reporting.")
        return (f"Node agent partially ready: {self.ready}/{self.total} nodes reporting. "
                "Node inspection results are incomplete.")

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state.value, "ready": self.ready, "total": self.total,
                "message": self.describe()}


def format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs}s"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HostAgentCollector:
    def __init__(
        self,
        accessor: Any,
        fleet: AgentFleet,
        config: HostAgentConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.accessor = accessor
        self.fleet = fleet
        self.config = config or HostAgentConfig()
        self.clock = clock
        self.sleep = sleep
        self.now = now
        self.restarts_issued = 0
        self.polls_run = 0

    # -----------------------------------------------------------------
    # Readiness protocol
    # -----------------------------------------------------------------

    def ensure_ready(self) -> HostAgentStatus:
        pods = self._discover()
        if not pods:
            return HostAgentStatus(AgentState.NOT_DEPLOYED)

        ready, timed_out = self._poll(pods)
        if timed_out:
            return self._partial(ready, pods)

        oldest = self._oldest_timestamp(ready.values())
        staleness = timedelta(hours=self.config.staleness_hours)
        if oldest is None or self.now() - oldest < staleness:
            return HostAgentStatus(AgentState.READY, len(ready), len(pods))

        logger.warning(
            "Node agent data is from %s (older than %sh); restarting DaemonSet %s/%s",
            oldest.isoformat(), self.config.staleness_hours, self.fleet.namespace, self.fleet.daemonset,
        )
        if not self._restart():
            return HostAgentStatus(AgentState.NOT_DEPLOYED)
        self._wait_for_rollout()

        pods = self._discover()
        if not pods:
            return HostAgentStatus(AgentState.NOT_DEPLOYED)
        ready, timed_out = self._poll(pods)
        if timed_out:
            return self._partial(ready, pods)
        return HostAgentStatus(AgentState.RESTARTED_AND_READY, len(ready), len(pods))

    def _partial(self, ready: dict[str, str], pods: list[Any]) -> HostAgentStatus:
        status = HostAgentStatus(AgentState.READY_PARTIAL, len(ready), len(pods))
        logger.warning(status.describe())
        return status

    def _discover(self) -> list[Any]:
        try:
            pods = self._list_agents()
        except CollectionError as exc:
            logger.warning("Cannot list node agent pods in %s: %s", self.fleet.namespace, exc)
            return []
        return [p for p in pods if p.status is not None and p.status.phase == "Running"]

    def _poll(self, pods: list[Any]) -> tuple[dict[str, str], bool]:
        """Sweep all agents until every one has output or the deadline passes.

        Returns (pod name -> output, timed_out). Output already read in an
        earlier sweep is kept even if a later read of that agent fails.
        """
        self.polls_run += 1
        start = self.clock()
        deadline = start + self.config.poll_timeout
        ready: dict[str, str] = {}
        while True:
            for name, text in self._sweep(pods).items():
                if text.strip():
                    ready[name] = text
            logger.info(
                "Waiting for node agent logs... (%s, %d/%d pods have logs)",
                format_elapsed(self.clock() - start), len(ready), len(pods),
            )
            if len(ready) == len(pods):
                return ready, False
            now = self.clock()
            if now >= deadline:
                return ready, True
            self.sleep(min(self.config.poll_interval, deadline - now))

    def _oldest_timestamp(self, outputs: Iterable[str]) -> datetime | None:
        stamps = []
        for text in outputs:
            try:
                stamp = AgentStamp.model_validate_json(text.strip()).reported_at
            except ValidationError:
                continue
            if stamp is not None:
                stamps.append(stamp)
        return min(stamps) if stamps else None

    def _restart(self) -> bool:
        body = {"spec": {"template": {"metadata": {"annotations": {
            RESTART_ANNOTATION: self.now().isoformat(),
        }}}}}
        self.restarts_issued += 1
        try:
            self.accessor.patch_daemon_set(self.fleet.daemonset, self.fleet.namespace, body)
        except CollectionError as exc:
            logger.warning("Failed to restart node agent DaemonSet %s/%s: %s",
                           self.fleet.namespace, self.fleet.daemonset, exc)
            return False
        return True

    def _wait_for_rollout(self) -> bool:
        deadline = self.clock() + self.config.rollout_timeout
        while True:
            try:
                ds = self.accessor.read_daemon_set(self.fleet.daemonset, self.fleet.namespace)
                if _rollout_complete(ds):
                    return True
            except CollectionError as exc:
                logger.debug("DaemonSet status read failed: %s", exc)
            now = self.clock()
            if now >= deadline:
                logger.warning("Timed out after %ss waiting for DaemonSet %s/%s rollout",
                               self.config.rollout_timeout, self.fleet.namespace, self.fleet.daemonset)
                return False
            self.sleep(min(self.config.rollout_interval, deadline - now))

    # -----------------------------------------------------------------
    # Collection
    # -----------------------------------------------------------------

    def collect(self) -> list[HostSnapshot]:
        try:
            pods = self._list_agents()
        except CollectionError as exc:
            logger.warning("Cannot list node agent pods: %s", exc)
            return []

        outputs = self._sweep(pods)
        snapshots = []
        for pod in pods:
            text = outputs.get(pod.metadata.name, "")
            if not text.strip():
                continue
            snap = parse_snapshot(text, pod.spec.node_name if pod.spec else None)
            if snap is not None:
                snapshots.append(snap)

        snapshots = self._with_container_states(snapshots)
        return sorted(snapshots, key=lambda s: s.node_name)

    def _with_container_states(self, snapshots: list[HostSnapshot]) -> list[HostSnapshot]:
        try:
            pods = self.accessor.list_objects("pods", cached=False)
        except CollectionError as exc:
            logger.debug("Skipping container state tally: %s", exc)
            return snapshots

        tally: dict[str, Counter] = defaultdict(Counter)
        for pod in pods:
            node = pod.spec.node_name if pod.spec else None
            if not node or pod.status is None:
                continue
            statuses = list(pod.status.init_container_statuses or []) + list(pod.status.container_statuses or [])
            for cs in statuses:
                state = cs.state
                if state is not None and state.running is not None:
                    tally[node]["running"] += 1
                elif state is not None and state.terminated is not None:
                    tally[node]["exited"] += 1
                else:
                    tally[node]["waiting"] += 1

        result = []
        for snap in snapshots:
            counts = {k: v for k, v in sorted(tally.get(snap.node_name, Counter()).items()) if v}
            result.append(snap.model_copy(update={"container_state_counts": counts}) if counts else snap)
        return result

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _list_agents(self) -> list[Any]:
        return self.accessor.list_objects(
            "pods", namespace=self.fleet.namespace, label_selector=self.fleet.label_selector, cached=False,
        )

    def _read(self, pod: Any) -> str:
        try:
            return self.accessor.read_log(pod.metadata.name, pod.metadata.namespace or self.fleet.namespace,
                                          container=self.fleet.container)
        except CollectionError as exc:
            logger.debug("Log read for %s failed: %s", pod.metadata.name, exc)
            return ""

    def _sweep(self, pods: list[Any]) -> dict[str, str]:
        """Read every agent's log concurrently; returns only after all reads finish."""
        if not pods:
            return {}
        workers = max(1, min(self.config.max_workers, len(pods)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            texts = list(pool.map(self._read, pods))
        return {pod.metadata.name: text for pod, text in zip(pods, texts)}


def _rollout_complete(ds: Any) -> bool:
    status = ds.status
    if status is None:
        return False
    generation = ds.metadata.generation if ds.metadata else None
    if generation is not None and status.observed_generation is not None and status.observed_generation < generation:
        return False
    desired = status.desired_number_scheduled or 0
    return desired > 0 and (status.number_ready or 0) >= desired
