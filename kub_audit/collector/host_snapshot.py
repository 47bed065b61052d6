# SPDX-License-Identifier: MIT

"""Schema of the JSON document each node agent prints to its log."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"


class _AgentModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class HostResources(_AgentModel):
    cpu_cores: Optional[int] = None
    cpu_used: Optional[float] = None
    cpu_used_pct: Optional[float] = None
    memory_total_mib: Optional[float] = None
    memory_used_mib: Optional[float] = None
    memory_used_pct: Optional[float] = None
    root_disk_pct: Optional[float] = None
    disk_total_g: Optional[float] = None
    disk_used_g: Optional[float] = None
    disk_used_pct: Optional[float] = None
    load_1m: Optional[float] = None
    load_5m: Optional[float] = None
    load_15m: Optional[float] = None
    swap_enabled: Optional[bool] = None
    swap_total_g: Optional[float] = None
    swap_used_g: Optional[float] = None
    swap_used_pct: Optional[float] = None
    status: str = STATUS_OK
    detail: str = ""


class HostServices(_AgentModel):
    runtime: str = ""
    journald_active: Optional[bool] = None
    crontab_present: Optional[bool] = None
    ntp_synced: Optional[bool] = None
    status: str = STATUS_OK
    detail: str = ""


class HostSecurity(_AgentModel):
    selinux: str = ""
    firewalld_active: Optional[bool] = None
    ipvs_loaded: Optional[bool] = None
    status: str = STATUS_OK
    detail: str = ""


class HostKernel(_AgentModel):
    net_ipv4_ip_forward: Optional[str] = None
    vm_swappiness: Optional[str] = None
    net_core_somaxconn: Optional[str] = None
    status: str = STATUS_OK
    detail: str = ""


class NodeCertificate(_AgentModel):
    path: str = ""
    expiration_date: str = ""
    days_remaining: Optional[int] = None
    status: str = ""


class NodeDisk(_AgentModel):
    device: str = ""
    mount_point: str = ""
    fstype: str = ""
    total_g: Optional[float] = None
    used_g: Optional[float] = None
    used_pct: Optional[float] = None


class HostSnapshot(_AgentModel):
    node_name: str = ""
    hostname: str = ""
    timestamp: str = ""
    timestamp_local: Optional[str] = None
    runtime: str = ""
    os_version: Optional[str] = None
    kernel_version: Optional[str] = None
    uptime: Optional[str] = None
    resources: HostResources = Field(default_factory=HostResources)
    services: HostServices = Field(default_factory=HostServices)
    security: HostSecurity = Field(default_factory=HostSecurity)
    kernel: HostKernel = Field(default_factory=HostKernel)
    container_state_counts: Optional[dict[str, int]] = None
    zombie_count: Optional[int] = None
    issue_count: int = 0
    node_certificates: Optional[list[NodeCertificate]] = None
    node_disks: Optional[list[NodeDisk]] = None

    @property
    def reported_at(self) -> datetime | None:
        return parse_timestamp(self.timestamp)

    @property
    def health(self) -> str:
        statuses = {self.resources.status, self.services.status, self.security.status, self.kernel.status}
        if STATUS_ERROR in statuses:
            return STATUS_ERROR
        if STATUS_WARNING in statuses or self.issue_count > 0:
            return STATUS_WARNING
        return STATUS_OK

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AgentStamp(_AgentModel):
    """Just enough of the agent output to judge freshness."""

    timestamp: str = Field(default="")

    @property
    def reported_at(self) -> datetime | None:
        return parse_timestamp(self.timestamp)


def parse_timestamp(value: str | None) -> datetime | None:
    """RFC 3339 -> aware datetime. Naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_snapshot(text: str, host_binding: str | None = None) -> HostSnapshot | None:
    """Parse one agent log; None when the payload does not match the schema.

    An empty self-reported node name is filled from the pod's node binding,
    and an empty hostname from the node name.
    """
    try:
        snap = HostSnapshot.model_validate_json(text.strip())
    except ValidationError as exc:
        logger.debug("skipping malformed node agent payload: %s", exc.errors()[:1])
        return None

    update: dict[str, Any] = {}
    node_name = snap.node_name
    if not node_name and host_binding:
        node_name = host_binding
        update["node_name"] = node_name
    if not snap.hostname and node_name:
        update["hostname"] = node_name
    return snap.model_copy(update=update) if update else snap
