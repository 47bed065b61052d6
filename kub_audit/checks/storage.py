# SPDX-License-Identifier: MIT

"""PersistentVolume, PVC and StorageClass checks."""

from __future__ import annotations

from kub_audit.checks.base import AuditContext, Inspector, annotations_of, check, ref
from kub_audit.models import Check, Domain, Severity

DEFAULT_CLASS_ANNOTATION = "storageclass.kubernetes.io/is-default-class"
KNOWN_RECLAIM_POLICIES = ("Delete", "Retain")


class StorageInspector(Inspector):
    key = "storage"
    domain = Domain.STORAGE

    @check("Persistent Volume Health", "Checks PV phases and reclaim policies")
    def volumes(self, ctx: AuditContext) -> Check:
        pvs = self.fetch("pvs")
        healthy = 0
        for pv in pvs:
            name = pv.metadata.name
            phase = (pv.status.phase if pv.status else None) or "Unknown"
            policy = pv.spec.persistent_volume_reclaim_policy if pv.spec else None
            if phase == "Failed":
                ctx.add(
                    Severity.CRITICAL, "Storage", f"PV {name} is in Failed state",
                    "Check the storage backend and provisioner logs", resource=name, code="STO-001",
                    evidence=[f"kubectl describe pv {name}"],
                )
            elif phase == "Released":
                if policy == "Retain":
                    ctx.add(
                        Severity.INFO, "Storage", f"PV {name} is Released with Retain policy",
                        "Back up or delete the data, then clear claimRef or delete the PV",
                        resource=name, code="STO-003",
                    )
                else:
                    ctx.add(
                        Severity.WARNING, "Storage", f"PV {name} is Released and not reusable",
                        "Delete the PV if data is unneeded, or clear claimRef to reuse",
                        resource=name, code="STO-002",
                    )
            else:
                healthy += 1
            if policy not in KNOWN_RECLAIM_POLICIES:
                ctx.add(
                    Severity.WARNING, "Storage", f"PV {name} has reclaim policy {policy or 'unset'}",
                    "Set persistentVolumeReclaimPolicy to Delete or Retain", resource=name, code="STO-004",
                )
        return ctx.ratio(healthy, len(pvs), detail=f"{healthy}/{len(pvs)} PVs healthy",
                         recommendation="Clean up Released and Failed PVs")

    @check("PVC Binding", "Checks that PersistentVolumeClaims are bound")
    def claims(self, ctx: AuditContext) -> Check:
        pvcs = self.fetch("pvcs", ctx)
        bound = 0
        for pvc in pvcs:
            pvc_ref = ref(pvc)
            phase = (pvc.status.phase if pvc.status else None) or "Unknown"
            if phase == "Bound":
                bound += 1
            elif phase == "Pending":
                ctx.add(
                    Severity.WARNING, "Storage", f"PVC {pvc_ref} is Pending",
                    "Check the storage class, provisioner and requested capacity",
                    resource=pvc_ref, code="STO-005",
                    evidence=[f"kubectl describe pvc {pvc.metadata.name} -n {pvc.metadata.namespace}"],
                )
            elif phase == "Lost":
                ctx.add(
                    Severity.CRITICAL, "Storage", f"PVC {pvc_ref} is Lost; its PV is gone",
                    "Restore from backup and recreate the claim", resource=pvc_ref, code="STO-006",
                )
            if not (pvc.spec.storage_class_name if pvc.spec else None):
                ctx.add(
                    Severity.INFO, "Storage", f"PVC {pvc_ref} has no storageClassName",
                    "Set an explicit storageClassName", resource=pvc_ref, code="STO-007",
                )
        return ctx.ratio(bound, len(pvcs), detail=f"{bound}/{len(pvcs)} PVCs bound",
                         recommendation="Resolve unbound PVCs")

    @check("Storage Class Configuration", "Checks provisioners and the default StorageClass")
    def classes(self, ctx: AuditContext) -> Check:
        classes = self.fetch("storage_classes")
        for sc in classes:
            if not sc.provisioner:
                ctx.add(
                    Severity.CRITICAL, "Storage", f"StorageClass {sc.metadata.name} has no provisioner",
                    "Set a valid provisioner", resource=sc.metadata.name, code="STO-008",
                )
        defaults = sorted(
            sc.metadata.name for sc in classes
            if annotations_of(sc).get(DEFAULT_CLASS_ANNOTATION) == "true"
        )
        if not classes:
            return ctx.scored(0, detail="No StorageClasses defined",
                              recommendations=["Create a StorageClass for dynamic provisioning"])
        if not defaults:
            ctx.add(
                Severity.WARNING, "Storage", "No default StorageClass is configured",
                "Mark one StorageClass as default", code="STO-009",
            )
        elif len(defaults) > 1:
            ctx.add(
                Severity.WARNING, "Storage", f"Multiple default StorageClasses: {', '.join(defaults)}",
                "Only one StorageClass should be the default", code="STO-010",
            )
        score = 100 if len(defaults) == 1 else 70
        return ctx.scored(score, detail=f"{len(classes)} StorageClasses, {len(defaults)} default",
                          recommendations=["Configure exactly one default StorageClass"])
