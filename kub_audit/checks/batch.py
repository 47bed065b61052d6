# SPDX-License-Identifier: MIT

"""CronJob and Job health."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from kub_audit.checks.base import AuditContext, Inspector, check, ref
from kub_audit.models import Check, Domain, Severity

NO_WORKLOAD_SCORE = 70
STUCK_JOB_AGE = timedelta(minutes=60)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchInspector(Inspector):
    key = "batch"
    domain = Domain.BATCH

    @check("CronJobs", "Checks CronJob suspension and last run outcome")
    def cronjobs(self, ctx: AuditContext) -> Check:
        cronjobs = self.fetch("cronjobs", ctx)
        if not cronjobs:
            return ctx.scored(NO_WORKLOAD_SCORE, detail="No CronJobs found")

        healthy = 0
        for cj in cronjobs:
            cj_ref = ref(cj)
            status = cj.status
            last_schedule = status.last_schedule_time if status else None
            last_success = status.last_successful_time if status else None
            if cj.spec.suspend:
                ctx.add(
                    Severity.WARNING, "Batch", f"CronJob {cj_ref} is suspended",
                    "Resume the CronJob or remove it if no longer needed", resource=cj_ref, code="BATCH-001",
                )
            elif last_schedule is None:
                ctx.add(
                    Severity.WARNING, "Batch", f"CronJob {cj_ref} has never been scheduled",
                    "Check the schedule expression and the cronjob controller", resource=cj_ref, code="BATCH-003",
                )
            elif last_success is None or last_success < last_schedule:
                ctx.add(
                    Severity.CRITICAL, "Batch", f"Last run of CronJob {cj_ref} did not succeed",
                    "Check the logs of the most recent job", resource=cj_ref, code="BATCH-002",
                    evidence=[f"kubectl get jobs -n {cj.metadata.namespace}"],
                )
            else:
                healthy += 1
        return ctx.ratio(healthy, len(cronjobs), detail=f"{healthy}/{len(cronjobs)} CronJobs healthy",
                         recommendation="Fix failing or suspended CronJobs")

    @check("Jobs", "Checks Jobs for failures and stuck pods")
    def jobs(self, ctx: AuditContext) -> Check:
        jobs = self.fetch("jobs", ctx)
        if not jobs:
            return ctx.scored(NO_WORKLOAD_SCORE, detail="No Jobs found")

        now = _now()
        healthy = 0
        for job in jobs:
            job_ref = ref(job)
            status = job.status
            failed = (status.failed if status else None) or 0
            active = (status.active if status else None) or 0
            succeeded = (status.succeeded if status else None) or 0
            started = status.start_time if status else None
            if failed > 0:
                ctx.add(
                    Severity.WARNING, "Batch", f"Job {job_ref} has {failed} failed pods",
                    "Review backoffLimit and the resources of the job pods", resource=job_ref, code="BATCH-004",
                    evidence=[f"kubectl describe job {job.metadata.name} -n {job.metadata.namespace}"],
                )
            elif active > 0 and succeeded == 0 and started is not None and now - started > STUCK_JOB_AGE:
                ctx.add(
                    Severity.WARNING, "Batch",
                    f"Job {job_ref} has been active for {int((now - started).total_seconds() // 60)}m "
                    "without completing",
                    "Check for stuck pods or set activeDeadlineSeconds", resource=job_ref, code="BATCH-005",
                )
            else:
                healthy += 1
        return ctx.ratio(healthy, len(jobs), detail=f"{healthy}/{len(jobs)} Jobs healthy",
                         recommendation="Fix failing or stuck Jobs")
