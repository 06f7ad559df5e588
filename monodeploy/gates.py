"""Gate predicates deciding whether a stage runs.

Every gate is a pure function of the change set and the terminal outcomes of
upstream stages. A stage missing from ``outcomes`` is treated as skipped.
"""

from enum import Enum
from typing import Mapping

from monodeploy.schemas import JobOutcome, ServiceChangeSet, StageName

Outcomes = Mapping[StageName, JobOutcome]


def _outcome(outcomes: Outcomes, stage: StageName) -> JobOutcome:
    return outcomes.get(stage, JobOutcome.skipped)


def _deployable(changes: ServiceChangeSet) -> bool:
    return bool(changes.services) and changes.should_deploy


def vulnerability_scan_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    return bool(changes.services)


def dependency_check_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    return True


def versioning_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    # Scan findings never block a build, a broken dependency audit does
    return (
        _deployable(changes)
        and _outcome(outcomes, StageName.dependency_check) == JobOutcome.success
        and _outcome(outcomes, StageName.vulnerability_scan)
        in (JobOutcome.success, JobOutcome.failure)
    )


def gitops_update_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    return (
        _deployable(changes)
        and _outcome(outcomes, StageName.semantic_versioning) == JobOutcome.success
    )


def summary_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    return bool(changes.services)


def notify_success_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    return (
        _deployable(changes)
        and _outcome(outcomes, StageName.gitops_update) == JobOutcome.success
    )


FAILURE_GATING_STAGES = (
    StageName.dependency_check,
    StageName.semantic_versioning,
    StageName.gitops_update,
)


def failed_gating_stages(outcomes: Outcomes) -> list[StageName]:
    return [
        stage
        for stage in FAILURE_GATING_STAGES
        if _outcome(outcomes, stage) == JobOutcome.failure
    ]


def notify_failure_gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
    return _deployable(changes) and bool(failed_gating_stages(outcomes))


class NotificationKind(str, Enum):
    success = 'success'
    failure = 'failure'


def notification_kind(
    changes: ServiceChangeSet, outcomes: Outcomes
) -> NotificationKind | None:
    success = notify_success_gate(changes, outcomes)
    failure = notify_failure_gate(changes, outcomes)
    if success and failure:
        raise AssertionError('Success and failure notifications are exclusive')
    if success:
        return NotificationKind.success
    if failure:
        return NotificationKind.failure
    return None


GATES = {
    StageName.vulnerability_scan: vulnerability_scan_gate,
    StageName.dependency_check: dependency_check_gate,
    StageName.semantic_versioning: versioning_gate,
    StageName.gitops_update: gitops_update_gate,
    StageName.summary: summary_gate,
    StageName.notify_success: notify_success_gate,
    StageName.notify_failure: notify_failure_gate,
}
