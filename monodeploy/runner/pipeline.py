import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from monodeploy.config import Config
from monodeploy.gates import (
    GATES,
    NotificationKind,
    Outcomes,
    notification_kind,
)
from monodeploy.github import GitHubClient
from monodeploy.runner.changes import ChangeDetector
from monodeploy.runner.dispatch import GitOpsDispatcher
from monodeploy.runner.report import Notifier, Reporter
from monodeploy.runner.security import SecurityGate
from monodeploy.runner.versioning import VersionBuilder
from monodeploy.schemas import (
    AuditResult,
    DispatchResult,
    EventContext,
    JobOutcome,
    RunSummary,
    ScanResult,
    ServiceChangeSet,
    StageName,
    StageResult,
    VersionRecord,
)
from monodeploy.toolchain import Toolchain

logger = logging.getLogger(__name__)

Gate = Callable[[ServiceChangeSet, Outcomes], bool]


@dataclass(frozen=True)
class StageDef:
    name: StageName
    needs: tuple[StageName, ...]
    run: Callable[[], Awaitable[JobOutcome]]
    gate: Gate | None = None


_UPSTREAM = (
    StageName.detect_changes,
    StageName.vulnerability_scan,
    StageName.dependency_check,
    StageName.semantic_versioning,
    StageName.gitops_update,
)


class Pipeline:
    config: Config
    event: EventContext
    toolchain: Toolchain
    transport: httpx.AsyncBaseTransport | None

    changes: ServiceChangeSet | None
    scans: list[ScanResult]
    audits: list[AuditResult]
    versions: list[VersionRecord]
    dispatch_result: DispatchResult | None
    report: str | None
    results: dict[StageName, StageResult]

    def __init__(
        self,
        config: Config,
        event: EventContext,
        toolchain: Toolchain | None = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.config = config
        self.event = event
        self.toolchain = toolchain or Toolchain(config.repo_dir, config.version_manager)
        self.transport = transport
        self.changes = None
        self.scans = []
        self.audits = []
        self.versions = []
        self.dispatch_result = None
        self.report = None
        self.results = {}
        self._tasks = {}

    @property
    def outcomes(self) -> dict[StageName, JobOutcome]:
        return {k: v.outcome for k, v in self.results.items()}

    def summary(self) -> RunSummary:
        return RunSummary(
            event=self.event,
            changes=self.changes or ServiceChangeSet(),
            stages=dict(self.results),
            versions=self.versions,
            scans=self.scans,
            audits=self.audits,
            dispatch=self.dispatch_result,
        )

    def stages(self, github: GitHubClient) -> list[StageDef]:
        security = SecurityGate(
            self.config,
            self.toolchain.docker,
            self.toolchain.trivy,
            self.toolchain.safety,
            github,
        )
        builder = VersionBuilder(
            self.config, self.toolchain.docker, self.toolchain.oracle
        )
        dispatcher = GitOpsDispatcher(self.config, self.transport)
        reporter = Reporter(self.config)
        notifier = Notifier(self.config, self.transport)

        async def detect_changes():
            detector = ChangeDetector(self.config, self.toolchain.git)
            self.changes = await detector.detect(self.event)
            return JobOutcome.success

        async def vulnerability_scan():
            outcome, self.scans = await security.scan(self.changes, self.event)
            return outcome

        async def dependency_check():
            outcome, self.audits = await security.audit()
            return outcome

        async def semantic_versioning():
            await builder.build(self.changes, self.event, self.versions)
            return JobOutcome.success

        async def gitops_update():
            self.dispatch_result = await dispatcher.dispatch(self.versions, self.event)
            if self.dispatch_result.succeeded:
                return JobOutcome.success
            return JobOutcome.failure

        async def summary():
            self.report = reporter.report(self.summary())
            return JobOutcome.success

        def notify(kind: NotificationKind):
            async def run():
                await notifier.notify(kind, self.summary())
                return JobOutcome.success

            def gate(changes: ServiceChangeSet, outcomes: Outcomes) -> bool:
                return notification_kind(changes, outcomes) == kind

            return run, gate

        notify_success, notify_success_gate = notify(NotificationKind.success)
        notify_failure, notify_failure_gate = notify(NotificationKind.failure)

        return [
            StageDef(StageName.detect_changes, (), detect_changes),
            StageDef(
                StageName.vulnerability_scan,
                (StageName.detect_changes,),
                vulnerability_scan,
                GATES[StageName.vulnerability_scan],
            ),
            StageDef(
                StageName.dependency_check,
                (),
                dependency_check,
                GATES[StageName.dependency_check],
            ),
            StageDef(
                StageName.semantic_versioning,
                (
                    StageName.detect_changes,
                    StageName.vulnerability_scan,
                    StageName.dependency_check,
                ),
                semantic_versioning,
                GATES[StageName.semantic_versioning],
            ),
            StageDef(
                StageName.gitops_update,
                (StageName.detect_changes, StageName.semantic_versioning),
                gitops_update,
                GATES[StageName.gitops_update],
            ),
            StageDef(StageName.summary, _UPSTREAM, summary, GATES[StageName.summary]),
            StageDef(
                StageName.notify_success, _UPSTREAM, notify_success, notify_success_gate
            ),
            StageDef(
                StageName.notify_failure, _UPSTREAM, notify_failure, notify_failure_gate
            ),
        ]

    async def run_stage(self, stage: StageDef):
        await asyncio.gather(*(self._tasks[x] for x in stage.needs))
        try:
            if stage.gate is not None and not stage.gate(
                self.changes or ServiceChangeSet(), self.outcomes
            ):
                logger.info(f'Skipping {stage.name.value}')
                self.results[stage.name] = StageResult(
                    stage=stage.name, outcome=JobOutcome.skipped
                )
                return
            logger.info(f'Running {stage.name.value}')
            outcome = await stage.run()
        except Exception as e:
            logger.exception(f'Stage {stage.name.value} failed')
            self.results[stage.name] = StageResult(
                stage=stage.name, outcome=JobOutcome.failure, error=str(e)
            )
            return
        logger.info(f'Stage {stage.name.value} finished: {outcome.value}')
        self.results[stage.name] = StageResult(stage=stage.name, outcome=outcome)

    async def run(self) -> RunSummary:
        logger.info(
            f'Pipeline run {self.event.run_id} for {self.event.kind.value} '
            f'on {self.event.ref_name} ({self.event.short_sha})'
        )
        async with GitHubClient(
            self.config.github_api_url, self.config.github_token, self.transport
        ) as github:
            self._tasks = {}
            for stage in self.stages(github):
                self._tasks[stage.name] = asyncio.create_task(self.run_stage(stage))
            await asyncio.gather(*self._tasks.values())
        return self.summary()
