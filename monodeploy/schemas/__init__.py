import json
from enum import Enum
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(str, Enum):
    push = 'push'
    pull_request = 'pull_request'
    schedule = 'schedule'
    manual = 'manual'


class JobOutcome(str, Enum):
    success = 'success'
    failure = 'failure'
    skipped = 'skipped'


class StageName(str, Enum):
    detect_changes = 'detect-changes'
    vulnerability_scan = 'vulnerability-scan'
    dependency_check = 'dependency-check'
    semantic_versioning = 'semantic-versioning'
    gitops_update = 'trigger-gitops-update'
    summary = 'deployment-summary'
    notify_success = 'notify-success'
    notify_failure = 'notify-failure'


class EventContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    ref: str
    sha: str
    base_sha: str | None = None
    head_sha: str | None = None
    actor: str
    run_id: str
    run_number: int

    @property
    def ref_name(self) -> str:
        for prefix in ('refs/heads/', 'refs/tags/'):
            if self.ref.startswith(prefix):
                return self.ref.removeprefix(prefix)
        return self.ref

    @property
    def short_sha(self) -> str:
        return self.sha[:7]


class ServiceChangeSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    services: tuple[str, ...] = ()
    should_deploy: bool = False

    # noinspection PyNestedDecorators
    @field_validator('services')
    @classmethod
    def v_services(cls, v: tuple[str, ...]):
        return tuple(sorted(set(v)))

    def __bool__(self):
        return bool(self.services)

    def outputs(self) -> dict[str, str]:
        return {
            'changed-services': ','.join(self.services),
            'changed-services-json': json.dumps(list(self.services)),
            'should-deploy': 'true' if self.should_deploy else 'false',
        }

    @classmethod
    def from_outputs(cls, outputs: dict[str, str]) -> 'ServiceChangeSet':
        return cls(
            services=tuple(json.loads(outputs.get('changed-services-json') or '[]')),
            should_deploy=outputs.get('should-deploy') == 'true',
        )


class StageResult(BaseModel):
    stage: StageName
    outcome: JobOutcome
    error: str | None = None


class ScanResult(BaseModel):
    service: str
    outcome: JobOutcome
    sarif_path: Path | None = None
    table: str | None = None
    uploaded: bool = False
    error: str | None = None


class AuditResult(BaseModel):
    manifest: Path
    audited: bool
    passed: bool | None = None
    output: str = ''


class VersionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    semantic_version: str
    tags: tuple[str, ...] = Field(min_length=1)
    primary_tag: str


class DeploymentTarget(BaseModel):
    image: str
    commit: str


class DeploymentPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    deployments: dict[str, DeploymentTarget]
    version_info: str
    source_commit: str
    commit_short: str
    registry: str
    branch: str
    run_id: str

    @property
    def services(self) -> str:
        return ','.join(self.deployments)

    @property
    def images(self) -> list[str]:
        return [x.image for x in self.deployments.values()]

    def primary_client_payload(self) -> dict[str, str]:
        return {
            'services': self.services,
            'version_info': self.version_info,
            'source_commit': self.source_commit,
            'registry': self.registry,
            'branch': self.branch,
            'workflow_run': self.run_id,
            'deployments': json.dumps(
                {k: v.model_dump() for k, v in self.deployments.items()}
            ),
        }

    def fallback_client_payload(self) -> dict[str, str]:
        return {
            'services': self.services,
            'source_commit': self.source_commit,
            'commit_sha': self.commit_short,
            'registry': self.registry,
        }


class DispatchAttempt(BaseModel):
    strategy: str
    event_type: str
    succeeded: bool
    error: str | None = None


class DispatchResult(BaseModel):
    attempts: list[DispatchAttempt] = []
    delivered_by: str | None = None
    manual_reconciliation: list[str] = []

    @property
    def succeeded(self) -> bool:
        return self.delivered_by is not None


class RunSummary(BaseModel):
    event: EventContext
    changes: ServiceChangeSet
    stages: dict[StageName, StageResult]
    versions: list[VersionRecord] = []
    scans: list[ScanResult] = []
    audits: list[AuditResult] = []
    dispatch: DispatchResult | None = None

    def outcome(self, stage: StageName) -> JobOutcome:
        if stage not in self.stages:
            return JobOutcome.skipped
        return self.stages[stage].outcome

    @property
    def version_info(self) -> str:
        return version_info(self.versions)


def version_info(versions: list[VersionRecord]) -> str:
    return ','.join(f'{x.service}:{x.semantic_version}' for x in versions)
