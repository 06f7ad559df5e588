import asyncio
import json
import logging
from pathlib import Path

from monodeploy.config import Config
from monodeploy.const import AUDIT_MANIFESTS, AUDITABLE_MANIFEST, SCAN_IMAGE_PREFIX
from monodeploy.github import GitHubClient
from monodeploy.runner.utils import build_context
from monodeploy.schemas import (
    AuditResult,
    EventContext,
    JobOutcome,
    ScanResult,
    ServiceChangeSet,
)
from monodeploy.toolchain import Docker, Safety, Trivy

logger = logging.getLogger(__name__)


class SecurityGate:
    config: Config
    docker: Docker
    trivy: Trivy
    safety: Safety
    github: GitHubClient | None

    def __init__(
        self,
        config: Config,
        docker: Docker,
        trivy: Trivy,
        safety: Safety,
        github: GitHubClient | None = None,
    ):
        self.config = config
        self.docker = docker
        self.trivy = trivy
        self.safety = safety
        self.github = github

    async def _upload_findings(
        self, event: EventContext, sarif_path: Path, category: str
    ) -> bool:
        if self.github is None or not self.config.github_repository:
            logger.info(f'Findings store not configured, not uploading {category}')
            return False
        try:
            await self.github.upload_sarif(
                self.config.github_repository,
                event.sha,
                event.ref,
                json.loads(sarif_path.read_text()),
                category,
            )
        except Exception as e:
            logger.warning(f'Could not upload {category} findings: {e}')
            return False
        return True

    async def scan_service(
        self, service: str, event: EventContext, output_dir: Path
    ) -> ScanResult:
        image = f'{SCAN_IMAGE_PREFIX}/{service}:latest'
        logger.info(f'Building {service} for security scanning')
        context, dockerfile = build_context(self.config, service)
        try:
            await self.docker.build(image, context, dockerfile)
            sarif_path = output_dir / f'trivy-results-{service}.sarif'
            await self.trivy.scan_sarif(image, sarif_path)
        except Exception as e:
            logger.error(f'Security scan of {service} failed: {e}')
            return ScanResult(service=service, outcome=JobOutcome.failure, error=str(e))

        uploaded = await self._upload_findings(event, sarif_path, f'trivy-{service}')
        try:
            table = await self.trivy.scan_table(image)
        except Exception as e:
            logger.warning(f'Could not render scan summary of {service}: {e}')
            table = None
        return ScanResult(
            service=service,
            outcome=JobOutcome.success,
            sarif_path=sarif_path,
            table=table,
            uploaded=uploaded,
        )

    async def scan(
        self, changes: ServiceChangeSet, event: EventContext
    ) -> tuple[JobOutcome, list[ScanResult]]:
        output_dir = self.config.scan_dir / event.run_id
        output_dir.mkdir(parents=True, exist_ok=True)
        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(self.scan_service(service, event, output_dir))
                for service in changes.services
            ]
        results = [x.result() for x in tasks]
        failed = [x.service for x in results if x.outcome == JobOutcome.failure]
        if failed:
            logger.warning(f'Security scan failed for: {", ".join(failed)}')
            return JobOutcome.failure, results
        return JobOutcome.success, results

    def discover_manifests(self) -> list[Path]:
        root = self.config.monitored_root
        if not root.is_dir():
            return []
        manifests = set()
        for name in AUDIT_MANIFESTS:
            manifests.update(root.rglob(name))
        return sorted(manifests)

    async def audit(self) -> tuple[JobOutcome, list[AuditResult]]:
        logger.info('Scanning Python dependencies for security vulnerabilities')
        results = []
        for manifest in self.discover_manifests():
            if manifest.name != AUDITABLE_MANIFEST:
                logger.info(f'No auditor for {manifest}, skipping')
                results.append(AuditResult(manifest=manifest, audited=False))
                continue
            logger.info(f'Scanning: {manifest}')
            res = await self.safety.check(manifest)
            if res.returncode:
                logger.warning(f'Dependency audit reported findings in {manifest}')
            results.append(
                AuditResult(
                    manifest=manifest,
                    audited=True,
                    passed=res.returncode == 0,
                    output=res.stdout,
                )
            )
        return JobOutcome.success, results
