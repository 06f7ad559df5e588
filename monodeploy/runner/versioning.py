import logging
from datetime import datetime, timezone

from monodeploy.config import Config
from monodeploy.runner.utils import build_context, has_build_descriptor
from monodeploy.schemas import EventContext, ServiceChangeSet, VersionRecord
from monodeploy.toolchain import Docker, VersionOracle
from monodeploy.utils import unique

logger = logging.getLogger(__name__)


class VersionBuilder:
    config: Config
    docker: Docker
    oracle: VersionOracle

    def __init__(self, config: Config, docker: Docker, oracle: VersionOracle):
        self.config = config
        self.docker = docker
        self.oracle = oracle

    def labels(
        self, service: str, version: str, event: EventContext, created: str
    ) -> dict[str, str]:
        return {
            'org.opencontainers.image.version': version,
            'org.opencontainers.image.revision': event.sha,
            'org.opencontainers.image.source': (
                f'{self.config.github_server_url}/{self.config.github_repository}'
            ),
            'org.opencontainers.image.created': created,
            'org.opencontainers.image.title': service,
            'org.opencontainers.image.description': f'AppContainer Service - {service}',
            'version': version,
            'commit': event.sha,
            'commit-short': event.short_sha,
            'branch': event.ref_name,
            'service': service,
            'build-date': created,
            'build-number': str(event.run_number),
            'workflow-run': event.run_id,
        }

    async def resolve(self, service: str, event: EventContext) -> VersionRecord:
        version = await self.oracle.version(service)
        oracle_tags = await self.oracle.tags(service, self.config.registry_root)
        primary_tag = f'{self.config.registry_root}/{service}:{event.short_sha}'
        logger.info(f'Service: {service}, Version: {version}')
        logger.info(f'Container tags: {",".join(oracle_tags)}')
        return VersionRecord(
            service=service,
            semantic_version=version,
            tags=tuple(unique([primary_tag, *oracle_tags])),
            primary_tag=primary_tag,
        )

    async def publish(self, record: VersionRecord, event: EventContext):
        created = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
        context, dockerfile = build_context(self.config, record.service)
        logger.info(f'Building {record.service} with version {record.semantic_version}')
        await self.docker.build(
            record.primary_tag,
            context,
            dockerfile,
            build_args={
                'BUILD_VERSION': record.semantic_version,
                'BUILD_COMMIT': event.short_sha,
                'BUILD_DATE': created,
            },
            labels=self.labels(
                record.service, record.semantic_version, event, created
            ),
        )
        for tag in record.tags:
            if tag != record.primary_tag:
                logger.debug(f'Tagging: {tag}')
                await self.docker.tag(record.primary_tag, tag)
        for tag in record.tags:
            logger.info(f'Pushing: {tag}')
            await self.docker.push(tag)
        logger.info(
            f'Successfully built and pushed {record.service} '
            f'with version {record.semantic_version}'
        )

    async def build(
        self,
        changes: ServiceChangeSet,
        event: EventContext,
        records: list[VersionRecord] | None = None,
    ) -> list[VersionRecord]:
        """Version, build and push every buildable service.

        Raises on the first failing service, leaving later services untouched.
        Each published service is appended to ``records`` as soon as its tags
        are pushed, so the caller keeps them when a later service fails.
        """
        if records is None:
            records = []
        if self.config.registry_password:
            await self.docker.login(
                self.config.registry,
                self.config.registry_username,
                self.config.registry_password,
            )
        for service in changes.services:
            if not has_build_descriptor(self.config, service):
                logger.info(f'{service} has no build descriptor, skipping')
                continue
            record = await self.resolve(service, event)
            await self.publish(record, event)
            records.append(record)
        return records
