import logging
from pathlib import Path
from typing import Iterable

from monodeploy.config import Config
from monodeploy.const import BUILD_DESCRIPTOR, DOC_MARKER, DOC_SUFFIX
from monodeploy.exceptions import CommandError
from monodeploy.schemas import EventContext, EventKind, ServiceChangeSet
from monodeploy.toolchain import Git

logger = logging.getLogger(__name__)


def is_documentation(name: str) -> bool:
    return name.startswith(DOC_MARKER) or name.endswith(DOC_SUFFIX)


def reduce_to_services(paths: Iterable[str], root: str) -> tuple[str, ...]:
    """Map repository paths to the service directories they belong to."""
    prefix = root.rstrip('/') + '/'
    services = set()
    for path in paths:
        if not path.startswith(prefix):
            continue
        name = path.removeprefix(prefix).split('/', 1)[0]
        if name and not is_documentation(name):
            services.add(name)
    return tuple(sorted(services))


class ChangeDetector:
    config: Config
    git: Git

    def __init__(self, config: Config, git: Git):
        self.config = config
        self.git = git

    @property
    def root(self) -> Path:
        return self.config.monitored_root

    def should_deploy(self, event: EventContext) -> bool:
        if event.kind == EventKind.push:
            return event.ref == f'refs/heads/{self.config.primary_branch}'
        return event.kind == EventKind.manual

    def service_dirs(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            f'{self.config.services_root}/{x.name}'
            for x in self.root.iterdir()
            if x.is_dir() and not x.name.startswith(DOC_MARKER)
        )

    def buildable_dirs(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return [
            x
            for x in self.service_dirs()
            if any((self.config.repo_dir / x).rglob(BUILD_DESCRIPTOR))
        ]

    async def _git_paths(self, base: str, head: str) -> list[str]:
        try:
            return await self.git.changed_files(base, head)
        except CommandError as e:
            logger.warning(f'Could not diff {base}..{head}: {e}')
            return []

    async def changed_paths(self, event: EventContext) -> list[str]:
        if event.kind == EventKind.pull_request:
            return await self._git_paths(event.base_sha, event.head_sha)
        if event.kind == EventKind.schedule:
            # Full sweep in place of change detection
            return self.buildable_dirs()[: self.config.schedule_sample_size]
        if event.kind == EventKind.manual:
            return self.service_dirs()[: self.config.manual_sample_size]
        try:
            commit_count = await self.git.commit_count()
        except CommandError as e:
            logger.warning(f'Could not count commits: {e}')
            return []
        if commit_count > 1:
            return await self._git_paths('HEAD~1', 'HEAD')
        return self.service_dirs()

    async def detect(self, event: EventContext) -> ServiceChangeSet:
        paths = await self.changed_paths(event)
        logger.debug(f'Changed paths: {paths}')
        changes = ServiceChangeSet(
            services=reduce_to_services(paths, self.config.services_root),
            should_deploy=self.should_deploy(event),
        )
        logger.info(f'Changed services: {",".join(changes.services) or "-"}')
        logger.info(f'Should deploy: {changes.should_deploy}')
        return changes
