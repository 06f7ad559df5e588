"""Thin async wrappers around the external command line tools."""

import logging
from pathlib import Path

from monodeploy.utils import (
    BASH,
    DOCKER,
    GIT,
    SAFETY,
    TRIVY,
    ProcessResult,
    async_check_output,
    async_run,
    split_csv,
)

logger = logging.getLogger(__name__)


class Git:
    repo_dir: Path

    def __init__(self, repo_dir: Path):
        self.repo_dir = repo_dir

    async def changed_files(self, base: str, head: str) -> list[str]:
        out = await async_check_output(
            GIT, 'diff', '--name-only', f'{base}..{head}', cwd=self.repo_dir
        )
        return [x for x in out.splitlines() if x]

    async def commit_count(self) -> int:
        out = await async_check_output(
            GIT, 'rev-list', '--count', 'HEAD', cwd=self.repo_dir
        )
        return int(out.strip())


class Docker:
    cwd: Path

    def __init__(self, cwd: Path):
        self.cwd = cwd

    async def login(self, registry: str, username: str, password: str):
        await async_check_output(
            DOCKER,
            'login',
            registry,
            '--username',
            username,
            '--password-stdin',
            cwd=self.cwd,
            input=password,
        )

    async def build(
        self,
        tag: str,
        context: Path,
        dockerfile: Path | None = None,
        build_args: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ):
        args = ['build', '-t', tag]
        if dockerfile is not None:
            args.extend(('-f', str(dockerfile)))
        for k, v in (build_args or {}).items():
            args.extend(('--build-arg', f'{k}={v}'))
        for k, v in (labels or {}).items():
            args.extend(('--label', f'{k}={v}'))
        args.append(str(context))
        await async_check_output(DOCKER, *args, cwd=self.cwd)

    async def tag(self, source: str, target: str):
        await async_check_output(DOCKER, 'tag', source, target, cwd=self.cwd)

    async def push(self, tag: str):
        await async_check_output(DOCKER, 'push', tag, cwd=self.cwd)


class Trivy:
    cwd: Path

    def __init__(self, cwd: Path):
        self.cwd = cwd

    async def scan_sarif(self, image: str, output: Path):
        await async_check_output(
            TRIVY,
            'image',
            '--format',
            'sarif',
            '--output',
            str(output),
            image,
            cwd=self.cwd,
        )

    async def scan_table(self, image: str) -> str:
        return await async_check_output(
            TRIVY, 'image', '--format', 'table', image, cwd=self.cwd
        )


class Safety:
    cwd: Path

    def __init__(self, cwd: Path):
        self.cwd = cwd

    async def check(self, manifest: Path) -> ProcessResult:
        # Non-zero exit means vulnerable packages were found
        return await async_run(SAFETY, 'check', '-r', str(manifest), cwd=self.cwd)


class VersionOracle:
    """Semantic version and tag source backed by the repository's version script."""

    script: str
    cwd: Path

    def __init__(self, script: str, cwd: Path):
        self.script = script
        self.cwd = cwd

    async def version(self, service: str) -> str:
        out = await async_check_output(
            BASH, self.script, 'version', service, cwd=self.cwd
        )
        return out.strip()

    async def tags(self, service: str, registry_root: str) -> list[str]:
        out = await async_check_output(
            BASH, self.script, 'tags', service, registry_root, cwd=self.cwd
        )
        return split_csv(out.strip())


class Toolchain:
    git: Git
    docker: Docker
    trivy: Trivy
    safety: Safety
    oracle: VersionOracle

    def __init__(self, repo_dir: Path, version_manager: str):
        self.git = Git(repo_dir)
        self.docker = Docker(repo_dir)
        self.trivy = Trivy(repo_dir)
        self.safety = Safety(repo_dir)
        self.oracle = VersionOracle(version_manager, repo_dir)
