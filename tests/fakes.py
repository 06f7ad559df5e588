"""In-memory fakes for the external tools and HTTP collaborators."""

import json
from pathlib import Path

import httpx

from monodeploy.exceptions import CommandError
from monodeploy.schemas import EventContext, EventKind
from monodeploy.utils import ProcessResult

SHA = '0123456789abcdef0123456789abcdef01234567'


class FakeGit:
    def __init__(self, changed: list[str] | None = None, commit_count: int = 2):
        self.changed = changed or []
        self.count = commit_count
        self.diffs = []

    async def changed_files(self, base: str, head: str) -> list[str]:
        self.diffs.append((base, head))
        return list(self.changed)

    async def commit_count(self) -> int:
        return self.count


class FakeDocker:
    def __init__(self, fail_build_for: set[str] | None = None, fail_push: bool = False):
        self.fail_build_for = fail_build_for or set()
        self.fail_push = fail_push
        self.builds = []
        self.tags = []
        self.pushes = []
        self.logins = []

    async def login(self, registry: str, username: str, password: str):
        self.logins.append((registry, username))

    async def build(self, tag, context, dockerfile=None, build_args=None, labels=None):
        self.builds.append(
            {
                'tag': tag,
                'context': context,
                'dockerfile': dockerfile,
                'build_args': build_args,
                'labels': labels,
            }
        )
        if any(f'/{x}:' in tag for x in self.fail_build_for):
            raise CommandError(('docker', 'build'), 1, 'build failed')

    async def tag(self, source: str, target: str):
        self.tags.append((source, target))

    async def push(self, tag: str):
        if self.fail_push:
            raise CommandError(('docker', 'push'), 1, 'denied')
        self.pushes.append(tag)


class FakeTrivy:
    def __init__(self, fail_for: set[str] | None = None):
        self.fail_for = fail_for or set()
        self.scanned = []

    async def scan_sarif(self, image: str, output: Path):
        self.scanned.append(image)
        if any(f'/{x}:' in image for x in self.fail_for):
            raise CommandError(('trivy',), 1, 'scanner crashed')
        output.write_text(json.dumps({'version': '2.1.0', 'runs': [{'results': []}]}))

    async def scan_table(self, image: str) -> str:
        return f'{image}: 0 vulnerabilities'


class FakeSafety:
    def __init__(self, vulnerable: set[str] | None = None):
        self.vulnerable = vulnerable or set()
        self.checked = []

    async def check(self, manifest: Path) -> ProcessResult:
        self.checked.append(manifest)
        if manifest.parent.name in self.vulnerable:
            return ProcessResult(64, 'insecure-package found', '')
        return ProcessResult(0, 'No known security vulnerabilities found', '')


class FakeOracle:
    def __init__(self, versions: dict[str, str] | None = None):
        self.versions = versions or {}
        self.calls = []

    async def version(self, service: str) -> str:
        self.calls.append(('version', service))
        return self.versions.get(service, '1.2.3')

    async def tags(self, service: str, registry_root: str) -> list[str]:
        self.calls.append(('tags', service))
        version = self.versions.get(service, '1.2.3')
        major, minor, _ = version.split('.')
        return [
            f'{registry_root}/{service}:{version}',
            f'{registry_root}/{service}:{major}.{minor}',
            f'{registry_root}/{service}:{SHA[:7]}',
            f'{registry_root}/{service}:latest',
        ]


class FakeToolchain:
    def __init__(self, git=None, docker=None, trivy=None, safety=None, oracle=None):
        self.git = git or FakeGit()
        self.docker = docker or FakeDocker()
        self.trivy = trivy or FakeTrivy()
        self.safety = safety or FakeSafety()
        self.oracle = oracle or FakeOracle()


class RecordingTransport(httpx.MockTransport):
    """Mock transport answering every request with a queued status code.

    ``routes`` maps a URL path to a fixed (status, body) answer; dict bodies
    are sent as JSON, anything else as text.
    """

    def __init__(
        self,
        statuses: list[int] | None = None,
        default: int = 204,
        routes: dict[str, tuple[int, object]] | None = None,
    ):
        self.requests = []
        self.routes = routes or {}
        self.statuses = list(statuses or [])
        self.default = default
        super().__init__(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path in self.routes:
            status, body = self.routes[request.url.path]
            if isinstance(body, dict):
                return httpx.Response(status, json=body)
            return httpx.Response(status, text=str(body))
        if request.url.path.endswith('/code-scanning/sarifs'):
            return httpx.Response(202, json={'id': 'sarif-id'})
        if request.url.host == 'hooks.slack.test':
            return httpx.Response(200, text='ok')
        status = self.statuses.pop(0) if self.statuses else self.default
        return httpx.Response(status)

    def json_bodies(self, path_suffix: str) -> list[dict]:
        return [
            json.loads(x.content)
            for x in self.requests
            if x.url.path.endswith(path_suffix)
        ]


def make_repo(root: Path) -> Path:
    services = root / 'microservices'
    for name in ('svc-a', 'svc-b', 'orchestration-service'):
        (services / name).mkdir(parents=True)
        (services / name / 'Dockerfile').write_text('FROM scratch\n')
        (services / name / 'requirements.txt').write_text('requests==2.31.0\n')
    (services / 'svc-c' / 'docker').mkdir(parents=True)
    (services / 'svc-c' / 'docker' / 'Dockerfile').write_text('FROM scratch\n')
    (services / 'svc-c' / 'pyproject.toml').write_text('[project]\nname = "c"\n')
    (services / 'svc-d').mkdir()
    (services / 'svc-d' / 'main.py').write_text('print("d")\n')
    (services / 'README-assets').mkdir()
    (services / 'README.md').write_text('# Services\n')
    return root


def make_event(kind: EventKind = EventKind.push, ref: str = 'refs/heads/main', **kwargs):
    return EventContext(
        kind=kind,
        ref=ref,
        sha=kwargs.pop('sha', SHA),
        actor=kwargs.pop('actor', 'octocat'),
        run_id=kwargs.pop('run_id', '4242'),
        run_number=kwargs.pop('run_number', 17),
        **kwargs,
    )


INSTALLATION_PATH = '/repos/acme/microservice-gitops/installation'
INSTALLATION_ROUTES = {
    INSTALLATION_PATH: (200, {'id': 99}),
    '/app/installations/99/access_tokens': (201, {'token': 'installation-token'}),
}
