from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from monodeploy import toolchain
from monodeploy.exceptions import CommandError
from monodeploy.toolchain import Docker, Git, VersionOracle
from monodeploy.utils import async_check_output, async_run, split_csv, unique


@pytest.fixture
def check_output(monkeypatch):
    mock = AsyncMock(return_value='')
    monkeypatch.setattr(toolchain, 'async_check_output', mock)
    return mock


class TestDocker:
    @pytest.mark.asyncio
    async def test_build_arguments(self, check_output, tmp_path):
        docker = Docker(tmp_path)

        await docker.build(
            'reg/svc:abc',
            tmp_path / 'ctx',
            tmp_path / 'ctx' / 'svc' / 'Dockerfile',
            build_args={'BUILD_VERSION': '1.0.0'},
            labels={'service': 'svc'},
        )

        args = check_output.await_args.args
        assert args[1:] == (
            'build',
            '-t',
            'reg/svc:abc',
            '-f',
            str(tmp_path / 'ctx' / 'svc' / 'Dockerfile'),
            '--build-arg',
            'BUILD_VERSION=1.0.0',
            '--label',
            'service=svc',
            str(tmp_path / 'ctx'),
        )

    @pytest.mark.asyncio
    async def test_login_passes_password_on_stdin(self, check_output, tmp_path):
        await Docker(tmp_path).login('docker.io', 'acme', 's3cret')

        assert 's3cret' not in check_output.await_args.args
        assert check_output.await_args.kwargs['input'] == 's3cret'


class TestGit:
    @pytest.mark.asyncio
    async def test_changed_files(self, check_output, tmp_path):
        check_output.return_value = 'microservices/a/x.py\n\nmicroservices/b/y.py\n'

        files = await Git(tmp_path).changed_files('base', 'head')

        assert files == ['microservices/a/x.py', 'microservices/b/y.py']
        assert 'base..head' in check_output.await_args.args

    @pytest.mark.asyncio
    async def test_commit_count(self, check_output, tmp_path):
        check_output.return_value = '42\n'

        assert await Git(tmp_path).commit_count() == 42


class TestVersionOracle:
    @pytest.mark.asyncio
    async def test_version_and_tags(self, check_output, tmp_path):
        oracle = VersionOracle('scripts/version.sh', tmp_path)
        check_output.return_value = '1.2.3\n'

        assert await oracle.version('svc') == '1.2.3'

        check_output.return_value = 'reg/svc:1.2.3, reg/svc:1.2,reg/svc:latest\n'

        assert await oracle.tags('svc', 'reg') == [
            'reg/svc:1.2.3',
            'reg/svc:1.2',
            'reg/svc:latest',
        ]
        assert check_output.await_args.args[1:] == (
            'scripts/version.sh',
            'tags',
            'svc',
            'reg',
        )


class TestUtils:
    @pytest.mark.asyncio
    async def test_async_run_captures_output(self, tmp_path):
        res = await async_run('sh', '-c', 'cat; echo err >&2; exit 3', cwd=tmp_path, input='hi')

        assert res.returncode == 3
        assert res.stdout == 'hi'
        assert res.stderr == 'err\n'

    @pytest.mark.asyncio
    async def test_async_check_output_raises(self, tmp_path):
        with pytest.raises(CommandError) as e:
            await async_check_output('sh', '-c', 'exit 2', cwd=Path(tmp_path))

        assert e.value.returncode == 2

    def test_split_csv(self):
        assert split_csv(' a, b,,c ') == ['a', 'b', 'c']
        assert split_csv('') == []

    def test_unique_keeps_order(self):
        assert unique(['b', 'a', 'b', 'c', 'a']) == ['b', 'a', 'c']
