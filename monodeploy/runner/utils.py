from pathlib import Path

from monodeploy.config import Config
from monodeploy.const import BUILD_DESCRIPTOR
from monodeploy.utils import async_check_output, GIT


async def checkout_repo(
    config: Config, provider: str, repo_name: str, clone_url: str, sha: str, at: Path
):
    repo_path = config.repos_dir / provider / repo_name
    if repo_path.is_dir():
        await async_check_output(
            GIT, 'remote', 'set-url', 'origin', clone_url, cwd=repo_path
        )
        await async_check_output(GIT, 'fetch', cwd=repo_path)
    else:
        repo_path.mkdir(parents=True)
        await async_check_output(
            GIT,
            'clone',
            '--mirror',
            clone_url,
            '.',
            cwd=repo_path,
        )
    await async_check_output(
        GIT,
        'clone',
        repo_path,
        '.',
        cwd=at,
    )
    await async_check_output(
        GIT,
        'switch',
        '-d',
        sha,
        cwd=at,
    )


def build_context(config: Config, service: str) -> tuple[Path, Path | None]:
    """Return the build context and explicit build file of a service.

    Services sharing code with their siblings build from the monitored root;
    the rest build from their own directory with the default build file.
    """
    if service in config.shared_context_services:
        return config.monitored_root, config.monitored_root / service / BUILD_DESCRIPTOR
    return config.monitored_root / service, None


def has_build_descriptor(config: Config, service: str) -> bool:
    return (config.monitored_root / service / BUILD_DESCRIPTOR).is_file()
