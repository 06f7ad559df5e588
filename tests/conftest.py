from pathlib import Path

import pytest
from joserfc.jwk import RSAKey

from monodeploy.config import Config
from monodeploy.schemas import EventContext
from tests.fakes import make_event, make_repo


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    return make_repo(tmp_path / 'repo')


@pytest.fixture
def config(tmp_path: Path, repo: Path) -> Config:
    return Config(
        repo_dir=repo,
        data_dir=tmp_path / 'data',
        registry_username='acme',
        github_repository='acme/platform',
        github_token='gh-token',
        gitops_token='gitops-token',
        slack_webhook_url='https://hooks.slack.test/services/T000/B000',
        webhook_secret='hook-secret',
    )


@pytest.fixture(scope='session')
def app_key() -> RSAKey:
    return RSAKey.generate_key(2048)


@pytest.fixture
def app_config(config: Config, app_key: RSAKey) -> Config:
    """Config authenticating to the GitOps repository as a GitHub App."""
    return config.model_copy(
        update={'gitops_token': None, 'gh_app_id': 1234, 'gh_key': app_key}
    )


@pytest.fixture
def push_event() -> EventContext:
    return make_event()
