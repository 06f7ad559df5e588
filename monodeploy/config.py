import os
import yaml
from joserfc.jwk import RSAKey
from pathlib import Path
from pydantic import BeforeValidator, AfterValidator, ValidationError, field_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Annotated
from yaml import YAMLError

from monodeploy.const import GH_API_BASE, GH_SERVER_URL
from monodeploy.exceptions import ConfigurationError


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix='MONODEPLOY_', arbitrary_types_allowed=True
    )

    host: str = '127.0.0.1'
    port: int = 8000
    debug: bool = False

    repo_dir: Annotated[Path, AfterValidator(lambda path: path.absolute())] = Path(
        '.'
    )
    services_root: str = 'microservices'
    primary_branch: str = 'main'
    shared_context_services: list[str] = ['orchestration-service']
    schedule_sample_size: int = 3
    manual_sample_size: int = 5

    registry: str = 'docker.io'
    registry_username: str
    registry_password: str | None = None
    version_manager: str = '.github/scripts/version-manager.sh'

    github_repository: str | None = None
    github_server_url: str = GH_SERVER_URL
    github_api_url: str = GH_API_BASE
    github_token: str | None = None

    gitops_owner: str | None = None
    gitops_repo: str = 'microservice-gitops'
    gitops_token: str | None = None
    gh_app_id: int | None = None
    gh_key: Annotated[
        RSAKey | None,
        BeforeValidator(
            lambda data: RSAKey.import_key(data)
            if isinstance(data, (str, bytes, dict))
            else data
        ),
    ] = None

    slack_webhook_url: str | None = None
    webhook_secret: str | None = None
    summary_file: Path | None = None

    data_dir: Annotated[Path, AfterValidator(lambda path: path.absolute())] = Path(
        os.getenv('XDG_DATA_HOME') or os.path.expanduser('~/.local/share')
    ) / 'monodeploy'
    runs_dir: Path = None
    repos_dir: Path = None
    scan_dir: Path = None

    # noinspection PyNestedDecorators
    @field_validator('gitops_owner', mode='before')
    @classmethod
    def default_gitops_owner(cls, v: str | None, info: ValidationInfo):
        if v is not None:
            return v
        repository = info.data.get('github_repository')
        if repository and '/' in repository:
            return repository.split('/', 1)[0]
        return None

    # noinspection PyNestedDecorators
    @field_validator('runs_dir', 'repos_dir', 'scan_dir', mode='before')
    @classmethod
    def default_dirs(cls, v: Path | None, info: ValidationInfo):
        if 'data_dir' not in info.data:
            # pydantic won't show errors until everything is validated
            # we don't want to show all _dir fields as errored if data_dir is not set
            return ''
        if v is None:
            dirname = info.field_name.removesuffix('_dir').replace('_', '-')
            res = info.data['data_dir'] / dirname
        else:
            res = Path(v)
        res.mkdir(parents=True, exist_ok=True)
        return res

    @property
    def registry_root(self) -> str:
        return f'{self.registry}/{self.registry_username}'

    @property
    def monitored_root(self) -> Path:
        return self.repo_dir / self.services_root

    @property
    def gitops_repo_url(self) -> str:
        return f'{self.github_server_url}/{self.gitops_owner}/{self.gitops_repo}'


def load_config(config_file: Path | None = None, **overrides) -> Config:
    if config_file is None:
        config_home = Path(
            os.getenv('XDG_CONFIG_HOME') or os.path.expanduser('~/.config')
        )
        config_file = config_home / 'monodeploy' / 'config.yml'
    if config_file.is_file():
        try:
            config_values = yaml.safe_load(config_file.read_text()) or {}
        except YAMLError as e:
            raise ConfigurationError(str(e))
    else:
        config_values = {}
    try:
        return Config(**(config_values | overrides), _env_file='.env')
    except ValidationError as e:
        raise ConfigurationError(str(e))


__all__ = ['Config', 'load_config']
