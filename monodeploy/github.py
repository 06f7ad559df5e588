import base64
import gzip
import json
import logging
from datetime import datetime

import httpx
from joserfc import jwt

from monodeploy.config import Config
from monodeploy.exceptions import DispatchError

logger = logging.getLogger(__name__)


def get_token(config: Config) -> str:
    now = int(datetime.now().timestamp()) - 60
    data = {
        'iat': now,
        'exp': now + 60 * 10,
        'iss': config.gh_app_id,
    }
    return jwt.encode({'alg': 'RS256'}, data, config.gh_key)


async def get_installation_token(
    config: Config, owner: str, repo: str, transport: httpx.AsyncBaseTransport = None
) -> str:
    async with httpx.AsyncClient(
        base_url=config.github_api_url,
        headers={'Authorization': f'Bearer {get_token(config)}'},
        transport=transport,
    ) as app_client:
        installation_resp = await app_client.get(f'/repos/{owner}/{repo}/installation')
        installation_resp.raise_for_status()
        installation_id = installation_resp.json()['id']
        logger.debug(f'Minting token of installation {installation_id} for {owner}/{repo}')
        token_resp = await app_client.post(
            f'/app/installations/{installation_id}/access_tokens'
        )
        token_resp.raise_for_status()
        return token_resp.json()['token']


class GitHubClient:
    token: str | None
    client: httpx.AsyncClient

    def __init__(
        self,
        base_url: str,
        token: str | None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.token = token
        headers = {'Accept': 'application/vnd.github+json'}
        if token:
            headers['Authorization'] = f'Bearer {token}'
        self.client = httpx.AsyncClient(
            base_url=base_url, headers=headers, transport=transport
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.client.aclose()

    async def dispatch(
        self, owner: str, repo: str, event_type: str, client_payload: dict
    ):
        if not self.token:
            raise DispatchError('No credential configured for repository dispatch')
        if not owner:
            raise DispatchError('No owner configured for repository dispatch')
        try:
            resp = await self.client.post(
                f'/repos/{owner}/{repo}/dispatches',
                json={'event_type': event_type, 'client_payload': client_payload},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DispatchError(str(e)) from e

    async def upload_sarif(
        self, repository: str, commit_sha: str, ref: str, sarif: dict, category: str
    ):
        for run in sarif.get('runs', []):
            run['automationDetails'] = {'id': f'{category}/'}
        encoded = base64.b64encode(gzip.compress(json.dumps(sarif).encode())).decode()
        resp = await self.client.post(
            f'/repos/{repository}/code-scanning/sarifs',
            json={'commit_sha': commit_sha, 'ref': ref, 'sarif': encoded},
        )
        resp.raise_for_status()


async def gitops_token(
    config: Config, transport: httpx.AsyncBaseTransport = None
) -> str | None:
    """Credential for the GitOps repository.

    A configured token wins; otherwise an installation token of the GitHub App
    is minted. Returns None when neither is configured.
    """
    if config.gitops_token is not None:
        return config.gitops_token
    if config.gh_app_id is None or config.gh_key is None or not config.gitops_owner:
        return None
    return await get_installation_token(
        config, config.gitops_owner, config.gitops_repo, transport
    )
