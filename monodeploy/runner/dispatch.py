import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

import httpx

from monodeploy.config import Config
from monodeploy.const import FALLBACK_EVENT_TYPE, PRIMARY_EVENT_TYPE
from monodeploy.github import GitHubClient, gitops_token
from monodeploy.schemas import (
    DeploymentPayload,
    DeploymentTarget,
    DispatchAttempt,
    DispatchResult,
    EventContext,
    VersionRecord,
    version_info,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    event_type: str
    build: Callable[[T], dict]


async def send_degrading(
    strategies: Sequence[Strategy[T]],
    subject: T,
    send: Callable[[str, dict], Awaitable[None]],
) -> DispatchResult:
    """Try each strategy in order until one is delivered."""
    result = DispatchResult()
    for strategy in strategies:
        try:
            await send(strategy.event_type, strategy.build(subject))
        except Exception as e:
            logger.error(f'Dispatch via {strategy.name} failed: {e!r}')
            result.attempts.append(
                DispatchAttempt(
                    strategy=strategy.name,
                    event_type=strategy.event_type,
                    succeeded=False,
                    error=str(e) or repr(e),
                )
            )
            continue
        result.attempts.append(
            DispatchAttempt(
                strategy=strategy.name, event_type=strategy.event_type, succeeded=True
            )
        )
        result.delivered_by = strategy.name
        break
    return result


DEPLOYMENT_STRATEGIES: list[Strategy[DeploymentPayload]] = [
    Strategy('primary', PRIMARY_EVENT_TYPE, DeploymentPayload.primary_client_payload),
    Strategy('fallback', FALLBACK_EVENT_TYPE, DeploymentPayload.fallback_client_payload),
]


class GitOpsDispatcher:
    config: Config
    transport: httpx.AsyncBaseTransport | None

    def __init__(self, config: Config, transport: httpx.AsyncBaseTransport = None):
        self.config = config
        self.transport = transport

    def payload(
        self, versions: list[VersionRecord], event: EventContext
    ) -> DeploymentPayload:
        return DeploymentPayload(
            deployments={
                x.service: DeploymentTarget(image=x.primary_tag, commit=event.short_sha)
                for x in versions
            },
            version_info=version_info(versions),
            source_commit=event.sha,
            commit_short=event.short_sha,
            registry=self.config.registry_root,
            branch=event.ref_name,
            run_id=event.run_id,
        )

    async def send(self, event_type: str, client_payload: dict):
        # Installation tokens are short-lived, mint one per attempt
        token = await gitops_token(self.config, self.transport)
        async with GitHubClient(
            self.config.github_api_url, token, self.transport
        ) as github:
            await github.dispatch(
                self.config.gitops_owner,
                self.config.gitops_repo,
                event_type,
                client_payload,
            )

    async def dispatch(
        self, versions: list[VersionRecord], event: EventContext
    ) -> DispatchResult:
        payload = self.payload(versions, event)
        logger.info(f'Services to update: {payload.services}')
        logger.info(f'Version info: {payload.version_info}')
        result = await send_degrading(DEPLOYMENT_STRATEGIES, payload, self.send)
        if result.succeeded:
            logger.info(f'GitOps repository dispatch sent via {result.delivered_by}')
        else:
            result.manual_reconciliation = payload.images
            logger.error(
                'All dispatch methods failed, manual GitOps update required:\n'
                + '\n'.join(f'  {x}' for x in payload.images)
            )
        return result
