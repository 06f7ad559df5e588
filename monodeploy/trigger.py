import json
import logging
from pathlib import Path
from typing import Mapping

from monodeploy.exceptions import ConfigurationError
from monodeploy.schemas import EventContext, EventKind

logger = logging.getLogger(__name__)

EVENT_KINDS = {
    'push': EventKind.push,
    'pull_request': EventKind.pull_request,
    'schedule': EventKind.schedule,
    'workflow_dispatch': EventKind.manual,
    'manual': EventKind.manual,
}


def classify(event_name: str) -> EventKind:
    try:
        return EVENT_KINDS[event_name]
    except KeyError:
        raise ConfigurationError(f'Unsupported event: {event_name}')


def from_github_env(environ: Mapping[str, str]) -> EventContext:
    """Build the event context of a GitHub Actions run."""
    kind = classify(environ.get('GITHUB_EVENT_NAME', ''))
    payload = {}
    if event_path := environ.get('GITHUB_EVENT_PATH'):
        path = Path(event_path)
        if path.is_file():
            payload = json.loads(path.read_text())
    base_sha = head_sha = None
    if kind == EventKind.pull_request:
        pull_request = payload.get('pull_request') or {}
        base_sha = (pull_request.get('base') or {}).get('sha')
        head_sha = (pull_request.get('head') or {}).get('sha')
        if not base_sha or not head_sha:
            raise ConfigurationError('Pull request event without base/head sha')
    return EventContext(
        kind=kind,
        ref=environ.get('GITHUB_REF', ''),
        sha=environ.get('GITHUB_SHA', ''),
        base_sha=base_sha,
        head_sha=head_sha,
        actor=environ.get('GITHUB_ACTOR', ''),
        run_id=environ.get('GITHUB_RUN_ID', '0'),
        run_number=int(environ.get('GITHUB_RUN_NUMBER') or 0),
    )


def from_webhook(
    event_name: str, payload: dict, delivery_id: str, run_number: int = 0
) -> EventContext:
    """Build the event context of a GitHub webhook delivery.

    Only ``push`` and ``pull_request`` deliveries carry enough information to
    run the pipeline.
    """
    kind = classify(event_name)
    if kind == EventKind.push:
        return EventContext(
            kind=kind,
            ref=payload['ref'],
            sha=payload['after'],
            actor=(payload.get('pusher') or {}).get('name', ''),
            run_id=delivery_id,
            run_number=run_number,
        )
    if kind == EventKind.pull_request:
        pull_request = payload['pull_request']
        return EventContext(
            kind=kind,
            ref=f'refs/pull/{pull_request["number"]}/merge',
            sha=pull_request['head']['sha'],
            base_sha=pull_request['base']['sha'],
            head_sha=pull_request['head']['sha'],
            actor=(payload.get('sender') or {}).get('login', ''),
            run_id=delivery_id,
            run_number=run_number,
        )
    raise ConfigurationError(f'Event {event_name} cannot be delivered by webhook')
