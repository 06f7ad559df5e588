import hashlib
import hmac
import json
import logging
import shutil
from pathlib import Path
from tempfile import mkdtemp
from time import time

from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from monodeploy.config import Config
from monodeploy.exceptions import ConfigurationError
from monodeploy.runner import Pipeline
from monodeploy.runner.utils import checkout_repo
from monodeploy.schemas import EventContext
from monodeploy.trigger import from_webhook

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS = ('push', 'pull_request')


async def run_delivery(config: Config, event: EventContext, payload: dict):
    s = time()
    # Redeliveries reuse the delivery id
    workdir = Path(mkdtemp(prefix=f'{event.run_id}-', dir=config.runs_dir))
    try:
        repository = payload['repository']
        await checkout_repo(
            config,
            'github',
            repository['full_name'],
            repository['clone_url'],
            event.sha,
            workdir,
        )
        run_config = config.model_copy(
            update={
                'repo_dir': workdir,
                'github_repository': config.github_repository
                or repository['full_name'],
            }
        )
        await Pipeline(run_config, event).run()
    except Exception:
        logger.exception(f'Run {event.run_id} failed')
        raise
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
        logger.info(f'Run {event.run_id} took {time() - s:.1f}s')


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check the ``X-Hub-Signature-256`` header of a delivery."""
    if not signature or not signature.startswith('sha256='):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.removeprefix('sha256='), expected)


def create_app(config: Config) -> Starlette:
    if not config.webhook_secret:
        raise ConfigurationError('webhook_secret is required to serve webhooks')

    async def webhook(request: Request):
        body = await request.body()
        if not verify_signature(
            config.webhook_secret, body, request.headers.get('x-hub-signature-256')
        ):
            logger.warning('Rejecting delivery with invalid signature')
            return Response(None, 401)
        event_name = request.headers.get('x-github-event', '')
        if event_name not in SUPPORTED_EVENTS:
            return Response(None, 204)
        try:
            payload = json.loads(body)
        except ValueError:
            return Response(None, 400)
        if event_name == 'push' and payload.get('deleted'):
            return Response(None, 204)
        try:
            event = from_webhook(
                event_name, payload, request.headers['x-github-delivery']
            )
        except (ConfigurationError, KeyError) as e:
            logger.warning(f'Ignoring {event_name} delivery: {e!r}')
            return Response(None, 400)
        return Response(
            None, 202, background=BackgroundTask(run_delivery, config, event, payload)
        )

    return Starlette(
        debug=config.debug, routes=[Route('/webhook', webhook, methods=['POST'])]
    )
