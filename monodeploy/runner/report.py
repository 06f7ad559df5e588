import logging

import httpx

from monodeploy.config import Config
from monodeploy.gates import NotificationKind, failed_gating_stages
from monodeploy.schemas import JobOutcome, RunSummary, StageName

logger = logging.getLogger(__name__)

FAILED_JOB_LABELS = {
    StageName.dependency_check: 'Dependency Check',
    StageName.semantic_versioning: 'Build & Versioning',
    StageName.gitops_update: 'GitOps Deployment',
}


def security_status(outcome: JobOutcome) -> str:
    if outcome == JobOutcome.success:
        return '✅ Passed'
    if outcome == JobOutcome.failure:
        return '⚠️ Issues Found'
    return '⏭️ Skipped'


class Reporter:
    config: Config

    def __init__(self, config: Config):
        self.config = config

    def render(self, summary: RunSummary) -> str:
        event = summary.event
        lines = [
            '## 🚀 Comprehensive GitOps Pipeline Results',
            '',
            '### 🔍 Security Scanning',
            f'- **Vulnerability Scan**: {summary.outcome(StageName.vulnerability_scan).value}',
            f'- **Dependency Check**: {summary.outcome(StageName.dependency_check).value}',
        ]
        for scan in summary.scans:
            lines.append(f'  - `{scan.service}`: {scan.outcome.value}')
        findings = [x for x in summary.audits if x.audited and not x.passed]
        for audit in findings:
            lines.append(f'  - findings in `{audit.manifest}`')
        lines += [
            '',
            '### 🏗️ Build & Deploy',
            f'- **Changed Services**: {",".join(summary.changes.services)}',
            f'- **Semantic Versioning**: {summary.outcome(StageName.semantic_versioning).value}',
            f'- **GitOps Update**: {summary.outcome(StageName.gitops_update).value}',
            f'- **Version Info**: {summary.version_info}',
            '',
            '### 📋 Pipeline Details',
            f'- **Source Commit**: `{event.sha}`',
            f'- **Branch**: `{event.ref_name}`',
            f'- **Build Number**: `{event.run_number}`',
            f'- **GitOps Repo**: [{self.config.gitops_repo}]({self.config.gitops_repo_url})',
        ]
        if summary.dispatch and summary.dispatch.manual_reconciliation:
            lines += [
                '',
                '### ❌ Manual GitOps Update Required',
                'All dispatch attempts failed. Update these images manually:',
                *(f'- `{x}`' for x in summary.dispatch.manual_reconciliation),
            ]
        return '\n'.join(lines) + '\n'

    def report(self, summary: RunSummary) -> str:
        text = self.render(summary)
        logger.info(f'Run summary:\n{text}')
        if self.config.summary_file is not None:
            with self.config.summary_file.open('a', encoding='utf-8') as f:
                f.write(text)
        return text


class Notifier:
    config: Config
    transport: httpx.AsyncBaseTransport | None

    def __init__(self, config: Config, transport: httpx.AsyncBaseTransport = None):
        self.config = config
        self.transport = transport

    @property
    def run_url(self) -> str:
        return f'{self.config.github_server_url}/{self.config.github_repository}/actions/runs/'

    @staticmethod
    def _field(text: str) -> dict:
        return {'type': 'mrkdwn', 'text': text}

    @staticmethod
    def _button(text: str, url: str) -> dict:
        return {
            'type': 'button',
            'text': {'type': 'plain_text', 'text': text},
            'url': url,
        }

    def message(self, kind: NotificationKind, summary: RunSummary) -> dict:
        event = summary.event
        services = ','.join(summary.changes.services)
        security = security_status(summary.outcome(StageName.vulnerability_scan))
        run_url = self.run_url + event.run_id
        if kind == NotificationKind.success:
            header = '🎉 AppContainer Deployment Successful'
            fields = [
                self._field(f'*Services:* {services}'),
                self._field(f'*Branch:* {event.ref_name}'),
                self._field(f'*Commit:* `{event.sha}`'),
                self._field(f'*Build #:* {event.run_number}'),
            ]
            body = (
                '✅ *Pipeline Status:* Security → Build → GitOps → Complete!\n\n'
                f'📊 *Security Scans:* {security}\n'
                f'📦 *Version Info:* {summary.version_info}\n'
                '🔗 *GitOps:* Repository dispatch sent successfully'
            )
            buttons = [
                self._button('View GitHub Action', run_url),
                self._button('GitOps Repository', self.config.gitops_repo_url),
            ]
        else:
            header = '❌ AppContainer Deployment Failed'
            fields = [
                self._field(f'*Services:* {services}'),
                self._field(f'*Branch:* {event.ref_name}'),
                self._field(f'*Commit:* `{event.sha}`'),
                self._field(f'*Triggered by:* {event.actor}'),
            ]
            outcomes = {k: v.outcome for k, v in summary.stages.items()}
            failed_jobs = ''.join(
                f'• {FAILED_JOB_LABELS[x]}\n' for x in failed_gating_stages(outcomes)
            )
            body = (
                '❌ *Pipeline Failed*\n\n'
                f'*Failed Jobs:*\n{failed_jobs}\n'
                f'*Security Status:* {security}\n\n'
                'Please check the logs for details.'
            )
            buttons = [self._button('View Failed Action', run_url)]
        return {
            'blocks': [
                {'type': 'header', 'text': {'type': 'plain_text', 'text': header}},
                {'type': 'section', 'fields': fields},
                {'type': 'section', 'text': self._field(body)},
                {'type': 'actions', 'elements': buttons},
            ]
        }

    async def notify(self, kind: NotificationKind, summary: RunSummary) -> bool:
        if not self.config.slack_webhook_url:
            logger.info('Slack webhook not configured, skipping notification')
            return False
        async with httpx.AsyncClient(transport=self.transport) as client:
            resp = await client.post(
                self.config.slack_webhook_url, json=self.message(kind, summary)
            )
            resp.raise_for_status()
        logger.info(f'Sent {kind.value} notification')
        return True
