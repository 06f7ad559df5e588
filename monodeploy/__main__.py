import os
import sys

import asyncio
import uvicorn

from monodeploy import set_debug
from monodeploy.config import load_config
from monodeploy.gates import failed_gating_stages
from monodeploy.runner import Pipeline
from monodeploy.runner.changes import ChangeDetector
from monodeploy.toolchain import Git
from monodeploy.trigger import from_github_env
from monodeploy.web import create_app


def write_outputs(outputs: dict[str, str]):
    if output_file := os.getenv('GITHUB_OUTPUT'):
        with open(output_file, 'a') as f:
            for k, v in outputs.items():
                f.write(f'{k}={v}\n')
    for k, v in outputs.items():
        print(f'{k}={v}')


def main(argv: list[str]) -> int:
    if len(argv) < 2 or argv[1] not in ('run', 'detect', 'server'):
        print('usage: python -m monodeploy run|detect|server', file=sys.stderr)
        return 2
    overrides = {}
    if summary_file := os.getenv('GITHUB_STEP_SUMMARY'):
        overrides['summary_file'] = summary_file
    if repository := os.getenv('GITHUB_REPOSITORY'):
        overrides['github_repository'] = repository
    config = load_config(**overrides)
    set_debug(config.debug)

    if argv[1] == 'server':
        uvicorn.run(create_app(config), host=config.host, port=config.port)
        return 0

    event = from_github_env(os.environ)
    if argv[1] == 'detect':
        detector = ChangeDetector(config, Git(config.repo_dir))
        changes = asyncio.run(detector.detect(event))
        write_outputs(changes.outputs())
        return 0

    summary = asyncio.run(Pipeline(config, event).run())
    outcomes = {k: v.outcome for k, v in summary.stages.items()}
    write_outputs(
        summary.changes.outputs()
        | {'version-info': summary.version_info}
        | {k.value: v.value for k, v in outcomes.items()}
    )
    return 1 if failed_gating_stages(outcomes) else 0


def cli():
    sys.exit(main(sys.argv))


if __name__ == '__main__':
    cli()
