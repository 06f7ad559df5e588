from asyncio import create_subprocess_exec

import logging
import os
import shutil
from pathlib import Path
from subprocess import DEVNULL, PIPE
from typing import Iterable, NamedTuple

from monodeploy.exceptions import CommandError

logger = logging.getLogger(__name__)


def get_bin(name: str) -> str:
    abspath = shutil.which(name)
    if abspath and Path(abspath).is_symlink():
        return os.readlink(abspath)
    else:
        return name


BASH = get_bin('bash')
GIT = get_bin('git')
DOCKER = get_bin('docker')
TRIVY = get_bin('trivy')
SAFETY = get_bin('safety')


class ProcessResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str


async def async_run(
    *args: str | Path, cwd: Path | str, input: str | None = None
) -> ProcessResult:
    logger.debug(f'Running {args}')
    p = await create_subprocess_exec(
        *args,
        cwd=cwd,
        stdin=PIPE if input is not None else DEVNULL,
        stdout=PIPE,
        stderr=PIPE,
    )
    stdout, stderr = await p.communicate(
        input.encode() if input is not None else None
    )
    return ProcessResult(p.returncode, stdout.decode(), stderr.decode())


async def async_check_output(
    *args: str | Path, cwd: Path | str, input: str | None = None
) -> str:
    res = await async_run(*args, cwd=cwd, input=input)
    if res.returncode:
        logger.error(f'Process exited with code {res.returncode}')
        raise CommandError(args, res.returncode, res.stderr)
    return res.stdout


def split_csv(value: str) -> list[str]:
    return [x.strip() for x in value.split(',') if x.strip()]


def unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))
