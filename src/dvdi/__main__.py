"""Entry point: python -m dvdi"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import yaml
from pydantic import ValidationError

from dvdi.infrastructure.config import IsolatorSettings
from dvdi.infrastructure.lock import ledger_lock
from dvdi.infrastructure.logger import logger
from dvdi.isolator.errors import IsolatorError
from dvdi.isolator.isolator import VolumeIsolator
from dvdi.mounts.types import ContainerRunState, IsolatorResult


def _parse_env(pairs: list[str], inherit: bool) -> dict[str, str] | None:
    if not pairs and not inherit:
        return None
    environment: dict[str, str] = dict(os.environ) if inherit else {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {pair!r}")
        environment[name] = value
    return environment


def _parse_run_state(value: str) -> ContainerRunState:
    """ID[:PID[:DIR]]"""
    container_id, _, rest = value.partition(":")
    pid_str, _, directory = rest.partition(":")
    try:
        pid = int(pid_str) if pid_str else None
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"invalid pid in {value!r}") from err
    if not container_id:
        raise argparse.ArgumentTypeError(f"missing container id in {value!r}")
    return ContainerRunState(container_id=container_id, pid=pid, directory=directory)


def _container_id(value: str) -> str:
    if not value.strip():
        raise argparse.ArgumentTypeError("container id must not be empty")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dvdi", description="External volume isolator")
    parser.add_argument("--config", help="YAML parameters file (overrides DVDI_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    prepare = sub.add_parser("prepare", help="Attach the volumes a starting container requests")
    prepare.add_argument("container_id", type=_container_id)
    prepare.add_argument("--env", action="append", default=[], metavar="NAME=VALUE")
    prepare.add_argument("--inherit-env", action="store_true", help="Also read requests from this process's environment")
    prepare.add_argument("--directory", default="")
    prepare.add_argument("--rootfs")
    prepare.add_argument("--user")

    cleanup = sub.add_parser("cleanup", help="Detach volumes no longer used after a container stops")
    cleanup.add_argument("container_id", type=_container_id)

    recover = sub.add_parser("recover", help="Reconcile the ledger with running containers")
    recover.add_argument("--running", action="append", default=[], type=_parse_run_state, metavar="ID[:PID[:DIR]]")
    recover.add_argument("--orphan", action="append", default=[], metavar="ID")

    sub.add_parser("status", help="Print the mount ledger")
    return parser


async def _dispatch(args: argparse.Namespace, isolator: VolumeIsolator) -> IsolatorResult | None:
    if args.command == "recover":
        return await isolator.recover(args.running, args.orphan)

    await isolator.load()
    if args.command == "prepare":
        return await isolator.prepare(args.container_id, args.environment, args.directory, args.rootfs, args.user)
    if args.command == "cleanup":
        return await isolator.cleanup(args.container_id)

    records = [r.model_dump(by_alias=True) for r in isolator.snapshot()]
    print(yaml.safe_dump({"mounts": records}, sort_keys=False), end="")
    return None


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "prepare":
        try:
            args.environment = _parse_env(args.env, args.inherit_env)
        except argparse.ArgumentTypeError as err:
            parser.error(str(err))

    try:
        settings = IsolatorSettings.load(args.config)
        isolator = VolumeIsolator.create(settings) if args.command != "status" else VolumeIsolator(settings)
    except (IsolatorError, ValidationError, ValueError, yaml.YAMLError) as err:
        logger.error("Failed to load volume isolator", error=str(err))
        return 1

    try:
        with ledger_lock(settings.lock_path):
            result = asyncio.run(_dispatch(args, isolator))
    except OSError as err:
        logger.error("Mount ledger unavailable", path=str(settings.lock_path), error=str(err))
        return 1

    if result is None:
        return 0
    print(result.model_dump_json(exclude_none=True))
    return 0 if result.success else 1


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
