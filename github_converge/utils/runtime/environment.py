import logging
import os
import sys

from github_converge.utils import config

CONVERGE_CONFIG = "CONVERGE_CONFIG"
CONVERGE_LOG_LEVEL = "LOG_LEVEL"

LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

DRY_RUN_MAP = {
    "--dry-run": True,
    "--no-dry-run": False,
}


def log_fmt(dry_run: bool | None = None, dry_run_option: str | None = None) -> str:
    if dry_run and dry_run_option:
        raise ValueError("Please set either dry_run or dry_run_option.")

    if dry_run_option:
        if dry_run_option not in DRY_RUN_MAP:
            raise ValueError(
                f'Invalid dry_run_option "{dry_run_option}". '
                f"Only the following options are allowed: {list(DRY_RUN_MAP.keys())}."
            )

        dry_run = DRY_RUN_MAP[dry_run_option]

    log_fmt = (
        "[%(asctime)s] [%(levelname)s] [DRY-RUN] "
        if dry_run
        else "[%(asctime)s] [%(levelname)s] "
    )

    log_fmt += "[%(filename)s:%(funcName)s:%(lineno)d] - %(message)s"

    return log_fmt


def init_env(
    log_level: str | None = None,
    config_file: str | None = None,
    dry_run: bool | None = None,
) -> None:
    # child processes inherit the environment and can call init_env()
    # without parameters
    if log_level:
        os.environ[CONVERGE_LOG_LEVEL] = log_level
    if config_file:
        os.environ[CONVERGE_CONFIG] = config_file

    logging.basicConfig(
        format=log_fmt(dry_run=dry_run),
        datefmt=LOG_DATEFMT,
        level=getattr(logging, os.environ.get(CONVERGE_LOG_LEVEL, "INFO")),
    )

    config_file = os.environ.get(CONVERGE_CONFIG)
    if not config_file:
        logging.fatal("no config file for github-converge specified")
        sys.exit(1)
    config.init_from_toml(config_file)
