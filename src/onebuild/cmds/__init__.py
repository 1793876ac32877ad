# onebuild - commands
# Copyright (C) 2025  Clyso GmbH
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.

import errno
import sys
from collections.abc import Callable
from functools import update_wrapper
from pathlib import Path
from typing import Any, Concatenate, ParamSpec, TypeVar

import click

from onebuild import OneBuildError
from onebuild import logger as parent_logger
from onebuild.client import (
    ControlPlaneClient,
    ControlPlaneConnectionError,
    ControlPlanePermissionDeniedError,
    TravisClient,
)
from onebuild.config import ConfigError, OneBuildConfig, load_config
from onebuild.sequencer import Sequencer

logger = parent_logger.getChild("cmds")


class Ctx:
    config_path: Path | None
    overrides: dict[str, Any]  # pyright: ignore[reportExplicitAny]

    def __init__(self) -> None:
        self.config_path = None
        self.overrides = {}


pass_ctx = click.make_pass_decorator(Ctx, ensure=True)

R = TypeVar("R")
P = ParamSpec("P")


def make_client(config: OneBuildConfig) -> ControlPlaneClient:
    return TravisClient(config.base_url, config.token.get_secret_value())


def _get_config() -> OneBuildConfig:
    curr_ctx = click.get_current_context()
    ctx = curr_ctx.find_object(Ctx)
    if not ctx:
        logger.error("missing context")
        sys.exit(errno.ENOTRECOVERABLE)

    try:
        return load_config(ctx.config_path, **ctx.overrides)  # pyright: ignore[reportAny]
    except ConfigError as e:
        logger.error(f"unable to obtain configuration: {e}")
        sys.exit(errno.EINVAL)


def with_sequencer(
    *, sequenced_only: bool = True
) -> Callable[[Callable[Concatenate[Sequencer, P], R]], Callable[P, R]]:
    """
    Pass a sequencer for this build to the function, and translate errors into
    the process' exit status. Unless `sequenced_only` is False, builds not
    subject to sequencing exit successfully without contacting the provider.
    """

    def decorator(f: Callable[Concatenate[Sequencer, P], R]) -> Callable[P, R]:
        def inner(*args: P.args, **kwargs: P.kwargs) -> R:
            config = _get_config()
            if sequenced_only and not config.is_sequenced():
                logger.info("build not subject to sequencing, nothing to do")
                sys.exit(0)

            try:
                with make_client(config) as client:
                    seq = Sequencer.from_config(client, config)
                    return f(seq, *args, **kwargs)
            except ControlPlaneConnectionError as e:
                logger.error(f"connection error: {e}")
                sys.exit(errno.ECONNREFUSED)
            except ControlPlanePermissionDeniedError as e:
                logger.error(f"permission denied: {e}")
                sys.exit(errno.EACCES)
            except OneBuildError as e:
                logger.error(f"error sequencing build: {e}")
                sys.exit(errno.ENOTRECOVERABLE)

        return update_wrapper(inner, f)

    return decorator
