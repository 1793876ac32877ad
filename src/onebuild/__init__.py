# onebuild - one build at a time per branch
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

import logging
from typing import override

from rich.logging import RichHandler

logger = logging.getLogger("onebuild")
logger.setLevel(logging.INFO)


class OneBuildError(Exception):
    msg: str | None

    def __init__(self, msg: str | None = None) -> None:
        super().__init__()
        self.msg = msg

    @override
    def __str__(self) -> str:
        return "onebuild error" + (f": {self.msg}" if self.msg else "")


def setup_logging(*, debug: bool = False) -> None:
    """Log to the console, i.e. the CI job's log."""
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(show_path=False, log_time_format="[%X]"))
        logger.propagate = False

    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logging.getLogger("httpx").setLevel(
        logging.DEBUG if debug else logging.CRITICAL
    )
