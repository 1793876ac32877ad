# onebuild - sequencer
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

"""
Allow a single build per branch to run at any given time.

There is no lock. Each build runs `start` once it begins executing, and
`finish` once it is done, each in its own process. Both decide based solely
on what the CI provider reports:

- a build may proceed only if it is the earliest started build on its branch,
  and no newer build has already finished; otherwise it cancels itself.
- once a build is done, the newest build on the branch is restarted if it was
  cancelled, so the most recent change eventually runs.

A build cancelling itself just after the build it deferred to has looked for
cancelled builds will not be restarted by that build. It remains cancelled
until the next build on the branch finishes, or until restarted by hand.
"""

import enum
import time
from collections.abc import Callable
from typing import NoReturn, override

import pydantic

from onebuild import OneBuildError
from onebuild import logger as parent_logger
from onebuild.builds.types import (
    EARLIEST_STARTED,
    FINISHED_STATES,
    NEWEST,
    Build,
    BuildID,
    BuildQuery,
    BuildState,
)
from onebuild.client import ControlPlaneClient, NoMatchingBuildError
from onebuild.config import DEFAULT_CANCEL_WAIT, OneBuildConfig

logger = parent_logger.getChild("sequencer")


class SequencerError(OneBuildError):
    @override
    def __str__(self) -> str:
        return "sequencer error" + (f": {self.msg}" if self.msg else "")


class StallExpiredError(SequencerError):
    """We cancelled ourselves, but nobody terminated us."""

    @override
    def __str__(self) -> str:
        return "stall expired" + (f": {self.msg}" if self.msg else "")


class SequencerState(str, enum.Enum):
    pending = "pending"
    proceeding = "proceeding"
    self_cancelling = "self-cancelling"


class SequencerSnapshot(pydantic.BaseModel):
    earliest_started: Build | None
    newest_finished: Build | None
    newest: Build


class Sequencer:
    _client: ControlPlaneClient
    _stall: Callable[[float], None]

    build_id: BuildID
    repo_slug: str
    branch: str
    event_type: str
    cancel_wait: float
    state: SequencerState

    def __init__(
        self,
        client: ControlPlaneClient,
        *,
        build_id: BuildID,
        repo_slug: str,
        branch: str,
        event_type: str,
        cancel_wait: float = DEFAULT_CANCEL_WAIT,
        stall: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._stall = stall
        self.build_id = build_id
        self.repo_slug = repo_slug
        self.branch = branch
        self.event_type = event_type
        self.cancel_wait = cancel_wait
        self.state = SequencerState.pending

    @classmethod
    def from_config(
        cls,
        client: ControlPlaneClient,
        config: OneBuildConfig,
        *,
        stall: Callable[[float], None] = time.sleep,
    ) -> "Sequencer":
        return cls(
            client,
            build_id=config.build_id,
            repo_slug=config.repo_slug,
            branch=config.branch,
            event_type=config.event_type,
            cancel_wait=config.cancel_wait,
            stall=stall,
        )

    def _query(self, states: list[BuildState], sort_by: str) -> BuildQuery:
        return BuildQuery(
            repo_slug=self.repo_slug,
            branch=self.branch,
            event_type=self.event_type,
            states=states,
            sort_by=sort_by,
        )

    def earliest_started(self) -> Build:
        return self._client.find(self._query([BuildState.started], EARLIEST_STARTED))

    def newest_finished(self) -> Build:
        return self._client.find(self._query(list(FINISHED_STATES), NEWEST))

    def newest(self) -> Build:
        return self._client.find(self._query([], NEWEST))

    def start(self) -> None:
        """Return if this build may run; cancel it and never return otherwise."""
        logger.info(f"sequencing build {self.build_id} on '{self.branch}'")

        earliest = self.earliest_started()
        if earliest.id != self.build_id:
            logger.info(f"found an older build running: {earliest.describe()}")
            self.cancel_self()

        finished = self.newest_finished()
        if finished.id > self.build_id:
            logger.info(f"found a newer finished build: {finished.describe()}")
            self.cancel_self()

        logger.info(f"build {self.build_id} may proceed")
        self.state = SequencerState.proceeding

    def cancel_self(self) -> NoReturn:
        """Cancel this build, then wait to be terminated by the provider."""
        self.state = SequencerState.self_cancelling
        logger.info(f"cancelling build {self.build_id}")
        self._client.cancel(self.build_id)

        logger.info(f"waiting {self.cancel_wait:.0f}s to be terminated")
        self._stall(self.cancel_wait)

        msg = (
            f"build {self.build_id} still running {self.cancel_wait:.0f}s "
            + "after being cancelled"
        )
        logger.error(msg)
        raise StallExpiredError(msg)

    def finish(self) -> Build | None:
        """Restart the newest build on the branch if it was cancelled."""
        newest = self.newest()
        if not newest.is_canceled:
            logger.info(f"nothing to restart, newest is {newest.describe()}")
            return None

        logger.info(f"restarting cancelled {newest.describe()}")
        self._client.restart(newest.id)
        return newest

    def snapshot(self) -> SequencerSnapshot:
        """Obtain the builds the protocol decides on, without side effects."""
        # an idle branch has no started build, a new one no finished build.
        try:
            earliest = self.earliest_started()
        except NoMatchingBuildError:
            earliest = None

        try:
            finished = self.newest_finished()
        except NoMatchingBuildError:
            finished = None

        return SequencerSnapshot(
            earliest_started=earliest,
            newest_finished=finished,
            newest=self.newest(),
        )
