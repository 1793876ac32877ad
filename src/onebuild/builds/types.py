# onebuild - builds - types
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

import enum
from datetime import datetime as dt

import pydantic

BuildID = int


class BuildState(str, enum.Enum):
    #
    # states as reported by the Travis CI v3 API. Only 'started', the
    # finished states, and 'canceled' matter for sequencing.
    #
    created = "created"
    received = "received"
    started = "started"
    passed = "passed"
    failed = "failed"
    errored = "errored"
    canceled = "canceled"  # [sic]


FINISHED_STATES: tuple[BuildState, ...] = (
    BuildState.passed,
    BuildState.failed,
    BuildState.errored,
)

# earliest start time first; builds started at the same instant are ordered
# by id, so the older build wins.
EARLIEST_STARTED = "started_at,id"
NEWEST = "id:desc"


class Build(pydantic.BaseModel):
    """A single build, as seen by the provider. Only the fields we need."""

    id: BuildID
    number: str
    state: BuildState
    started_at: dt | None = None

    @property
    def is_canceled(self) -> bool:
        return self.state == BuildState.canceled

    def describe(self) -> str:
        started = self.started_at.isoformat() if self.started_at else "n/a"
        return (
            f"build {self.number} ({self.id}), state {self.state.value}, "
            + f"started at {started}"
        )


class BuildsPage(pydantic.BaseModel):
    builds: list[Build]


class BuildQuery(pydantic.BaseModel):
    """
    Ask the provider for the build

    - in repository `repo_slug`,
    - of branch `branch`,
    - triggered by an `event_type` event,
    - with a state in `states`, or in any state if `states` is empty,
    - that sorts first by `sort_by`, as interpreted by the provider.
    """

    repo_slug: str
    branch: str
    event_type: str
    states: list[BuildState] = []
    sort_by: str
    limit: int = 1

    def to_params(self) -> dict[str, str]:
        params = {
            "build.event_type": self.event_type,
            "build.branch": self.branch,
            "sort_by": self.sort_by,
        }
        if self.states:
            params["build.state"] = ",".join(s.value for s in self.states)
        params["limit"] = str(self.limit)
        return params
