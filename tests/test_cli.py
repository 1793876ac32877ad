# onebuild - tests - commands
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

import pytest
from click.testing import CliRunner

from onebuild.__main__ import main
from onebuild.builds.types import BuildState
from onebuild.client import (
    ControlPlaneConnectionError,
    ControlPlanePermissionDeniedError,
    UnexpectedStatusError,
)
from onebuild.config import OneBuildConfig
from tests.fakes import FakeControlPlane, build

_ENV = {
    k: None
    for k in (
        "ONEBUILD_CONFIG",
        "TRAVIS_ENDPOINT",
        "TRAVIS_TOKEN",
        "TRAVIS_BUILD_ID",
        "TRAVIS_REPO_SLUG",
        "TRAVIS_BRANCH",
        "TRAVIS_EVENT_TYPE",
        "ONEBUILD_BRANCHES",
        "ONEBUILD_EVENT_TYPES",
        "ONEBUILD_CANCEL_WAIT",
    )
}


def _args(build_id: int, *extra: str) -> list[str]:
    return [
        "--endpoint",
        "https://api.travis-ci.com",
        "--token",
        "s3cr3t",
        "--build-id",
        str(build_id),
        "--repo-slug",
        "clyso/onebuild",
        "--branch",
        "main",
        "--event-type",
        "push",
        "--cancel-wait",
        "0.01",
        *extra,
    ]


@pytest.fixture()
def clients(
    monkeypatch: pytest.MonkeyPatch, plane: FakeControlPlane
) -> list[OneBuildConfig]:
    configs: list[OneBuildConfig] = []

    def make_client(config: OneBuildConfig) -> FakeControlPlane:
        configs.append(config)
        return plane

    monkeypatch.setattr("onebuild.cmds.make_client", make_client)
    return configs


def test_start_proceeds(plane: FakeControlPlane, clients: list[OneBuildConfig]) -> None:
    plane.builds = [
        build(1, BuildState.passed, started=0),
        build(2, BuildState.started, started=1),
    ]
    res = CliRunner().invoke(main, [*_args(2), "start"], env=_ENV)
    assert res.exit_code == 0, res.output
    assert plane.side_effects == 0
    assert plane.closed
    assert clients[0].build_id == 2


def test_start_cancels_itself(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    plane.builds = [
        build(1, BuildState.started, started=0),
        build(2, BuildState.started, started=1),
    ]
    # nobody kills us once cancelled, so the stall eventually expires.
    res = CliRunner().invoke(main, [*_args(2), "start"], env=_ENV)
    assert res.exit_code == errno.ENOTRECOVERABLE
    assert plane.cancelled == [2]
    assert len(clients) == 1


def test_start_no_builds(plane: FakeControlPlane, clients: list[OneBuildConfig]) -> None:
    res = CliRunner().invoke(main, [*_args(2), "start"], env=_ENV)
    assert res.exit_code == errno.ENOTRECOVERABLE
    assert plane.side_effects == 0


def test_finish_restarts(plane: FakeControlPlane, clients: list[OneBuildConfig]) -> None:
    plane.builds = [
        build(11, BuildState.passed, started=0),
        build(12, BuildState.canceled),
    ]
    res = CliRunner().invoke(main, [*_args(11), "finish"], env=_ENV)
    assert res.exit_code == 0, res.output
    assert plane.restarted == [12]


def test_not_sequenced_event(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    args = [*_args(2), "--event-type", "pull_request", "start"]
    res = CliRunner().invoke(main, args, env=_ENV)
    assert res.exit_code == 0, res.output
    assert clients == []


def test_not_sequenced_branch(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    env = _ENV | {"ONEBUILD_BRANCHES": "release,stable"}
    res = CliRunner().invoke(main, [*_args(2), "finish"], env=env)
    assert res.exit_code == 0, res.output
    assert clients == []


def test_context_from_environment(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    plane.builds = [build(5, BuildState.passed, started=0)]
    env = _ENV | {
        "TRAVIS_ENDPOINT": "https://api.travis-ci.com",
        "TRAVIS_TOKEN": "s3cr3t",
        "TRAVIS_BUILD_ID": "5",
        "TRAVIS_REPO_SLUG": "clyso/onebuild",
        "TRAVIS_BRANCH": "main",
        "TRAVIS_EVENT_TYPE": "push",
    }
    res = CliRunner().invoke(main, ["finish"], env=env)
    assert res.exit_code == 0, res.output
    assert clients[0].build_id == 5
    assert plane.restarted == []


@pytest.mark.parametrize("build_id", ["abc", "", "1.5"])
def test_bad_build_id(
    plane: FakeControlPlane, clients: list[OneBuildConfig], build_id: str
) -> None:
    args = _args(1)
    args[args.index("--build-id") + 1] = build_id
    res = CliRunner().invoke(main, [*args, "start"], env=_ENV)
    assert res.exit_code == errno.EINVAL
    assert clients == []


def test_status(plane: FakeControlPlane, clients: list[OneBuildConfig]) -> None:
    plane.builds = [
        build(1, BuildState.passed, started=0),
        build(2, BuildState.started, started=1),
        build(3, BuildState.canceled),
    ]
    res = CliRunner().invoke(main, [*_args(2), "status"], env=_ENV)
    assert res.exit_code == 0, res.output
    assert "earliest started" in res.output
    assert "canceled" in res.output
    assert plane.side_effects == 0


def test_status_idle_branch(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    plane.builds = [
        build(1, BuildState.passed, started=0),
        build(2, BuildState.canceled),
    ]
    res = CliRunner().invoke(main, [*_args(2), "status"], env=_ENV)
    assert res.exit_code == 0, res.output
    assert "earliest started" in res.output
    assert plane.side_effects == 0


@pytest.mark.parametrize("command", ["start", "finish"])
def test_connection_error(
    plane: FakeControlPlane, clients: list[OneBuildConfig], command: str
) -> None:
    plane.fail_find(ControlPlaneConnectionError("connection refused"))
    res = CliRunner().invoke(main, [*_args(2), command], env=_ENV)
    assert res.exit_code == errno.ECONNREFUSED
    assert plane.side_effects == 0
    assert plane.closed


@pytest.mark.parametrize("command", ["start", "finish"])
def test_permission_denied(
    plane: FakeControlPlane, clients: list[OneBuildConfig], command: str
) -> None:
    plane.fail_find(ControlPlanePermissionDeniedError("bad token"))
    res = CliRunner().invoke(main, [*_args(2), command], env=_ENV)
    assert res.exit_code == errno.EACCES
    assert plane.side_effects == 0


def test_start_failed_cancel(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    plane.builds = [
        build(1, BuildState.started, started=0),
        build(2, BuildState.started, started=1),
    ]
    plane.fail_cancel(UnexpectedStatusError(409, "cannot cancel"))
    res = CliRunner().invoke(main, [*_args(2), "start"], env=_ENV)
    assert res.exit_code == errno.ENOTRECOVERABLE
    assert plane.cancelled == []


def test_finish_failed_restart(
    plane: FakeControlPlane, clients: list[OneBuildConfig]
) -> None:
    plane.builds = [
        build(11, BuildState.passed, started=0),
        build(12, BuildState.canceled),
    ]
    plane.fail_restart(UnexpectedStatusError(500, "internal error"))
    res = CliRunner().invoke(main, [*_args(11), "finish"], env=_ENV)
    assert res.exit_code == errno.ENOTRECOVERABLE
    assert plane.restarted == []
