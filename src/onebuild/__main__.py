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

from pathlib import Path

import click

from onebuild import setup_logging
from onebuild.cmds import Ctx, pass_ctx
from onebuild.cmds.sequence import cmd_finish, cmd_start, cmd_status

_onebuild_help_message = """Run one build at a time per branch

Call 'start' at the beginning of a build job: it returns if this build may
run, and cancels it otherwise. Call 'finish' at the end of the job, whatever
its result: it restarts the newest build of the branch if it was cancelled.

The build's context is obtained from the CI environment.
"""


@click.group(help=_onebuild_help_message)
@click.option(
    "-d",
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        resolve_path=True,
        path_type=Path,
    ),
    envvar="ONEBUILD_CONFIG",
    required=False,
    help="Specify YAML or JSON config file",
)
@click.option(
    "--endpoint",
    type=str,
    envvar="TRAVIS_ENDPOINT",
    metavar="URL",
    help="CI provider's API endpoint",
)
@click.option(
    "--token",
    type=str,
    envvar="TRAVIS_TOKEN",
    metavar="TOKEN",
    help="CI provider's API token",
)
@click.option(
    "--build-id",
    type=str,
    envvar="TRAVIS_BUILD_ID",
    metavar="ID",
    help="ID of this build",
)
@click.option(
    "--repo-slug",
    type=str,
    envvar="TRAVIS_REPO_SLUG",
    metavar="OWNER/NAME",
    help="Repository being built",
)
@click.option(
    "--branch",
    type=str,
    envvar="TRAVIS_BRANCH",
    metavar="NAME",
    help="Branch being built",
)
@click.option(
    "--event-type",
    type=str,
    envvar="TRAVIS_EVENT_TYPE",
    metavar="TYPE",
    help="Event that triggered this build",
)
@click.option(
    "--branches",
    type=str,
    envvar="ONEBUILD_BRANCHES",
    metavar="NAME[,NAME...]",
    help="Branches to limit to one build (default: all)",
)
@click.option(
    "--event-types",
    type=str,
    envvar="ONEBUILD_EVENT_TYPES",
    metavar="TYPE[,TYPE...]",
    help="Event types to limit to one build (default: push)",
)
@click.option(
    "--cancel-wait",
    type=str,
    envvar="ONEBUILD_CANCEL_WAIT",
    metavar="SECONDS",
    help="Time to wait for termination after cancelling this build",
)
@pass_ctx
def main(
    ctx: Ctx,
    debug: bool,
    config_path: Path | None,
    endpoint: str | None,
    token: str | None,
    build_id: str | None,
    repo_slug: str | None,
    branch: str | None,
    event_type: str | None,
    branches: str | None,
    event_types: str | None,
    cancel_wait: str | None,
) -> None:
    setup_logging(debug=debug)

    ctx.config_path = config_path
    ctx.overrides = {
        "endpoint": endpoint,
        "token": token,
        "build_id": build_id,
        "repo_slug": repo_slug,
        "branch": branch,
        "event_type": event_type,
        "branches": branches,
        "event_types": event_types,
        "cancel_wait": cancel_wait,
    }


main.add_command(cmd_start)
main.add_command(cmd_finish)
main.add_command(cmd_status)

if __name__ == "__main__":
    main()
