# onebuild - commands - sequence
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

import click
import rich.box
from rich.console import Console
from rich.table import Table

from onebuild.builds.types import Build
from onebuild.cmds import with_sequencer
from onebuild.sequencer import Sequencer

# pyright: reportUnusedFunction=false


@click.command("start", help="Proceed if this build may run, cancel it otherwise")
@with_sequencer()
def cmd_start(seq: Sequencer) -> None:
    seq.start()


@click.command("finish", help="Restart the newest build if it was cancelled")
@with_sequencer()
def cmd_finish(seq: Sequencer) -> None:
    _ = seq.finish()


def _build_row(table: Table, what: str, build: Build | None) -> None:
    if build is None:
        table.add_row(what, "-", "-", "-", "-")
        return

    table.add_row(
        what,
        str(build.id),
        build.number,
        build.state.value,
        build.started_at.isoformat() if build.started_at else "-",
    )


@click.command("status", help="Show the builds sequencing decides on")
@with_sequencer(sequenced_only=False)
def cmd_status(seq: Sequencer) -> None:
    snapshot = seq.snapshot()

    table = Table(
        title=f"{seq.repo_slug} @ {seq.branch} ({seq.event_type})",
        box=rich.box.SIMPLE,
    )
    table.add_column("")
    table.add_column("id", justify="right")
    table.add_column("number", justify="right")
    table.add_column("state")
    table.add_column("started at")

    _build_row(table, "earliest started", snapshot.earliest_started)
    _build_row(table, "newest finished", snapshot.newest_finished)
    _build_row(table, "newest", snapshot.newest)

    Console().print(table)
