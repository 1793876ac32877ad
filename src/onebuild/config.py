# onebuild - config
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

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, ClassVar, override

import pydantic
import yaml

from onebuild import OneBuildError
from onebuild import logger as parent_logger

logger = parent_logger.getChild("config")

# Travis' build timeout is 2 hours; stall for longer than that.
DEFAULT_CANCEL_WAIT = 3 * 60 * 60.0


class ConfigError(OneBuildError):
    @override
    def __str__(self) -> str:
        return "config error" + (f": {self.msg}" if self.msg else "")


def _split_list(v: Any) -> Any:  # pyright: ignore[reportExplicitAny, reportAny]
    """Accept comma-separated strings, as found in the environment."""
    if v is None:
        return []
    if isinstance(v, str):
        return [e.strip() for e in v.split(",") if e.strip()]
    return v  # pyright: ignore[reportAny]


class OneBuildConfig(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
    )

    endpoint: pydantic.HttpUrl
    token: pydantic.SecretStr
    repo_slug: Annotated[str, pydantic.Field(alias="repo-slug", min_length=1)]
    build_id: Annotated[int, pydantic.Field(alias="build-id", gt=0)]
    branch: Annotated[str, pydantic.Field(min_length=1)]
    event_type: Annotated[str, pydantic.Field(alias="event-type", min_length=1)]

    # builds on branches not listed here are left alone; empty means all.
    branches: list[str] = []
    event_types: Annotated[list[str], pydantic.Field(alias="event-types")] = [
        "push"
    ]
    cancel_wait: Annotated[
        float, pydantic.Field(alias="cancel-wait", gt=0)
    ] = DEFAULT_CANCEL_WAIT

    @pydantic.field_validator("branches", "event_types", mode="before")
    @classmethod
    def _validate_lists(cls, v: Any) -> Any:  # pyright: ignore[reportExplicitAny, reportAny]
        return _split_list(v)  # pyright: ignore[reportAny]

    @property
    def base_url(self) -> str:
        return str(self.endpoint).rstrip("/")

    def is_sequenced(self) -> bool:
        """Check whether this build is subject to sequencing."""
        if self.event_type not in self.event_types:
            logger.info(
                f"event type '{self.event_type}' not in {self.event_types}"
            )
            return False

        if self.branches and self.branch not in self.branches:
            logger.info(f"branch '{self.branch}' not in {self.branches}")
            return False

        return True


def _read_config_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    if not path.exists() or not path.is_file():
        raise ConfigError(f"config file '{path}' does not exist or is not a file")

    try:
        raw_data = path.read_text()
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(raw_data)  # pyright: ignore[reportAny]
        else:
            data = json.loads(raw_data)  # pyright: ignore[reportAny]
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        msg = f"error loading config at '{path}': {e}"
        logger.error(msg)
        raise ConfigError(msg) from e
    except Exception as e:
        msg = f"unexpected error loading config at '{path}': {e}"
        logger.error(msg)
        raise ConfigError(msg) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"malformed config at '{path}': expected a mapping")

    return data  # pyright: ignore[reportUnknownVariableType]


def load_config(
    path: Path | None = None,
    **overrides: Any,  # pyright: ignore[reportExplicitAny, reportAny]
) -> OneBuildConfig:
    """
    Build the configuration from an optional config file, overridden by any
    value in `overrides` that is not `None` (i.e., the command line and the
    environment).
    """
    values: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]
    if path is not None:
        values = _read_config_file(path)

    # normalise dashed keys from the file, so overrides by name apply cleanly.
    values = {k.replace("-", "_"): v for k, v in values.items()}  # pyright: ignore[reportAny]
    values.update({k: v for k, v in overrides.items() if v is not None})  # pyright: ignore[reportAny]

    try:
        return OneBuildConfig.model_validate(values)
    except pydantic.ValidationError as e:
        msg = f"invalid configuration: {e}"
        logger.error(msg)
        raise ConfigError(msg) from None
