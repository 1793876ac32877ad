# onebuild - control plane client
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

import abc
import logging
from types import TracebackType
from typing import Self, override
from urllib.parse import quote

import httpx
import pydantic

from onebuild import OneBuildError
from onebuild import logger as parent_logger
from onebuild.builds.types import Build, BuildID, BuildQuery, BuildsPage

logger = parent_logger.getChild("client")


class ControlPlaneError(OneBuildError):
    @override
    def __str__(self) -> str:
        return "control plane error" + (f": {self.msg}" if self.msg else "")


class ControlPlaneConnectionError(ControlPlaneError):
    """Unable to reach the CI provider."""

    @override
    def __str__(self) -> str:
        return "connection error" + (f": {self.msg}" if self.msg else "")


class ControlPlanePermissionDeniedError(ControlPlaneError):
    """Permission denied by the CI provider, most likely due to an invalid token."""

    @override
    def __str__(self) -> str:
        return "permission denied" + (f": {self.msg}" if self.msg else "")


class UnexpectedStatusError(ControlPlaneError):
    status_code: int

    def __init__(self, status_code: int, msg: str | None = None) -> None:
        super().__init__(msg)
        self.status_code = status_code

    @override
    def __str__(self) -> str:
        return f"unexpected status {self.status_code}" + (
            f": {self.msg}" if self.msg else ""
        )


class MalformedResponseError(ControlPlaneError):
    @override
    def __str__(self) -> str:
        return "malformed response" + (f": {self.msg}" if self.msg else "")


class NoMatchingBuildError(ControlPlaneError):
    """A query that must at least match the calling build matched nothing."""

    @override
    def __str__(self) -> str:
        return "no matching build" + (f": {self.msg}" if self.msg else "")


class ControlPlaneClient(abc.ABC):
    """Queries and mutates build state on the CI provider."""

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release any resources held by the client."""
        pass

    @abc.abstractmethod
    def find(self, query: BuildQuery) -> Build:
        """Return the first build matching `query`; raise if there is none."""
        pass

    @abc.abstractmethod
    def cancel(self, build_id: BuildID) -> None:
        """Request the build to be cancelled."""
        pass

    @abc.abstractmethod
    def restart(self, build_id: BuildID) -> None:
        """Request the build to be restarted."""
        pass


class TravisClient(ControlPlaneClient):
    """Client for the Travis CI v3 API."""

    _client: httpx.Client
    _logger: logging.Logger

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        logger: logging.Logger = logger,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._logger = logger
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Travis-API-Version": "3",
                "Authorization": f"token {token}",
            },
            transport=transport,
        )

    @override
    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        ep: str,
        expect_status: int,
        *,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            res = self._client.request(method, ep, params=params)
        except httpx.ConnectError as e:
            msg = f"error connecting to '{self._client.base_url}': {e}"
            self._logger.error(msg)
            raise ControlPlaneConnectionError(msg) from e
        except httpx.HTTPError as e:
            msg = f"request '{method} {ep}' failed: {e}"
            self._logger.error(msg)
            raise ControlPlaneError(msg) from e

        if res.status_code == expect_status:
            return res

        if res.status_code in (
            httpx.codes.UNAUTHORIZED.value,
            httpx.codes.FORBIDDEN.value,
        ):
            msg = f"authentication error accessing '{ep}': {res.reason_phrase}"
            self._logger.error(msg)
            raise ControlPlanePermissionDeniedError(msg)

        msg = f"request '{method} {ep}' failed: {res.text}"
        self._logger.error(msg)
        raise UnexpectedStatusError(res.status_code, msg)

    @override
    def find(self, query: BuildQuery) -> Build:
        ep = f"/repo/{quote(query.repo_slug, safe='')}/builds"
        self._logger.debug(f"find build: {query.to_params()}")
        res = self._request(
            "GET", ep, httpx.codes.OK.value, params=query.to_params()
        )

        try:
            page = BuildsPage.model_validate_json(res.content)
        except pydantic.ValidationError as e:
            msg = f"error validating provider result: {e}"
            self._logger.error(msg)
            raise MalformedResponseError(msg) from None

        if not page.builds:
            # we should at least see ourselves.
            msg = f"found no builds for '{query.sort_by}' on '{query.branch}'"
            self._logger.error(msg)
            raise NoMatchingBuildError(msg)

        return page.builds[0]

    @override
    def cancel(self, build_id: BuildID) -> None:
        _ = self._request(
            "POST", f"/build/{build_id}/cancel", httpx.codes.ACCEPTED.value
        )

    @override
    def restart(self, build_id: BuildID) -> None:
        _ = self._request(
            "POST", f"/build/{build_id}/restart", httpx.codes.ACCEPTED.value
        )
