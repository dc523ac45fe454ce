"""HTTP transport for the Open Build Service API."""

from typing import Dict, Optional, Union
from urllib.parse import quote
import logging
import xml.etree.ElementTree as ET

import requests

from .config import ClientConfig
from .core import PackageIdentity
from .directory import Directory, directory_from_xml, directory_to_xml
from .errors import (
    ApiError,
    AuthError,
    NetworkError,
    NotFoundError,
    StatusReply,
)

logger = logging.getLogger(__name__)

Params = Dict[str, Union[str, int]]


def status_reply_from_xml(data: Union[str, bytes]) -> Optional[StatusReply]:
    """Decode a <status> reply, None if the body is something else."""
    if not data:
        return None
    try:
        root = ET.fromstring(data)
    except ET.ParseError:
        return None
    if root.tag != "status" or root.get("code") is None:
        return None
    return StatusReply(
        code=root.get("code"),
        summary=root.findtext("summary"),
        details=root.findtext("details"),
        data=[d.text or "" for d in root.findall("data")],
    )


class Connection:
    """Authenticated session against one API instance."""

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.api_url.rstrip("/")
        self.session = session or requests.Session()
        if config.username:
            self.session.auth = (config.username, config.password or "")
        self.session.verify = config.verify_tls

    def url(self, route: str) -> str:
        return f"{self.base_url}{route}"

    def request(
        self,
        route: str,
        method: str = "GET",
        params: Optional[Params] = None,
        data: Optional[Union[str, bytes]] = None,
    ) -> bytes:
        """Perform a request and return the raw reply body.

        Raises:
            NetworkError: If the server could not be reached
            AuthError: On 401/403
            NotFoundError: On 404
            ApiError: On any other non-success status code
        """
        url = self.url(route)
        if isinstance(data, str):
            data = data.encode("utf-8")

        logger.debug("%s %s %s", method, url, params or "")
        try:
            resp = self.session.request(
                method, url, params=params, data=data, timeout=self.config.timeout
            )
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(f"Cannot connect to {self.base_url}: {e}") from e
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Request to {url} timed out: {e}") from e

        if 200 <= resp.status_code < 300:
            return resp.content

        status = status_reply_from_xml(resp.content)
        if resp.status_code in (401, 403):
            raise AuthError(resp.status_code, resp.url, method, status)
        if resp.status_code == 404:
            raise NotFoundError(resp.status_code, resp.url, method, status)
        raise ApiError(resp.status_code, resp.url, method, status)


def _package_route(identity: PackageIdentity) -> str:
    return f"/source/{quote(identity.project)}/{quote(identity.name)}"


def _file_route(identity: PackageIdentity, name: str) -> str:
    return f"{_package_route(identity)}/{quote(name)}"


def _source_params(expand_links: bool, revision: Optional[str]) -> Params:
    params: Params = {"expand": 1 if expand_links else 0}
    if revision is not None:
        params["rev"] = revision
    return params


class ObsAdapter:
    """Source routes of the API used by checkouts and commits."""

    def __init__(self, connection: Connection):
        self.connection = connection

    def get_directory(
        self,
        identity: PackageIdentity,
        expand_links: bool = True,
        revision: Optional[str] = None,
    ) -> Directory:
        """Fetch the directory listing of a package."""
        reply = self.connection.request(
            _package_route(identity), params=_source_params(expand_links, revision)
        )
        return directory_from_xml(reply)

    def get_file_contents(
        self,
        identity: PackageIdentity,
        name: str,
        expand_links: bool = True,
        revision: Optional[str] = None,
    ) -> bytes:
        return self.connection.request(
            _file_route(identity, name), params=_source_params(expand_links, revision)
        )

    def put_file_contents(self, identity: PackageIdentity, name: str, content: bytes) -> None:
        """Upload a file without creating a new revision.

        The file becomes part of the package with the next commitfilelist.
        """
        logger.info("Uploading %s to %s", name, identity)
        self.connection.request(
            _file_route(identity, name), method="PUT", params={"rev": "repository"}, data=content
        )

    def commit_filelist(
        self,
        identity: PackageIdentity,
        directory: Directory,
        comment: Optional[str] = None,
        keep_link: bool = False,
    ) -> Directory:
        """Replace the file list of a package, creating a new revision.

        Args:
            identity: Package to commit to
            directory: Complete new file list; entries must carry md5 and hash
            comment: Commit message
            keep_link: Must be set for links, otherwise the server drops the
                _link file of the package

        Returns:
            Directory listing of the new revision
        """
        params: Params = {"cmd": "commitfilelist", "withvalidate": 1}
        if comment is not None:
            params["comment"] = comment
        if keep_link:
            params["keeplink"] = 1

        logger.info("Committing %d files to %s", len(directory.entries), identity)
        reply = self.connection.request(
            _package_route(identity), method="POST", params=params, data=directory_to_xml(directory)
        )
        return directory_from_xml(reply)

    def get_package_meta(self, identity: PackageIdentity) -> str:
        return self.connection.request(f"{_package_route(identity)}/_meta").decode("utf-8")


def adapter_from_config(config: ClientConfig) -> ObsAdapter:
    return ObsAdapter(Connection(config))
