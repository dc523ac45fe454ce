"""Directory listings (snapshots) and their XML encoding.

The build service describes the files of a package at a revision with the
``directory`` schema::

    <directory name="pkg" rev="3" vrev="3" srcmd5="...">
      <linkinfo project="prj" package="pkg" srcmd5="..." xsrcmd5="..."/>
      <entry name="foo.spec" size="12" md5="..." mtime="1584360207"/>
    </directory>

The same document is cached as ``.osc/_files`` in a checkout, so encoding
must round-trip losslessly for osc to keep working on our checkouts.
"""

from typing import Iterable, Optional, Tuple, Union
import xml.etree.ElementTree as ET

from pydantic import BaseModel, ConfigDict

from .errors import ProtocolError
from .hashing import transfer_hash
from .utils import safe_file_name

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'


class DirectoryEntry(BaseModel):
    """One file in a directory listing."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: Optional[int] = None
    md5: Optional[str] = None
    mtime: Optional[int] = None
    hash: Optional[str] = None            # "sha256:<hex>", only sent on commit
    originproject: Optional[str] = None


class LinkInfo(BaseModel):
    """Present when the package is a link to another package."""

    model_config = ConfigDict(frozen=True)

    project: Optional[str] = None
    package: Optional[str] = None
    srcmd5: Optional[str] = None
    rev: Optional[str] = None
    baserev: Optional[str] = None
    xsrcmd5: Optional[str] = None         # hash of the expanded sources
    lsrcmd5: Optional[str] = None         # hash of the unexpanded sources
    error: Optional[str] = None


class ServiceInfo(BaseModel):
    """Result of the source service run of the last commit."""

    model_config = ConfigDict(frozen=True)

    code: Optional[str] = None
    error: Optional[str] = None
    xsrcmd5: Optional[str] = None
    lsrcmd5: Optional[str] = None


class Directory(BaseModel):
    """Snapshot of a package's file list at one revision."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    revision: Optional[str] = None
    version_revision: Optional[str] = None
    srcmd5: Optional[str] = None
    count: Optional[int] = None
    entries: Tuple[DirectoryEntry, ...] = ()
    link_info: Optional[LinkInfo] = None
    service_info: Optional[ServiceInfo] = None

    @property
    def content_hash_of_record(self) -> Optional[str]:
        """Hash identifying the sources: the expanded hash for links."""
        if self.link_info is not None and self.link_info.xsrcmd5:
            return self.link_info.xsrcmd5
        return self.srcmd5


# Attribute order matters: osc writes them in this order and we must not
# produce spurious diffs in _files.
_DIRECTORY_ATTRS = (("name", "name"), ("revision", "rev"), ("version_revision", "vrev"),
                    ("srcmd5", "srcmd5"), ("count", "count"))
_ENTRY_ATTRS = ("name", "size", "md5", "mtime", "hash", "originproject")
_LINKINFO_ATTRS = ("project", "package", "srcmd5", "rev", "baserev", "xsrcmd5", "lsrcmd5", "error")
_SERVICEINFO_ATTRS = ("code", "error", "xsrcmd5", "lsrcmd5")


def _to_int(value: Optional[str], what: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ProtocolError(f"Invalid {what} in directory listing: {value!r}")


def _entry_from_element(element: ET.Element) -> DirectoryEntry:
    attrs = element.attrib
    if "name" not in attrs:
        raise ProtocolError("Directory entry without a name")
    try:
        name = safe_file_name(attrs["name"])
    except ValueError as e:
        raise ProtocolError(f"Invalid entry in directory listing: {e}") from e
    return DirectoryEntry(
        name=name,
        size=_to_int(attrs.get("size"), "size"),
        md5=attrs.get("md5"),
        mtime=_to_int(attrs.get("mtime"), "mtime"),
        hash=attrs.get("hash"),
        originproject=attrs.get("originproject"),
    )


def directory_from_xml(data: Union[str, bytes]) -> Directory:
    """Decode a <directory> document.

    Raises:
        ProtocolError: If the document is not a valid directory listing
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ProtocolError(f"Could not decode directory listing: {e}") from e

    if root.tag != "directory":
        raise ProtocolError(f"Expected a <directory> element, got <{root.tag}>")

    linkinfos = root.findall("linkinfo")
    serviceinfos = root.findall("serviceinfo")

    return Directory(
        name=root.get("name"),
        revision=root.get("rev"),
        version_revision=root.get("vrev"),
        srcmd5=root.get("srcmd5"),
        count=_to_int(root.get("count"), "count"),
        entries=tuple(_entry_from_element(e) for e in root.findall("entry")),
        link_info=LinkInfo(**{k: linkinfos[0].get(k) for k in _LINKINFO_ATTRS}) if linkinfos else None,
        service_info=ServiceInfo(**{k: serviceinfos[0].get(k) for k in _SERVICEINFO_ATTRS})
        if serviceinfos else None,
    )


def _set_attrs(element: ET.Element, pairs) -> None:
    for key, value in pairs:
        if value is not None:
            element.set(key, str(value))


def directory_to_element(directory: Directory) -> ET.Element:
    root = ET.Element("directory")
    _set_attrs(root, ((attr, getattr(directory, field)) for field, attr in _DIRECTORY_ATTRS))

    if directory.link_info is not None:
        linkinfo = ET.SubElement(root, "linkinfo")
        _set_attrs(linkinfo, ((k, getattr(directory.link_info, k)) for k in _LINKINFO_ATTRS))
    if directory.service_info is not None:
        serviceinfo = ET.SubElement(root, "serviceinfo")
        _set_attrs(serviceinfo, ((k, getattr(directory.service_info, k)) for k in _SERVICEINFO_ATTRS))

    for entry in directory.entries:
        element = ET.SubElement(root, "entry")
        _set_attrs(element, ((k, getattr(entry, k)) for k in _ENTRY_ATTRS))
    return root


def directory_to_xml(directory: Directory) -> str:
    """Encode a directory listing the way osc writes .osc/_files."""
    root = directory_to_element(directory)
    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def directory_from_files(
    files: Iterable,
    *,
    name: Optional[str] = None,
    revision: Optional[str] = None,
    srcmd5: Optional[str] = None,
    link_info: Optional[LinkInfo] = None,
    service_info: Optional[ServiceInfo] = None,
    with_transfer_hash: bool = False,
) -> Directory:
    """Build a directory listing from package file records.

    Args:
        files: Records carrying name, size, md5_hash, mtime and content
        with_transfer_hash: Add the sha256 integrity hash of each file, as
            required in commit payloads
    """
    entries = tuple(
        DirectoryEntry(
            name=f.name,
            size=f.size,
            md5=f.md5_hash,
            mtime=f.mtime,
            hash=transfer_hash(f.content) if with_transfer_hash else None,
        )
        for f in files
    )
    return Directory(
        name=name,
        revision=revision,
        srcmd5=srcmd5,
        entries=entries,
        link_info=link_info,
        service_info=service_info,
    )
