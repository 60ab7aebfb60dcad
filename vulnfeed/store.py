"""An in-memory bucket store holding JSON-encoded vulnerability data."""

from __future__ import annotations

import copy
import errno
import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Union

from vulnfeed.types import Advisory, DataSource, SourceID, VulnerabilityDetail

logger = logging.getLogger(__name__)

ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"
DATA_SOURCE_BUCKET = "data-source"

_Node = Union[dict, bytes]


class StoreError(Exception):
    """Raised when the store holds data it cannot use."""


@dataclass(frozen=True)
class RawAdvisory:
    """The undecoded advisory content together with its data source."""

    content: bytes
    source: DataSource


class VulnSource(Protocol):
    """A vulnerability data source that can fill a store."""

    def name(self) -> SourceID | str:
        """Return the identifier of the source."""

    def update(self, directory: str | Path) -> None:
        """Read the source's files under ``directory`` into the store."""


def _source_id(value: str) -> SourceID | str:
    try:
        return SourceID(value)
    except ValueError:
        return value


def _load(node: Any) -> _Node:
    if isinstance(node, dict):
        return {str(key): _load(value) for key, value in node.items()}
    if isinstance(node, bytes):
        return node
    if isinstance(node, str):
        return node.encode("utf-8")
    raise TypeError(f"unsupported fixture value: {node!r}")


class Store:
    """Nested buckets whose leaves are JSON documents stored as bytes.

    ``buckets`` may seed the store: nested dicts are buckets and
    ``str``/``bytes`` leaves are raw JSON documents.
    """

    def __init__(self, buckets: dict[str, Any] | None = None) -> None:
        self._root: dict = _load(buckets) if buckets else {}

    @contextmanager
    def transaction(self) -> Iterator[Store]:
        """Apply a batch of writes; roll all of them back if it fails."""
        snapshot = copy.deepcopy(self._root)
        try:
            yield self
        except BaseException:
            self._root = snapshot
            raise

    def _bucket(self, path: Iterable[str], create: bool = False) -> dict | None:
        bucket = self._root
        for name in path:
            child = bucket.get(name)
            if child is None:
                if not create:
                    return None
                child = bucket[name] = {}
            elif not isinstance(child, dict):
                if not create:
                    return None
                raise StoreError(f"incompatible value: {name!r} is not a bucket")
            bucket = child
        return bucket

    def _put(self, path: list[str], key: str, value: bytes) -> None:
        bucket = self._bucket(path, create=True)
        if isinstance(bucket.get(key), dict):
            raise StoreError(f"incompatible value: {key!r} is a bucket")
        bucket[key] = value

    @staticmethod
    def _encode(document: dict[str, Any]) -> bytes:
        return json.dumps(document).encode("utf-8")

    def get(self, *args: str) -> Any:
        """Return the decoded JSON stored under the given bucket path and key."""
        if not args:
            raise ValueError("a key is required")
        *path, key = args
        bucket = self._bucket(path)
        if bucket is None or key not in bucket:
            raise KeyError(args)
        value = bucket[key]
        if isinstance(value, dict):
            raise StoreError(f"{list(args)} is a bucket, not a value")
        return json.loads(value)

    def has_bucket(self, *args: str) -> bool:
        """Tell whether the given path names a bucket."""
        return self._bucket(args) is not None

    def put_data_source(self, platform: str, source: DataSource) -> None:
        self._put([DATA_SOURCE_BUCKET], platform, self._encode(source.to_dict()))

    def put_advisory_detail(
        self, vuln_id: str, pkg_name: str, nested_buckets: Iterable[str], advisory: Any
    ) -> None:
        """Store an advisory (anything with ``to_dict``) for a package."""
        path = [ADVISORY_DETAIL_BUCKET, vuln_id, *nested_buckets]
        self._put(path, pkg_name, self._encode(advisory.to_dict()))

    def put_vulnerability_detail(
        self, vuln_id: str, source_id: SourceID | str, detail: VulnerabilityDetail
    ) -> None:
        self._put(
            [VULNERABILITY_DETAIL_BUCKET, vuln_id], str(source_id), self._encode(detail.to_dict())
        )

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put([VULNERABILITY_ID_BUCKET], vuln_id, b"{}")

    def _data_source(self, platform: str) -> DataSource:
        bucket = self._bucket([DATA_SOURCE_BUCKET]) or {}
        raw = bucket.get(platform)
        if not isinstance(raw, bytes):
            return DataSource()
        try:
            return DataSource.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            raise StoreError(f"failed to unmarshal data source JSON: {exc}") from exc

    def for_each_advisory(self, platforms: Iterable[str], pkg_name: str) -> dict[str, RawAdvisory]:
        """Collect the raw advisories of a package on the given platforms, by vulnerability ID."""
        details = self._bucket([ADVISORY_DETAIL_BUCKET]) or {}
        found: dict[str, RawAdvisory] = {}
        for platform in platforms:
            source = self._data_source(platform)
            for vuln_id, vuln_bucket in details.items():
                if not isinstance(vuln_bucket, dict):
                    continue
                platform_bucket = vuln_bucket.get(platform)
                if not isinstance(platform_bucket, dict):
                    continue
                content = platform_bucket.get(pkg_name)
                if isinstance(content, bytes):
                    found[vuln_id] = RawAdvisory(content=content, source=source)
        return found

    def get_advisories(self, platform: str, pkg_name: str) -> list[Advisory]:
        """Return the decoded advisories of a package on one platform."""
        advisories = []
        for vuln_id, raw in self.for_each_advisory([platform], pkg_name).items():
            try:
                advisory = Advisory.from_dict(json.loads(raw.content))
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc
            advisory.vulnerability_id = vuln_id
            if raw.source != DataSource():
                advisory.data_source = raw.source
            advisories.append(advisory)
        return advisories

    def get_vulnerability_detail(self, vuln_id: str) -> dict[SourceID | str, VulnerabilityDetail]:
        """Return the details of a vulnerability from every source, keyed by source."""
        bucket = self._bucket([VULNERABILITY_DETAIL_BUCKET, vuln_id]) or {}
        details: dict[SourceID | str, VulnerabilityDetail] = {}
        for source_id, raw in bucket.items():
            if not isinstance(raw, bytes):
                continue
            try:
                details[_source_id(source_id)] = VulnerabilityDetail.from_dict(json.loads(raw))
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal vulnerability detail JSON: {exc}") from exc
        return details


def walk_json_files(root_dir: str | Path) -> Iterator[tuple[Path, str]]:
    """Yield ``(path, text)`` for every non-empty file under ``root_dir`` in lexical order."""
    root = Path(root_dir)
    if not root.exists():
        raise FileNotFoundError(errno.ENOENT, "no such file or directory", str(root))
    yield from _walk(root)


def _walk(path: Path) -> Iterator[tuple[Path, str]]:
    if path.is_dir():
        for child in sorted(path.iterdir(), key=lambda entry: entry.name):
            yield from _walk(child)
    elif path.is_file():
        if path.stat().st_size == 0:
            logger.info("invalid size: %s", path)
            return
        yield path, path.read_text(encoding="utf-8")