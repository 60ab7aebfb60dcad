"""Core data types shared by all vulnerability sources."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

_TIMESTAMP = re.compile(
    r"(\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d)(?:\.(\d+))?(Z|[+-]\d\d:\d\d)"
)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    match = _TIMESTAMP.fullmatch(value)
    if match is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    base, fraction, zone = match.groups()
    moment = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    if fraction:
        moment = moment.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return moment.replace(tzinfo=tz)


def _format_time(value: datetime) -> str:
    text = value.isoformat()
    if value.tzinfo is None:
        return text + "Z"
    if text.endswith("+00:00"):
        return text[: -len("+00:00")] + "Z"
    return text


def _compact(items: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values, mirroring omitempty JSON encoding."""
    return {key: value for key, value in items.items() if value not in (None, "", 0, [], {})}


class Severity(enum.IntEnum):
    """Normalised severity of a vulnerability."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name

    @classmethod
    def from_name(cls, name: str) -> Severity:
        """Return the severity with the given upper-case name."""
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown severity: {name}") from None


class SourceID(str, enum.Enum):
    """Identifiers of vulnerability data sources."""

    NVD = "nvd"
    REDHAT = "redhat"
    REDHAT_OVAL = "redhat-oval"
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    CENTOS = "centos"
    ROCKY = "rocky"
    FEDORA = "fedora"
    AMAZON = "amazon"
    ORACLE_OVAL = "oracle-oval"
    SUSE_CVRF = "suse-cvrf"
    ALPINE = "alpine"
    ARCH_LINUX = "arch-linux"
    ALMA = "alma"
    CBL_MARINER = "cbl-mariner"
    PHOTON = "photon"
    RUBY_SEC = "ruby-advisory-db"
    PHP_SECURITY_ADVISORIES = "php-security-advisories"
    NODEJS_SECURITY_WG = "nodejs-security-wg"
    GHSA = "ghsa"
    GLAD = "glad"
    OSV = "osv"
    WOLFI = "wolfi"
    CHAINGUARD = "chainguard"
    BITNAMI_VULNDB = "bitnami"
    K8S_VULN_DB = "k8s"

    def __str__(self) -> str:
        return self.value


class Ecosystem(str, enum.Enum):
    """Package ecosystems."""

    UNKNOWN = "unknown"
    NPM = "npm"
    COMPOSER = "composer"
    PIP = "pip"
    RUBYGEMS = "rubygems"
    CARGO = "cargo"
    NUGET = "nuget"
    MAVEN = "maven"
    GO = "go"
    CONAN = "conan"
    ERLANG = "erlang"
    PUB = "pub"
    SWIFT = "swift"
    COCOAPODS = "cocoapods"
    BITNAMI = "bitnami"
    KUBERNETES = "k8s"

    def __str__(self) -> str:
        return self.value


def _source_id(value: str) -> SourceID | str:
    try:
        return SourceID(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class DataSource:
    """Where a set of advisories came from."""

    id: SourceID | str = ""
    name: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact({"ID": str(self.id), "Name": self.name, "URL": self.url})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataSource:
        return cls(
            id=_source_id(data.get("ID", "")),
            name=data.get("Name", ""),
            url=data.get("URL", ""),
        )


@dataclass
class Advisory:
    """A single advisory for a package."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    affected_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)
    data_source: DataSource | None = None
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "VulnerabilityID": self.vulnerability_id,
                "VendorIDs": list(self.vendor_ids),
                "Arches": list(self.arches),
                "Severity": int(self.severity),
                "FixedVersion": self.fixed_version,
                "AffectedVersion": self.affected_version,
                "VulnerableVersions": list(self.vulnerable_versions),
                "PatchedVersions": list(self.patched_versions),
                "UnaffectedVersions": list(self.unaffected_versions),
                "DataSource": self.data_source.to_dict() if self.data_source else None,
                "Custom": self.custom,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Advisory:
        source = data.get("DataSource")
        return cls(
            vulnerability_id=data.get("VulnerabilityID", ""),
            vendor_ids=list(data.get("VendorIDs") or []),
            arches=list(data.get("Arches") or []),
            severity=Severity(int(data.get("Severity", 0))),
            fixed_version=data.get("FixedVersion", ""),
            affected_version=data.get("AffectedVersion", ""),
            vulnerable_versions=list(data.get("VulnerableVersions") or []),
            patched_versions=list(data.get("PatchedVersions") or []),
            unaffected_versions=list(data.get("UnaffectedVersions") or []),
            data_source=DataSource.from_dict(source) if source else None,
            custom=data.get("Custom"),
        )


@dataclass
class Advisories:
    """Advisories for one package, split into per-architecture entries."""

    fixed_version: str = ""
    entries: list[Advisory] = field(default_factory=list)
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "FixedVersion": self.fixed_version,
                "Entries": [entry.to_dict() for entry in self.entries],
                "Custom": self.custom,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Advisories:
        return cls(
            fixed_version=data.get("FixedVersion", ""),
            entries=[Advisory.from_dict(entry) for entry in data.get("Entries") or []],
            custom=data.get("Custom"),
        )


@dataclass
class VulnerabilityDetail:
    """Details of a vulnerability as reported by one source."""

    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "ID": self.id,
                "CvssScore": self.cvss_score,
                "CvssVector": self.cvss_vector,
                "CvssScoreV3": self.cvss_score_v3,
                "CvssVectorV3": self.cvss_vector_v3,
                "Severity": int(self.severity),
                "SeverityV3": int(self.severity_v3),
                "CweIDs": list(self.cwe_ids),
                "References": list(self.references),
                "Title": self.title,
                "Description": self.description,
                "PublishedDate": _format_time(self.published_date) if self.published_date else None,
                "LastModifiedDate": (
                    _format_time(self.last_modified_date) if self.last_modified_date else None
                ),
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VulnerabilityDetail:
        return cls(
            id=data.get("ID", ""),
            cvss_score=float(data.get("CvssScore", 0.0)),
            cvss_vector=data.get("CvssVector", ""),
            cvss_score_v3=float(data.get("CvssScoreV3", 0.0)),
            cvss_vector_v3=data.get("CvssVectorV3", ""),
            severity=Severity(int(data.get("Severity", 0))),
            severity_v3=Severity(int(data.get("SeverityV3", 0))),
            cwe_ids=list(data.get("CweIDs") or []),
            references=list(data.get("References") or []),
            title=data.get("Title", ""),
            description=data.get("Description", ""),
            published_date=_parse_time(data.get("PublishedDate")),
            last_modified_date=_parse_time(data.get("LastModifiedDate")),
        )


@dataclass
class CVSS:
    """CVSS vectors and scores from one vendor."""

    v2_vector: str = ""
    v3_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0


@dataclass
class Vulnerability:
    """A vulnerability merged from the details of all sources."""

    title: str = ""
    description: str = ""
    severity: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    vendor_severity: dict[SourceID | str, Severity] = field(default_factory=dict)
    cvss: dict[SourceID | str, CVSS] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None