"""SUSE and openSUSE CVRF documents."""

from __future__ import annotations

import enum
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeed.store import Store, StoreError, walk_json_files
from vulnfeed.types import Advisory, DataSource, Severity, SourceID, VulnerabilityDetail

logger = logging.getLogger(__name__)

PLATFORM_OPENSUSE_FORMAT = "openSUSE Leap {}"
PLATFORM_SUSE_LINUX_FORMAT = "SUSE Linux Enterprise {}"

SOURCE = DataSource(
    id=SourceID.SUSE_CVRF,
    name="SUSE CVRF",
    url="https://ftp.suse.com/pub/projects/security/cvrf/",
)

_VERSION = re.compile(r"v?\d+(\.\d+)*(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?")
_INTEGER = re.compile(r"[+-]?\d+")


class Distribution(enum.IntEnum):
    SUSE_ENTERPRISE_LINUX = 0
    OPENSUSE = 1


def _field(data: dict[str, Any], name: str, default: Any = None) -> Any:
    """Look up a key case-insensitively."""
    if name in data:
        return data[name]
    lowered = name.lower()
    for key, value in data.items():
        if key.lower() == lowered:
            return value
    return default


@dataclass
class DocumentNote:
    text: str = ""
    title: str = ""
    type: str = ""


@dataclass
class Relationship:
    product_reference: str = ""
    relates_to_product_reference: str = ""
    relation_type: str = ""


@dataclass
class Reference:
    url: str = ""
    description: str = ""


@dataclass
class Threat:
    type: str = ""
    severity: str = ""


@dataclass
class CvrfVulnerability:
    cve: str = ""
    description: str = ""
    threats: list[Threat] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)


@dataclass
class SuseCvrf:
    """One CVRF document."""

    title: str = ""
    tracking_id: str = ""
    notes: list[DocumentNote] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    vulnerabilities: list[CvrfVulnerability] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SuseCvrf:
        if not isinstance(data, dict):
            raise TypeError("CVRF document must be a JSON object")

        def refs(items):
            return [
                Reference(url=_field(r, "URL", ""), description=_field(r, "Description", ""))
                for r in items or []
            ]

        tracking = _field(data, "Tracking") or {}
        tree = _field(data, "ProductTree") or {}
        return cls(
            title=_field(data, "Title", ""),
            tracking_id=_field(tracking, "ID", ""),
            notes=[
                DocumentNote(
                    text=_field(n, "Text", ""), title=_field(n, "Title", ""), type=_field(n, "Type", "")
                )
                for n in _field(data, "Notes") or []
            ],
            relationships=[
                Relationship(
                    product_reference=_field(r, "ProductReference", ""),
                    relates_to_product_reference=_field(r, "RelatesToProductReference", ""),
                    relation_type=_field(r, "RelationType", ""),
                )
                for r in _field(tree, "Relationships") or []
            ],
            references=refs(_field(data, "References")),
            vulnerabilities=[
                CvrfVulnerability(
                    cve=_field(v, "CVE", ""),
                    description=_field(v, "Description", ""),
                    threats=[
                        Threat(type=_field(t, "Type", ""), severity=_field(t, "Severity", ""))
                        for t in _field(v, "Threats") or []
                    ],
                    references=refs(_field(v, "References")),
                )
                for v in _field(data, "Vulnerabilities") or []
            ],
        )


@dataclass
class Package:
    name: str = ""
    fixed_version: str = ""


@dataclass
class AffectedPackage:
    package: Package
    os_ver: str


def split_pkg_name(pkg_name: str) -> tuple[str, str]:
    """Split ``name-version-release`` into name and ``version-release``."""
    name, sep, release = pkg_name.rpartition("-")
    if not sep:
        return "", ""
    name, sep, version = name.rpartition("-")
    if not sep:
        return "", ""
    return name, f"{version}-{release}"


def get_os_version(platform_name: str) -> str:
    """Map a CVRF product name to a platform bucket name, or ``""``."""
    if "SUSE Manager" in platform_name:
        return ""
    if platform_name.startswith("openSUSE Leap"):
        parts = platform_name.split(" ")
        if len(parts) < 3:
            logger.info("invalid version: %s", platform_name)
            return ""
        if not _VERSION.fullmatch(parts[2]):
            logger.info("invalid version: %s", platform_name)
            return ""
        return PLATFORM_OPENSUSE_FORMAT.format(parts[2])
    if "SUSE Linux Enterprise" in platform_name:
        if platform_name.startswith(("SUSE Linux Enterprise Storage", "SUSE Linux Enterprise Micro")):
            return ""
        fields = platform_name.replace("-", " ").split()
        numbers: list[str] = []
        for word in reversed(fields[1:]):
            word = word.removeprefix("SP")
            if not _INTEGER.fullmatch(word):
                continue
            numbers.append(str(int(word)))
            if len(numbers) == 2:
                break
        if not numbers:
            logger.info("failed to detect version: %s", platform_name)
            return ""
        if len(numbers) == 1:
            return PLATFORM_SUSE_LINUX_FORMAT.format(numbers[0])
        return PLATFORM_SUSE_LINUX_FORMAT.format(f"{numbers[1]}.{numbers[0]}")
    return ""


def get_affected_packages(relationships: list[Relationship]) -> list[AffectedPackage]:
    """Return the packages whose product maps to a known platform."""
    packages = []
    for relationship in relationships:
        os_ver = get_os_version(relationship.relates_to_product_reference)
        if not os_ver:
            continue
        name, version = split_pkg_name(relationship.product_reference)
        packages.append(AffectedPackage(package=Package(name, version), os_ver=os_ver))
    return packages


def get_detail(notes: list[DocumentNote]) -> str:
    """Return the text of the general "Details" note."""
    return next((n.text for n in notes if n.type == "General" and n.title == "Details"), "")


def severity_from_threat(sev: str) -> Severity:
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(sev, Severity.UNKNOWN)


class SuseCvrfSource:
    """Reads SUSE or openSUSE CVRF documents into a store."""

    def __init__(self, dist: Distribution, store: Store | None = None) -> None:
        self.dist = Distribution(dist)
        self.store = store if store is not None else Store()

    def name(self) -> SourceID | str:
        if self.dist == Distribution.OPENSUSE:
            return "opensuse-cvrf"
        return SOURCE.id

    def update(self, directory: str | Path) -> None:
        logger.info("Saving SUSE CVRF")
        sub = "opensuse" if self.dist == Distribution.OPENSUSE else "suse"
        root = Path(directory) / "vuln-list" / "cvrf" / "suse" / sub
        cvrfs = []
        for _, text in walk_json_files(root):
            try:
                cvrfs.append(SuseCvrf.from_dict(json.loads(text)))
            except (ValueError, TypeError, AttributeError) as exc:
                raise ValueError(f"failed to decode SUSE CVRF JSON: {exc}") from exc
        with self.store.transaction():
            for cvrf in cvrfs:
                self._commit(cvrf)

    def _commit(self, cvrf: SuseCvrf) -> None:
        affected = get_affected_packages(cvrf.relationships)
        if not affected:
            return
        for item in affected:
            self.store.put_data_source(item.os_ver, SOURCE)
            self.store.put_advisory_detail(
                cvrf.tracking_id,
                item.package.name,
                [item.os_ver],
                Advisory(fixed_version=item.package.fixed_version),
            )
        severity = max(
            (severity_from_threat(t.severity) for v in cvrf.vulnerabilities for t in v.threats),
            default=Severity.UNKNOWN,
        )
        detail = VulnerabilityDetail(
            references=[ref.url for ref in cvrf.references],
            title=cvrf.title,
            description=get_detail(cvrf.notes),
            severity=severity,
        )
        self.store.put_vulnerability_detail(cvrf.tracking_id, SOURCE.id, detail)
        self.store.put_vulnerability_id(cvrf.tracking_id)

    def get(self, version: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package for one release."""
        if self.dist == Distribution.OPENSUSE:
            bucket = PLATFORM_OPENSUSE_FORMAT.format(version)
        else:
            bucket = PLATFORM_SUSE_LINUX_FORMAT.format(version)
        try:
            return self.store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get SUSE advisories: {exc}") from exc