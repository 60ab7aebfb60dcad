"""Ubuntu CVE Tracker data."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeed.store import Store, StoreError, walk_json_files
from vulnfeed.types import Advisory, DataSource, Severity, SourceID, VulnerabilityDetail

logger = logging.getLogger(__name__)

UBUNTU_DIR = "ubuntu"
PLATFORM_FORMAT = "ubuntu {}"
TARGET_STATUSES = ("needed", "deferred", "released")

UBUNTU_RELEASES_MAPPING = {
    "precise": "12.04",
    "quantal": "12.10",
    "raring": "13.04",
    "saucy": "13.10",
    "trusty": "14.04",
    "utopic": "14.10",
    "vivid": "15.04",
    "wily": "15.10",
    "xenial": "16.04",
    "yakkety": "16.10",
    "zesty": "17.04",
    "artful": "17.10",
    "bionic": "18.04",
    "cosmic": "18.10",
    "disco": "19.04",
    "eoan": "19.10",
    "focal": "20.04",
    "groovy": "20.10",
    "hirsute": "21.04",
    "impish": "21.10",
    "jammy": "22.04",
    "kinetic": "22.10",
    "lunar": "23.04",
    "mantic": "23.10",
    # ESM versions
    "precise/esm": "12.04-ESM",
    "trusty/esm": "14.04-ESM",
    "esm-infra/xenial": "16.04-ESM",
}

SOURCE = DataSource(
    id=SourceID.UBUNTU,
    name="Ubuntu CVE Tracker",
    url="https://git.launchpad.net/ubuntu-cve-tracker",
)


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
class Status:
    """The state of a package in one release."""

    status: str = ""
    note: str = ""


@dataclass
class UbuntuCVE:
    """One CVE as tracked by Ubuntu."""

    description: str = ""
    candidate: str = ""
    priority: str = ""
    patches: dict[str, dict[str, Status]] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    public_date: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UbuntuCVE:
        if not isinstance(data, dict):
            raise TypeError("Ubuntu CVE must be a JSON object")
        patches = {
            str(pkg): {
                str(release): Status(
                    status=_field(status or {}, "Status", "") or "",
                    note=_field(status or {}, "Note", "") or "",
                )
                for release, status in (patch or {}).items()
            }
            for pkg, patch in (_field(data, "Patches") or {}).items()
        }
        return cls(
            description=_field(data, "description", "") or "",
            candidate=_field(data, "Candidate", "") or "",
            priority=_field(data, "Priority", "") or "",
            patches=patches,
            references=list(_field(data, "References") or []),
            public_date=_field(data, "PublicDate", "") or "",
        )


def severity_from_priority(priority: str) -> Severity:
    """Convert an Ubuntu priority into a severity."""
    return {
        "untriaged": Severity.UNKNOWN,
        "negligible": Severity.LOW,
        "low": Severity.LOW,
        "medium": Severity.MEDIUM,
        "high": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(priority, Severity.UNKNOWN)


def default_put(store: Store, cve: Any) -> None:
    """Store the advisories and details of one Ubuntu CVE."""
    if not isinstance(cve, UbuntuCVE):
        raise TypeError("unknown type")
    for pkg_name, patch in cve.patches.items():
        for release, status in patch.items():
            if status.status not in TARGET_STATUSES:
                continue
            os_version = UBUNTU_RELEASES_MAPPING.get(release)
            if os_version is None:
                continue
            platform = PLATFORM_FORMAT.format(os_version)
            store.put_data_source(platform, SOURCE)

            advisory = Advisory()
            if status.status == "released":
                advisory.fixed_version = status.note
            store.put_advisory_detail(cve.candidate, pkg_name, [platform], advisory)

            detail = VulnerabilityDetail(
                severity=severity_from_priority(cve.priority),
                references=list(cve.references),
                description=cve.description,
            )
            store.put_vulnerability_detail(cve.candidate, SOURCE.id, detail)
            store.put_vulnerability_id(cve.candidate)


PutFunc = Callable[[Store, Any], None]


class UbuntuSource:
    """Reads Ubuntu CVE Tracker records into a store."""

    def __init__(self, store: Store | None = None, put: PutFunc | None = None) -> None:
        self.store = store if store is not None else Store()
        self._put = put if put is not None else default_put

    def name(self) -> SourceID:
        return SOURCE.id

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / "vuln-list" / UBUNTU_DIR
        cves = []
        for _, text in walk_json_files(root):
            try:
                cves.append(UbuntuCVE.from_dict(json.loads(text)))
            except (ValueError, TypeError, AttributeError) as exc:
                raise ValueError(f"failed to decode Ubuntu JSON: {exc}") from exc
        logger.info("Saving Ubuntu DB")
        with self.store.transaction():
            for cve in cves:
                self._put(self.store, cve)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package for one release."""
        bucket = PLATFORM_FORMAT.format(release)
        try:
            return self.store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get Ubuntu advisories: {exc}") from exc