"""Rocky Linux updateinfo errata."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeed.store import Store, StoreError, walk_json_files
from vulnfeed.types import Advisories, Advisory, DataSource, Severity, SourceID, VulnerabilityDetail

logger = logging.getLogger(__name__)

ROCKY_DIR = "rocky"
PLATFORM_FORMAT = "rocky {}"
TARGET_REPOS = ("BaseOS", "AppStream", "extras")
TARGET_ARCHES = ("x86_64", "aarch64")

SOURCE = DataSource(
    id=SourceID.ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)


@dataclass
class Reference:
    href: str = ""
    id: str = ""
    title: str = ""
    type: str = ""


@dataclass
class Package:
    name: str = ""
    epoch: str = ""
    version: str = ""
    release: str = ""
    arch: str = ""
    filename: str = ""


@dataclass
class RLSA:
    """One Rocky Linux security advisory."""

    id: str = ""
    title: str = ""
    severity: str = ""
    description: str = ""
    packages: list[Package] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    cve_ids: list[str] = field(default_factory=list)
    issued_date: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RLSA:
        if not isinstance(data, dict):
            raise TypeError("erratum must be a JSON object")
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            severity=data.get("severity", ""),
            description=data.get("description", ""),
            packages=[
                Package(
                    name=p.get("name", ""),
                    epoch=p.get("epoch", ""),
                    version=p.get("version", ""),
                    release=p.get("release", ""),
                    arch=p.get("arch", ""),
                    filename=p.get("filename", ""),
                )
                for p in data.get("packages") or []
            ],
            references=[
                Reference(
                    href=r.get("href", ""),
                    id=r.get("id", ""),
                    title=r.get("title", ""),
                    type=r.get("type", ""),
                )
                for r in data.get("references") or []
            ],
            cve_ids=list(data.get("cveids") or []),
            issued_date=(data.get("issued") or {}).get("date", ""),
        )


@dataclass
class PutInput:
    platform_name: str = ""
    cve_id: str = ""
    vuln: VulnerabilityDetail = field(default_factory=VulnerabilityDetail)
    advisories: dict[str, Advisories] = field(default_factory=dict)
    erratum: RLSA | None = None


def _construct_version(epoch: str, version: str, release: str) -> str:
    text = f"{epoch}:" if epoch not in ("", "0") else ""
    text += version
    if release:
        text += f"-{release}"
    return text


def generalize_severity(severity: str) -> Severity:
    """Map a Rocky severity word to a severity."""
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity.lower(), Severity.UNKNOWN)


def fixed_version(prev_version: str, new_version: str, arch: str) -> str:
    """Take the new version only for ``x86_64`` and ``noarch`` packages."""
    if arch in ("x86_64", "noarch"):
        return new_version
    return prev_version


class RockySource:
    """Reads Rocky Linux errata into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> SourceID:
        return SOURCE.id

    def update(self, directory: str | Path) -> None:
        errata = self.parse(Path(directory) / "vuln-list" / ROCKY_DIR)
        with self.store.transaction():
            for major, items in errata.items():
                platform = PLATFORM_FORMAT.format(major)
                self.store.put_data_source(platform, SOURCE)
                self._commit(platform, items)

    def parse(self, root_dir: str | Path) -> dict[str, list[RLSA]]:
        """Read all errata under ``root_dir``, grouped by major release."""
        root = Path(root_dir)
        errata: dict[str, list[RLSA]] = {}
        for path, text in walk_json_files(root):
            try:
                erratum = RLSA.from_dict(json.loads(text))
            except (ValueError, TypeError, AttributeError) as exc:
                raise ValueError(f"failed to decode Rocky erratum: {exc}") from exc
            dirs = path.relative_to(root).parts
            if len(dirs) != 5:
                logger.info("Invalid path: %s", path)
                continue
            major = dirs[0].split(".", 1)[0]
            repo, arch = dirs[1], dirs[2]
            if repo not in TARGET_REPOS:
                logger.info("Unsupported Rocky repo: %s", repo)
                continue
            if arch not in TARGET_ARCHES:
                logger.info("Unsupported Rocky arch: %s", arch)
                continue
            errata.setdefault(major, []).append(erratum)
        return errata

    def _commit(self, platform: str, errata: list[RLSA]) -> None:
        saved: dict[str, PutInput] = {}
        for erratum in errata:
            for cve_id in erratum.cve_ids:
                put_input = saved.get(cve_id) or PutInput()
                for pkg in erratum.packages:
                    # Modular packages are skipped.
                    if ".module+el" in pkg.release:
                        continue
                    version = _construct_version(pkg.epoch, pkg.version, pkg.release)
                    adv = put_input.advisories.get(pkg.name)
                    if adv is None:
                        put_input.advisories[pkg.name] = Advisories(
                            fixed_version=fixed_version("0.0.0", version, pkg.arch),
                            entries=[
                                Advisory(
                                    fixed_version=version,
                                    arches=[pkg.arch],
                                    vendor_ids=[erratum.id],
                                )
                            ],
                        )
                        continue
                    adv.fixed_version = fixed_version(adv.fixed_version, version, pkg.arch)
                    existing = next((e for e in adv.entries if e.fixed_version == version), None)
                    if existing is None:
                        adv.entries.append(
                            Advisory(fixed_version=version, arches=[pkg.arch], vendor_ids=[erratum.id])
                        )
                    else:
                        if pkg.arch not in existing.arches:
                            existing.arches.append(pkg.arch)
                        if erratum.id not in existing.vendor_ids:
                            existing.vendor_ids.append(erratum.id)
                if not put_input.advisories:
                    continue
                put_input.platform_name = platform
                put_input.cve_id = cve_id
                put_input.vuln = VulnerabilityDetail(
                    severity=generalize_severity(erratum.severity),
                    references=[ref.href for ref in erratum.references],
                    title=erratum.title,
                    description=erratum.description,
                )
                put_input.erratum = erratum
                saved[cve_id] = put_input
        for put_input in saved.values():
            self.put(put_input)

    def put(self, put_input: PutInput) -> None:
        """Store one CVE's detail and its advisories."""
        self.store.put_vulnerability_detail(put_input.cve_id, SOURCE.id, put_input.vuln)
        self.store.put_vulnerability_id(put_input.cve_id)
        for pkg_name, advisories in put_input.advisories.items():
            for entry in advisories.entries:
                entry.arches.sort()
                entry.vendor_ids.sort()
            self.store.put_advisory_detail(
                put_input.cve_id, pkg_name, [put_input.platform_name], advisories
            )

    def get(self, release: str, pkg_name: str, arch: str) -> list[Advisory]:
        """Return the advisories of a package for one release and architecture."""
        bucket = PLATFORM_FORMAT.format(release)
        try:
            raw_advisories = self.store.for_each_advisory([bucket], pkg_name)
        except StoreError as exc:
            raise StoreError(f"unable to iterate advisories: {exc}") from exc
        result: list[Advisory] = []
        for vuln_id, raw in raw_advisories.items():
            try:
                adv = Advisories.from_dict(json.loads(raw.content))
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc
            if not adv.entries:
                # Older records carry only a fixed version.
                result.append(
                    Advisory(
                        vulnerability_id=vuln_id,
                        fixed_version=adv.fixed_version,
                        data_source=raw.source,
                        custom=adv.custom,
                    )
                )
                continue
            for entry in adv.entries:
                if arch not in entry.arches:
                    continue
                entry.vulnerability_id = vuln_id
                entry.data_source = raw.source
                result.append(entry)
        return result