"""Wolfi security database."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeed.store import Store, StoreError, walk_json_files
from vulnfeed.types import Advisory, DataSource, SourceID

WOLFI_DIR = "wolfi"
DISTRO_NAME = "wolfi"

SOURCE = DataSource(
    id=SourceID.WOLFI,
    name="Wolfi Secdb",
    url="https://packages.wolfi.dev/os/security.json",
)


@dataclass
class WolfiAdvisory:
    """The security fixes of one Wolfi package."""

    pkg_name: str = ""
    secfixes: dict[str, list[str]] = field(default_factory=dict)
    apkurl: str = ""
    archs: list[str] = field(default_factory=list)
    urlprefix: str = ""
    reponame: str = ""
    distroversion: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WolfiAdvisory:
        if not isinstance(data, dict):
            raise TypeError("Wolfi advisory must be a JSON object")
        return cls(
            pkg_name=data.get("name") or "",
            secfixes={
                str(version): list(ids or [])
                for version, ids in (data.get("secfixes") or {}).items()
            },
            apkurl=data.get("apkurl") or "",
            archs=list(data.get("archs") or []),
            urlprefix=data.get("urlprefix") or "",
            reponame=data.get("reponame") or "",
            distroversion=data.get("distroversion") or "",
        )


class WolfiSource:
    """Reads Wolfi secdb records into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> SourceID:
        return SOURCE.id

    def update(self, directory: str | Path) -> None:
        root = Path(directory) / "vuln-list" / WOLFI_DIR
        advisories = []
        for _, text in walk_json_files(root):
            try:
                advisories.append(WolfiAdvisory.from_dict(json.loads(text)))
            except (ValueError, TypeError, AttributeError) as exc:
                raise ValueError(f"failed to decode Wolfi advisory: {exc}") from exc
        with self.store.transaction():
            for advisory in advisories:
                self.store.put_data_source(DISTRO_NAME, SOURCE)
                self._save_secfixes(DISTRO_NAME, advisory.pkg_name, advisory.secfixes)

    def _save_secfixes(self, platform: str, pkg_name: str, secfixes: dict[str, list[str]]) -> None:
        for fixed_version, vuln_ids in secfixes.items():
            advisory = Advisory(fixed_version=fixed_version)
            for vuln_id in vuln_ids:
                # Entries may carry remarks, e.g. "CVE-2017-2616 (+ regression fix)".
                for cve_id in vuln_id.split():
                    cve_id = cve_id.replace("CVE_", "CVE-")
                    if not cve_id.startswith("CVE-"):
                        continue
                    self.store.put_advisory_detail(cve_id, pkg_name, [platform], advisory)
                    self.store.put_vulnerability_id(cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package; Wolfi has a single release."""
        try:
            return self.store.get_advisories(DISTRO_NAME, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get Wolfi advisories: {exc}") from exc