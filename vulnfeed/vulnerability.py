"""Merging vulnerability details reported by several sources."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from vulnfeed.store import StoreError
from vulnfeed.types import CVSS, Ecosystem, Severity, SourceID, Vulnerability, VulnerabilityDetail

logger = logging.getLogger(__name__)

REJECT_MARKER = "** REJECT **"

# Sources in order of preference when picking a single value.
SOURCES = (
    SourceID.NVD,
    SourceID.REDHAT,
    SourceID.DEBIAN,
    SourceID.UBUNTU,
    SourceID.ALPINE,
    SourceID.AMAZON,
    SourceID.ORACLE_OVAL,
    SourceID.SUSE_CVRF,
    SourceID.PHOTON,
    SourceID.ARCH_LINUX,
    SourceID.ALMA,
    SourceID.ROCKY,
    SourceID.CBL_MARINER,
    SourceID.RUBY_SEC,
    SourceID.PHP_SECURITY_ADVISORIES,
    SourceID.NODEJS_SECURITY_WG,
    SourceID.GHSA,
    SourceID.GLAD,
    SourceID.OSV,
    SourceID.K8S_VULN_DB,
)

Details = Mapping[SourceID | str, VulnerabilityDetail]


def _preferred(details: Details) -> Iterator[tuple[SourceID, VulnerabilityDetail]]:
    for source in SOURCES:
        if source in details:
            yield source, details[source]


def score_to_severity(score: float) -> Severity:
    """Map a CVSS score to a severity."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.UNKNOWN


def normalize_pkg_name(ecosystem: Ecosystem | str, pkg_name: str) -> str:
    """Bring a package name into the canonical form of its ecosystem."""
    if ecosystem == Ecosystem.PIP:
        # Distribution names are case-insensitive and treat '_' like '-'.
        return pkg_name.lower().replace("_", "-")
    if ecosystem == Ecosystem.SWIFT:
        return pkg_name.removeprefix("https://").removesuffix(".git")
    if ecosystem in (Ecosystem.NUGET, Ecosystem.GO, Ecosystem.COCOAPODS):
        return pkg_name
    return pkg_name.lower()


def _cvss(details: Details) -> dict[SourceID | str, CVSS]:
    result = {}
    for vendor, detail in details.items():
        has_v2 = bool(detail.cvss_vector) and detail.cvss_score != 0
        has_v3 = bool(detail.cvss_vector_v3) and detail.cvss_score_v3 != 0
        if not (has_v2 or has_v3):
            continue
        result[vendor] = CVSS(
            v2_vector=detail.cvss_vector,
            v3_vector=detail.cvss_vector_v3,
            v2_score=detail.cvss_score,
            v3_score=detail.cvss_score_v3,
        )
    return result


def _vendor_severity(details: Details) -> dict[SourceID | str, Severity]:
    result = {}
    for vendor, detail in details.items():
        if detail.severity_v3 != Severity.UNKNOWN:
            result[vendor] = detail.severity_v3
        elif detail.severity != Severity.UNKNOWN:
            result[vendor] = detail.severity
        elif detail.cvss_score_v3 > 0:
            result[vendor] = score_to_severity(detail.cvss_score_v3)
        elif detail.cvss_score > 0:
            result[vendor] = score_to_severity(detail.cvss_score)
    return result


def _severity(details: Details) -> Severity:
    for _, detail in _preferred(details):
        if detail.cvss_score_v3 > 0:
            return score_to_severity(detail.cvss_score_v3)
        if detail.cvss_score > 0:
            return score_to_severity(detail.cvss_score)
        if detail.severity_v3 != Severity.UNKNOWN:
            return detail.severity_v3
        if detail.severity != Severity.UNKNOWN:
            return detail.severity
    return Severity.UNKNOWN


def _first(details: Details, attribute: str):
    return next(
        (getattr(detail, attribute) for _, detail in _preferred(details) if getattr(detail, attribute)),
        None,
    )


def _references(details: Details) -> list[str]:
    references = set()
    for source, detail in _preferred(details):
        # Amazon lists unrelated references.
        if source == SourceID.AMAZON:
            continue
        for reference in detail.references:
            references.update(reference.strip().split("\n"))
    return sorted(references)


class DetailResolver:
    """Reads per-source vulnerability details and merges them into one record."""

    def __init__(self, store) -> None:
        self._store = store

    def get_details(self, vuln_id: str) -> dict[SourceID | str, VulnerabilityDetail] | None:
        """Return the details per source, or ``None`` when there are none or they are unreadable."""
        try:
            details = self._store.get_vulnerability_detail(vuln_id)
        except StoreError as exc:
            logger.warning("Failed to get vulnerability detail: %s", exc)
            return None
        return details or None

    def is_rejected(self, details: Details) -> bool:
        """Tell whether any known source marks the vulnerability as rejected."""
        return any(REJECT_MARKER in detail.description for _, detail in _preferred(details))

    def normalize(self, details: Details) -> Vulnerability:
        """Merge the details of all sources into one vulnerability."""
        nvd = details.get(SourceID.NVD)
        return Vulnerability(
            title=_first(details, "title") or "",
            description=_first(details, "description") or "",
            severity=str(_severity(details)),
            cwe_ids=list(_first(details, "cwe_ids") or []),
            vendor_severity=_vendor_severity(details),
            cvss=_cvss(details),
            references=_references(details),
            published_date=nvd.published_date if nvd else None,
            last_modified_date=nvd.last_modified_date if nvd else None,
        )