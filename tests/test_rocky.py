import json

import pytest

from vulnfeed.rocky import RockySource, fixed_version, generalize_severity
from vulnfeed.store import Store, StoreError
from vulnfeed.types import Advisory, DataSource, Severity, SourceID

SOURCE_DICT = {
    "ID": "rocky",
    "Name": "Rocky Linux updateinfo",
    "URL": "https://download.rockylinux.org/pub/rocky/",
}
BIND_REF = "https://access.redhat.com/hydra/rest/securitydata/cve/CVE-2021-25215.json"


def pkg(name, arch, version="9.11.26", epoch="32", release="4.el8_4"):
    return {"name": name, "epoch": epoch, "version": version, "release": release, "arch": arch}


def erratum(rid, packages, cve="CVE-2021-25215", severity="Important"):
    return {
        "id": rid,
        "title": "Important: bind security update",
        "severity": severity,
        "description": "For more information visit https://errata.rockylinux.org/RLSA-2021:1989",
        "packages": packages,
        "references": [{"href": BIND_REF}],
        "cveids": [cve],
    }


def write(tmp_path, rel, doc):
    path = tmp_path / "vuln-list" / "rocky" / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(doc if isinstance(doc, str) else json.dumps(doc))


def run(tmp_path):
    store = Store()
    RockySource(store).update(tmp_path)
    return store


def test_happy_path(tmp_path):
    arches = ["x86_64", "aarch64", "i686"]
    packages = [pkg(n, a) for n in ("bind-export-libs", "bind-export-devel") for a in arches]
    write(tmp_path, "8/BaseOS/x86_64/2021/a.json", erratum("RLSA-2021:1989", packages))
    store = run(tmp_path)
    assert store.get("data-source", "rocky 8") == SOURCE_DICT
    for name in ("bind-export-libs", "bind-export-devel"):
        assert store.get("advisory-detail", "CVE-2021-25215", "rocky 8", name) == {
            "FixedVersion": "32:9.11.26-4.el8_4",
            "Entries": [
                {
                    "FixedVersion": "32:9.11.26-4.el8_4",
                    "Arches": ["aarch64", "i686", "x86_64"],
                    "VendorIDs": ["RLSA-2021:1989"],
                }
            ],
        }
    assert store.get("vulnerability-detail", "CVE-2021-25215", "rocky") == {
        "Severity": 3,
        "References": [BIND_REF],
        "Title": "Important: bind security update",
        "Description": "For more information visit https://errata.rockylinux.org/RLSA-2021:1989",
    }
    assert store.get("vulnerability-id", "CVE-2021-25215") == {}


def test_different_versions(tmp_path):
    write(tmp_path, "8/BaseOS/aarch64/2021/a.json",
          erratum("RLSA-2021:000", [pkg("bind-export-devel", "aarch64")]))
    write(tmp_path, "8/BaseOS/x86_64/2021/b.json", erratum("RLSA-2021:0000", [
        pkg("bind-export-devel", "x86_64", version="7.11.26"),
        pkg("bind-export-devel", "i686", version="8.11.26"),
    ]))
    store = run(tmp_path)
    assert store.get("advisory-detail", "CVE-2021-25215", "rocky 8", "bind-export-devel") == {
        "FixedVersion": "32:7.11.26-4.el8_4",
        "Entries": [
            {"FixedVersion": "32:9.11.26-4.el8_4", "Arches": ["aarch64"], "VendorIDs": ["RLSA-2021:000"]},
            {"FixedVersion": "32:7.11.26-4.el8_4", "Arches": ["x86_64"], "VendorIDs": ["RLSA-2021:0000"]},
            {"FixedVersion": "32:8.11.26-4.el8_4", "Arches": ["i686"], "VendorIDs": ["RLSA-2021:0000"]},
        ],
    }


def test_noarch_package(tmp_path):
    doc = erratum("RLSA-2023:0335", [pkg("dbus-common", "noarch", "1.12.20", "1", "7.el9_1")],
                  cve="CVE-2022-42010", severity="Moderate")
    write(tmp_path, "9/BaseOS/x86_64/2023/a.json", doc)
    store = run(tmp_path)
    assert store.get("data-source", "rocky 9") == SOURCE_DICT
    assert store.get("advisory-detail", "CVE-2022-42010", "rocky 9", "dbus-common") == {
        "FixedVersion": "1:1.12.20-7.el9_1",
        "Entries": [{"FixedVersion": "1:1.12.20-7.el9_1", "Arches": ["noarch"],
                     "VendorIDs": ["RLSA-2023:0335"]}],
    }
    assert store.get("vulnerability-detail", "CVE-2022-42010", "rocky")["Severity"] == 2


def test_aarch64_only(tmp_path):
    write(tmp_path, "8/BaseOS/aarch64/2021/a.json",
          erratum("RLSA-2021:1989", [pkg("bind-export-devel", "aarch64")]))
    store = run(tmp_path)
    value = store.get("advisory-detail", "CVE-2021-25215", "rocky 8", "bind-export-devel")
    assert value["FixedVersion"] == "0.0.0"
    assert value["Entries"][0]["Arches"] == ["aarch64"]


def test_duplicates(tmp_path):
    p = {"name": "aspnetcore-runtime-6.0", "version": "6.0.5", "release": "1.el8_6"}
    write(tmp_path, "8/AppStream/aarch64/2022/a.json",
          erratum("RLSA-2022:2200", [dict(p, arch="aarch64")], cve="CVE-2022-29117"))
    write(tmp_path, "8/AppStream/x86_64/2022/b.json",
          erratum("RLSA-2022:0000", [dict(p, arch="x86_64")], cve="CVE-2022-29117"))
    store = run(tmp_path)
    assert store.get("advisory-detail", "CVE-2022-29117", "rocky 8", "aspnetcore-runtime-6.0") == {
        "FixedVersion": "6.0.5-1.el8_6",
        "Entries": [{"FixedVersion": "6.0.5-1.el8_6", "Arches": ["aarch64", "x86_64"],
                     "VendorIDs": ["RLSA-2022:0000", "RLSA-2022:2200"]}],
    }


def test_modular_packages_skipped(tmp_path):
    write(tmp_path, "8/AppStream/x86_64/2021/a.json", erratum(
        "RLSA-2021:1", [pkg("nodejs", "x86_64", release="1.module+el8.4.0+1")]))
    store = run(tmp_path)
    assert not store.has_bucket("vulnerability-id")
    assert not store.has_bucket("advisory-detail")


def test_minor_version_dir_and_unsupported_repo(tmp_path):
    write(tmp_path, "8.5/BaseOS/x86_64/2021/a.json", erratum("RLSA-1", [pkg("bind", "x86_64")]))
    write(tmp_path, "9/Devel/x86_64/2021/b.json", erratum("RLSA-2", [pkg("bind", "x86_64")]))
    errata = RockySource().parse(tmp_path / "vuln-list" / "rocky")
    assert list(errata) == ["8"]
    assert [e.id for e in errata["8"]] == ["RLSA-1"]


def test_sad_path(tmp_path):
    write(tmp_path, "8/BaseOS/x86_64/2021/a.json", "{broken")
    with pytest.raises(ValueError, match="failed to decode Rocky erratum"):
        RockySource(Store()).update(tmp_path)


DS = DataSource(id=SourceID.ROCKY, name="Rocky Linux updateinfo",
                url="https://download.rockylinux.org/pub/rocky/")


def seeded(advisories):
    return Store({"data-source": {"rocky 9": json.dumps(SOURCE_DICT)},
                  "advisory-detail": advisories})


def test_get_same_fixed_version():
    store = seeded({"CVE-2022-0396": {"rocky 9": {"bind": json.dumps({
        "FixedVersion": "32:9.16.23-0.9.el8.1",
        "Entries": [{"FixedVersion": "32:9.16.23-0.9.el8.1", "Arches": ["aarch64", "x86_64"],
                     "VendorIDs": ["RLSA-2022:7643"]}]})}}})
    assert RockySource(store).get("9", "bind", "x86_64") == [Advisory(
        vulnerability_id="CVE-2022-0396", fixed_version="32:9.16.23-0.9.el8.1",
        arches=["aarch64", "x86_64"], vendor_ids=["RLSA-2022:7643"], data_source=DS)]


def test_get_different_arches():
    store = seeded({"CVE-2022-24903": {"rocky 9": {"rsyslog": json.dumps({
        "FixedVersion": "8.2102.0-7.el8_6.1",
        "Entries": [
            {"FixedVersion": "8.2102.0-7.el8_6.1", "Arches": ["x86_64"], "VendorIDs": ["RLSA-2022:4798"]},
            {"FixedVersion": "8.2102.0-7.el8_6.2", "Arches": ["aarch64"], "VendorIDs": ["RLSA-2022:4799"]},
        ]})}}})
    assert RockySource(store).get("9", "rsyslog", "aarch64") == [Advisory(
        vulnerability_id="CVE-2022-24903", fixed_version="8.2102.0-7.el8_6.2",
        arches=["aarch64"], vendor_ids=["RLSA-2022:4799"], data_source=DS)]


def test_get_old_schema():
    store = seeded({"CVE-2022-0396": {"rocky 9": {"bind": json.dumps(
        {"FixedVersion": "32:9.16.23-0.9.el8.1"})}}})
    assert RockySource(store).get("9", "bind", "aarch64") == [Advisory(
        vulnerability_id="CVE-2022-0396", fixed_version="32:9.16.23-0.9.el8.1", data_source=DS)]


def test_get_broken_json():
    store = Store({"advisory-detail": {"CVE-2022-0396": {"rocky 9": {"bind": "{broken"}}}})
    with pytest.raises(StoreError, match="failed to unmarshal advisory JSON"):
        RockySource(store).get("9", "bind", "aarch64")


@pytest.mark.parametrize("word,expected", [
    ("Low", Severity.LOW), ("moderate", Severity.MEDIUM), ("IMPORTANT", Severity.HIGH),
    ("Critical", Severity.CRITICAL), ("", Severity.UNKNOWN), ("other", Severity.UNKNOWN),
])
def test_generalize_severity(word, expected):
    assert generalize_severity(word) == expected


def test_fixed_version():
    assert fixed_version("old", "new", "x86_64") == "new"
    assert fixed_version("old", "new", "noarch") == "new"
    assert fixed_version("old", "new", "aarch64") == "old"