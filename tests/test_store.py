import json

import pytest

from vulnfeed.store import RawAdvisory, Store, StoreError, walk_json_files
from vulnfeed.types import Advisories, Advisory, DataSource, SourceID, VulnerabilityDetail, Severity

ROCKY_SOURCE = DataSource(
    id=SourceID.ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)


def test_data_source_round_trip():
    store = Store()
    store.put_data_source("rocky 8", ROCKY_SOURCE)
    assert DataSource.from_dict(store.get("data-source", "rocky 8")) == ROCKY_SOURCE


def test_vulnerability_id_holds_empty_object():
    store = Store()
    store.put_vulnerability_id("CVE-2021-25215")
    assert store.get("vulnerability-id", "CVE-2021-25215") == {}
    assert store.has_bucket("vulnerability-id")


def test_advisory_detail_layout():
    store = Store()
    advisories = Advisories(fixed_version="32:9.11.26-4.el8_4")
    store.put_advisory_detail("CVE-2021-25215", "bind", ["rocky 8"], advisories)
    assert store.has_bucket("advisory-detail", "CVE-2021-25215", "rocky 8")
    stored = store.get("advisory-detail", "CVE-2021-25215", "rocky 8", "bind")
    assert Advisories.from_dict(stored) == advisories


def test_get_advisories_with_data_source():
    store = Store()
    store.put_data_source("rocky 9", ROCKY_SOURCE)
    store.put_advisory_detail("CVE-2022-0396", "bind", ["rocky 9"], Advisory(fixed_version="1.0"))
    assert store.get_advisories("rocky 9", "bind") == [
        Advisory(vulnerability_id="CVE-2022-0396", fixed_version="1.0", data_source=ROCKY_SOURCE)
    ]


def test_get_advisories_without_data_source():
    store = Store()
    store.put_advisory_detail("CVE-2022-0396", "bind", ["rocky 9"], Advisory(fixed_version="1.0"))
    assert store.get_advisories("rocky 9", "bind") == [
        Advisory(vulnerability_id="CVE-2022-0396", fixed_version="1.0")
    ]
    assert store.get_advisories("rocky 8", "bind") == []
    assert store.get_advisories("rocky 9", "other") == []


def test_get_advisories_broken_json():
    store = Store({"advisory-detail": {"CVE-2022-0396": {"rocky 9": {"bind": "{broken"}}}})
    with pytest.raises(StoreError, match="failed to unmarshal advisory JSON"):
        store.get_advisories("rocky 9", "bind")


def test_for_each_advisory_returns_raw_content():
    raw = json.dumps({"FixedVersion": "1.0"})
    store = Store({"advisory-detail": {"CVE-1": {"p": {"pkg": raw}}}})
    assert store.for_each_advisory(["p"], "pkg") == {
        "CVE-1": RawAdvisory(content=raw.encode(), source=DataSource())
    }


def test_vulnerability_detail_round_trip():
    store = Store()
    detail = VulnerabilityDetail(title="test vulnerability", severity=Severity.HIGH)
    store.put_vulnerability_detail("CVE-2020-1234", SourceID.NVD, detail)
    assert store.get_vulnerability_detail("CVE-2020-1234") == {SourceID.NVD: detail}
    assert store.get_vulnerability_detail("CVE-2020-9999") == {}


def test_vulnerability_detail_broken_json():
    store = Store({"vulnerability-detail": {"CVE-2020-1234": {"nvd": "{broken"}}})
    with pytest.raises(StoreError):
        store.get_vulnerability_detail("CVE-2020-1234")


def test_transaction_rolls_back_on_error():
    store = Store()
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.put_vulnerability_id("CVE-1")
            raise RuntimeError("boom")
    assert not store.has_bucket("vulnerability-id")


def test_transaction_keeps_writes_on_success():
    store = Store()
    with store.transaction() as tx:
        tx.put_vulnerability_id("CVE-1")
    assert store.get("vulnerability-id", "CVE-1") == {}


def test_get_missing_key_raises():
    with pytest.raises(KeyError):
        Store().get("data-source", "rocky 8")


def test_put_over_value_raises():
    store = Store()
    store.put_vulnerability_id("CVE-1")
    with pytest.raises(StoreError, match="incompatible value"):
        store.put_advisory_detail("x", "pkg", [], Advisory())
        store._put(["vulnerability-id", "CVE-1"], "k", b"{}")
    # the first write above succeeded, the second is rejected
    assert store.has_bucket("advisory-detail", "x")


def test_walk_json_files_order_and_empty(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "2.json").write_text('{"n": 2}')
    (tmp_path / "a.json").write_text('{"n": 1}')
    (tmp_path / "c.json").write_text("")
    found = [(path.relative_to(tmp_path).as_posix(), text) for path, text in walk_json_files(tmp_path)]
    assert found == [("a.json", '{"n": 1}'), ("b/2.json", '{"n": 2}')]


def test_walk_json_files_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError, match="no such file or directory"):
        list(walk_json_files(tmp_path / "badPath"))