# vulnfeed

`vulnfeed` reads security advisories published by Linux distributions as
JSON files and stores them in a uniform shape: per-platform advisories keyed
by vulnerability ID and package name, vulnerability details per data source,
and the data source that describes each platform.

Supported feeds:

- Rocky Linux updateinfo (`vulnfeed.rocky.RockySource`)
- SUSE CVRF, for SUSE Linux Enterprise and openSUSE Leap
  (`vulnfeed.suse_cvrf.SuseCvrfSource` with `Distribution.SUSE_ENTERPRISE_LINUX`
  or `Distribution.OPENSUSE`)
- Ubuntu CVE Tracker (`vulnfeed.ubuntu.UbuntuSource`)
- Wolfi secdb (`vulnfeed.wolfi.WolfiSource`)

Each of them offers `name()`, `update(directory)` and `get(...)`, matching the
`vulnfeed.store.VulnSource` protocol.

## Installation

```
pip install vulnfeed
```

The package has no dependencies outside the standard library.

## Input layout

Each source reads every non-empty file below its directory under
`<directory>/vuln-list/`, in lexical order. Empty files are skipped.

| Source | Directory |
| ------ | --------- |
| Rocky | `vuln-list/rocky/<version>/<repo>/<arch>/<year>/<file>.json` |
| SUSE Linux Enterprise | `vuln-list/cvrf/suse/suse/...` |
| openSUSE | `vuln-list/cvrf/suse/opensuse/...` |
| Ubuntu | `vuln-list/ubuntu/...` |
| Wolfi | `vuln-list/wolfi/...` |

For Rocky, a minor version directory such as `8.5` is filed under its major
release (`rocky 8`); only the `BaseOS`, `AppStream` and `extras` repositories
and the `x86_64` and `aarch64` architectures are read, and packages from
modular releases (`.module+el`) are skipped.

## Usage

```python
from vulnfeed.store import Store
from vulnfeed.rocky import RockySource
from vulnfeed.suse_cvrf import Distribution, SuseCvrfSource
from vulnfeed.ubuntu import UbuntuSource
from vulnfeed.wolfi import WolfiSource

store = Store()

RockySource(store).update("cache")
SuseCvrfSource(Distribution.OPENSUSE, store).update("cache")
UbuntuSource(store).update("cache")
WolfiSource(store).update("cache")

# Advisories affecting a package on a platform
for advisory in RockySource(store).get("8", "bind", "x86_64"):
    print(advisory.vulnerability_id, advisory.fixed_version)

for advisory in UbuntuSource(store).get("18.04", "xen"):
    print(advisory.vulnerability_id, advisory.fixed_version)
```

Stored values can be read back by bucket path:

```python
store.get("data-source", "rocky 8")                       # decoded JSON
store.has_bucket("advisory-detail", "CVE-2021-25215", "rocky 8")
store.get_vulnerability_detail("CVE-2021-25215")          # {source: VulnerabilityDetail}
```

Each `update` writes inside `Store.transaction()`, so a failure part way
through leaves the store as it was. A `Store` can also be seeded with nested
dicts whose leaves are raw JSON strings or bytes.

Combine the details collected from all sources into one record:

```python
from vulnfeed.vulnerability import DetailResolver

resolver = DetailResolver(store)
details = resolver.get_details("CVE-2021-25215")
if details and not resolver.is_rejected(details):
    vuln = resolver.normalize(details)
    print(vuln.severity, vuln.title, vuln.references)
```

Package names can be normalised per ecosystem with
`vulnfeed.vulnerability.normalize_pkg_name`, and CVSS scores mapped to a
severity with `vulnfeed.vulnerability.score_to_severity`.

## Errors

- A missing input directory raises `FileNotFoundError`.
- A file that is not valid JSON for its feed raises `ValueError`
  (for example "failed to decode Rocky erratum").
- Stored data that cannot be decoded, or a write that clashes with an
  existing bucket, raises `vulnfeed.store.StoreError`.

## What it does not do

- The store lives in memory only; nothing is written to or loaded from a
  database file.
- Feeds are not downloaded; the JSON files must already be on disk.
- There is no command-line program; the package is used as a library.

## Running the tests

```
pip install -e ".[test]"
pytest
```