"""
Shared test fixtures.

Catalog features, metrics factories, fake element readers, fake network and
S3 collaborators, and a small OSM PBF writer. Nothing here touches the network.
"""

import io
import os
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analysis.decoder import ElementKinds, OsmElement  # noqa: E402
from errors import NetworkFailure, ParseFailure  # noqa: E402
from services.storage_service import FilesystemBlobStore, RegionStore  # noqa: E402
from shared_schema import FeatureDistribution, QualityMetrics  # noqa: E402


# Catalog

def feature(region_id, name=None, parent=None, geometry=None, **properties):
    props = {"id": region_id, "name": name or region_id.title()}
    if parent is not None:
        props["parent"] = parent
    props.update(properties)
    return {"type": "Feature", "properties": props, "geometry": geometry}


def polygon(min_lon, min_lat, max_lon, max_lat):
    return {
        "type": "Polygon",
        "coordinates": [[
            [min_lon, min_lat], [max_lon, min_lat], [max_lon, max_lat],
            [min_lon, max_lat], [min_lon, min_lat],
        ]],
    }


@pytest.fixture
def sample_features():
    """Europe -> Germany -> Bayern, plus Liechtenstein without geometry"""
    return [
        feature("europe", "Europe"),
        feature("germany", "Germany", parent="europe",
                geometry=polygon(5.8, 47.2, 15.0, 55.1),
                **{"iso3166-1:alpha2": ["de"],
                   "urls": {"pbf": "https://download.geofabrik.de/europe/germany-latest.osm.pbf"}}),
        feature("germany-bayern", "Bayern", parent="germany",
                geometry=polygon(8.9, 47.3, 13.8, 50.6),
                **{"iso3166-2": ["DE-BY"]}),
        feature("liechtenstein", "Liechtenstein", parent="europe"),
    ]


# Metrics

def make_metrics(**overrides):
    values = dict(
        total_nodes=1000, total_ways=100, total_relations=10,
        tagged_nodes=500, tagged_ways=90, tagged_relations=10,
        geometry_errors=0, topology_errors=0, tag_errors=0,
    )
    values.update(overrides)
    if "completeness_score" not in values:
        total = values["total_nodes"] + values["total_ways"] + values["total_relations"]
        tagged = values["tagged_nodes"] + values["tagged_ways"] + values["tagged_relations"]
        values["completeness_score"] = tagged / total * 100.0 if total else 0.0
    values.setdefault("feature_distribution", FeatureDistribution())
    return QualityMetrics(**values)


@pytest.fixture
def metrics_factory():
    return make_metrics


# Element readers

def node(element_id, lat=47.1, lon=9.5, **tags):
    return OsmElement(ElementKinds.NODE, element_id, dict(tags), lat=lat, lon=lon)


def way(element_id, refs=2, **tags):
    return OsmElement(ElementKinds.WAY, element_id, dict(tags), ref_count=refs)


def relation(element_id, members=1, **tags):
    return OsmElement(ElementKinds.RELATION, element_id, dict(tags), ref_count=members)


class FakeReader:
    """Element reader yielding fixed elements, optionally failing after ``fail_after``"""

    def __init__(self, elements, fail_after=None):
        self.elements = list(elements)
        self.fail_after = fail_after
        self.consumed = 0

    def __call__(self, path):
        for index, element in enumerate(self.elements):
            if self.fail_after is not None and index >= self.fail_after:
                raise ParseFailure("corrupt block", path=path)
            self.consumed += 1
            yield element
        if self.fail_after is not None and self.fail_after >= len(self.elements):
            raise ParseFailure("truncated file", path=path)


@pytest.fixture
def extract_file(tmp_path):
    """Non-empty placeholder file for use with fake readers"""
    path = tmp_path / "sample.osm.pbf"
    path.write_bytes(b"placeholder")
    return path


# PBF files

@pytest.fixture
def write_pbf(tmp_path):
    """Write a small OSM PBF file with pyosmium and return its path"""
    import osmium

    def _write(name="fixture.osm.pbf", nodes=(), ways=(), relations=()):
        path = tmp_path / name
        writer = osmium.SimpleWriter(str(path))
        try:
            for node_id, lat, lon, tags in nodes:
                writer.add_node(osmium.osm.mutable.Node(
                    id=node_id, location=osmium.osm.Location(lon, lat), tags=tags))
            for way_id, refs, tags in ways:
                writer.add_way(osmium.osm.mutable.Way(id=way_id, nodes=refs, tags=tags))
            for relation_id, members, tags in relations:
                writer.add_relation(osmium.osm.mutable.Relation(
                    id=relation_id, members=members, tags=tags))
        finally:
            writer.close()
        return path

    return _write


# Storage

@pytest.fixture
def fs_store(tmp_path):
    return RegionStore(FilesystemBlobStore(tmp_path / "data"))


def set_mtime(path, when: datetime):
    ts = when.timestamp()
    os.utime(path, (ts, ts))


def store_extract(store, region_id, version, source, created_at=None):
    """Store ``source`` as an extract and optionally pin its creation time"""
    file_ref = store.put_data_file(region_id, version, source)
    if created_at is not None:
        set_mtime(store.backend.local_path(file_ref.key), created_at)
    return store.resolve_file(region_id, version)


# Network

class FakeFetcher:
    """Stands in for HttpFetcher; serves canned payloads per URL"""

    def __init__(self, json_payloads=None, files=None, error=None):
        self.json_payloads = json_payloads or {}
        self.files = files or {}
        self.error = error
        self.requests = []

    def get_json(self, url, timeout=60):
        self.requests.append(("json", url, timeout))
        if self.error:
            raise self.error
        if url not in self.json_payloads:
            raise NetworkFailure(f"HTTP 404 from {url}")
        return self.json_payloads[url]

    def download_to(self, url, path, timeout=600):
        self.requests.append(("download", url, timeout))
        if self.error:
            raise self.error
        source = self.files.get(url)
        if source is None:
            raise NetworkFailure(f"HTTP 404 from {url}")
        shutil.copyfile(source, path)
        return Path(path).stat().st_size


# S3

class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client"""

    def __init__(self, page_size=1000):
        self.objects = {}
        self.page_size = page_size
        self.list_calls = 0

    def _missing(self, key, operation):
        return ClientError({"Error": {"Code": "NoSuchKey", "Message": f"{key} missing"}}, operation)

    def put_object(self, Bucket, Key, Body):
        self.objects[(Bucket, Key)] = (bytes(Body), datetime.now(timezone.utc))

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise self._missing(Key, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)][0])}

    def upload_file(self, Filename, Bucket, Key):
        self.put_object(Bucket, Key, Path(Filename).read_bytes())

    def download_file(self, Bucket, Key, Filename):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        Path(Filename).write_bytes(self.objects[(Bucket, Key)][0])

    def list_objects_v2(self, Bucket, Prefix="", ContinuationToken=None):
        self.list_calls += 1
        keys = sorted(k for b, k in self.objects if b == Bucket and k.startswith(Prefix))
        start = int(ContinuationToken or 0)
        page = keys[start:start + self.page_size]
        response = {
            "Contents": [
                {"Key": k, "Size": len(self.objects[(Bucket, k)][0]),
                 "LastModified": self.objects[(Bucket, k)][1]}
                for k in page
            ],
            "IsTruncated": start + self.page_size < len(keys),
        }
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + self.page_size)
        if not page:
            del response["Contents"]
        return response
