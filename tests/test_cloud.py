"""
Integration Tests for PotreeCloud

Tests opening a cloud directory, node lookup and the load/unload lifecycle.
"""

import json
import subprocess
import sys
from pathlib import Path

import pytest
import numpy as np

from potree.cloud import PotreeCloud
from potree.config import ReaderConfig
from potree.errors import HierarchyMalformedError, MetadataError, PointDataReadError
from potree.io.metadata import CloudMetadata
from potree.io.hierarchy import NodeType

from potree_fixtures import (
    INTERIOR, LEAF, SAMPLE_POINT_COUNTS, make_metadata, pack_record, write_cloud
)


class TestCloudOpen:
    """Test opening a cloud directory."""

    def test_open(self, sample_cloud):
        """The whole octree is decoded on open."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            assert len(cloud) == 4
            assert [n.path for n in cloud.nodes] == ['', '0', '2', '27']
            assert cloud.root.path == ''
            assert cloud.metadata.stride == 21
            assert cloud.loaded_nodes() == []

    def test_missing_directory(self, tmp_path):
        """A missing directory raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            PotreeCloud(tmp_path / 'nowhere')

    def test_missing_metadata(self, sample_cloud):
        """A missing metadata.json raises FileNotFoundError."""
        (sample_cloud['path'] / 'metadata.json').unlink()

        with pytest.raises(FileNotFoundError):
            PotreeCloud(sample_cloud['path'])

    def test_malformed_metadata(self, sample_cloud):
        """Metadata without a hierarchy section raises MetadataError."""
        metadata = dict(sample_cloud['metadata'])
        del metadata['hierarchy']
        (sample_cloud['path'] / 'metadata.json').write_text(json.dumps(metadata))

        with pytest.raises(MetadataError, match="hierarchy"):
            PotreeCloud(sample_cloud['path'])

    def test_invalid_json(self, sample_cloud):
        """Unparseable metadata raises MetadataError."""
        (sample_cloud['path'] / 'metadata.json').write_text("{not json")

        with pytest.raises(MetadataError):
            PotreeCloud(sample_cloud['path'])

    def test_truncated_hierarchy(self, sample_cloud):
        """A hierarchy.bin shorter than the first chunk aborts construction."""
        (sample_cloud['path'] / 'hierarchy.bin').write_bytes(sample_cloud['hierarchy'][:40])

        with pytest.raises(HierarchyMalformedError):
            PotreeCloud(sample_cloud['path'])

    def test_from_parts(self, sample_cloud):
        """A cloud can be built from parsed metadata and hierarchy bytes."""
        metadata = CloudMetadata.from_dict(sample_cloud['metadata'])
        cloud = PotreeCloud.from_parts(
            metadata,
            sample_cloud['hierarchy'],
            sample_cloud['path'] / 'octree.bin',
            config=ReaderConfig(validate_hierarchy=True)
        )

        try:
            assert len(cloud) == 4
            assert cloud.load('27').point_count == 2
        finally:
            cloud.close()

    def test_core_import_without_torch(self):
        """The reader core does not pull in torch."""
        code = "import sys, potree; assert 'torch' not in sys.modules"
        result = subprocess.run(
            [sys.executable, '-c', code],
            cwd=str(Path(__file__).parent.parent),
            capture_output=True, text=True
        )

        assert result.returncode == 0, result.stderr

    def test_end_to_end_single_child(self, tmp_path):
        """Root with one octant-0 child decodes to child '0' with the lower box."""
        hierarchy = pack_record(INTERIOR, 0b00000001, 0, 0, 0) + pack_record(LEAF, 0, 0, 0, 0)
        path = write_cloud(tmp_path / 'single', make_metadata(first_chunk_size=44), hierarchy, b'')

        with PotreeCloud(path) as cloud:
            child = cloud.find_node('0')
            assert cloud.root.child_octants() == [0]
            assert np.array_equal(child.bounds.min, [0, 0, 0])
            assert np.array_equal(child.bounds.max, [4, 4, 4])


class TestCloudMetadata:
    """Test metadata parsing."""

    @pytest.mark.parametrize('overrides', [
        {'scale': (1.0, 1.0)},
        {'offset': (0.0, 0.0, 0.0, 0.0)},
    ])
    def test_vector_shape(self, overrides):
        """Scale and offset must be 3-vectors."""
        with pytest.raises(MetadataError, match="3-vectors"):
            CloudMetadata.from_dict(make_metadata(22, **overrides))

    @pytest.mark.parametrize('field, value', [
        ('points', 'many'),
        ('spacing', 'wide'),
        ('scale', ['a', 'b', 'c']),
    ])
    def test_non_numeric_fields(self, field, value):
        """Non-numeric values raise MetadataError."""
        data = make_metadata(22)
        data[field] = value

        with pytest.raises(MetadataError, match="malformed"):
            CloudMetadata.from_dict(data)

    def test_direct_construction(self):
        """Building CloudMetadata directly checks vector shapes too."""
        metadata = CloudMetadata.from_dict(make_metadata(22))

        with pytest.raises(MetadataError):
            CloudMetadata(
                bounding_box=metadata.bounding_box,
                attributes=metadata.attributes,
                scale=[1.0, 1.0],
                offset=metadata.offset,
                hierarchy=metadata.hierarchy,
            )


class TestFindNode:
    """Test node lookup."""

    def test_find_by_path_and_name(self, sample_cloud):
        """Paths and 'r'-prefixed Potree names resolve to the same node."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            assert cloud.find_node('') is cloud.root
            assert cloud.find_node('r') is cloud.root
            assert cloud.find_node('27') is cloud.find_node('r27')
            assert cloud.find_node('27').name == 'r27'

    def test_missing_node(self, sample_cloud):
        """Unknown paths return None instead of raising."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            assert cloud.find_node('5') is None
            assert cloud.find_node('r01234') is None
            assert '5' not in cloud
            assert 'r2' in cloud

    def test_spliced_proxy(self, sample_cloud):
        """The proxy node carries its sub-chunk's root record."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            node = cloud.find_node('2')
            assert node.kind == NodeType.INTERIOR
            assert node.point_count == 1
            assert [c.path for c in cloud.hierarchy.children_of(node)] == ['27']


class TestLifecycle:
    """Test load/unload transitions."""

    def test_load_values(self, sample_cloud):
        """Loaded points match the records written for each node."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            for path, count in SAMPLE_POINT_COUNTS.items():
                node = cloud.load(path)
                raw = sample_cloud['raw'][path]

                assert node.is_loaded
                assert len(node.points) == count
                assert np.array_equal(node.points['classification'], raw['classification'])
                expected_x = raw['position'][:, 0].astype(np.float32) * np.float32(0.001)
                assert np.allclose(node.points['x'], expected_x)

    def test_load_unload(self, sample_cloud):
        """Unload detaches the buffer and clears the loaded flag."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            node = cloud.load('r0')
            assert node.is_loaded
            assert cloud.loaded_nodes() == [node]

            assert cloud.unload('r0') is True
            assert not node.is_loaded
            assert node.points is None

    def test_reload_replaces(self, sample_cloud):
        """Loading twice replaces the buffer instead of appending."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            first = cloud.load('0').points
            second = cloud.load('0').points

            assert second is not first
            assert len(second) == SAMPLE_POINT_COUNTS['0']
            assert np.array_equal(first, second)

    def test_unload_idempotent(self, sample_cloud):
        """Unloading an unloaded node is a no-op."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            assert cloud.unload('0') is True
            assert cloud.unload('0') is True
            assert not cloud.find_node('0').is_loaded

    def test_missing_node_lifecycle(self, sample_cloud):
        """Load and unload report missing nodes without raising."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            assert cloud.load('6') is None
            assert cloud.unload('6') is False

    def test_unload_all(self, sample_cloud):
        """unload_all detaches every buffer."""
        with PotreeCloud(sample_cloud['path']) as cloud:
            for path in SAMPLE_POINT_COUNTS:
                cloud.load(path)

            assert cloud.unload_all() == 4
            assert cloud.loaded_nodes() == []

    def test_truncated_octree(self, sample_cloud):
        """A point file shorter than a node's range raises on load."""
        octree = sample_cloud['path'] / 'octree.bin'
        octree.write_bytes(octree.read_bytes()[:100])

        with PotreeCloud(sample_cloud['path']) as cloud:
            with pytest.raises(PointDataReadError):
                cloud.load('27')
            assert not cloud.find_node('27').is_loaded

    def test_load_after_close(self, sample_cloud):
        """Loads after close fail."""
        cloud = PotreeCloud(sample_cloud['path'])
        cloud.close()

        with pytest.raises(PointDataReadError):
            cloud.load('')


class TestReaderConfig:
    """Test reader configuration."""

    def test_yaml_roundtrip(self, tmp_path):
        """Config survives a YAML save/load."""
        config = ReaderConfig(max_chunk_depth=3, validate_hierarchy=True, verbose=False)
        config.to_yaml(str(tmp_path / 'reader.yaml'))

        loaded = ReaderConfig.from_yaml(str(tmp_path / 'reader.yaml'))

        assert loaded == config

    def test_custom_file_names(self, sample_cloud):
        """File names come from the config."""
        path = sample_cloud['path']
        (path / 'octree.bin').rename(path / 'points.bin')

        config = ReaderConfig(octree_file='points.bin')
        with PotreeCloud(path, config=config) as cloud:
            assert cloud.load('0').point_count == 3

    def test_chunk_depth_override(self, sample_cloud):
        """max_chunk_depth overrides the declared hierarchy depth."""
        with pytest.raises(HierarchyMalformedError):
            PotreeCloud(sample_cloud['path'], config=ReaderConfig(max_chunk_depth=0))

    def test_negative_chunk_depth(self):
        """Negative caps are rejected."""
        with pytest.raises(ValueError):
            ReaderConfig(max_chunk_depth=-1)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
