"""
Potree Cloud Inspection Script

Usage:
    python inspect_cloud.py path/to/pointclouds/cloud
    python inspect_cloud.py path/to/cloud --node r04 --validate
    python inspect_cloud.py path/to/cloud --config configs/reader.yaml
"""

import argparse
import logging

import numpy as np

from potree.cloud import PotreeCloud
from potree.config import ReaderConfig
from potree.io.hierarchy import get_hierarchy_stats, validate_hierarchy

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Inspect a Potree 2.0 point cloud")
    parser.add_argument("path", type=str, help="Directory holding metadata.json, hierarchy.bin, octree.bin")
    parser.add_argument("--config", type=str, help="Path to YAML reader config")
    parser.add_argument("--node", type=str, default="r", help="Node to load (path or Potree name)")
    parser.add_argument("--validate", action="store_true", help="Validate the decoded hierarchy")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.config:
        config = ReaderConfig.from_yaml(args.config)
    else:
        config = ReaderConfig()

    with PotreeCloud(args.path, config=config) as cloud:
        logger.info(f"Metadata: {cloud.metadata}")

        if args.validate:
            validate_hierarchy(cloud.hierarchy)
            logger.info("Hierarchy validation passed")

        stats = get_hierarchy_stats(cloud.hierarchy)
        logger.info(
            f"Hierarchy: {stats['num_nodes']} nodes, {stats['num_leaves']} leaves, "
            f"{stats['num_chunks']} chunks, max depth {stats['max_depth']}, "
            f"{stats['total_points']} points"
        )
        for level, count in sorted(stats['nodes_per_level'].items()):
            logger.info(
                f"  level {level}: {count} nodes, {stats['points_per_level'][level]} points"
            )

        node = cloud.load(args.node)
        if node is None:
            logger.error(f"Node '{args.node}' not found")
            return

        points = node.points
        logger.info(f"Loaded {node}")
        if len(points) > 0:
            coord = np.stack([points['x'], points['y'], points['z']], axis=1)
            logger.info(f"  bounds min {coord.min(axis=0)}, max {coord.max(axis=0)}")
            classes, counts = np.unique(points['classification'], return_counts=True)
            logger.info(f"  classes {dict(zip(classes.tolist(), counts.tolist()))}")

        cloud.unload(args.node)


if __name__ == "__main__":
    main()
