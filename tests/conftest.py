import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent))
sys.path.append(str(Path(__file__).parent))

from potree_fixtures import build_sample_cloud


@pytest.fixture
def sample_cloud(tmp_path):
    """Sample cloud with a proxy chunk, written to a temporary directory."""
    return build_sample_cloud(tmp_path / 'cloud')
