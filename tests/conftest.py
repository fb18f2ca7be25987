"""Shared fixtures: small synthetic databases with gradient images."""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from TrainingData import LoadDatabase


def gradient_image(size=64, reverse=False):
    row = np.arange(size, dtype=np.float32) * 4
    if reverse:
        row = row[::-1]
    return np.tile(row, (size, 1))


@pytest.fixture
def triangle_shapes():
    """Two different triangles, so their normalized shapes differ."""
    return [
        np.array([[20., 20.], [44., 22.], [30., 46.]]),
        np.array([[22., 18.], [42., 24.], [36., 44.]]),
    ]


@pytest.fixture
def triangle_database(triangle_shapes):
    """Brightness grows to the right in image 0 and to the left in image 1."""
    images = [gradient_image(), gradient_image(reverse=True)]
    return LoadDatabase(images, triangle_shapes)


@pytest.fixture
def random_database():
    rng = np.random.RandomState(11)
    images = []
    shapes = []
    base = np.array([[20., 22.], [44., 22.], [32., 34.], [24., 44.], [40., 44.]])
    for _ in range(6):
        images.append((rng.rand(64, 64) * 255).astype(np.float32))
        shapes.append(base + rng.randn(*base.shape) * 2)
    return LoadDatabase(images, shapes)
