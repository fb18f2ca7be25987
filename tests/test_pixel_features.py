import numpy as np
import pytest
from scipy.spatial.distance import cdist

from PixelFeatures import (ExtractIntensities, PairPrior, ProjectPixelCoordinates, ReadIntensities,
                           SamplePixelCoordinates, SamplePixelPairs, ShapeTransforms)
from Cascade import RectMatrices
from TrainingData import NormalizeShapes, CreateTrainingSamples
from ShapeSpace import MeanShape
from Params import AlgorithmParameters

MEAN = np.array([[-0.5, -0.5], [0.5, -0.5], [0., 0.5]])


@pytest.fixture
def image():
    return np.arange(100, dtype=np.float32).reshape(10, 10)


def test_read_inside_image(image):
    values = ReadIntensities(image, np.array([[3., 2.], [0., 0.], [9., 9.]]))
    np.testing.assert_allclose(values, [23., 0., 99.])


def test_read_sub_pixel(image):
    values = ReadIntensities(image, np.array([[3.5, 2.]]))
    assert values[0] == pytest.approx(23.5, abs=0.05)


def test_read_outside_image_clamps_to_border(image):
    pts = np.array([[-10., -10.], [1000., 5.], [4., -3.], [2., 1e6]])
    values = ReadIntensities(image, pts)
    np.testing.assert_allclose(values, [0., 59., 4., 92.])


def test_pixel_coordinates_reference_nearest_landmark():
    coords, landmarks, offsets = SamplePixelCoordinates(MEAN, 200, np.random.RandomState(0))
    assert coords.shape == (200, 2)
    np.testing.assert_allclose(MEAN[landmarks] + offsets, coords)
    np.testing.assert_array_equal(landmarks, np.argmin(cdist(coords, MEAN), 1))
    assert np.all(coords >= MEAN.min(0) - 0.11)
    assert np.all(coords <= MEAN.max(0) + 0.11)


def test_pair_prior_prefers_close_pairs():
    coords = np.array([[0., 0.], [0.1, 0.], [2., 0.]])
    prior = PairPrior(coords, 5.).reshape(3, 3)
    assert prior.sum() == pytest.approx(1.)
    np.testing.assert_array_equal(np.diag(prior), 0.)
    assert prior[0, 1] > prior[0, 2]
    assert prior[0, 1] == pytest.approx(prior[1, 0])


def test_pair_prior_does_not_underflow():
    coords = np.array([[0., 0.], [10., 0.], [30., 0.]])
    prior = PairPrior(coords, 1e4)
    assert np.all(np.isfinite(prior))
    assert prior.sum() == pytest.approx(1.)


def test_zero_lambda_is_uniform():
    coords = np.random.RandomState(0).rand(5, 2)
    prior = PairPrior(coords, 0.).reshape(5, 5)
    off_diagonal = prior[~np.eye(5, dtype=bool)]
    np.testing.assert_allclose(off_diagonal, 1. / 20)


def test_sampled_pairs_are_distinct():
    coords = np.random.RandomState(0).rand(30, 2)
    pairs = SamplePixelPairs(PairPrior(coords, 1.), 30, 500, np.random.RandomState(1))
    assert pairs.shape == (500, 2)
    assert np.all(pairs[:, 0] != pairs[:, 1])


def test_projection_follows_estimate_pose():
    rect_mat = np.eye(3)
    estimate = MEAN * 2 + [5., 5.]
    linear = ShapeTransforms(MEAN, [estimate])[0]
    np.testing.assert_allclose(linear, 2 * np.eye(2), atol=1e-10)
    pts = ProjectPixelCoordinates(np.array([0, 2]), np.array([[0.1, 0.], [0., -0.2]]), estimate, linear, rect_mat)
    np.testing.assert_allclose(pts, [[4.2, 4.], [5., 5.6]], atol=1e-10)


def test_extract_intensities_parallel_matches_serial(random_database):
    rshapes = NormalizeShapes(random_database.shapes, random_database.rects)
    mean_shape = MeanShape(rshapes)
    samples = CreateTrainingSamples(rshapes, np.random.RandomState(0), 'random', init_num=3)
    linears = ShapeTransforms(mean_shape, samples.estimates)
    _, landmarks, offsets = SamplePixelCoordinates(mean_shape, 40, np.random.RandomState(1))
    rect_mats = RectMatrices(random_database.rects)
    serial = ExtractIntensities(random_database.images, rect_mats, samples, linears, landmarks, offsets, n_jobs=1)
    parallel = ExtractIntensities(random_database.images, rect_mats, samples, linears, landmarks, offsets, n_jobs=3)
    assert serial.shape == (len(samples.idx), 40)
    np.testing.assert_array_equal(serial, parallel)


def test_default_prior_prefers_close_pairs(random_database):
    rshapes = NormalizeShapes(random_database.shapes, random_database.rects)
    coords, _, _ = SamplePixelCoordinates(MeanShape(rshapes), 400, np.random.RandomState(0))
    prior = PairPrior(coords, AlgorithmParameters().exponential_lambda)
    off_diagonal = prior.reshape(400, 400)[~np.eye(400, dtype=bool)]
    assert off_diagonal.min() > 0
    assert off_diagonal.max() / off_diagonal.min() > 100.
