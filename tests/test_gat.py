import numpy as np
import pytest

from deeprisk.errors import InvalidDimensionError
from deeprisk.nn.gat import GATModule


def test_gat_creation():
    gat = GATModule(64, 32, 4, 0.1)
    assert gat.in_features == 64
    assert gat.out_features == 32
    assert gat.n_heads == 4
    assert abs(gat.dropout - 0.1) < 1e-6
    assert gat.weight.shape == (32, 64)
    assert gat.attention.shape == (4, 64)


def test_gat_forward():
    gat = GATModule(64, 32, 4, 0.1)
    features = np.zeros((100, 64))
    adj_matrix = np.ones((100, 100))
    output = gat.forward(features, adj_matrix)
    assert output.shape == (100, 32)


@pytest.mark.parametrize("dropout", [1.5, -0.1])
def test_invalid_dropout(dropout):
    with pytest.raises(InvalidDimensionError):
        GATModule(64, 32, 4, dropout)


def test_wrong_input_dimension():
    gat = GATModule(8, 4, 2, 0.0)
    with pytest.raises(InvalidDimensionError):
        gat.forward(np.ones((3, 7)), np.ones((3, 3)))


def test_wrong_adjacency_shape():
    gat = GATModule(8, 4, 2, 0.0)
    with pytest.raises(InvalidDimensionError):
        gat.forward(np.ones((3, 8)), np.ones((3, 4)))


def test_no_edges_gives_zero_output():
    gat = GATModule(8, 4, 2, 0.0)
    features = np.random.default_rng(1).normal(size=(5, 8))
    output = gat.forward(features, np.zeros((5, 5)))
    assert np.array_equal(output, np.zeros((5, 4), dtype=np.float32))


def test_forward_without_dropout_is_deterministic():
    gat = GATModule(8, 4, 3, 0.0)
    features = np.random.default_rng(2).normal(size=(6, 8))
    adj = np.ones((6, 6))
    first = gat.forward(features, adj)
    second = gat.forward(features, adj)
    assert np.array_equal(first, second)
    assert np.all(np.isfinite(first))


def test_full_dropout_zeroes_output():
    gat = GATModule(8, 4, 2, 1.0)
    features = np.random.default_rng(3).normal(size=(4, 8))
    output = gat.forward(features, np.ones((4, 4)))
    assert np.array_equal(output, np.zeros((4, 4), dtype=np.float32))