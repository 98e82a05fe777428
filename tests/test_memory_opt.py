import numpy as np
import pytest

from deeprisk.errors import (
    DimensionMismatchError,
    InvalidDimensionError,
    InvalidInputError,
    ModelError,
    UnsupportedOperationError,
)
from deeprisk.optimization.memory_opt import (
    ChunkedProcessor,
    GradientCheckpointer,
    MemoryConfig,
    MemoryMappedArray,
    MemoryPool,
    SparseTensor,
)


def _sample_dense():
    dense = np.zeros((5, 5), dtype=np.float32)
    dense[0, 0] = 1.0
    dense[1, 2] = 2.0
    dense[3, 4] = 3.0
    return dense


def test_memory_config_defaults():
    config = MemoryConfig()
    assert config.sparsity_threshold == pytest.approx(0.7)
    assert config.chunk_size == 1000
    assert config.checkpoint_segments == 4
    assert not config.use_checkpointing


def test_sparse_tensor():
    dense = _sample_dense()
    sparse = SparseTensor.from_dense(dense, 0.1)
    assert sparse.shape == (5, 5)
    assert len(sparse.values) == 3
    assert len(sparse.indices) == 3
    assert sparse.density == pytest.approx(3.0 / 25.0)
    np.testing.assert_array_equal(sparse.to_dense(), dense)


def test_sparse_indices_in_row_major_order():
    sparse = SparseTensor.from_dense(_sample_dense(), 0.1)
    assert sparse.indices == [(0, 0), (1, 2), (3, 4)]
    np.testing.assert_array_equal(sparse.values, [1.0, 2.0, 3.0])


def test_sparse_threshold_drops_small_values():
    dense = np.array([[0.05, -0.5], [0.2, 0.0]])
    sparse = SparseTensor.from_dense(dense, 0.1)
    assert sparse.indices == [(0, 1), (1, 0)]
    np.testing.assert_allclose(sparse.to_dense(), [[0.0, -0.5], [0.2, 0.0]])


def test_sparse_dot():
    sparse = SparseTensor.from_dense([[1.0, 0.0], [0.0, 2.0]], 0.0)
    result = sparse.dot(np.array([[1.0, 2.0], [3.0, 4.0]]))
    np.testing.assert_allclose(result, [[1.0, 2.0], [6.0, 8.0]])


def test_sparse_dot_dimension_mismatch():
    sparse = SparseTensor.from_dense(_sample_dense(), 0.1)
    with pytest.raises(DimensionMismatchError):
        sparse.dot(np.ones((4, 2)))


def test_sparse_memory_usage():
    sparse = SparseTensor.from_dense(_sample_dense(), 0.1)
    assert sparse.memory_usage() == 3 * 4 + 3 * 16 + 20


def test_chunked_processor():
    data = np.ones((100, 10), dtype=np.float32)
    processor = ChunkedProcessor(MemoryConfig(chunk_size=30), 100)
    results = processor.process_in_chunks(data, lambda chunk: float(chunk.sum()))
    assert results == [300.0, 300.0, 300.0, 100.0]


def test_chunked_processor_progress():
    processor = ChunkedProcessor(MemoryConfig(chunk_size=30), 100)
    assert processor.progress() == 0.0
    processor.process_in_chunks(np.ones((100, 2)), lambda chunk: chunk.shape[0])
    assert processor.progress() == pytest.approx(0.75)


def test_chunked_processor_rejects_zero_chunk_size():
    with pytest.raises(InvalidInputError):
        ChunkedProcessor(MemoryConfig(chunk_size=0), 10)


def test_checkpointer_disabled_processes_whole_sequence():
    checkpointer = GradientCheckpointer(MemoryConfig(use_checkpointing=False))
    assert checkpointer.process_sequence(np.ones((10, 3)), lambda seg: seg.shape[0]) == 10


def test_checkpointer_segments_and_combines():
    checkpointer = GradientCheckpointer(
        MemoryConfig(use_checkpointing=True, checkpoint_segments=4)
    )
    result = checkpointer.process_sequence(np.ones((10, 3)), lambda seg: seg.shape[0], list)
    assert result == [3, 3, 3, 1]


def test_checkpointer_combines_sums():
    data = np.arange(12, dtype=np.float32).reshape(6, 2)
    checkpointer = GradientCheckpointer(
        MemoryConfig(use_checkpointing=True, checkpoint_segments=3)
    )
    total = checkpointer.process_sequence(data, lambda seg: float(seg.sum()), sum)
    assert total == pytest.approx(66.0)


def test_checkpointer_requires_combine():
    checkpointer = GradientCheckpointer(MemoryConfig(use_checkpointing=True))
    with pytest.raises(InvalidInputError):
        checkpointer.process_sequence(np.ones((4, 2)), lambda seg: seg)


def test_memory_mapped_array_creates_file(tmp_path):
    path = tmp_path / "array.bin"
    MemoryMappedArray(path, [4, 5], 4)
    assert path.stat().st_size == 80


def test_memory_mapped_array_round_trip(tmp_path):
    array = MemoryMappedArray(tmp_path / "array.bin", [4, 5], 4)
    block = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)
    array.write_slice([1, 2], block)
    np.testing.assert_array_equal(array.read_slice([1, 2], [3, 4]), block)

    full = array.read_slice([0, 0], [4, 5])
    expected = np.zeros((4, 5), dtype=np.float32)
    expected[1:3, 2:4] = block
    np.testing.assert_array_equal(full, expected)


def test_memory_mapped_array_invalid_read(tmp_path):
    array = MemoryMappedArray(tmp_path / "array.bin", [4, 5], 4)
    with pytest.raises(InvalidDimensionError):
        array.read_slice([2, 0], [2, 5])
    with pytest.raises(InvalidDimensionError):
        array.read_slice([0, 0], [5, 5])
    with pytest.raises(InvalidDimensionError):
        array.read_slice([0], [1])


def test_memory_mapped_array_write_out_of_bounds(tmp_path):
    array = MemoryMappedArray(tmp_path / "array.bin", [4, 5], 4)
    with pytest.raises(InvalidDimensionError):
        array.write_slice([3, 4], np.ones((2, 2)))


def test_memory_mapped_array_unsupported_layouts(tmp_path):
    cube = MemoryMappedArray(tmp_path / "cube.bin", [2, 2, 2], 4)
    with pytest.raises(UnsupportedOperationError):
        cube.read_slice([0, 0, 0], [1, 1, 1])
    wide = MemoryMappedArray(tmp_path / "wide.bin", [2, 2], 8)
    with pytest.raises(UnsupportedOperationError):
        wide.read_slice([0, 0], [1, 1])


def test_memory_pool():
    pool = MemoryPool(1000 * 4)
    t1 = pool.allocate([10, 10])
    t2 = pool.allocate([5, 5])
    expected_usage = 10 * 10 * 4 + 5 * 5 * 4
    assert pool.memory_usage() == expected_usage

    pool.release(t1)
    pool.release(t2)
    assert pool.memory_usage() == expected_usage

    t3 = pool.allocate([10, 10])
    assert t3 is t1
    assert pool.memory_usage() == expected_usage

    pool.clear()
    assert pool.memory_usage() == 0


def test_memory_pool_limit():
    pool = MemoryPool(100 * 4)
    assert pool.max_memory() == 400
    pool.allocate([10, 10])
    with pytest.raises(ModelError):
        pool.allocate([1, 1])


def test_memory_pool_rejects_non_matrix_shape():
    pool = MemoryPool(1000)
    with pytest.raises(InvalidDimensionError):
        pool.allocate([10])