# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
import pytest
import scipy.sparse as sp
from numpy.testing import assert_array_almost_equal, assert_array_equal

from relfm.dataset import (
    AttributeGroups,
    DesignMatrix,
    DesignMatrixBuilder,
    RelationBlock,
    binarize_targets,
)
from relfm.exceptions import DataError, DimensionMismatchError
from relfm.model import FMModel

from .fm_slow import fm_predict_slow

rng = np.random.RandomState(0)

n_samples = 30
X_main = sp.random(n_samples, 5, density=0.5, random_state=rng, format="csr")
X_block = sp.random(4, 3, density=0.7, random_state=rng, format="csr")
index = rng.randint(4, size=n_samples)
y = rng.randn(n_samples)


def _relational():
    block = RelationBlock(X_block, attr_offset=5)
    return DesignMatrix(X_main, y, [(block, index)])


def _joined():
    joined = sp.hstack([X_main, X_block[index]]).toarray()
    return joined


def test_binarize_targets():
    values = np.array([-3.0, -1.0, 0.0, 1e-12, 0.5, 1.0, 7.0])
    binary = binarize_targets(values)
    assert_array_equal(binary, [-1, -1, -1, 1, 1, 1, 1])
    assert_array_equal(binarize_targets(binary), binary)


def test_relation_offsets():
    builder = DesignMatrixBuilder()
    builder.add_table("train", X_main, y)
    builder.add_relation(X_block, {"train": index})
    data = builder.build()
    assert data.n_attributes == 8
    block = data.blocks[0]
    assert block.attribute_range == (5, 8)
    X = data["train"]
    assert X.n_main_features == 5
    joined = X.to_csr()
    assert joined.shape == (n_samples, 8)
    block_cols = joined[:, 5:].nonzero()[1] + 5
    assert np.all((block_cols >= 5) & (block_cols < 8))
    assert_array_equal(data.groups.attr_group, [0] * 5 + [1] * 3)


def test_to_csr_matches_join():
    assert_array_almost_equal(_relational().to_csr().toarray(), _joined())


def test_count_nonzero():
    assert _relational().count_nonzero() == np.count_nonzero(_joined())


def test_row_view_matches_join():
    X = _relational().get_dataset("c")
    joined = _joined()
    for i in range(n_samples):
        row = np.zeros(8)
        for s in range(X.get_n_segments()):
            n_nz, indices, data = X.get_segment(i, s)
            row[indices[:n_nz]] += data[:n_nz]
        assert_array_almost_equal(row, joined[i])


def test_column_view_expands_relations():
    X = _relational().get_dataset("fortran")
    joined = _joined()
    n_max = X.max_column_length()
    assert n_max == np.max(np.count_nonzero(joined, axis=0))
    cases = np.zeros(n_max, dtype=np.int32)
    values = np.zeros(n_max)
    for j in range(8):
        n = X.expand_column(j, cases, values)
        column = np.zeros(n_samples)
        column[cases[:n]] = values[:n]
        assert n == np.count_nonzero(joined[:, j])
        assert_array_almost_equal(column, joined[:, j])


def test_relational_prediction_matches_join():
    model = FMModel(8, n_factors=3, init_stdev=0.3, random_state=0)
    model.w[:] = rng.randn(8)
    model.w0 = 0.1
    assert_array_almost_equal(
        model.decision_function(_relational()),
        fm_predict_slow(_joined(), 0.1, model.w, model.V),
    )


def test_builder_groups():
    builder = DesignMatrixBuilder()
    builder.add_table("train", X_main, y)
    builder.add_table("test", X_main[:10], y[:10])
    builder.set_groups([0, 0, 1, 1, 2])
    builder.add_relation(
        X_block, {"train": index, "test": index[:10]}, groups=[0, 1, 1]
    )
    data = builder.build()
    assert data.groups.n_groups == 5
    assert_array_equal(data.groups.attr_group, [0, 0, 1, 1, 2, 3, 4, 4])
    assert_array_equal(data.groups.counts, [2, 2, 1, 1, 2])
    assert data["test"].n_samples == 10
    assert data["test"].n_attributes == 8
    assert "validation" not in data


def test_two_blocks():
    X_second = sp.random(6, 2, density=0.6, random_state=rng, format="csr")
    index_second = rng.randint(6, size=n_samples)
    builder = DesignMatrixBuilder()
    builder.add_table("train", X_main, y)
    builder.set_groups([0, 0, 1, 1, 1])
    builder.add_relation(X_block, {"train": index}, groups=[0, 1, 0], name="user")
    builder.add_relation(X_second, {"train": index_second}, name="item")
    data = builder.build()
    assert data.n_attributes == 10
    assert data.blocks[0].attribute_range == (5, 8)
    assert data.blocks[1].attribute_range == (8, 10)
    assert data.groups.n_groups == 5
    assert_array_equal(data.groups.attr_group, [0, 0, 1, 1, 1, 2, 3, 2, 4, 4])

    joined = sp.hstack([X_main, X_block[index], X_second[index_second]]).toarray()
    X = data["train"]
    assert_array_almost_equal(X.to_csr().toarray(), joined)
    Xc = X.get_dataset("fortran")
    cases = np.zeros(Xc.max_column_length(), dtype=np.int32)
    values = np.zeros(cases.shape[0])
    for j in range(10):
        n = Xc.expand_column(j, cases, values)
        column = np.zeros(n_samples)
        column[cases[:n]] = values[:n]
        assert_array_almost_equal(column, joined[:, j])


def test_builder_errors():
    builder = DesignMatrixBuilder()
    builder.add_table("train", X_main, y)
    builder.add_table("test", X_main, y)
    builder.add_relation(X_block, {"train": index})
    with pytest.raises(DataError):
        builder.build()

    builder = DesignMatrixBuilder()
    builder.add_table("train", X_main, y)
    builder.set_groups([0, 1])
    with pytest.raises(DataError):
        builder.build()

    with pytest.raises(DataError):
        DesignMatrixBuilder().build()


def test_design_matrix_errors():
    block = RelationBlock(X_block, attr_offset=5)
    with pytest.raises(DataError):
        DesignMatrix(X_main, y[:-1])
    with pytest.raises(DataError):
        DesignMatrix(X_main, y, [(block, index[:-1])])
    bad = index.copy()
    bad[0] = 4
    with pytest.raises(DataError):
        DesignMatrix(X_main, y, [(block, bad)])
    with pytest.raises(DimensionMismatchError):
        DesignMatrix(X_main, y, [(RelationBlock(X_block, attr_offset=3), index)])
    with pytest.raises(DimensionMismatchError):
        DesignMatrix(X_main, y, n_attributes=4)


def test_attribute_groups():
    groups = AttributeGroups([0, 2, 2, 1, 0])
    assert groups.n_groups == 3
    assert_array_equal(groups.counts, [2, 1, 2])
    values = np.arange(5.0)
    assert_array_almost_equal(groups.aggregate(values), [4.0, 3.0, 3.0])
    stacked = np.column_stack([values, 2 * values])
    assert_array_almost_equal(groups.aggregate(stacked)[2], [3.0, 6.0])
    pooled = AttributeGroups.pooled(5)
    assert pooled.n_groups == 1
    assert_array_equal(pooled.counts, [5])
    with pytest.raises(DataError):
        AttributeGroups([0, -1])
    with pytest.raises(DataError):
        AttributeGroups([0, 3], n_groups=2)
    with pytest.raises(DimensionMismatchError):
        groups.check_attributes(6)
