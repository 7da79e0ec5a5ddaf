# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
import scipy.sparse as sp
from numba import float64, int32
from numba.experimental import jitclass
from sklearn.utils.validation import check_array

from .exceptions import DataError, DimensionMismatchError

spec_rows = [
    ("n_samples", int32),
    ("n_features", int32),
    ("data", float64[:]),
    ("indices", int32[:]),
    ("indptr", int32[:]),
    ("rel_data", float64[:]),
    ("rel_indices", int32[:]),
    ("rel_indptr", int32[:]),
    ("rel_rows", int32[:, :]),
]


@jitclass(spec_rows)
class RelationalCSRDataset(object):
    """Row view of a design matrix.

    Row ``i`` is split into segments: segment 0 is the row of the main
    table, segment ``r + 1`` is the row of relation block ``r`` that case
    ``i`` refers to. Attribute ids are global in every segment.
    """

    def __init__(
        self,
        n_samples,
        n_features,
        data,
        indices,
        indptr,
        rel_data,
        rel_indices,
        rel_indptr,
        rel_rows,
    ):
        self.n_samples = n_samples
        self.n_features = n_features
        self.data = data
        self.indices = indices
        self.indptr = indptr
        self.rel_data = rel_data
        self.rel_indices = rel_indices
        self.rel_indptr = rel_indptr
        self.rel_rows = rel_rows

    def get_n_samples(self):
        return self.n_samples

    def get_n_features(self):
        return self.n_features

    def get_n_segments(self):
        return 1 + self.rel_rows.shape[1]

    def count_nonzero(self):
        nnz = len(self.data)
        for i in range(self.n_samples):
            for r in range(self.rel_rows.shape[1]):
                b = self.rel_rows[i, r]
                nnz += self.rel_indptr[b + 1] - self.rel_indptr[b]
        return nnz

    def get_segment(self, i, s):
        if s == 0:
            start = self.indptr[i]
            end = self.indptr[i + 1]
            return end - start, self.indices[start:end], self.data[start:end]
        b = self.rel_rows[i, s - 1]
        start = self.rel_indptr[b]
        end = self.rel_indptr[b + 1]
        return end - start, self.rel_indices[start:end], self.rel_data[start:end]


spec_columns = [
    ("n_samples", int32),
    ("n_features", int32),
    ("n_main_features", int32),
    ("data", float64[:]),
    ("indices", int32[:]),
    ("indptr", int32[:]),
    ("ref_cases", int32[:]),
    ("ref_indptr", int32[:]),
]


@jitclass(spec_columns)
class RelationalCSCDataset(object):
    """Column view of a design matrix.

    Columns of main-table attributes hold case ids. Columns of relation
    attributes hold (global) block row ids; ``ref_cases`` lists, for every
    block row, the cases that refer to it.
    """

    def __init__(
        self,
        n_samples,
        n_features,
        n_main_features,
        data,
        indices,
        indptr,
        ref_cases,
        ref_indptr,
    ):
        self.n_samples = n_samples
        self.n_features = n_features
        self.n_main_features = n_main_features
        self.data = data
        self.indices = indices
        self.indptr = indptr
        self.ref_cases = ref_cases
        self.ref_indptr = ref_indptr

    def get_n_samples(self):
        return self.n_samples

    def get_n_features(self):
        return self.n_features

    def get_column(self, j):
        start = self.indptr[j]
        end = self.indptr[j + 1]
        return end - start, self.indices[start:end], self.data[start:end]

    def column_length(self, j):
        start = self.indptr[j]
        end = self.indptr[j + 1]
        if j < self.n_main_features:
            return end - start
        n = 0
        for ii in range(start, end):
            b = self.indices[ii]
            n += self.ref_indptr[b + 1] - self.ref_indptr[b]
        return n

    def max_column_length(self):
        n_max = 0
        for j in range(self.n_features):
            n = self.column_length(j)
            if n > n_max:
                n_max = n
        return n_max

    def expand_column(self, j, cases, values):
        # writes the (case, value) pairs of attribute j, block rows resolved
        start = self.indptr[j]
        end = self.indptr[j + 1]
        n = 0
        if j < self.n_main_features:
            for ii in range(start, end):
                cases[n] = self.indices[ii]
                values[n] = self.data[ii]
                n += 1
            return n
        for ii in range(start, end):
            b = self.indices[ii]
            for kk in range(self.ref_indptr[b], self.ref_indptr[b + 1]):
                cases[n] = self.ref_cases[kk]
                values[n] = self.data[ii]
                n += 1
        return n


def binarize_targets(y):
    """Map targets to {-1, +1}: values <= 0 become -1, all others +1."""
    y = np.asarray(y, dtype=np.float64)
    return np.where(y <= 0.0, -1.0, 1.0)


def _check_csr(X, copy=True):
    X = check_array(X, accept_sparse="csr", dtype=np.float64, copy=copy)
    X = sp.csr_matrix(X)
    X.sum_duplicates()
    return X


def _widen(X, n_features):
    return sp.csr_matrix((X.data, X.indices, X.indptr), shape=(X.shape[0], n_features))


class AttributeGroups(object):
    """Partition of the attributes into groups.

    Parameters
    ----------
    attr_group : array-like of int, shape = [n_attributes]
        Group id of every attribute.

    n_groups : int or None
        Number of groups. Defaults to ``max(attr_group) + 1``.
    """

    def __init__(self, attr_group, n_groups=None):
        attr_group = np.asarray(attr_group).ravel()
        if attr_group.size and not np.all(np.equal(np.mod(attr_group, 1), 0)):
            raise DataError("Group ids must be integers.")
        attr_group = attr_group.astype(np.int32)
        if attr_group.size and attr_group.min() < 0:
            raise DataError("Group ids must be non-negative.")
        n_used = int(attr_group.max()) + 1 if attr_group.size else 1
        if n_groups is None:
            n_groups = n_used
        elif n_groups < n_used:
            raise DataError(
                f"Group id {n_used - 1} out of range for {n_groups} groups."
            )
        self.attr_group = attr_group
        self.n_groups = n_groups
        self.counts = np.bincount(attr_group, minlength=n_groups)
        n_attributes = attr_group.shape[0]
        self._membership = sp.csr_matrix(
            (np.ones(n_attributes), (attr_group, np.arange(n_attributes))),
            shape=(n_groups, n_attributes),
        )

    @classmethod
    def pooled(cls, n_attributes):
        """All attributes in a single group."""
        return cls(np.zeros(n_attributes, dtype=np.int32))

    @property
    def n_attributes(self):
        return self.attr_group.shape[0]

    def aggregate(self, values):
        """Per-group sums of ``values`` (shape [n_attributes] or
        [n_attributes, k])."""
        return np.asarray(self._membership @ values)

    def check_attributes(self, n_attributes):
        if self.n_attributes != n_attributes:
            raise DimensionMismatchError(
                f"Groups cover {self.n_attributes} attributes, "
                f"the model has {n_attributes}."
            )


class RelationBlock(object):
    """Feature rows shared by many cases of a main table.

    Parameters
    ----------
    X : {array-like, sparse matrix}, shape = [n_block_rows, n_features]
        Block rows, with local attribute ids.

    attr_offset : int
        Global id of the first attribute of the block.

    groups : array-like of int or None
        Local group id of every attribute of the block.
    """

    def __init__(self, X, attr_offset=0, groups=None, name=None):
        self.X = _check_csr(X)
        self.attr_offset = int(attr_offset)
        if groups is not None:
            groups = np.asarray(groups, dtype=np.int32).ravel()
            if groups.shape[0] != self.n_features:
                raise DataError(
                    f"Relation block has {self.n_features} attributes "
                    f"but {groups.shape[0]} group ids."
                )
        self.groups = groups
        self.name = name

    @property
    def n_samples(self):
        return self.X.shape[0]

    @property
    def n_features(self):
        return self.X.shape[1]

    @property
    def attribute_range(self):
        return self.attr_offset, self.attr_offset + self.n_features


def _stack_relations(relations, n_samples, n_attributes):
    # all blocks as one CSR table with global attribute ids
    tables = []
    rows = []
    row_offset = 0
    for block, index in relations:
        X = block.X
        tables.append(
            sp.csr_matrix(
                (X.data, X.indices + block.attr_offset, X.indptr),
                shape=(X.shape[0], n_attributes),
            )
        )
        rows.append(index + row_offset)
        row_offset += X.shape[0]
    if tables:
        B = sp.vstack(tables, format="csr")
        rel_rows = np.column_stack(rows)
    else:
        B = sp.csr_matrix((0, n_attributes))
        rel_rows = np.zeros((n_samples, 0))
    return B, np.ascontiguousarray(rel_rows, dtype=np.int32)


class DesignMatrix(object):
    """Immutable sparse design matrix, optionally with relation blocks.

    Parameters
    ----------
    X : {array-like, sparse matrix}, shape = [n_samples, n_main_features]
        Main table.

    y : array-like, shape = [n_samples]
        Targets.

    relations : sequence of (RelationBlock, array-like of int)
        Relation blocks and, for each, the block row every case refers to.

    n_attributes : int or None
        Width of the global attribute space. Defaults to the smallest width
        covering the main table and all blocks.
    """

    def __init__(self, X, y, relations=(), n_attributes=None):
        X = _check_csr(X)
        y = np.asarray(y, dtype=np.float64).ravel()
        n_samples = X.shape[0]
        if y.shape[0] != n_samples:
            raise DataError(
                f"Design matrix has {n_samples} rows but {y.shape[0]} targets."
            )

        checked = []
        for block, index in relations:
            index = np.asarray(index).ravel()
            if index.shape[0] != n_samples:
                raise DataError(
                    f"Relation index has {index.shape[0]} entries, "
                    f"expected one per case ({n_samples})."
                )
            if index.size and (index.min() < 0 or index.max() >= block.n_samples):
                raise DataError(
                    f"Relation index out of range for a block of "
                    f"{block.n_samples} rows."
                )
            checked.append((block, index.astype(np.int32)))
        relations = tuple(checked)

        ranges = sorted(block.attribute_range for block, _ in relations)
        for (_, end), (start, _) in zip(ranges[:-1], ranges[1:]):
            if start < end:
                raise DimensionMismatchError("Relation blocks share attribute ids.")
        width = max([X.shape[1]] + [end for _, end in ranges])
        if n_attributes is None:
            n_attributes = width
        elif n_attributes < width:
            raise DimensionMismatchError(
                f"n_attributes={n_attributes} is smaller than the data width {width}."
            )
        n_main_features = ranges[0][0] if ranges else n_attributes
        if X.shape[1] > n_main_features:
            raise DimensionMismatchError(
                "Main table attributes overlap the first relation block."
            )

        self.X = _widen(X, n_main_features)
        self.y = y
        self.relations = relations
        self.n_attributes = int(n_attributes)
        self.n_main_features = int(n_main_features)
        self._datasets = {}

    @property
    def n_samples(self):
        return self.X.shape[0]

    @property
    def shape(self):
        return self.n_samples, self.n_attributes

    def count_nonzero(self):
        return self.get_dataset("c").count_nonzero()

    def to_csr(self):
        """Materialize the joined matrix, shape [n_samples, n_attributes]."""
        joined = _widen(self.X, self.n_attributes)
        for block, index in self.relations:
            Xb = block.X[index]
            joined = joined + sp.csr_matrix(
                (Xb.data, Xb.indices + block.attr_offset, Xb.indptr),
                shape=self.shape,
            )
        return sp.csr_matrix(joined)

    def get_dataset(self, order="c"):
        """numba view of the rows (``order="c"``) or columns
        (``order="fortran"``)."""
        if order not in self._datasets:
            if order == "c":
                self._datasets[order] = self._row_dataset()
            elif order == "fortran":
                self._datasets[order] = self._column_dataset()
            else:
                raise ValueError(f"Unknown order {order}.")
        return self._datasets[order]

    def _row_dataset(self):
        B, rel_rows = _stack_relations(
            self.relations, self.n_samples, self.n_attributes
        )
        return RelationalCSRDataset(
            self.n_samples,
            self.n_attributes,
            self.X.data.astype(np.float64),
            self.X.indices.astype(np.int32),
            self.X.indptr.astype(np.int32),
            B.data.astype(np.float64),
            B.indices.astype(np.int32),
            B.indptr.astype(np.int32),
            rel_rows,
        )

    def _column_dataset(self):
        n_main = self.n_main_features
        main = self.X.tocsc()
        B, rel_rows = _stack_relations(
            self.relations, self.n_samples, self.n_attributes
        )
        rel = B.tocsc()
        start = rel.indptr[n_main]
        indptr = np.concatenate(
            [main.indptr, rel.indptr[n_main + 1 :] - start + main.nnz]
        )
        indices = np.concatenate([main.indices, rel.indices[start:]])
        data = np.concatenate([main.data, rel.data[start:]])

        # block row -> cases referring to it
        n_relations = rel_rows.shape[1]
        ref = sp.csr_matrix(
            (
                np.ones(rel_rows.size),
                (rel_rows.ravel(), np.repeat(np.arange(self.n_samples), n_relations)),
            ),
            shape=(B.shape[0], self.n_samples),
        )
        return RelationalCSCDataset(
            self.n_samples,
            self.n_attributes,
            n_main,
            data.astype(np.float64),
            indices.astype(np.int32),
            indptr.astype(np.int32),
            ref.indices.astype(np.int32),
            ref.indptr.astype(np.int32),
        )


class RelationalData(object):
    """Frozen output of :class:`DesignMatrixBuilder`."""

    def __init__(self, splits, groups, n_attributes, blocks):
        self.splits = splits
        self.groups = groups
        self.n_attributes = n_attributes
        self.blocks = blocks

    def __getitem__(self, name):
        return self.splits[name]

    def __contains__(self, name):
        return name in self.splits

    def get(self, name, default=None):
        return self.splits.get(name, default)


class DesignMatrixBuilder(object):
    """Two-phase construction of the design matrices of a run.

    Main tables and relation blocks are collected first; :meth:`build`
    assigns the attribute offsets of the blocks, concatenates the group
    metadata and returns immutable :class:`DesignMatrix` objects sharing the
    blocks.
    """

    def __init__(self):
        self._tables = {}
        self._groups = None
        self._relations = []

    def add_table(self, name, X, y):
        self._tables[name] = (_check_csr(X), np.asarray(y, dtype=np.float64))
        return self

    def set_groups(self, attr_group):
        self._groups = np.asarray(attr_group).ravel()
        return self

    def add_relation(self, X, index, groups=None, name=None):
        """Register a relation block.

        ``index`` maps every table name to the block row of each of its
        cases.
        """
        self._relations.append((X, dict(index), groups, name))
        return self

    def build(self):
        if not self._tables:
            raise DataError("No design matrix was added.")
        n_main = max(X.shape[1] for X, _ in self._tables.values())

        if self._groups is None:
            main_groups = AttributeGroups(np.zeros(n_main, dtype=np.int32))
        else:
            # a group file may list attributes no table uses
            if self._groups.shape[0] < n_main:
                raise DataError(
                    f"Group file lists {self._groups.shape[0]} attributes, "
                    f"the main table has {n_main}."
                )
            n_main = self._groups.shape[0]
            main_groups = AttributeGroups(self._groups)

        attr_group = [main_groups.attr_group]
        group_offset = main_groups.n_groups
        attr_offset = n_main
        blocks = []
        for X, index, groups, name in self._relations:
            block = RelationBlock(X, attr_offset=attr_offset, groups=groups, name=name)
            local = AttributeGroups(
                block.groups
                if block.groups is not None
                else np.zeros(block.n_features, dtype=np.int32)
            )
            attr_group.append(local.attr_group + group_offset)
            group_offset += local.n_groups
            attr_offset += block.n_features
            blocks.append((block, index))
        n_attributes = attr_offset

        groups = AttributeGroups(np.concatenate(attr_group), n_groups=group_offset)

        splits = {}
        for table, (X, y) in self._tables.items():
            relations = []
            for block, index in blocks:
                if table not in index:
                    raise DataError(
                        f"Relation block {block.name or ''} has no index "
                        f"for '{table}'."
                    )
                relations.append((block, index[table]))
            splits[table] = DesignMatrix(X, y, relations, n_attributes)
        return RelationalData(
            splits, groups, n_attributes, [block for block, _ in blocks]
        )
