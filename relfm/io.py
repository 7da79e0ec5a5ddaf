# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import os

import numpy as np
from sklearn.datasets import load_svmlight_file

from .dataset import DesignMatrixBuilder
from .exceptions import DataError


def load_libfm(path, n_features=None):
    """Read a file in libFM text format, ``target idx:value ...`` per line
    with zero-based attribute ids.

    Returns
    -------
    X : scipy.sparse.csr_matrix, shape = [n_samples, n_features]

    y : array, shape = [n_samples]
    """
    try:
        X, y = load_svmlight_file(
            path, n_features=n_features, dtype=np.float64, zero_based=True
        )
    except (OSError, ValueError) as e:
        raise DataError(f"Unable to read {path}: {e}") from e
    return X, y


def _load_ints(path, what):
    try:
        values = np.loadtxt(path, dtype=np.float64, ndmin=1)
    except (OSError, ValueError) as e:
        raise DataError(f"Unable to read {what} file {path}: {e}") from e
    if values.size and not np.all(np.equal(np.mod(values, 1), 0)):
        raise DataError(f"{what.capitalize()} file {path} holds non-integers.")
    return values.astype(np.int64)


def load_groups(path):
    """One group id per line, line ``j`` for attribute ``j``."""
    return _load_ints(path, "group")


def load_index(path):
    """One block row id per line, line ``i`` for case ``i``."""
    return _load_ints(path, "index")


def load_relation(base, splits=("train", "test")):
    """Read relation block ``base``.

    The block rows are in ``base`` (libFM text format, the target column is
    ignored), optional group ids of its attributes in ``base.groups`` and
    the block row of every case of split ``name`` in ``base.name``.

    Returns
    -------
    X : scipy.sparse.csr_matrix
        Block rows.

    index : dict
        Split name -> block row of every case.

    groups : array or None
    """
    X, _ = load_libfm(base)
    groups = None
    if os.path.exists(base + ".groups"):
        groups = load_groups(base + ".groups")
        if groups.shape[0] > X.shape[1]:
            # attributes absent from every block row
            X.resize((X.shape[0], groups.shape[0]))
    index = {name: load_index(f"{base}.{name}") for name in splits}
    return X, index, groups


def load_data(config):
    """Train, test and (sgda) validation design matrices of a resolved
    config, with relation blocks and attribute groups.

    Returns
    -------
    data : RelationalData
    """
    splits = {"train": config.train, "test": config.test}
    if config.validation is not None:
        splits["validation"] = config.validation

    builder = DesignMatrixBuilder()
    for name, path in splits.items():
        X, y = load_libfm(path)
        builder.add_table(name, X, y)
    if config.meta is not None:
        builder.set_groups(load_groups(config.meta))
    for base in config.relation:
        X, index, groups = load_relation(base, tuple(splits))
        builder.add_relation(X, index, groups=groups, name=os.path.basename(base))
    return builder.build()


def save_predictions(path, y_pred):
    """One prediction per line, in the order of the test cases."""
    np.savetxt(path, np.asarray(y_pred, dtype=np.float64), fmt="%.10g")
