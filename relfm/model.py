# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
from numba import njit
from sklearn.utils import check_random_state

from .exceptions import DimensionMismatchError


@njit
def _predict_row(X, i, w0, w, V, sums, fit_linear):
    """FM output for row i; leaves sum_j V[j, f] * x_j in sums[f]."""
    n_factors = V.shape[1]
    y_pred = w0
    sum_sqr = 0.0
    sums[:] = 0.0
    for s in range(X.get_n_segments()):
        n_nz, indices, data = X.get_segment(i, s)
        for jj in range(n_nz):
            j = indices[jj]
            x_ij = data[jj]
            if fit_linear:
                y_pred += w[j] * x_ij
            for f in range(n_factors):
                d = V[j, f] * x_ij
                sums[f] += d
                sum_sqr += d * d
    for f in range(n_factors):
        y_pred += 0.5 * sums[f] * sums[f]
    y_pred -= 0.5 * sum_sqr
    return y_pred


@njit
def _predict(X, w0, w, V, fit_linear, out):
    sums = np.zeros(V.shape[1])
    for i in range(X.get_n_samples()):
        out[i] = _predict_row(X, i, w0, w, V, sums, fit_linear)


@njit
def _score(indices, data, w0, w, V, fit_linear):
    n_factors = V.shape[1]
    y_pred = w0
    for f in range(n_factors):
        sum_f = 0.0
        sum_sqr_f = 0.0
        for jj in range(len(indices)):
            d = V[indices[jj], f] * data[jj]
            sum_f += d
            sum_sqr_f += d * d
        y_pred += 0.5 * (sum_f * sum_f - sum_sqr_f)
    if fit_linear:
        for jj in range(len(indices)):
            y_pred += w[indices[jj]] * data[jj]
    return y_pred


class FMModel(object):
    """Second-order factorization machine.

        y(x) = w0 + sum_j w_j x_j + sum_{j < l} <V_j, V_l> x_j x_l

    The pairwise term is evaluated as
    ``0.5 * sum_f [(sum_j V_jf x_j)^2 - sum_j V_jf^2 x_j^2]``, i.e. in
    O(n_factors * nnz) per row.

    Parameters
    ----------
    n_attributes : int
        Size of the global attribute space.

    n_factors : int, default: 8
        Number of latent factors (the rank of the pairwise interactions).

    fit_intercept : boolean, default: True
        Whether to use the global bias ``w0``.

    fit_linear : boolean, default: True
        Whether to use the linear weights ``w``.

    init_stdev : float, default: 0.1
        Standard deviation of the Gaussian initialization of ``V``.

    init_mean : float, default: 0.0
        Mean of the Gaussian initialization of ``V``.

    random_state : int, RandomState instance or None, default: None
        Seed or generator for the initialization of ``V``.

    Attributes
    ----------
    w0 : float
        Global bias.

    w : array, shape = [n_attributes]
        Linear weights.

    V : array, shape = [n_attributes, n_factors]
        Latent factors.

    reg0, regw, regv : float
        Scalar regularization of the bias, the linear weights and the factors.

    w_lambda : array, shape = [n_groups] or None
        Per-group regularization of the linear weights.

    v_lambda : array, shape = [n_groups, n_factors] or None
        Per-group, per-factor regularization of the factors.
    """

    def __init__(
        self,
        n_attributes,
        n_factors=8,
        fit_intercept=True,
        fit_linear=True,
        init_stdev=0.1,
        init_mean=0.0,
        random_state=None,
    ):
        if n_attributes < 0 or n_factors < 0:
            raise DimensionMismatchError(
                "n_attributes and n_factors must be non-negative."
            )
        self.n_attributes = int(n_attributes)
        self.n_factors = int(n_factors)
        self.fit_intercept = bool(fit_intercept)
        self.fit_linear = bool(fit_linear)
        self.init_stdev = init_stdev
        self.init_mean = init_mean
        self.reg0 = 0.0
        self.regw = 0.0
        self.regv = 0.0
        self.w_lambda = None
        self.v_lambda = None
        self.init_params(random_state)

    def init_params(self, random_state=None):
        rng = check_random_state(random_state)
        self.w0 = 0.0
        self.w = np.zeros(self.n_attributes, dtype=np.double)
        self.V = rng.normal(
            self.init_mean, self.init_stdev, size=(self.n_attributes, self.n_factors)
        )
        return self

    def set_regularization(self, reg0=0.0, regw=0.0, regv=0.0):
        self.reg0 = float(reg0)
        self.regw = float(regw)
        self.regv = float(regv)
        return self

    def set_group_regularization(self, w_lambda, v_lambda):
        """Set per-group regularization; ``v_lambda`` may be given per group
        only (shape [n_groups]), in which case it is shared by all factors."""
        w_lambda = np.array(w_lambda, dtype=np.double).ravel()
        v_lambda = np.array(v_lambda, dtype=np.double)
        if v_lambda.ndim == 1:
            v_lambda = np.repeat(v_lambda[:, np.newaxis], self.n_factors, axis=1)
        if v_lambda.shape != (w_lambda.shape[0], self.n_factors):
            raise DimensionMismatchError(
                f"v_lambda must have shape ({w_lambda.shape[0]}, {self.n_factors}),"
                f" got {v_lambda.shape}."
            )
        self.w_lambda = w_lambda
        self.v_lambda = np.ascontiguousarray(v_lambda)
        return self

    def has_group_regularization(self):
        return self.w_lambda is not None

    def check_design_matrix(self, X):
        if X.n_attributes > self.n_attributes:
            raise DimensionMismatchError(
                f"Design matrix has {X.n_attributes} attributes, "
                f"the model {self.n_attributes}."
            )

    def _w0(self):
        return self.w0 if self.fit_intercept else 0.0

    def score(self, indices, values):
        """Model output for one sparse row given by global attribute ids and
        values."""
        indices = np.asarray(indices, dtype=np.int32)
        values = np.asarray(values, dtype=np.double)
        if indices.shape != values.shape:
            raise DimensionMismatchError("indices and values differ in length.")
        if indices.size and (indices.min() < 0 or indices.max() >= self.n_attributes):
            raise DimensionMismatchError("Attribute id out of range.")
        return _score(indices, values, self._w0(), self.w, self.V, self.fit_linear)

    def decision_function(self, X):
        """Model output for every row of the design matrix ``X``.

        Parameters
        ----------
        X : DesignMatrix

        Returns
        -------
        y_pred : array, shape = [n_samples]
        """
        self.check_design_matrix(X)
        y_pred = np.zeros(X.n_samples)
        _predict(
            X.get_dataset("c"), self._w0(), self.w, self.V, self.fit_linear, y_pred
        )
        return y_pred

    def copy(self):
        model = FMModel.__new__(FMModel)
        model.__dict__.update(self.__dict__)
        model.w = self.w.copy()
        model.V = self.V.copy()
        if self.w_lambda is not None:
            model.w_lambda = self.w_lambda.copy()
            model.v_lambda = self.v_lambda.copy()
        return model
