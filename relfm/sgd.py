# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
from numba import njit

from .model import _predict_row


@njit
def _clip(p, loss, min_target, max_target):
    if loss.clip:
        p = min(max_target, p)
        p = max(min_target, p)
    return p


@njit
def _sgd_update(
    X,
    i,
    y_i,
    w0,
    w,
    V,
    sums,
    fit_intercept,
    fit_linear,
    reg0,
    regw,
    regv,
    eta0,
    eta_w,
    eta_v,
    loss,
    min_target,
    max_target,
):
    n_factors = V.shape[1]
    y_pred = _predict_row(X, i, w0, w, V, sums, fit_linear)
    y_pred = _clip(y_pred, loss, min_target, max_target)
    dL = loss.dloss(y_pred, y_i)
    if fit_intercept:
        w0 -= eta0 * (dL + reg0 * w0)
    # sums[f] is kept from before the update for every attribute of the row
    for s in range(X.get_n_segments()):
        n_nz, indices, data = X.get_segment(i, s)
        for jj in range(n_nz):
            j = indices[jj]
            x_ij = data[jj]
            if fit_linear:
                w[j] -= eta_w * (dL * x_ij + regw * w[j])
            for f in range(n_factors):
                v_jf = V[j, f]
                grad = x_ij * (sums[f] - v_jf * x_ij)
                V[j, f] -= eta_v * (dL * grad + regv * v_jf)
    return w0, y_pred


@njit
def _sgd_epoch(
    X,
    y,
    w0,
    w,
    V,
    fit_intercept,
    fit_linear,
    reg0,
    regw,
    regv,
    eta0,
    eta_w,
    eta_v,
    loss,
    min_target,
    max_target,
    indices_samples,
):
    sums = np.zeros(V.shape[1])
    sum_loss = 0.0
    for i in indices_samples:
        w0, y_pred = _sgd_update(
            X,
            i,
            y[i],
            w0,
            w,
            V,
            sums,
            fit_intercept,
            fit_linear,
            reg0,
            regw,
            regv,
            eta0,
            eta_w,
            eta_v,
            loss,
            min_target,
            max_target,
        )
        sum_loss += loss.loss(y_pred, y[i])
    return w0, sum_loss
