# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
from numba import njit

from .model import _predict_row
from .sgd import _clip


@njit
def _theta_step(
    X,
    i,
    y_i,
    w0,
    w,
    V,
    grad_w,
    grad_V,
    sums,
    attr_group,
    fit_intercept,
    fit_linear,
    reg0,
    reg_w,
    reg_v,
    eta0,
    eta_w,
    eta_v,
    loss,
    min_target,
    max_target,
):
    """SGD step on a training case with the current group regularization.

    The gradients of the loss are stored in grad_w / grad_V; the lambda step
    needs them to look ahead through the update.
    """
    n_factors = V.shape[1]
    y_pred = _predict_row(X, i, w0, w, V, sums, fit_linear)
    y_pred = _clip(y_pred, loss, min_target, max_target)
    dL = loss.dloss(y_pred, y_i)
    if fit_intercept:
        w0 -= eta0 * (dL + 2 * reg0 * w0)
    for s in range(X.get_n_segments()):
        n_nz, indices, data = X.get_segment(i, s)
        for jj in range(n_nz):
            j = indices[jj]
            x_ij = data[jj]
            g = attr_group[j]
            if fit_linear:
                grad_w[j] = dL * x_ij
                w[j] -= eta_w * (grad_w[j] + 2 * reg_w[g] * w[j])
            for f in range(n_factors):
                v_jf = V[j, f]
                grad_V[j, f] = dL * x_ij * (sums[f] - v_jf * x_ij)
                V[j, f] -= eta_v * (grad_V[j, f] + 2 * reg_v[g, f] * v_jf)
    return w0, y_pred


@njit
def _predict_lookahead(
    X, i, w0, w, V, grad_w, grad_V, attr_group, fit_linear, reg_w, reg_v,
    eta_w, eta_v, sums
):
    """Output for row i with every parameter replaced by its next SGD
    iterate theta' = theta - eta * (grad + 2 * reg * theta)."""
    n_factors = V.shape[1]
    y_pred = w0
    sum_sqr = 0.0
    sums[:] = 0.0
    for s in range(X.get_n_segments()):
        n_nz, indices, data = X.get_segment(i, s)
        for jj in range(n_nz):
            j = indices[jj]
            x_ij = data[jj]
            g = attr_group[j]
            if fit_linear:
                w_dash = w[j] - eta_w * (grad_w[j] + 2 * reg_w[g] * w[j])
                y_pred += w_dash * x_ij
            for f in range(n_factors):
                v_dash = V[j, f] - eta_v * (grad_V[j, f] + 2 * reg_v[g, f] * V[j, f])
                d = v_dash * x_ij
                sums[f] += d
                sum_sqr += d * d
    for f in range(n_factors):
        y_pred += 0.5 * sums[f] * sums[f]
    y_pred -= 0.5 * sum_sqr
    return y_pred


@njit
def _lambda_step(
    X,
    i,
    y_i,
    w0,
    w,
    V,
    grad_w,
    grad_V,
    attr_group,
    fit_linear,
    reg_w,
    reg_v,
    eta_w,
    eta_v,
    loss,
    min_target,
    max_target,
    sums,
    lambda_w_grad,
    sum_f,
    sum_f_dash_f,
):
    """Gradient step on the group regularization using validation case i."""
    n_factors = V.shape[1]
    n_groups = reg_w.shape[0]
    n_segments = X.get_n_segments()
    y_pred = _predict_lookahead(
        X, i, w0, w, V, grad_w, grad_V, attr_group, fit_linear, reg_w, reg_v,
        eta_w, eta_v, sums
    )
    y_pred = _clip(y_pred, loss, min_target, max_target)
    dL = loss.dloss(y_pred, y_i)

    if fit_linear:
        lambda_w_grad[:] = 0.0
        for s in range(n_segments):
            n_nz, indices, data = X.get_segment(i, s)
            for jj in range(n_nz):
                j = indices[jj]
                lambda_w_grad[attr_group[j]] += data[jj] * w[j]
        for g in range(n_groups):
            lambda_w_grad[g] *= -2 * eta_w
            reg_w[g] -= eta_w * dL * lambda_w_grad[g]
            reg_w[g] = max(0.0, reg_w[g])

    for f in range(n_factors):
        # sum_f_dash: sum_l x_l v'_lf over the whole row
        # sum_f[g]: sum_{l in g} x_l v_lf
        # sum_f_dash_f[g]: sum_{l in g} x_l^2 v_lf v'_lf
        sum_f_dash = 0.0
        sum_f[:] = 0.0
        sum_f_dash_f[:] = 0.0
        for s in range(n_segments):
            n_nz, indices, data = X.get_segment(i, s)
            for jj in range(n_nz):
                j = indices[jj]
                x_ij = data[jj]
                g = attr_group[j]
                v_jf = V[j, f]
                v_dash = v_jf - eta_v * (grad_V[j, f] + 2 * reg_v[g, f] * v_jf)
                sum_f_dash += v_dash * x_ij
                sum_f[g] += v_jf * x_ij
                sum_f_dash_f[g] += v_dash * x_ij * v_jf * x_ij
        for g in range(n_groups):
            lambda_v_grad = -2 * eta_v * (sum_f_dash * sum_f[g] - sum_f_dash_f[g])
            reg_v[g, f] -= eta_v * dL * lambda_v_grad
            reg_v[g, f] = max(0.0, reg_v[g, f])


@njit
def _sgda_epoch(
    X,
    y,
    X_val,
    y_val,
    w0,
    w,
    V,
    grad_w,
    grad_V,
    attr_group,
    fit_intercept,
    fit_linear,
    reg0,
    reg_w,
    reg_v,
    eta0,
    eta_w,
    eta_v,
    loss,
    min_target,
    max_target,
    indices_samples,
    val_pos,
    adapt,
):
    """One pass over the training cases; when ``adapt`` is set, every theta
    step is followed by a lambda step on the next validation case (cycling
    through the validation set from ``val_pos``)."""
    n_groups = reg_w.shape[0]
    n_val = X_val.get_n_samples()
    sums = np.zeros(V.shape[1])
    lambda_w_grad = np.zeros(n_groups)
    sum_f = np.zeros(n_groups)
    sum_f_dash_f = np.zeros(n_groups)
    sum_loss = 0.0
    for i in indices_samples:
        w0, y_pred = _theta_step(
            X,
            i,
            y[i],
            w0,
            w,
            V,
            grad_w,
            grad_V,
            sums,
            attr_group,
            fit_intercept,
            fit_linear,
            reg0,
            reg_w,
            reg_v,
            eta0,
            eta_w,
            eta_v,
            loss,
            min_target,
            max_target,
        )
        sum_loss += loss.loss(y_pred, y[i])
        if adapt and n_val > 0:
            if val_pos >= n_val:
                val_pos = 0
            _lambda_step(
                X_val,
                val_pos,
                y_val[val_pos],
                w0,
                w,
                V,
                grad_w,
                grad_V,
                attr_group,
                fit_linear,
                reg_w,
                reg_v,
                eta_w,
                eta_v,
                loss,
                min_target,
                max_target,
                sums,
                lambda_w_grad,
                sum_f,
                sum_f_dash_f,
            )
            val_pos += 1
    return w0, sum_loss, val_pos


@njit
def _lambda_epoch(
    X_val,
    y_val,
    w0,
    w,
    V,
    grad_w,
    grad_V,
    attr_group,
    fit_linear,
    reg_w,
    reg_v,
    eta_w,
    eta_v,
    loss,
    min_target,
    max_target,
):
    """One lambda step per validation case."""
    n_groups = reg_w.shape[0]
    sums = np.zeros(V.shape[1])
    lambda_w_grad = np.zeros(n_groups)
    sum_f = np.zeros(n_groups)
    sum_f_dash_f = np.zeros(n_groups)
    for i in range(X_val.get_n_samples()):
        _lambda_step(
            X_val,
            i,
            y_val[i],
            w0,
            w,
            V,
            grad_w,
            grad_V,
            attr_group,
            fit_linear,
            reg_w,
            reg_v,
            eta_w,
            eta_v,
            loss,
            min_target,
            max_target,
            sums,
            lambda_w_grad,
            sum_f,
            sum_f_dash_f,
        )
