# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np


class SquaredSlow(object):
    """Squared loss: L(p, y) = (p - y)²"""

    clip = True

    def loss(self, p, y):
        return (p - y) ** 2

    def dloss(self, p, y):
        return 2.0 * (p - y)


class LogisticSlow(object):
    """Logistic loss: L(p, y) = log(1 + exp(-yp))"""

    clip = False

    def loss(self, p, y):
        return np.log1p(np.exp(-p * y))

    def dloss(self, p, y):
        # -y * sigmoid(-yp)
        return -y / (np.exp(p * y) + 1.0)


def fm_predict_slow(X, w0, w, V):
    """Pairwise sum over all j < l, no interaction trick."""
    X = np.atleast_2d(X)
    n_samples, n_features = X.shape
    y_pred = np.full(n_samples, w0, dtype=np.float64)
    for i in range(n_samples):
        y_pred[i] += np.dot(X[i], w)
        for j in range(n_features):
            for l in range(j + 1, n_features):
                y_pred[i] += np.dot(V[j], V[l]) * X[i, j] * X[i, l]
    return y_pred


def sgd_epoch_slow(
    X,
    y,
    w0,
    w,
    V,
    reg0,
    regw,
    regv,
    eta0,
    eta_w,
    eta_v,
    loss,
    min_target=-np.inf,
    max_target=np.inf,
    fit_intercept=True,
    fit_linear=True,
):
    for i in range(X.shape[0]):
        x = X[i]
        p = fm_predict_slow(x, w0 if fit_intercept else 0.0, w, V)[0]
        if loss.clip:
            p = min(max(p, min_target), max_target)
        g = loss.dloss(p, y[i])
        if fit_intercept:
            w0 -= eta0 * (g + reg0 * w0)
        V_old = V.copy()
        sums = np.dot(x, V_old)
        for j in np.nonzero(x)[0]:
            if fit_linear:
                w[j] -= eta_w * (g * x[j] + regw * w[j])
            grad = x[j] * (sums - V_old[j] * x[j])
            V[j] -= eta_v * (g * grad + regv * V_old[j])
    return w0


def als_sweep_slow(X, y, w0, w, V, reg0, w_lambda, v_lambda, attr_group,
                   alpha=1.0, fit_intercept=True, fit_linear=True):
    """One coordinate-wise sweep setting every parameter to its conditional
    posterior mean (prior means 0). The output is linear in every single
    parameter, so its slope h and offset are read off two full predictions."""
    n_features = X.shape[1]
    b = np.array([w0 if fit_intercept else 0.0])
    coords = []
    if fit_intercept:
        coords.append((b, 0, reg0))
    if fit_linear:
        coords += [(w, j, w_lambda[attr_group[j]]) for j in range(n_features)]
    for f in range(V.shape[1]):
        coords += [
            (V, (j, f), v_lambda[attr_group[j], f]) for j in range(n_features)
        ]
    for theta, idx, lam in coords:
        theta[idx] = 0.0
        offset = fm_predict_slow(X, b[0], w, V)
        theta[idx] = 1.0
        h = fm_predict_slow(X, b[0], w, V) - offset
        precision = lam + alpha * np.dot(h, h)
        if precision <= 0:
            theta[idx] = 0.0
        else:
            theta[idx] = alpha * np.dot(h, y - offset) / precision
    return b[0]


def lambda_step_slow(x, y, w0, w, V, grad_w, grad_V, attr_group, reg_w, reg_v,
                     eta_w, eta_v, eps=1e-4):
    """Regularization update from one validation row, the derivative of the
    look-ahead output taken by central differences."""

    def lookahead(reg_w, reg_v):
        w_dash = w - eta_w * (grad_w + 2 * reg_w[attr_group] * w)
        V_dash = V - eta_v * (grad_V + 2 * reg_v[attr_group] * V)
        return fm_predict_slow(x, w0, w_dash, V_dash)[0]

    p = lookahead(reg_w, reg_v)
    dL = 2.0 * (p - y)
    new_w = reg_w.copy()
    new_v = reg_v.copy()
    for g in range(reg_w.shape[0]):
        d = np.zeros(reg_w.shape)
        d[g] = eps
        slope = (lookahead(reg_w + d, reg_v) - lookahead(reg_w - d, reg_v)) / (2 * eps)
        new_w[g] = max(0.0, reg_w[g] - eta_w * dL * slope)
        for f in range(reg_v.shape[1]):
            d = np.zeros(reg_v.shape)
            d[g, f] = eps
            slope = (lookahead(reg_w, reg_v + d) - lookahead(reg_w, reg_v - d)) / (2 * eps)
            new_v[g, f] = max(0.0, reg_v[g, f] - eta_v * dL * slope)
    return new_w, new_v
