# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

from math import isinf, isnan, sqrt

import numpy as np
from numba import njit
from scipy.stats import truncnorm

# Every draw_* below works on the residual cache e[c] = y_pred[c] - target[c]
# of the training cases, and keeps it exact after each scalar update.


@njit
def _draw_w0(w0, reg0, w0_mean_0, e, alpha, z, do_sample):
    n_samples = e.shape[0]
    w0_mean = 0.0
    for c in range(n_samples):
        w0_mean += e[c] - w0
    precision = reg0 + alpha * n_samples
    if precision <= 0.0:
        w0_new = 0.0
    else:
        w0_var = 1.0 / precision
        w0_mean = -w0_var * (alpha * w0_mean - w0_mean_0 * reg0)
        if do_sample:
            w0_new = w0_mean + sqrt(w0_var) * z
        else:
            w0_new = w0_mean
    if isnan(w0_new) or isinf(w0_new):
        return w0, 1
    for c in range(n_samples):
        e[c] -= w0 - w0_new
    return w0_new, 0


@njit
def _draw_w(X, w, w_mu, w_lambda, attr_group, e, alpha, z, do_sample, cases, values):
    n_bad = 0
    for j in range(X.get_n_features()):
        g = attr_group[j]
        n = X.expand_column(j, cases, values)
        w_j = w[j]
        w_mean = 0.0
        w_sq = 0.0
        for ii in range(n):
            x = values[ii]
            w_mean += x * (e[cases[ii]] - w_j * x)
            w_sq += x * x
        precision = w_lambda[g] + alpha * w_sq
        if precision <= 0.0:
            w_new = 0.0
        else:
            w_var = 1.0 / precision
            w_mean = -w_var * (alpha * w_mean - w_mu[g] * w_lambda[g])
            if do_sample:
                w_new = w_mean + sqrt(w_var) * z[j]
            else:
                w_new = w_mean
        if isnan(w_new) or isinf(w_new):
            n_bad += 1
            continue
        for ii in range(n):
            e[cases[ii]] -= values[ii] * (w_j - w_new)
        w[j] = w_new
    return n_bad


@njit
def _compute_q(X, V, f, q):
    """q[i] = sum_j V[j, f] * x_ij for every row i."""
    for i in range(X.get_n_samples()):
        q_i = 0.0
        for s in range(X.get_n_segments()):
            n_nz, indices, data = X.get_segment(i, s)
            for jj in range(n_nz):
                q_i += V[indices[jj], f] * data[jj]
        q[i] = q_i


@njit
def _draw_v(
    X, V, f, v_mu, v_lambda, attr_group, e, q, alpha, z, do_sample, cases, values
):
    # h[c] = dy_pred[c] / dV[j, f] = x_cj * (q[c] - x_cj * V[j, f])
    n_bad = 0
    for j in range(X.get_n_features()):
        g = attr_group[j]
        n = X.expand_column(j, cases, values)
        v_jf = V[j, f]
        v_mean = 0.0
        h_sq = 0.0
        for ii in range(n):
            c = cases[ii]
            x = values[ii]
            h = x * (q[c] - x * v_jf)
            v_mean += h * e[c]
            h_sq += h * h
        v_mean -= v_jf * h_sq
        precision = v_lambda[g, f] + alpha * h_sq
        if precision <= 0.0:
            v_new = 0.0
        else:
            v_var = 1.0 / precision
            v_mean = -v_var * (alpha * v_mean - v_mu[g, f] * v_lambda[g, f])
            if do_sample:
                v_new = v_mean + sqrt(v_var) * z[j]
            else:
                v_new = v_mean
        if isnan(v_new) or isinf(v_new):
            n_bad += 1
            continue
        for ii in range(n):
            c = cases[ii]
            x = values[ii]
            h = x * (q[c] - x * v_jf)
            q[c] -= x * (v_jf - v_new)
            e[c] -= h * (v_jf - v_new)
        V[j, f] = v_new
    return n_bad


def _keep_finite(new, old):
    finite = np.isfinite(new)
    return np.where(finite, new, old), int(np.size(finite) - np.count_nonzero(finite))


def draw_alpha(e, alpha, alpha_0, gamma_0, rng):
    """Noise precision: Gamma((alpha_0 + n) / 2, rate=(gamma_0 + sum e^2) / 2)."""
    shape = (alpha_0 + e.shape[0]) / 2.0
    rate = (gamma_0 + np.dot(e, e)) / 2.0
    alpha_new = rng.gamma(shape, 1.0 / rate)
    if not np.isfinite(alpha_new):
        return alpha, 1
    return alpha_new, 0


def draw_lambda(theta, mu, lam, groups, alpha_0, beta_0, gamma_0, mu_0, rng):
    """Prior precision of every group.

    ``theta`` has shape [n_attributes] (linear weights) or
    [n_attributes, n_factors] (factors); ``mu`` and ``lam`` have shape
    [n_groups] or [n_groups, n_factors] accordingly.
    """
    resid = theta - mu[groups.attr_group]
    rate = beta_0 * (mu - mu_0) ** 2 + gamma_0 + groups.aggregate(resid**2)
    counts = groups.counts if theta.ndim == 1 else groups.counts[:, np.newaxis]
    shape = (alpha_0 + counts + 1) / 2.0
    return _keep_finite(rng.gamma(shape, 2.0 / rate), lam)


def draw_mu(theta, mu, lam, groups, beta_0, mu_0, rng):
    """Prior mean of every group, given its precision ``lam``."""
    counts = groups.counts if theta.ndim == 1 else groups.counts[:, np.newaxis]
    mean = (groups.aggregate(theta) + beta_0 * mu_0) / (counts + beta_0)
    with np.errstate(divide="ignore"):
        stdev = np.sqrt(1.0 / ((counts + beta_0) * lam))
    draw = mean + stdev * rng.standard_normal(np.shape(mean))
    return _keep_finite(draw, mu)


def latent_targets(y_pred, y, do_sample, rng):
    """Probit augmentation of binary targets.

    The latent target of a case is Normal(y_pred, 1) truncated to (0, inf)
    for y = +1 and to (-inf, 0) for y = -1; it is drawn when ``do_sample``
    and replaced by its expectation otherwise.
    """
    positive = y > 0
    a = np.where(positive, -y_pred, -np.inf)
    b = np.where(positive, np.inf, -y_pred)
    if do_sample:
        return truncnorm.rvs(a, b, loc=y_pred, scale=1.0, random_state=rng)
    return truncnorm.mean(a, b, loc=y_pred, scale=1.0)
