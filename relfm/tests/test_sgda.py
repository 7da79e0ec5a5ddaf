# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
import pytest
import scipy.sparse as sp
from numpy.testing import assert_almost_equal, assert_array_almost_equal

from relfm.dataset import AttributeGroups, DesignMatrix, RelationBlock
from relfm.exceptions import ConfigurationError
from relfm.learners import SGDALearner, SGDLearner
from relfm.loss import Squared
from relfm.model import FMModel
from relfm.sgda import _lambda_epoch

from .fm_slow import lambda_step_slow

n_samples = 50
n_features = 8
n_factors = 2

rng = np.random.RandomState(0)

X = sp.random(n_samples, n_features, density=0.4, random_state=rng).toarray()
y = rng.randn(n_samples)
X_val = sp.random(10, n_features, density=0.4, random_state=rng).toarray()
y_val = rng.randn(10)
groups = AttributeGroups([0, 0, 0, 1, 1, 2, 2, 2])


@pytest.mark.parametrize("reg", [0.0, 0.05])
def test_first_epoch_is_sgd_with_doubled_regularization(reg):
    # no regularization steps during the first epoch
    model = FMModel(n_features, n_factors=n_factors, random_state=0)
    sgd_model = model.copy()
    model.set_regularization(reg, 0.0, 0.0)
    model.set_group_regularization([reg] * 3, [reg] * 3)
    SGDALearner(model, n_iter=1, learn_rate=0.05, groups=groups).fit(
        DesignMatrix(X, y), validation=DesignMatrix(X_val, y_val)
    )
    sgd_model.set_regularization(2 * reg, 2 * reg, 2 * reg)
    SGDLearner(sgd_model, n_iter=1, learn_rate=0.05).fit(DesignMatrix(X, y))
    assert_almost_equal(model.w0, sgd_model.w0)
    assert_array_almost_equal(model.w, sgd_model.w)
    assert_array_almost_equal(model.V, sgd_model.V)
    assert_array_almost_equal(model.w_lambda, [reg] * 3)


def test_lambda_step_matches_finite_differences():
    w0 = 0.2
    w = rng.randn(n_features)
    V = rng.randn(n_features, n_factors)
    grad_w = rng.randn(n_features)
    grad_V = rng.randn(n_features, n_factors)
    reg_w = np.array([0.5, 0.6, 0.7])
    reg_v = np.array([[0.5, 0.4], [0.6, 0.3], [0.7, 0.2]])
    eta_w, eta_v = 0.01, 0.02
    x = X_val[:1]
    expected_w, expected_v = lambda_step_slow(
        x, y_val[0], w0, w, V, grad_w, grad_V, groups.attr_group, reg_w, reg_v,
        eta_w, eta_v
    )
    _lambda_epoch(
        DesignMatrix(x, y_val[:1]).get_dataset("c"),
        y_val[:1],
        w0,
        w,
        V,
        grad_w,
        grad_V,
        groups.attr_group,
        True,
        reg_w,
        reg_v,
        eta_w,
        eta_v,
        Squared(),
        -np.inf,
        np.inf,
    )
    assert_array_almost_equal(reg_w, expected_w, decimal=5)
    assert_array_almost_equal(reg_v, expected_v, decimal=5)


@pytest.mark.parametrize("adapt", ["sample", "epoch"])
def test_regularization_adapts_and_stays_nonnegative(adapt):
    model = FMModel(n_features, n_factors=n_factors, random_state=0)
    model.set_group_regularization([0.01] * 3, [0.01] * 3)
    learner = SGDALearner(
        model, n_iter=5, learn_rate=0.05, groups=groups, adapt=adapt
    )
    learner.fit(DesignMatrix(X, y), validation=DesignMatrix(X_val, y_val))
    assert np.all(model.w_lambda >= 0) and np.all(model.v_lambda >= 0)
    assert not np.allclose(model.v_lambda, 0.01)
    assert np.all(np.isfinite(learner.predict(DesignMatrix(X_val, y_val))))


def test_default_group_regularization_from_scalars():
    model = FMModel(n_features, n_factors=n_factors, random_state=0)
    model.set_regularization(0.0, 0.1, 0.2)
    SGDALearner(model, n_iter=1, groups=groups).fit(
        DesignMatrix(X, y), validation=DesignMatrix(X_val, y_val)
    )
    assert_array_almost_equal(model.w_lambda, [0.1] * 3)
    assert_array_almost_equal(model.v_lambda, np.full((3, n_factors), 0.2))


@pytest.mark.parametrize("adapt", ["sample", "epoch"])
def test_classification(adapt):
    model = FMModel(n_features, n_factors=n_factors, random_state=0)
    learner = SGDALearner(model, task="classification", n_iter=3, adapt=adapt).fit(
        DesignMatrix(X, y), validation=DesignMatrix(X_val, y_val)
    )
    y_prob = learner.predict(DesignMatrix(X_val, y_val))
    assert np.all((y_prob >= 0) & (y_prob <= 1))


def test_invalid_configuration():
    model = FMModel(n_features, n_factors=n_factors)
    with pytest.raises(ConfigurationError):
        SGDALearner(model).fit(DesignMatrix(X, y))
    with pytest.raises(ConfigurationError):
        SGDALearner(model, adapt="never").fit(
            DesignMatrix(X, y), validation=DesignMatrix(X_val, y_val)
        )


def test_log_columns():
    class ListLog(object):
        def __init__(self):
            self.rows = [{}]

        def log(self, name, value):
            self.rows[-1][name] = value

        def new_line(self):
            self.rows.append({})

    log = ListLog()
    model = FMModel(n_features, n_factors=n_factors, random_state=0)
    SGDALearner(model, n_iter=2, groups=groups, log=log).fit(
        DesignMatrix(X, y), validation=DesignMatrix(X_val, y_val)
    )
    row = log.rows[0]
    for name in ["rmse_train", "rmse_val", "wmean", "vvar", "regw[2]", "regv[2,1]"]:
        assert name in row


@pytest.mark.parametrize("adapt", ["sample", "epoch"])
def test_two_blocks_match_joined(adapt):
    X_user = sp.random(5, 3, density=0.6, random_state=rng, format="csr")
    X_item = sp.random(4, 2, density=0.7, random_state=rng, format="csr")
    user, user_val = rng.randint(5, size=n_samples), rng.randint(5, size=10)
    item, item_val = rng.randint(4, size=n_samples), rng.randint(4, size=10)
    blocks = [
        RelationBlock(X_user, attr_offset=n_features),
        RelationBlock(X_item, attr_offset=n_features + 3),
    ]
    train = DesignMatrix(X, y, list(zip(blocks, [user, item])))
    validation = DesignMatrix(X_val, y_val, list(zip(blocks, [user_val, item_val])))
    n_attributes = train.n_attributes
    all_groups = AttributeGroups(list(groups.attr_group) + [3, 3, 3, 4, 4])

    models = []
    for train_i, val_i in [
        (train, validation),
        (DesignMatrix(train.to_csr(), y), DesignMatrix(validation.to_csr(), y_val)),
    ]:
        model = FMModel(n_attributes, n_factors=n_factors, random_state=1)
        model.set_group_regularization([0.01] * 5, [0.01] * 5)
        SGDALearner(
            model, n_iter=3, learn_rate=0.05, groups=all_groups, adapt=adapt
        ).fit(train_i, validation=val_i)
        models.append(model)
    assert n_attributes == n_features + 5
    assert_almost_equal(models[0].w0, models[1].w0)
    assert_array_almost_equal(models[0].w, models[1].w)
    assert_array_almost_equal(models[0].V, models[1].V)
    assert_array_almost_equal(models[0].w_lambda, models[1].w_lambda)
    assert_array_almost_equal(models[0].v_lambda, models[1].v_lambda)
