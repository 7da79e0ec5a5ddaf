# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import warnings
from dataclasses import dataclass, replace

import numpy as np

from .base import HasGroupRegularization, HasLearnRate, HasSampling
from .exceptions import ConfigurationError
from .learners import MCMCLearner, SGDALearner, SGDLearner
from .model import FMModel

TASKS = {
    "r": "regression",
    "c": "classification",
    "regression": "regression",
    "classification": "classification",
}

METHODS = {"sgd": SGDLearner, "sgda": SGDALearner, "mcmc": MCMCLearner}


def parse_values(values):
    """Comma separated floats (or a sequence of numbers) as a tuple."""
    if values is None:
        return ()
    if isinstance(values, str):
        values = [v for v in values.replace(";", ",").split(",") if v.strip()]
    try:
        return tuple(float(v) for v in np.atleast_1d(values))
    except ValueError as e:
        raise ConfigurationError(f"Cannot parse {values!r} as numbers.") from e


def parse_dim(dim):
    """'k0,k1,k2' -> (use bias, use linear weights, number of factors)."""
    values = parse_values(dim)
    if len(values) != 3:
        raise ConfigurationError(f"dim must have 3 values 'k0,k1,k2', got {dim!r}.")
    k0, k1, n_factors = values
    if k0 not in (0, 1) or k1 not in (0, 1):
        raise ConfigurationError(f"The first two values of dim must be 0 or 1: {dim!r}.")
    if n_factors < 0 or n_factors != int(n_factors):
        raise ConfigurationError(f"Number of factors must be a non-negative int: {dim!r}.")
    return bool(k0), bool(k1), int(n_factors)


def check_regularization(values, method, n_groups=1):
    """Interpret a regularization vector.

    Returns
    -------
    reg0, regw, regv : float

    w_lambda, v_lambda : array, shape = [n_groups], or None
        Per-group values, only when ``1 + 2 * n_groups`` values are given
        to a method that supports group regularization.
    """
    values = parse_values(values)
    n_values = len(values)
    if n_values == 0:
        return 0.0, 0.0, 0.0, None, None
    if n_values == 1:
        return values[0], values[0], values[0], None, None
    if n_values == 3:
        return values[0], values[1], values[2], None, None
    cls = METHODS.get(method)
    if cls is not None and issubclass(cls, HasGroupRegularization):
        if n_values == 1 + 2 * n_groups:
            w_lambda = np.array(values[1 : 1 + n_groups])
            v_lambda = np.array(values[1 + n_groups :])
            return values[0], 0.0, 0.0, w_lambda, v_lambda
        raise ConfigurationError(
            f"regular must have 0, 1, 3 or {1 + 2 * n_groups} values "
            f"for {n_groups} groups, got {n_values}."
        )
    raise ConfigurationError(
        f"regular must have 0, 1 or 3 values for the {method} method, "
        f"got {n_values}."
    )


def apply_regularization(model, values, method, n_groups=1):
    reg0, regw, regv, w_lambda, v_lambda = check_regularization(
        values, method, n_groups
    )
    model.set_regularization(reg0, regw, regv)
    if w_lambda is not None:
        model.set_group_regularization(w_lambda, v_lambda)
    return model


@dataclass
class FMConfig(object):
    """Settings of one run. :meth:`resolve` validates them and returns a
    copy with parsed values."""

    task: str = None
    train: str = None
    test: str = None
    validation: str = None
    meta: str = None
    relation: tuple = ()
    dim: object = "1,1,8"
    regular: object = None
    init_stdev: float = 0.1
    n_iter: int = 100
    learn_rate: object = 0.1
    method: str = "mcmc"
    do_sampling: bool = True
    do_multilevel: bool = True
    adapt: str = "sample"
    num_eval_cases: int = None
    out: str = None
    rlog: str = None
    cache_size: int = None
    verbosity: int = 0
    seed: int = None

    def resolve(self):
        if self.task is None:
            raise ConfigurationError("Parameter 'task' is missing.")
        if self.task not in TASKS:
            raise ConfigurationError(
                f"Unknown task {self.task!r}; use 'r' (regression) or "
                "'c' (classification)."
            )
        if self.train is None:
            raise ConfigurationError("Parameter 'train' is missing.")
        if self.test is None:
            raise ConfigurationError("Parameter 'test' is missing.")

        method = str(self.method).lower()
        do_sampling = bool(self.do_sampling)
        do_multilevel = bool(self.do_multilevel)
        if method == "als":
            method = "mcmc"
            do_sampling = False
            do_multilevel = False
        if method not in METHODS:
            raise ConfigurationError(
                f"Unknown method {self.method!r}; choose from sgd, sgda, mcmc, als."
            )

        validation = self.validation
        if validation is not None and method != "sgda":
            warnings.warn(
                "Validation data is only used by the sgda method and is ignored."
            )
            validation = None
        if self.cache_size is not None:
            warnings.warn("cache_size has no effect; all data is kept in memory.")

        learn_rate = parse_values(self.learn_rate)
        if len(learn_rate) not in (1, 3):
            raise ConfigurationError(
                f"learn_rate must have 1 or 3 values, got {len(learn_rate)}."
            )
        if self.n_iter < 0:
            raise ConfigurationError("iter must be non-negative.")

        relation = self.relation
        if isinstance(relation, str):
            relation = [r for r in relation.split(",") if r]

        return replace(
            self,
            task=TASKS[self.task],
            method=method,
            do_sampling=do_sampling,
            do_multilevel=do_multilevel,
            validation=validation,
            relation=tuple(relation or ()),
            dim=parse_dim(self.dim),
            regular=parse_values(self.regular),
            learn_rate=learn_rate,
        )

    @property
    def verbose(self):
        return 1 + int(self.verbosity)


def make_model(config, n_attributes):
    """Model of the right width, initialized from ``config.seed``."""
    fit_intercept, fit_linear, n_factors = parse_dim(config.dim)
    return FMModel(
        n_attributes,
        n_factors=n_factors,
        fit_intercept=fit_intercept,
        fit_linear=fit_linear,
        init_stdev=config.init_stdev,
        random_state=config.seed,
    )


def make_learner(config, model, groups=None, log=None):
    """Learner for ``config.method``, with the regularization of the config
    applied to ``model``."""
    if config.method not in METHODS:
        raise ConfigurationError(f"Unknown method {config.method!r}.")
    cls = METHODS[config.method]
    params = dict(
        model=model,
        task=TASKS.get(config.task, config.task),
        n_iter=config.n_iter,
        verbose=config.verbose,
        log=log,
        random_state=config.seed,
    )
    n_groups = 1
    if issubclass(cls, HasLearnRate):
        params["learn_rate"] = config.learn_rate
    if issubclass(cls, HasGroupRegularization):
        params["groups"] = groups
        if groups is not None:
            n_groups = groups.n_groups
    if issubclass(cls, HasSampling):
        params["do_sample"] = config.do_sampling
        params["do_multilevel"] = config.do_multilevel
        params["num_eval_cases"] = config.num_eval_cases
    if cls is SGDALearner:
        params["adapt"] = config.adapt
    apply_regularization(model, config.regular, config.method, n_groups)
    return cls(**params)
