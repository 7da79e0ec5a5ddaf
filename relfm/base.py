# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

from abc import ABCMeta, abstractmethod

import numpy as np
from sklearn.base import BaseEstimator
from sklearn.exceptions import NotFittedError

from .dataset import AttributeGroups, binarize_targets
from .evaluation import TASKS, Evaluator
from .exceptions import ConfigurationError, DimensionMismatchError
from .loss import LOSSES


class HasLearnRate(object):
    """Learners driven by one learning rate, or by three rates for the bias,
    the linear weights and the factors."""

    def _get_learning_rates(self):
        lr = np.atleast_1d(np.asarray(self.learn_rate, dtype=np.double))
        if lr.ndim != 1 or lr.shape[0] not in (1, 3):
            raise ConfigurationError(
                f"learn_rate must have 1 or 3 values, got {lr.size}."
            )
        if lr.shape[0] == 1:
            return lr[0], lr[0], lr[0]
        return lr[0], lr[1], lr[2]


class HasSampling(object):
    """Learners that can draw parameters from their conditional posteriors
    instead of setting them to the posterior mode."""


class HasGroupRegularization(object):
    """Learners that keep one regularization value per attribute group on
    the model (``w_lambda``, ``v_lambda``)."""

    def _get_groups(self, model):
        groups = self.groups
        if groups is None:
            groups = AttributeGroups.pooled(model.n_attributes)
        groups.check_attributes(model.n_attributes)
        return groups

    def _init_group_regularization(self, model, groups):
        if model.w_lambda is None:
            model.set_group_regularization(
                np.full(groups.n_groups, model.regw),
                np.full(groups.n_groups, model.regv),
            )
        elif model.w_lambda.shape[0] != groups.n_groups:
            raise DimensionMismatchError(
                f"Model has regularization for {model.w_lambda.shape[0]} groups,"
                f" the data {groups.n_groups}."
            )


class BaseLearner(BaseEstimator, metaclass=ABCMeta):
    """Drives the updates of an :class:`~relfm.model.FMModel`.

    The model is owned by the learner for the duration of :meth:`fit` and
    mutated in place.
    """

    _LINK = "logistic"

    @abstractmethod
    def fit(self, train, test=None):
        pass

    def _get_loss(self):
        if self.task not in TASKS:
            tasks_str = '", "'.join(TASKS)
            raise ConfigurationError(
                f'Task {self.task} not supported. The available options are: "{tasks_str}".'
            )
        return LOSSES[self.task]

    def _targets(self, X):
        if self.task == "classification":
            return binarize_targets(X.y)
        return X.y

    def _check_design_matrices(self, *matrices):
        for X in matrices:
            if X is not None:
                self.model.check_design_matrix(X)

    def _init_evaluator(self, y):
        if self.task == "regression" and y.shape[0] > 0:
            self.min_target_ = float(np.min(y))
            self.max_target_ = float(np.max(y))
        else:
            self.min_target_ = -np.inf
            self.max_target_ = np.inf
        self.evaluator_ = Evaluator(
            self.model,
            task=self.task,
            min_target=self.min_target_,
            max_target=self.max_target_,
            link=self._LINK,
        )

    def _check_fitted(self):
        if not hasattr(self, "evaluator_"):
            raise NotFittedError("Learner not fitted.")

    def predict(self, X):
        """Predict the rows of ``X``.

        Parameters
        ----------
        X : DesignMatrix

        Returns
        -------
        y_pred : array, shape = [n_samples]
            Regression values clamped to the training target range, or
            probabilities of the positive class.
        """
        self._check_fitted()
        return self.evaluator_.predict(X)

    def evaluate(self, X):
        """RMSE (regression) or accuracy (classification) on ``X``."""
        self._check_fitted()
        return self.evaluator_.evaluate(X, self.predict(X))

    def _report(self, it, scores, values):
        if self.verbose:
            line = "\t".join(f"{name}={score:.6g}" for name, score in scores.items())
            print(f"#Iter={it:3d}\t{line}")
        if self.log is not None:
            for name, value in values.items():
                self.log.log(name, value)
            self.log.new_line()
