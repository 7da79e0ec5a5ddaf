# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import numpy as np
from scipy.special import expit
from scipy.stats import norm
from sklearn.metrics import accuracy_score, mean_absolute_error, mean_squared_error

from .dataset import binarize_targets
from .exceptions import ConfigurationError

TASKS = ("regression", "classification")

LINKS = {"logistic": expit, "probit": norm.cdf}


def rmse(y_true, y_pred):
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true, y_pred):
    return float(mean_absolute_error(y_true, y_pred))


def accuracy(y_true, y_prob):
    """Fraction of cases whose probability is on the side (>= 0.5) of their
    {-1, +1} target."""
    return float(accuracy_score(np.asarray(y_true) > 0, np.asarray(y_prob) >= 0.5))


def log_likelihood(y_true, y_prob):
    """Mean negative log10-likelihood, probabilities clipped to [0.01, 0.99]."""
    m = (np.asarray(y_true) + 1.0) * 0.5
    p = np.clip(y_prob, 0.01, 0.99)
    return float(-np.mean(m * np.log10(p) + (1 - m) * np.log10(1 - p)))


class Evaluator(object):
    """Turns model outputs into predictions and scores them.

    Parameters
    ----------
    model : FMModel

    task : {'regression'|'classification'}, default: 'regression'

    min_target, max_target : float
        Regression predictions are clamped to this range.

    link : {'logistic'|'probit'}, default: 'logistic'
        Maps model outputs to probabilities for classification.
    """

    def __init__(
        self,
        model,
        task="regression",
        min_target=-np.inf,
        max_target=np.inf,
        link="logistic",
    ):
        if task not in TASKS:
            raise ConfigurationError(
                f"Task {task} not supported. The available options are: {TASKS}."
            )
        if link not in LINKS:
            raise ConfigurationError(f"Link {link} not supported.")
        self.model = model
        self.task = task
        self.min_target = min_target
        self.max_target = max_target
        self.link = link

    def transform(self, y_raw):
        if self.task == "regression":
            return np.clip(y_raw, self.min_target, self.max_target)
        return LINKS[self.link](y_raw)

    def predict(self, X):
        """Prediction for every row of ``X`` from the current parameters."""
        return self.transform(self.model.decision_function(X))

    def score(self, y, y_pred, n_cases=None):
        """RMSE for regression, accuracy for classification."""
        if n_cases is not None:
            y = y[:n_cases]
            y_pred = y_pred[:n_cases]
        if len(y) == 0:
            return np.nan
        if self.task == "regression":
            return rmse(y, y_pred)
        return accuracy(binarize_targets(y), y_pred)

    def evaluate(self, X, y_pred=None, n_cases=None):
        if y_pred is None:
            y_pred = self.predict(X)
        return self.score(X.y, y_pred, n_cases)
