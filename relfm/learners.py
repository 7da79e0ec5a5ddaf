# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

from time import perf_counter

import numpy as np
from sklearn.utils import check_random_state

from .base import BaseLearner, HasGroupRegularization, HasLearnRate, HasSampling
from .dataset import AttributeGroups, binarize_targets
from .evaluation import accuracy, log_likelihood, mae, rmse
from .exceptions import ConfigurationError
from .mcmc import (
    _compute_q,
    _draw_v,
    _draw_w,
    _draw_w0,
    draw_alpha,
    draw_lambda,
    draw_mu,
    latent_targets,
)
from .sgd import _sgd_epoch
from .sgda import _lambda_epoch, _sgda_epoch

ADAPT = ("sample", "epoch")


def _metric_name(task):
    return "rmse" if task == "regression" else "acc"


class SGDLearner(BaseLearner, HasLearnRate):
    """Stochastic gradient descent for factorization machines.

    Parameters
    ----------
    model : FMModel
        Model to train. Updated in place.

    task : {'regression'|'classification'}, default: 'regression'
        Squared loss on the targets, or logistic loss on targets mapped to
        {-1, +1}.

    n_iter : int, default: 100
        Number of passes over the training cases.

    learn_rate : float or sequence of 3 floats, default: 0.1
        Learning rate, or learning rates of the bias, the linear weights and
        the factors.

    shuffle : boolean, default: False
        Whether to visit the training cases in random order in every epoch.

    verbose : int, default: 0
        Whether to print one line per epoch.

    log : RLog or None, default: None
        Sink of the per-epoch metrics.

    random_state : int seed, RandomState instance, or None (default)
        Used for shuffling.
    """

    def __init__(
        self,
        model,
        task="regression",
        n_iter=100,
        learn_rate=0.1,
        shuffle=False,
        verbose=0,
        log=None,
        random_state=None,
    ):
        self.model = model
        self.task = task
        self.n_iter = n_iter
        self.learn_rate = learn_rate
        self.shuffle = shuffle
        self.verbose = verbose
        self.log = log
        self.random_state = random_state

    def fit(self, train, test=None):
        """Train the model on ``train``, reporting on ``test`` after every
        epoch.

        Parameters
        ----------
        train : DesignMatrix

        test : DesignMatrix or None

        Returns
        -------
        self : Learner
        """
        model = self.model
        self._check_design_matrices(train, test)
        if model.has_group_regularization():
            raise ConfigurationError(
                "Group regularization is only supported by the sgda and mcmc methods."
            )
        eta0, eta_w, eta_v = self._get_learning_rates()
        loss = self._get_loss()
        rng = check_random_state(self.random_state)
        y = self._targets(train)
        self._init_evaluator(y)
        X = train.get_dataset("c")

        indices_samples = np.arange(train.n_samples, dtype=np.int32)
        metric = _metric_name(self.task)
        for it in range(self.n_iter):
            if self.shuffle:
                rng.shuffle(indices_samples)
            start = perf_counter()
            model.w0, sum_loss = _sgd_epoch(
                X,
                y,
                model._w0(),
                model.w,
                model.V,
                model.fit_intercept,
                model.fit_linear,
                model.reg0,
                model.regw,
                model.regv,
                eta0,
                eta_w,
                eta_v,
                loss,
                self.min_target_,
                self.max_target_,
                indices_samples,
            )
            elapsed = perf_counter() - start

            scores = {"Train": self.evaluate(train)}
            if test is not None:
                scores["Test"] = self.evaluate(test)
            values = {f"{metric}_train": scores["Train"]}
            if test is not None:
                values[f"{metric}_test"] = scores["Test"]
            values["loss"] = sum_loss / max(train.n_samples, 1)
            values["time_learn"] = elapsed
            self._report(it, scores, values)
        self.n_iter_ = self.n_iter
        return self


class SGDALearner(SGDLearner, HasGroupRegularization):
    """SGD with per-group regularization adapted on a validation set.

    After every step on a training case, the regularization of every group
    takes a gradient step on the loss of a validation case evaluated at the
    parameters the training step would produce.

    Parameters
    ----------
    model : FMModel

    task : {'regression'|'classification'}, default: 'regression'

    n_iter : int, default: 100

    learn_rate : float or sequence of 3 floats, default: 0.1

    groups : AttributeGroups or None, default: None
        Attribute groups sharing one regularization value. None puts all
        attributes in one group.

    adapt : {'sample'|'epoch'}, default: 'sample'
        'sample' interleaves the regularization steps with the training
        steps from the second epoch on, cycling through the validation
        cases. 'epoch' makes one pass over the validation cases after every
        epoch.

    shuffle : boolean, default: False

    verbose : int, default: 0

    log : RLog or None, default: None

    random_state : int seed, RandomState instance, or None (default)

    Attributes
    ----------
    grad_w_, grad_V_ : array
        Loss gradients of the last SGD step touching each parameter.
    """

    def __init__(
        self,
        model,
        task="regression",
        n_iter=100,
        learn_rate=0.1,
        groups=None,
        adapt="sample",
        shuffle=False,
        verbose=0,
        log=None,
        random_state=None,
    ):
        super().__init__(
            model,
            task=task,
            n_iter=n_iter,
            learn_rate=learn_rate,
            shuffle=shuffle,
            verbose=verbose,
            log=log,
            random_state=random_state,
        )
        self.groups = groups
        self.adapt = adapt

    def fit(self, train, test=None, validation=None):
        if validation is None:
            raise ConfigurationError("The sgda method needs a validation set.")
        if self.adapt not in ADAPT:
            raise ConfigurationError(
                f"adapt must be one of {ADAPT}, got {self.adapt}."
            )
        model = self.model
        self._check_design_matrices(train, test, validation)
        groups = self._get_groups(model)
        self._init_group_regularization(model, groups)
        eta0, eta_w, eta_v = self._get_learning_rates()
        loss = self._get_loss()
        rng = check_random_state(self.random_state)
        y = self._targets(train)
        y_val = self._targets(validation)
        self._init_evaluator(y)
        X = train.get_dataset("c")
        X_val = validation.get_dataset("c")

        self.grad_w_ = np.zeros(model.n_attributes)
        self.grad_V_ = np.zeros((model.n_attributes, model.n_factors))
        indices_samples = np.arange(train.n_samples, dtype=np.int32)
        val_pos = 0
        metric = _metric_name(self.task)
        for it in range(self.n_iter):
            if self.shuffle:
                rng.shuffle(indices_samples)
            start = perf_counter()
            model.w0, sum_loss, val_pos = _sgda_epoch(
                X,
                y,
                X_val,
                y_val,
                model._w0(),
                model.w,
                model.V,
                self.grad_w_,
                self.grad_V_,
                groups.attr_group,
                model.fit_intercept,
                model.fit_linear,
                model.reg0,
                model.w_lambda,
                model.v_lambda,
                eta0,
                eta_w,
                eta_v,
                loss,
                self.min_target_,
                self.max_target_,
                indices_samples,
                val_pos,
                self.adapt == "sample" and it > 0,
            )
            if self.adapt == "epoch":
                _lambda_epoch(
                    X_val,
                    y_val,
                    model._w0(),
                    model.w,
                    model.V,
                    self.grad_w_,
                    self.grad_V_,
                    groups.attr_group,
                    model.fit_linear,
                    model.w_lambda,
                    model.v_lambda,
                    eta_w,
                    eta_v,
                    loss,
                    self.min_target_,
                    self.max_target_,
                )
            elapsed = perf_counter() - start

            scores = {"Train": self.evaluate(train)}
            if test is not None:
                scores["Test"] = self.evaluate(test)
            scores["Valid"] = self.evaluate(validation)
            values = {f"{metric}_train": scores["Train"]}
            if test is not None:
                values[f"{metric}_test"] = scores["Test"]
            values[f"{metric}_val"] = scores["Valid"]
            values["loss"] = sum_loss / max(train.n_samples, 1)
            values["time_learn"] = elapsed
            values["wmean"] = float(np.mean(model.w)) if model.w.size else 0.0
            values["wvar"] = float(np.var(model.w)) if model.w.size else 0.0
            values["vmean"] = float(np.mean(model.V)) if model.V.size else 0.0
            values["vvar"] = float(np.var(model.V)) if model.V.size else 0.0
            for g in range(groups.n_groups):
                values[f"regw[{g}]"] = model.w_lambda[g]
                for f in range(model.n_factors):
                    values[f"regv[{g},{f}]"] = model.v_lambda[g, f]
            self._report(it, scores, values)
        self.n_iter_ = self.n_iter
        return self


class MCMCLearner(BaseLearner, HasSampling, HasGroupRegularization):
    """Gibbs sampling for factorization machines with hierarchical priors.

    Every iteration updates ``w0``, the linear weights and the factors one
    coordinate at a time from their Gaussian conditional posteriors, then
    (when sampling) the noise precision and the prior mean and precision of
    every group. With ``do_sample=False`` and ``do_multilevel=False`` the
    sweep sets every coordinate to its conditional mean, i.e. it is
    alternating least squares.

    Parameters
    ----------
    model : FMModel

    task : {'regression'|'classification'}, default: 'regression'
        Classification uses a probit link with latent targets.

    n_iter : int, default: 100

    groups : AttributeGroups or None, default: None
        Attribute groups sharing one prior. None puts all attributes in one
        group.

    do_sample : boolean, default: True
        Draw from the conditional posteriors. When False, take their means
        and keep the hyperparameters fixed.

    do_multilevel : boolean, default: True
        Give every group its own prior. When False, one prior is pooled
        over all attributes.

    num_eval_cases : int or None, default: None
        Number of leading test cases used for the reported metrics.

    alpha_0, gamma_0, beta_0, mu_0, w0_mean_0 : float
        Constants of the hyperpriors.

    verbose : int, default: 0
        1 prints one line per iteration, 2 also the hyperparameters.

    log : RLog or None, default: None

    random_state : int seed, RandomState instance, or None (default)

    Attributes
    ----------
    alpha_ : float
        Noise precision.

    w_mu_ : array, shape = [n_groups]

    v_mu_ : array, shape = [n_groups, n_factors]
        Prior means. The prior precisions live on the model
        (``w_lambda``, ``v_lambda``).

    pred_ : array, shape = [n_test_samples]
        Running mean of the test predictions (last iterate if not sampling).

    n_nan_ : int
        Number of draws rejected because they were not finite.
    """

    _LINK = "probit"

    def __init__(
        self,
        model,
        task="regression",
        n_iter=100,
        groups=None,
        do_sample=True,
        do_multilevel=True,
        num_eval_cases=None,
        alpha_0=1.0,
        gamma_0=1.0,
        beta_0=1.0,
        mu_0=0.0,
        w0_mean_0=0.0,
        verbose=0,
        log=None,
        random_state=None,
    ):
        self.model = model
        self.task = task
        self.n_iter = n_iter
        self.groups = groups
        self.do_sample = do_sample
        self.do_multilevel = do_multilevel
        self.num_eval_cases = num_eval_cases
        self.alpha_0 = alpha_0
        self.gamma_0 = gamma_0
        self.beta_0 = beta_0
        self.mu_0 = mu_0
        self.w0_mean_0 = w0_mean_0
        self.verbose = verbose
        self.log = log
        self.random_state = random_state

    def _init_priors(self, groups):
        model = self.model
        if self.do_multilevel:
            self._prior_groups = groups
            self._prior_of_group = np.arange(groups.n_groups)
            self._prior_index = np.arange(groups.n_groups)
        else:
            self._prior_groups = AttributeGroups.pooled(model.n_attributes)
            self._prior_of_group = np.zeros(groups.n_groups, dtype=np.intp)
            self._prior_index = np.zeros(1, dtype=np.intp)
        self.alpha_ = 1.0
        self.w_mu_ = np.full(groups.n_groups, self.mu_0, dtype=np.double)
        self.v_mu_ = np.full((groups.n_groups, model.n_factors), self.mu_0)

    def _normal(self, rng, size):
        if self.do_sample:
            return rng.standard_normal(size)
        return np.zeros(size)

    def _draw_parameters(self, Xr, Xc, e, q, attr_group, cases, values, rng):
        model = self.model
        n_features = Xc.get_n_features()
        n_nan = 0
        if model.fit_intercept:
            z = rng.standard_normal() if self.do_sample else 0.0
            model.w0, n_bad = _draw_w0(
                model.w0, model.reg0, self.w0_mean_0, e, self.alpha_, z, self.do_sample
            )
            n_nan += n_bad
        if model.fit_linear:
            n_nan += _draw_w(
                Xc,
                model.w,
                self.w_mu_,
                model.w_lambda,
                attr_group,
                e,
                self.alpha_,
                self._normal(rng, n_features),
                self.do_sample,
                cases,
                values,
            )
        for f in range(model.n_factors):
            _compute_q(Xr, model.V, f, q)
            n_nan += _draw_v(
                Xc,
                model.V,
                f,
                self.v_mu_,
                model.v_lambda,
                attr_group,
                e,
                q,
                self.alpha_,
                self._normal(rng, n_features),
                self.do_sample,
                cases,
                values,
            )
        return n_nan

    def _draw_hyperparameters(self, e, rng):
        model = self.model
        groups = self._prior_groups
        prior_of_group = self._prior_of_group
        index = self._prior_index
        n_nan = 0
        if self.task == "regression":
            self.alpha_, n_bad = draw_alpha(
                e, self.alpha_, self.alpha_0, self.gamma_0, rng
            )
            n_nan += n_bad
        params = []
        if model.fit_linear:
            params.append((model.w, self.w_mu_, model.w_lambda))
        if model.n_factors > 0:
            params.append((model.V, self.v_mu_, model.v_lambda))
        for theta, mu, lam in params:
            lam_new, n_bad_lam = draw_lambda(
                theta,
                mu[index],
                lam[index],
                groups,
                self.alpha_0,
                self.beta_0,
                self.gamma_0,
                self.mu_0,
                rng,
            )
            mu_new, n_bad_mu = draw_mu(
                theta, mu[index], lam_new, groups, self.beta_0, self.mu_0, rng
            )
            lam[:] = lam_new[prior_of_group]
            mu[:] = mu_new[prior_of_group]
            n_nan += n_bad_lam + n_bad_mu
        return n_nan

    def _hyperparameter_values(self):
        model = self.model
        values = {"alpha": self.alpha_}
        for g in range(self.w_mu_.shape[0]):
            values[f"w_mu[{g}]"] = self.w_mu_[g]
            values[f"w_lambda[{g}]"] = model.w_lambda[g]
            for f in range(model.n_factors):
                values[f"v_mu[{g},{f}]"] = self.v_mu_[g, f]
                values[f"v_lambda[{g},{f}]"] = model.v_lambda[g, f]
        return values

    def fit(self, train, test=None):
        """Run the sampler on ``train``, accumulating predictions for
        ``test``.

        Parameters
        ----------
        train : DesignMatrix

        test : DesignMatrix or None

        Returns
        -------
        self : Learner
        """
        model = self.model
        self._get_loss()
        self._check_design_matrices(train, test)
        groups = self._get_groups(model)
        self._init_group_regularization(model, groups)
        self._init_priors(groups)
        rng = check_random_state(self.random_state)
        y = self._targets(train)
        self._init_evaluator(y)
        evaluator = self.evaluator_

        Xr = train.get_dataset("c")
        Xc = train.get_dataset("fortran")
        cases = np.zeros(max(Xc.max_column_length(), 1), dtype=np.int32)
        values = np.zeros(cases.shape[0])
        q = np.zeros(train.n_samples)
        target = y.copy()
        e = model.decision_function(train) - target

        self._test = test
        if test is not None:
            y_test = test.y
            if self.task == "classification":
                y_test = binarize_targets(y_test)
            n_test = test.n_samples
            n_eval = n_test
            if self.num_eval_cases is not None:
                n_eval = min(max(int(self.num_eval_cases), 0), n_test)
            y_eval = y_test[:n_eval]
            pred_sum = np.zeros(n_test)
            pred_sum_but5 = np.zeros(n_test)
            self.pred_ = np.zeros(n_test)

        self.n_nan_ = 0
        for it in range(self.n_iter):
            start = perf_counter()
            n_nan = self._draw_parameters(
                Xr, Xc, e, q, groups.attr_group, cases, values, rng
            )
            if self.do_sample:
                n_nan += self._draw_hyperparameters(e, rng)
            self.n_nan_ += n_nan

            # refresh the residuals from scratch
            y_train = model.decision_function(train)
            if self.task == "classification":
                target = latent_targets(y_train, y, self.do_sample, rng)
            e = y_train - target
            elapsed = perf_counter() - start

            scores = {"Train": evaluator.score(y, evaluator.transform(y_train))}
            log_values = {}
            if test is not None:
                pred_this = evaluator.predict(test)
                pred_sum += pred_this
                if it >= 5:
                    pred_sum_but5 += pred_this
                pred_all = pred_sum / (it + 1)
                self.pred_ = pred_all if self.do_sample else pred_this
                scores["Test"] = evaluator.score(y_test, self.pred_, n_eval)
                log_values.update(
                    self._test_metrics(it, y_eval, pred_this, pred_all, pred_sum_but5)
                )
            log_values["time_learn"] = elapsed
            log_values["nan_draws"] = n_nan
            hyper = self._hyperparameter_values()
            log_values.update(hyper)
            if self.verbose >= 2:
                print(f"#nan={n_nan}\t" + "\t".join(
                    f"{name}={value:.6g}" for name, value in hyper.items()
                ))
            self._report(it, scores, log_values)
        self.n_iter_ = self.n_iter
        return self

    def _test_metrics(self, it, y_eval, pred_this, pred_all, pred_sum_but5):
        n_eval = y_eval.shape[0]
        if it >= 5:
            pred_but5 = pred_sum_but5[:n_eval] / (it - 4)
        else:
            pred_but5 = np.full(n_eval, np.nan)
        pred_this = pred_this[:n_eval]
        pred_all = pred_all[:n_eval]
        if n_eval == 0:
            return {}
        if self.task == "regression":
            return {
                "rmse": rmse(y_eval, pred_all),
                "mae": mae(y_eval, pred_all),
                "rmse_mcmc_this": rmse(y_eval, pred_this),
                "rmse_mcmc_all": rmse(y_eval, pred_all),
                "rmse_mcmc_all_but5": (
                    rmse(y_eval, pred_but5) if it >= 5 else np.nan
                ),
            }
        return {
            "accuracy": accuracy(y_eval, pred_all),
            "ll": log_likelihood(y_eval, pred_all),
            "acc_mcmc_this": accuracy(y_eval, pred_this),
            "acc_mcmc_all": accuracy(y_eval, pred_all),
            "acc_mcmc_all_but5": accuracy(y_eval, pred_but5) if it >= 5 else np.nan,
            "ll_mcmc_this": log_likelihood(y_eval, pred_this),
            "ll_mcmc_all": log_likelihood(y_eval, pred_all),
            "ll_mcmc_all_but5": (
                log_likelihood(y_eval, pred_but5) if it >= 5 else np.nan
            ),
        }

    def predict(self, X):
        """Running mean of the test predictions when ``X`` is the test matrix
        given to :meth:`fit`; prediction from the current parameters
        otherwise, which is only available when not sampling."""
        self._check_fitted()
        if X is self._test:
            return self.pred_
        if self.do_sample:
            raise ValueError(
                "With sampling, predictions are only available for the test "
                "matrix passed to fit."
            )
        return self.evaluator_.predict(X)

    def evaluate(self, X):
        self._check_fitted()
        n_cases = self.num_eval_cases if X is self._test else None
        return self.evaluator_.evaluate(X, self.predict(X), n_cases)
