# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

import argparse
import sys

from .config import FMConfig, make_learner, make_model
from .exceptions import FMError
from .io import load_data, save_predictions
from .rlog import RLog


def _flag(value):
    return bool(int(value))


def _option(parser, name, **kwargs):
    # libFM style "-name value" as well as "--name value"
    parser.add_argument(f"-{name}", f"--{name}", dest=name, **kwargs)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="relfm",
        description="Factorization machines with SGD, adaptive SGD, "
        "MCMC and ALS learning.",
        allow_abbrev=False,
    )
    _option(parser, "task", help="r=regression, c=binary classification")
    _option(parser, "train", help="training data in libFM format")
    _option(parser, "test", help="test data in libFM format")
    _option(parser, "validation", help="validation data (sgda only)")
    _option(parser, "meta", help="group id of every attribute, one per line")
    _option(parser, "relation", default="", help="comma separated relation blocks")
    _option(parser, "dim", default="1,1,8", help="'k0,k1,k2': bias, linear, factors")
    _option(parser, "regular", default=None, help="'r0,r1,r2' or 1+2G values")
    _option(parser, "init_stdev", type=float, default=0.1)
    _option(parser, "iter", type=int, default=100, help="number of iterations")
    _option(parser, "learn_rate", default="0.1", help="1 or 3 learning rates")
    _option(parser, "method", default="mcmc", help="sgd, sgda, mcmc or als")
    _option(parser, "adapt", default="sample", help="sgda: 'sample' or 'epoch'")
    _option(parser, "do_sampling", type=_flag, default=True)
    _option(parser, "do_multilevel", type=_flag, default=True)
    _option(parser, "num_eval_cases", type=int, default=None)
    _option(parser, "out", help="file for the test predictions")
    _option(parser, "rlog", help="file for the per-iteration log")
    _option(parser, "cache_size", type=int, default=None, help="has no effect")
    _option(parser, "verbosity", type=int, default=0)
    _option(parser, "seed", type=int, default=None)
    return parser.parse_args(argv)


def config_from_args(args):
    return FMConfig(
        task=args.task,
        train=args.train,
        test=args.test,
        validation=args.validation,
        meta=args.meta,
        relation=args.relation,
        dim=args.dim,
        regular=args.regular,
        init_stdev=args.init_stdev,
        n_iter=args.iter,
        learn_rate=args.learn_rate,
        method=args.method,
        do_sampling=args.do_sampling,
        do_multilevel=args.do_multilevel,
        adapt=args.adapt,
        num_eval_cases=args.num_eval_cases,
        out=args.out,
        rlog=args.rlog,
        cache_size=args.cache_size,
        verbosity=args.verbosity,
        seed=args.seed,
    )


def run(config):
    config = config.resolve()
    data = load_data(config)
    train = data["train"]
    test = data["test"]
    validation = data.get("validation")
    print(f"#relations: {len(data.blocks)}")
    print(
        f"#attr={data.n_attributes}\t#groups={data.groups.n_groups}"
        f"\t#train={train.n_samples}\t#test={test.n_samples}"
    )
    if config.verbosity > 0:
        print(f"num_values(train)={train.count_nonzero()}")

    model = make_model(config, data.n_attributes)
    log = RLog.open(config.rlog) if config.rlog is not None else None
    try:
        learner = make_learner(config, model, data.groups, log)
        if validation is not None:
            learner.fit(train, test, validation)
        else:
            learner.fit(train, test)
        metric = "RMSE" if config.task == "regression" else "Accuracy"
        print(f"Final\tTest={learner.evaluate(test):.6g} ({metric})")
        if config.out is not None:
            save_predictions(config.out, learner.predict(test))
    finally:
        if log is not None:
            log.close()
    return learner


def main(argv=None):
    args = parse_args(argv)
    try:
        run(config_from_args(args))
    except (FMError, ValueError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0
