# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT

from math import exp, log

from numba import boolean
from numba.experimental import jitclass

# clip: whether predictions are clamped to the training target range
spec = [("clip", boolean)]


@jitclass(spec)
class Squared(object):
    """Squared loss: L(p, y) = (p - y)²"""

    def __init__(self):
        self.clip = True

    def loss(self, p, y):
        return (p - y) ** 2

    def dloss(self, p, y):
        return 2.0 * (p - y)


@jitclass(spec)
class Logistic(object):
    """Logistic loss: L(p, y) = log(1 + exp(-yp))"""

    def __init__(self):
        self.clip = False

    def loss(self, p, y):
        z = p * y
        # log(1 + exp(-z))
        if z > 18:
            return exp(-z)
        if z < -18:
            return -z
        return log(1.0 + exp(-z))

    def dloss(self, p, y):
        z = p * y
        # def tau = 1 / (1 + exp(-z))
        # return y * (tau - 1)
        if z > 18.0:
            return -y * exp(-z)
        if z < -18.0:
            return -y
        return -y / (exp(z) + 1.0)


LOSSES = {"regression": Squared(), "classification": Logistic()}
