from .config import FMConfig, make_learner, make_model
from .dataset import (
    AttributeGroups,
    DesignMatrix,
    DesignMatrixBuilder,
    RelationBlock,
    binarize_targets,
)
from .evaluation import Evaluator
from .exceptions import (
    ConfigurationError,
    DataError,
    DimensionMismatchError,
    FMError,
)
from .learners import MCMCLearner, SGDALearner, SGDLearner
from .model import FMModel

__all__ = [
    "AttributeGroups",
    "ConfigurationError",
    "DataError",
    "DesignMatrix",
    "DesignMatrixBuilder",
    "DimensionMismatchError",
    "Evaluator",
    "FMConfig",
    "FMError",
    "FMModel",
    "MCMCLearner",
    "RelationBlock",
    "SGDALearner",
    "SGDLearner",
    "binarize_targets",
    "make_learner",
    "make_model",
]
