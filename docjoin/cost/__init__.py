"""Request-unit cost estimation for built documents."""

from docjoin.cost.ru import RuEstimate, RuEstimator, RuModelConfig

__all__ = ["RuEstimate", "RuEstimator", "RuModelConfig"]
