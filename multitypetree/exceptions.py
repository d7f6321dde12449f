"""
Exceptions defined in multitypetree.
"""


class MultiTypeTreeError(Exception):
    """
    Superclass of all exceptions raised by multitypetree.
    """


class ValidationError(MultiTypeTreeError, ValueError):
    """
    A model or tree has malformed dimensions or violates an invariant.
    """


class InvalidHistoryError(ValidationError):
    """
    A coloured tree implies an event that is inconsistent with the
    lineage counts at the time of the event.
    """


class NumericalError(MultiTypeTreeError, ArithmeticError):
    """
    A non-positive population size or a negative migration rate was
    encountered while evaluating a density.
    """


class SimulationError(MultiTypeTreeError):
    """
    The structured coalescent simulation cannot reach a single root lineage.
    """


class NoValidPathError(MultiTypeTreeError):
    """
    No migration history connects the types at the two ends of a branch.
    """
