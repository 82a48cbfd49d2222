"""Exceptions raised by substitution models."""


class SubstitutionModelError(Exception):
    """Base class of all substitution model errors."""


class ConfigurationError(SubstitutionModelError, ValueError):
    """Invalid model name, rate or frequency specification.

    Raised when a model is bound, never deferred to query time.
    """


class PreconditionViolation(SubstitutionModelError):
    """A model was queried with invalid input or in an invalid state.

    Examples are a negative branch length, a transition probability query
    issued before the state frequencies are known or an output buffer of the
    wrong size.
    """


class NumericalInstabilityError(SubstitutionModelError, ArithmeticError):
    """The eigen-decomposition of a rate matrix cannot be trusted."""
