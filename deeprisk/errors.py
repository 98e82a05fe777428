"""Exception hierarchy for model and numerical errors."""


class ModelError(Exception):
    """Base class for all errors raised by the package."""


class InvalidDimensionError(ModelError, ValueError):
    """An array has a shape or size that the operation cannot accept."""


class InvalidInputError(ModelError, ValueError):
    """An argument has a value outside the accepted range."""


class DimensionMismatchError(ModelError, ValueError):
    """Two operands have incompatible shapes."""


class NumericalError(ModelError, ArithmeticError):
    """A numerical operation failed, for example on a singular matrix."""


class UnsupportedOperationError(ModelError):
    """The requested operation is not supported for the given input."""