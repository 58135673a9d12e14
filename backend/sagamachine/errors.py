"""Exception taxonomy for the Saga Machine core."""


class SagaMachineError(Exception):
    """Base class for all errors raised by the resolution engine."""


class TestValidationError(SagaMachineError, ValueError):
    """A test cannot be built: the actor is unresolvable or the stat is unknown."""

    __test__ = False


class TestStateError(SagaMachineError, RuntimeError):
    """A test operation was called out of order (e.g. effects before evaluate)."""

    __test__ = False


class UnknownEffectTypeError(SagaMachineError, ValueError):
    """An effect declared a type outside damage/consequence/defense/message."""


class InsufficientLuckError(SagaMachineError, ValueError):
    """Push-your-luck was attempted without any luck left."""


class InvalidEffectError(SagaMachineError, ValueError):
    """An effect of a known type carries fields that do not validate."""
