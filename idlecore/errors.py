from __future__ import annotations


class IdleCoreError(Exception):
    """Base class for every error raised by idlecore."""


class ParseError(IdleCoreError):
    """A catalog entry could not be converted into a content item."""


class EvaluationError(IdleCoreError):
    """A formula failed to parse or evaluate."""


class AffordabilityError(IdleCoreError):
    """The player lacks the resources for a purchase or prestige."""


class AlreadyOwnedError(IdleCoreError):
    """The upgrade being bought is already owned."""


class NotFoundError(IdleCoreError, LookupError):
    """Unknown content key, unknown player, or nothing left to sell."""


class PersistenceError(IdleCoreError):
    """Player state could not be serialised, stored or loaded."""
