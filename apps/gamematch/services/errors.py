"""
Domain errors raised by engine operations.

Every error is raised before any state is touched, so a caller that catches
one can assume nothing changed.
"""


class GameMatchError(ValueError):
    """Base class for rejected engine operations."""


class NotFoundError(GameMatchError):
    """A referenced player, team or court does not exist."""


class InvalidCourtsCountError(GameMatchError):
    """Requested court count outside the supported range."""


class InvalidTeamError(GameMatchError):
    """A manual team or roster edit would break team invariants."""


class InsufficientPlayersError(GameMatchError):
    """Not enough eligible participants to form a single team."""


class NoCapacityError(GameMatchError):
    """As many queued teams as courts already exist."""


class NoAvailableCourtError(GameMatchError):
    """No court can take the team."""


class DuplicateAssignmentError(GameMatchError):
    """A team member is already playing on another court."""


class InvalidTransitionError(GameMatchError):
    """A player state change the lifecycle does not allow."""


class CourtIdleError(GameMatchError):
    """The court has no game in progress."""
