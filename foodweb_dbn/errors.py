"""
Exception types for temporal network construction, inference and learning.

Classes
-------
DBNError
    Base class for all package errors.
StructureError
    Invalid template structure (cyclic intra edges, bad node reference).
ConfigError
    Invalid run configuration (horizon, restart count, iteration cap).
DataShapeError
    Dataset does not match the network it is used with.
SingularityError
    A local elimination step in exact inference is not positive definite.
NoViableRunError
    Every restart of the multi-restart optimizer failed.

Author: Sean Plummer
Date: October 2026
"""

from typing import Dict, Optional


class DBNError(Exception):
    """Base class for errors raised by this package."""


class StructureError(DBNError, ValueError):
    """Raised when a template graph is structurally invalid."""


class ConfigError(DBNError, ValueError):
    """Raised when a construction or run parameter is out of range."""


class DataShapeError(DBNError, ValueError):
    """Raised when a dataset does not have the expected shape."""


class SingularityError(DBNError, ArithmeticError):
    """
    Raised when a local elimination step cannot be factorized.

    Parameters
    ----------
    message : str
        Description of the failing step.
    time : int, optional
        Time slice (0-based) at which the factorization failed.
    phase : str, optional
        Either ``"filter"`` or ``"smoother"``.
    iteration : int, optional
        EM iteration (0-based) during which the E-step failed.
    restart : int, optional
        Index of the restart the failing run belonged to.

    Notes
    -----
    The trainer and the optimizer add ``iteration`` and ``restart`` on the way
    up through :meth:`with_context`; the message is rebuilt each time so the
    final report carries every known coordinate of the failure.
    """

    def __init__(
        self,
        message: str,
        time: Optional[int] = None,
        phase: Optional[str] = None,
        iteration: Optional[int] = None,
        restart: Optional[int] = None
    ):
        self.base_message = message
        self.time = time
        self.phase = phase
        self.iteration = iteration
        self.restart = restart
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.restart is not None:
            context.append(f"restart={self.restart}")
        if self.iteration is not None:
            context.append(f"iteration={self.iteration}")
        if self.phase is not None:
            context.append(f"phase={self.phase}")
        if self.time is not None:
            context.append(f"t={self.time}")
        if not context:
            return self.base_message
        return f"{self.base_message} ({', '.join(context)})"

    def with_context(self, **context) -> "SingularityError":
        """Return a copy of this error with additional context filled in."""
        fields = {
            'time': self.time,
            'phase': self.phase,
            'iteration': self.iteration,
            'restart': self.restart
        }
        fields.update(context)
        return SingularityError(self.base_message, **fields)


class NoViableRunError(DBNError, RuntimeError):
    """
    Raised when every restart of a multi-restart fit failed.

    Parameters
    ----------
    failures : dict
        Restart index -> failure message.
    """

    def __init__(self, failures: Dict[int, str]):
        self.failures = dict(failures)
        first = next(iter(self.failures.values()), "no restarts were run")
        super().__init__(
            f"All {len(self.failures)} restarts failed; first failure: {first}"
        )
