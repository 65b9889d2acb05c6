from .controller import TerminationController
from .terminator import TerminationPhase, Terminator

__all__ = ["TerminationController", "TerminationPhase", "Terminator"]
