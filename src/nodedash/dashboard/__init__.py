"""Dashboard view state and the event control loop."""

from .control import ControlLoop
from .state import DEBUG_WINDOW_NAME, DashState, DashView, StatusMessage

__all__ = ["ControlLoop", "DEBUG_WINDOW_NAME", "DashState", "DashView", "StatusMessage"]
