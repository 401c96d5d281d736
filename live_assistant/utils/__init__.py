# Utils package

from .logging_config import setup_logging, get_logger
from .error_handling import (
    SessionEngineError,
    DecodeError,
    DeviceError,
    ChannelError,
    InvalidTransitionError,
    ErrorSeverity,
    ComponentError,
    ErrorHandler,
    safe_cleanup,
)
from .state_machine import SessionStateMachine, StateTransition
from .transcript_assembler import TranscriptionAssembler
from .tool_dispatcher import ToolCallDispatcher, ToolBinding, ToolErrorPolicy

__all__ = [
    "setup_logging",
    "get_logger",
    "SessionEngineError",
    "DecodeError",
    "DeviceError",
    "ChannelError",
    "InvalidTransitionError",
    "ErrorSeverity",
    "ComponentError",
    "ErrorHandler",
    "safe_cleanup",
    "SessionStateMachine",
    "StateTransition",
    "TranscriptionAssembler",
    "ToolCallDispatcher",
    "ToolBinding",
    "ToolErrorPolicy",
]
