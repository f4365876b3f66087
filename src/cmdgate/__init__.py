"""
cmdgate

A policy-guarded command execution gateway. Runs commands in configured shells
after checking them against blocked commands, arguments, operators and allowed
working directories, and keeps their output retrievable through bounded views.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from cmdgate.core.config import GatewayConfig, load_config
from cmdgate.core.exceptions import (
    CmdGateException,
    CommandExecutionError,
    ConfigurationError,
    LogRetrievalError,
    ParameterError,
    PolicyViolationError,
)
from cmdgate.core.gateway import CommandGateway, ExecutionResult

Gateway = CommandGateway

__all__ = [
    "__version__",
    "CmdGateException",
    "CommandExecutionError",
    "CommandGateway",
    "ConfigurationError",
    "ExecutionResult",
    "Gateway",
    "GatewayConfig",
    "LogRetrievalError",
    "ParameterError",
    "PolicyViolationError",
    "load_config",
]
