from osun.osun_datatypes import (
    CallOutcome, Context, EvalError, Namespace, OsunError, OsunSyntaxError, PathNotFound,
)
from osun.osun_parser import parse
from osun.osun_runtime import ExecutionResult, OsunHost, ScriptRunner, osun_api_method
from osun.osun_symbols import Builtin, SymbolTable

__all__ = [
    "Builtin",
    "CallOutcome",
    "Context",
    "EvalError",
    "ExecutionResult",
    "Namespace",
    "OsunError",
    "OsunHost",
    "OsunSyntaxError",
    "PathNotFound",
    "ScriptRunner",
    "SymbolTable",
    "osun_api_method",
    "parse",
]
