# osun_runtime.py

import inspect
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Literal, Optional

from osun.osun_datatypes import Context, OsunHost, Program
from osun.osun_interpreter import Evaluator, current_evaluator
from osun.osun_parser import parse
from osun.osun_printer import render
from osun.osun_symbols import SymbolTable

# ===================================================================
# 1. Host Binding
# ===================================================================


def osun_api_method(func):
    """A decorator to explicitly mark methods as callable from Osun scripts."""
    func._is_osun_api = True
    return func


# ===================================================================
# 2. The Standard Library
# ===================================================================
class StdLib:
    """Contains Python implementations for the default Osun builtins."""
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    def _emit(self, topic, *message_parts):
        """Generates a side-effect event for the host application."""
        message = " ".join(render(p) for p in message_parts)
        # Effects belong to whichever run is executing on this thread.
        evaluator = current_evaluator() or self.evaluator
        evaluator.emit([render(topic)], message)
        return None

    def _len(self, value: str) -> float:
        return float(len(value))

    def _time(self) -> float:
        return time.time()


# ===================================================================
# 3. Script Runner
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def output(self) -> List[str]:
        """Lines written by `print`."""
        return [e['message'] for e in self.side_effects if e.get('topics') == ['stdout']]

    @property
    def diagnostics(self) -> List[str]:
        """Engine reports (unknown commands, failed calls, syntax problems)."""
        return [e['message'] for e in self.side_effects if e.get('topics') == ['diagnostic']]

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class ScriptRunner:
    """Parses and executes Osun code against a host-populated symbol table.

    The runner owns the host globals (seeded with set_variable) and one
    persistent main context, so consecutive handle_script calls see each
    other's bindings like lines typed into a REPL. Re-entrant executions,
    such as a request handler running on another thread, should use
    new_context() so they never write into the main context.
    """

    def __init__(self, host_object: Optional[OsunHost] = None, load_stdlib: bool = True,
                 stream=None, strict_names: bool = False):
        self.host_object = host_object
        self.stream = stream
        self.strict_names = strict_names
        self.symbols = SymbolTable()
        self.globals: Dict[str, Any] = {}
        self.context = Context()
        self.evaluator = self._make_evaluator()

        if load_stdlib:
            stdlib = StdLib(self.evaluator)
            for name, member in inspect.getmembers(stdlib):
                if name.startswith('_') and not name.startswith('__') and callable(member):
                    self.symbols.register(name[1:], member)

        # Host API methods shadow stdlib builtins of the same name
        if host_object is not None:
            self.symbols.bind_host(host_object)

    def _make_evaluator(self) -> Evaluator:
        return Evaluator(self.symbols, stream=self.stream, strict_names=self.strict_names)

    # --- Host-facing API ---

    def register(self, name: str, target) -> None:
        """Register a callable or a mapping of callables (a namespace)."""
        self.symbols.register(name, target)

    def set_variable(self, name: str, value: Any) -> None:
        """Seed a host global; visible to every run that starts afterwards."""
        self.globals[name] = value

    def get_variable(self, name: str, default: Any = None) -> Any:
        if name in self.context.bindings:
            return self.context.bindings[name]
        return self.globals.get(name, default)

    def new_context(self) -> Context:
        """An isolated context layered over a snapshot of the current state."""
        merged = dict(self.globals)
        merged.update(self.context.bindings)
        return Context(parent=MappingProxyType(merged))

    def compile(self, source_code: str) -> Program:
        return parse(source_code)

    # --- Execution ---

    def handle_script(self, source_code: str, context: Optional[Context] = None) -> ExecutionResult:
        """The main entry point to execute a script."""
        try:
            program = self.compile(source_code)
        except Exception as e:
            msg = f"ParseError: {e}"
            return ExecutionResult(status='error', error_message=msg,
                                   side_effects=[{'topics': ['stderr'], 'message': msg}])
        return self.execute(program, context)

    def execute(self, program: Program, context: Optional[Context] = None) -> ExecutionResult:
        """Run an already parsed program in the main context or the given one."""
        if context is None:
            context = self.context
            # Re-layer the main context over the globals as they are now.
            context.parent = MappingProxyType(dict(self.globals))
            evaluator = self.evaluator
        else:
            # Separate evaluator so concurrent runs keep separate side effects.
            evaluator = self._make_evaluator()
        evaluator.side_effects = []
        self.symbols.freeze()

        try:
            value = evaluator.run(program, context)
        except Exception as e:
            msg = f"InternalError: {e}"
            evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(status='error', error_message=msg, side_effects=evaluator.side_effects)

        return ExecutionResult(status='success', value=value, side_effects=evaluator.side_effects)
