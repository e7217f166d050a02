"""
The symbol table and the dynamic call dispatcher.

Host functions are wrapped once, at registration, into Builtin objects that
carry an explicit parameter descriptor. Marshalling script Values into native
arguments is then a plain conversion over that descriptor, and dispatch
reports its result as a CallOutcome instead of letting host errors escape.
"""

import collections.abc
import inspect
import re
import types
import typing
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from osun.osun_datatypes import CallOutcome, Context, Namespace, OsunHost, PathNotFound, parse_number
from osun.osun_printer import render

ANY = 'any'
_KIND_BY_TYPE = {float: 'float', int: 'int', str: 'str', bool: 'bool'}
_KIND_BY_NAME = {'float': 'float', 'int': 'int', 'str': 'str', 'bool': 'bool'}
_UNION_TYPES = (typing.Union, getattr(types, "UnionType", typing.Union))
_NAME_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


class ArgumentTypeError(TypeError):
    """A script Value cannot be converted to a parameter's declared type."""


@dataclass(frozen=True)
class ParamSpec:
    name: str
    kind: str = ANY
    required: bool = True
    nullable: bool = False


def _kind_of(annotation) -> Tuple[str, bool]:
    """Map a parameter annotation to (kind, nullable)."""
    if annotation is inspect.Parameter.empty or annotation is typing.Any:
        return ANY, True
    if isinstance(annotation, str):
        return _KIND_BY_NAME.get(annotation.strip(), ANY), annotation.strip() not in _KIND_BY_NAME
    if annotation in _KIND_BY_TYPE:
        return _KIND_BY_TYPE[annotation], False
    if typing.get_origin(annotation) in _UNION_TYPES:
        members = [a for a in typing.get_args(annotation) if a is not type(None)]
        nullable = len(members) < len(typing.get_args(annotation))
        if len(members) == 1:
            kind, _ = _kind_of(members[0])
            return kind, nullable or kind == ANY
    return ANY, True


def describe(func) -> Tuple[Tuple[ParamSpec, ...], Optional[ParamSpec]]:
    """Build the positional parameter descriptor of a native callable."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return (), ParamSpec('args', ANY, required=False, nullable=True)
    try:
        hints = typing.get_type_hints(func)
    except Exception:
        hints = {}

    params: List[ParamSpec] = []
    varargs: Optional[ParamSpec] = None
    for p in sig.parameters.values():
        kind, nullable = _kind_of(hints.get(p.name, p.annotation))
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            required = p.default is p.empty
            if p.default is None:
                nullable = True
            params.append(ParamSpec(p.name, kind, required, nullable))
        elif p.kind == p.VAR_POSITIONAL:
            varargs = ParamSpec(p.name, kind, required=False, nullable=nullable)
    return tuple(params), varargs


def coerce(value: Any, spec: ParamSpec) -> Any:
    """Convert one script Value to the native type a parameter declares."""
    if value is None:
        if spec.kind == ANY or spec.nullable:
            return None
        raise ArgumentTypeError(f"parameter '{spec.name}' expects {spec.kind}, got nil")
    if spec.kind == ANY:
        return value

    if spec.kind == 'float':
        if isinstance(value, bool):
            pass
        elif isinstance(value, (int, float)):
            return float(value)
        elif isinstance(value, str) and parse_number(value) is not None:
            return parse_number(value)
    elif spec.kind == 'int':
        if isinstance(value, bool):
            pass
        elif isinstance(value, (int, float)) and float(value).is_integer():
            return int(value)
        elif isinstance(value, str):
            num = parse_number(value)
            if num is not None and num.is_integer():
                return int(num)
    elif spec.kind == 'str':
        if isinstance(value, str):
            return value
        if isinstance(value, (bool, int, float)):
            return render(value)
    elif spec.kind == 'bool':
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value in ('true', 'false'):
            return value == 'true'

    raise ArgumentTypeError(
        f"parameter '{spec.name}' expects {spec.kind}, got {type(value).__name__} {render(value)!r}"
    )


class Builtin:
    """A host callable plus the descriptor used to marshal script arguments."""

    def __init__(self, name: str, func, params=None, varargs: Optional[ParamSpec] = None):
        self.name = name
        self.func = func
        if params is None:
            params, varargs = describe(func)
        self.params: Tuple[ParamSpec, ...] = tuple(params)
        self.varargs = varargs

    @classmethod
    def wrap(cls, name: str, target) -> 'Builtin':
        if isinstance(target, Builtin):
            return target
        if not callable(target):
            raise TypeError(f"cannot register non-callable {type(target).__name__} as '{name}'")
        return cls(name, target)

    @property
    def min_arity(self) -> int:
        return sum(1 for p in self.params if p.required)

    @property
    def max_arity(self) -> Optional[int]:
        return None if self.varargs is not None else len(self.params)

    def _expected(self) -> str:
        lo, hi = self.min_arity, self.max_arity
        if hi is None:
            return f"at least {lo}"
        return str(lo) if lo == hi else f"{lo} to {hi}"

    def marshal(self, values: List[Any]) -> Tuple[List[Any], Optional[str]]:
        """Convert Values to native arguments; returns (args, arity warning or None).

        Extra values are dropped. Missing values are not invented, so a call
        that is short of required arguments fails when it is made.
        """
        warning = None
        count = len(values)
        hi = self.max_arity
        if count < self.min_arity or (hi is not None and count > hi):
            warning = f"argument mismatch for {self.name}: expected {self._expected()}, got {count}"
            if hi is not None:
                values = values[:hi]

        args = []
        for i, value in enumerate(values):
            spec = self.params[i] if i < len(self.params) else self.varargs
            args.append(coerce(value, spec))
        return args, warning

    def __call__(self, *args):
        return self.func(*args)

    def __repr__(self):
        return f"<builtin {self.name}>"


def camel_case(name: str) -> str:
    """take_damage -> takeDamage (script-side naming for host methods)."""
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def host_api_methods(host) -> Dict[str, Any]:
    """Collect the @osun_api_method members of a host, keyed by script name."""
    found = {}
    for name, member in inspect.getmembers(host):
        if name.startswith('_') or not callable(member):
            continue
        # Decorator may mark the bound method or the underlying function
        is_api = getattr(member, "_is_osun_api", False)
        if not is_api:
            func = getattr(member, "__func__", None)
            is_api = getattr(func, "_is_osun_api", False) if func is not None else False
        if is_api:
            found[camel_case(name)] = member
    return found


class SymbolTable(collections.abc.Mapping):
    """Host-populated registry of callables and namespaces.

    Registration happens before a run; once frozen the table rejects
    further writes and the engine only ever reads from it.
    """

    def __init__(self):
        self._symbols: Dict[str, Any] = {}
        self.frozen = False

    def __getitem__(self, key: str):
        return self._symbols[key]

    def __iter__(self):
        return iter(self._symbols)

    def __len__(self):
        return len(self._symbols)

    def _check_writable(self, name: str):
        if self.frozen:
            raise RuntimeError(f"symbol table is frozen; cannot register '{name}'")
        if not _NAME_RE.fullmatch(name or ''):
            raise ValueError(f"invalid symbol name: {name!r}")

    def register(self, name: str, target) -> None:
        """Register a callable, or a mapping of callables as a namespace."""
        self._check_writable(name)
        if isinstance(target, collections.abc.Mapping):
            self._symbols[name] = self._namespace(name, target)
        else:
            self._symbols[name] = Builtin.wrap(name, target)

    def register_namespace(self, name: str, members: Mapping[str, Any]) -> None:
        self._check_writable(name)
        self._symbols[name] = self._namespace(name, members)

    def bind_host(self, host, name: Optional[str] = None) -> None:
        """Expose a host's API methods, top-level or grouped under `name`."""
        methods = host_api_methods(host)
        if name is not None:
            self.register_namespace(name, methods)
            return
        for method_name, member in methods.items():
            self.register(method_name, member)

    def unregister(self, name: str) -> None:
        self._check_writable(name)
        self._symbols.pop(name, None)

    def freeze(self) -> None:
        self.frozen = True

    @staticmethod
    def _namespace(name: str, members: Mapping[str, Any]) -> Namespace:
        return Namespace(name, {k: Builtin.wrap(f"{name}.{k}", v) for k, v in members.items()})

    def resolve(self, path: str, context: Optional[Context] = None) -> Builtin:
        """Resolve `name` or `group.name` to a Builtin, or raise PathNotFound."""
        parts = path.split('.')
        if len(parts) > 2 or not all(parts):
            raise PathNotFound(f"invalid builtin path: {path}")

        if len(parts) == 1:
            sym = self._symbols.get(path)
            if sym is None:
                raise PathNotFound(f"symbol not found: {path}")
            if not isinstance(sym, Builtin):
                raise PathNotFound(f"not a function: {path}")
            return sym

        group_name, member = parts
        group = self._symbols.get(group_name)
        if group is None and context is not None:
            # A seeded handle (e.g. a server object) can supply methods too.
            group = context.get(group_name)
        if isinstance(group, OsunHost):
            group = Namespace(group_name, host_api_methods(group))
        if not isinstance(group, collections.abc.Mapping):
            raise PathNotFound(f"invalid builtin path: {path}")
        fn = group.get(member)
        if fn is None:
            raise PathNotFound(f"method not found: {member}")
        if not callable(fn):
            raise PathNotFound(f"not a function: {path}")
        return Builtin.wrap(path, fn)


class Dispatcher:
    """Resolves call paths and invokes host callables with marshalled Values."""

    def __init__(self, symbols: SymbolTable, debug=None):
        self.symbols = symbols
        self._dbg = debug or (lambda *parts: None)

    def dispatch(self, path: str, values: List[Any], context: Optional[Context] = None) -> CallOutcome:
        try:
            fn = self.symbols.resolve(path, context)
        except PathNotFound as e:
            return CallOutcome('not-found', message=e.key)

        try:
            args, warning = fn.marshal(values)
        except ArgumentTypeError as e:
            return CallOutcome('type-error', message=f"invalid argument for {fn.name}: {e}")

        self._dbg("dispatch", fn.name, "argc", len(args), "warning", warning)
        try:
            result = fn(*args)
        except TypeError as e:
            return CallOutcome('type-error', message=f"runtime error in {fn.name}: {e}", warning=warning)
        except Exception as e:
            return CallOutcome('error', message=f"runtime error in {fn.name}: {type(e).__name__}: {e}", warning=warning)

        if warning:
            return CallOutcome('arity-warning', result, warning=warning)
        return CallOutcome('ok', result)
