"""
Renders Osun values as the text that `print` writes and `+` concatenates.
"""
import collections.abc
import math

from osun.osun_datatypes import Namespace, OsunHost

NIL_TEXT = "nil"


class Printer:
    """Formats Osun values into human-readable strings."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point to format a value."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, OsunHost):
            return self._pformat_host
        if isinstance(obj, (Namespace, collections.abc.Mapping)):
            return self._pformat_namespace
        # Builtins land here too; their repr is `<builtin NAME>`.
        return lambda o: str(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            float: self._pformat_number,
            int: self._pformat_number,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            Namespace: self._pformat_namespace,
        }

    def _pformat_str(self, obj):
        return obj

    def _pformat_number(self, obj):
        num = float(obj)
        # Integral floats print without a decimal point: 4.0 -> 4
        if math.isfinite(num) and num.is_integer() and abs(num) < 2 ** 63:
            return str(int(num))
        if math.isnan(num):
            return "NaN"
        if math.isinf(num):
            return "+Inf" if num > 0 else "-Inf"
        return repr(num)

    def _pformat_bool(self, obj):
        return 'true' if obj else 'false'

    def _pformat_none(self, obj):
        return NIL_TEXT

    def _pformat_namespace(self, obj):
        name = getattr(obj, 'name', None) or 'anonymous'
        return f"<namespace {name}>"

    def _pformat_host(self, obj):
        return f"<host {type(obj).__name__}>"


_default_printer = Printer()


def render(value) -> str:
    """Render a value with the shared default printer."""
    return _default_printer.pformat(value)
