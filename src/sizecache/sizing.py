"""Deep size estimation for arbitrary in-memory values.

The estimator walks a value and everything reachable from it, summing
``sys.getsizeof`` of each node plus a few empirical corrections. It is an
approximation: the constants in :class:`SizeConstants` are tunable and the
result is an estimate, never an exact byte count.

Every top-level call carries its own visited set of object ids. Nodes already
in the set are not counted again, which both deduplicates shared storage and
terminates on cyclic structures.
"""

from __future__ import annotations

import collections
import collections.abc
import enum
import functools
import io
import struct
import sys
import types
import typing
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sizecache.errors import SizeCacheConfigError, UnsupportedKindError

POINTER_SIZE = struct.calcsize("P")

# Average per-entry bucket waste of a hash table, measured empirically.
DEFAULT_MAP_ENTRY_OVERHEAD = 10.79


class Kind(enum.Enum):
    NONE = "none"
    SCALAR = "scalar"
    ARRAY = "array"
    SLICE = "slice"
    STRING = "string"
    MAP = "map"
    RECORD = "record"
    DYNAMIC = "dynamic"
    FUNCTION = "function"
    MODULE = "module"
    CLASS = "class"
    GENERATOR = "generator"
    CODE = "code"
    IO = "io"
    OTHER = "other"


UNSUPPORTED_KINDS = frozenset(
    {
        Kind.FUNCTION,
        Kind.MODULE,
        Kind.CLASS,
        Kind.GENERATOR,
        Kind.CODE,
        Kind.IO,
        Kind.OTHER,
    }
)


@dataclass(frozen=True, slots=True)
class SizeConstants:
    pointer_size: int = POINTER_SIZE
    map_entry_overhead: float = DEFAULT_MAP_ENTRY_OVERHEAD


Walk = Callable[[object], int]
Handler = Callable[[object, Walk], int]


_EXACT_KINDS: dict[type, Kind] = {
    type(None): Kind.NONE,
    bool: Kind.SCALAR,
    int: Kind.SCALAR,
    float: Kind.SCALAR,
    complex: Kind.SCALAR,
    object: Kind.SCALAR,
    str: Kind.STRING,
    bytes: Kind.STRING,
    bytearray: Kind.STRING,
    tuple: Kind.ARRAY,
    range: Kind.ARRAY,
    list: Kind.SLICE,
    set: Kind.SLICE,
    frozenset: Kind.SLICE,
    collections.deque: Kind.SLICE,
    dict: Kind.MAP,
    memoryview: Kind.DYNAMIC,
    types.CellType: Kind.DYNAMIC,
}

_FUNCTION_TYPES: tuple[type, ...] = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.MethodWrapperType,
    types.WrapperDescriptorType,
    types.MethodDescriptorType,
    types.ClassMethodDescriptorType,
    functools.partial,
)

# Checked in order; the first matching base decides the kind.
_BASE_KINDS: tuple[tuple[tuple[type, ...], Kind], ...] = (
    ((enum.Enum,), Kind.SCALAR),
    ((bool, int, float, complex), Kind.SCALAR),
    ((str, bytes, bytearray), Kind.STRING),
    ((tuple, range), Kind.ARRAY),
    ((list, set, frozenset, collections.deque), Kind.SLICE),
    ((dict,), Kind.MAP),
    ((memoryview, types.CellType), Kind.DYNAMIC),
    (_FUNCTION_TYPES, Kind.FUNCTION),
    ((types.ModuleType,), Kind.MODULE),
    ((type,), Kind.CLASS),
    ((types.GeneratorType, types.CoroutineType, types.AsyncGeneratorType), Kind.GENERATOR),
    ((types.CodeType, types.FrameType, types.TracebackType), Kind.CODE),
    ((io.IOBase,), Kind.IO),
)


def kind_of_type(tp: type) -> Kind:
    """Classify a runtime type into the kind whose sizing rule applies to it."""

    exact = _EXACT_KINDS.get(tp)
    if exact is not None:
        return exact

    for bases, kind in _BASE_KINDS:
        if issubclass(tp, bases):
            return kind

    # Anything defined outside builtins is an aggregate of its attributes.
    if getattr(tp, "__module__", "builtins") != "builtins":
        return Kind.RECORD
    return Kind.OTHER


def _unsupported(tp: type, kind: Kind) -> UnsupportedKindError:
    name = tp.__name__ if kind is Kind.OTHER else kind.value
    return UnsupportedKindError(name, detail=f"{tp.__module__}.{tp.__qualname__}")


def _slot_names(cls: type) -> Iterable[str]:
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name in ("__dict__", "__weakref__"):
                continue
            if name.startswith("__") and not name.endswith("__"):
                name = f"_{klass.__name__.lstrip('_')}{name}"
            yield name


class SizeEstimator:
    """Deep, cycle-aware size estimator.

    Handlers registered with :meth:`register` take precedence over the
    generic per-kind rules for instances of the registered type (matched
    along the MRO, last registration wins).
    """

    def __init__(self, constants: SizeConstants | None = None) -> None:
        self._constants = constants if constants is not None else SizeConstants()
        self._handlers: dict[type, Handler] = {}

    @property
    def constants(self) -> SizeConstants:
        return self._constants

    def register(self, tp: type, handler: Handler) -> None:
        """Size instances of ``tp`` with ``handler(value, walk)``.

        ``walk(child)`` sizes a child with the same visited set; children must
        stay alive for the duration of the call since they are keyed by id.
        """

        self._handlers[tp] = handler

    def estimate_size(self, value: object) -> int:
        """Return the estimated deep size of ``value`` in bytes.

        Raises UnsupportedKindError if any reachable value has a kind the
        estimator has no rule for.
        """

        visited: set[int] = set()
        return self._walk(value, visited)

    def estimate_entries(self, items: Iterable[tuple[object, object]]) -> int:
        """Estimate key/value pairs held by a hash table, as a cache charges them.

        The table costs one reference plus the per-entry bucket overhead. Its
        allocated slots are not charged: they never shrink on deletion, so
        they would depend on insertion history. All keys and values share one
        visited set.
        """

        visited: set[int] = set()
        total = self._constants.pointer_size
        count = 0
        for key, val in items:
            total += self._walk(key, visited) + self._walk(val, visited)
            count += 1
        return total + int(count * self._constants.map_entry_overhead)

    def must_estimate_size(self, value: object) -> int:
        """Like :meth:`estimate_size`, for values whose type was already validated."""

        try:
            return self.estimate_size(value)
        except UnsupportedKindError as e:
            raise AssertionError(f"sizing a validated value failed: {e}") from e

    def check_type(self, tp: object) -> Kind:
        """Validate that values of type ``tp`` can be sized.

        Accepts classes, parametrized generics (``list[int]``) and unions.
        Returns the kind; raises UnsupportedKindError for callables, modules,
        classes and other kinds without a sizing rule.
        """

        if tp is collections.abc.Callable:
            raise UnsupportedKindError(Kind.FUNCTION.value, detail=repr(tp))

        origin = typing.get_origin(tp)
        if origin is collections.abc.Callable:
            raise UnsupportedKindError(Kind.FUNCTION.value, detail=repr(tp))
        if origin is typing.Union or origin is types.UnionType:
            for arg in typing.get_args(tp):
                self.check_type(arg)
            return Kind.DYNAMIC
        if origin is not None:
            tp = origin

        if tp is typing.Any or tp is object:
            return Kind.DYNAMIC
        if not isinstance(tp, type):
            raise SizeCacheConfigError(f"Expected a type, got {tp!r}.")

        for klass in tp.__mro__:
            if klass in self._handlers:
                return Kind.RECORD

        kind = kind_of_type(tp)
        if kind in UNSUPPORTED_KINDS:
            raise _unsupported(tp, kind)
        return kind

    def _handler_for(self, tp: type) -> Handler | None:
        if not self._handlers:
            return None
        for klass in tp.__mro__:
            handler = self._handlers.get(klass)
            if handler is not None:
                return handler
        return None

    def _walk(self, root: object, visited: set[int]) -> int:
        ptr = self._constants.pointer_size
        total = 0
        stack: list[object] = [root]

        while stack:
            v = stack.pop()
            tp = type(v)

            handler = self._handler_for(tp)
            if handler is not None:
                total += handler(v, lambda child: self._walk(child, visited))
                continue

            kind = kind_of_type(tp)

            if kind is Kind.NONE:
                total += ptr

            elif kind is Kind.SCALAR:
                total += sys.getsizeof(v)

            elif kind is Kind.ARRAY:
                # Tuples have no spare capacity; ranges store no elements.
                total += sys.getsizeof(v)
                if not isinstance(v, range):
                    stack.extend(v)  # type: ignore[arg-type]

            elif kind is Kind.SLICE:
                if id(v) in visited:
                    continue
                visited.add(id(v))
                # getsizeof covers the header and any over-allocated capacity.
                total += sys.getsizeof(v)
                stack.extend(v)  # type: ignore[arg-type]

            elif kind is Kind.STRING:
                if id(v) in visited:
                    total += ptr
                    continue
                visited.add(id(v))
                total += sys.getsizeof(v)

            elif kind is Kind.MAP:
                if id(v) in visited:
                    continue
                visited.add(id(v))
                mapping = typing.cast(dict, v)
                # Bucket slack is an empirical per-entry addend on top of the table.
                total += sys.getsizeof(mapping)
                total += int(len(mapping) * self._constants.map_entry_overhead)
                for key, val in mapping.items():
                    stack.append(key)
                    stack.append(val)

            elif kind is Kind.RECORD:
                if id(v) in visited:
                    total += ptr
                    continue
                visited.add(id(v))
                total += ptr + self._record_width(v, visited)
                stack.extend(self._record_fields(v))

            elif kind is Kind.DYNAMIC:
                total += sys.getsizeof(v)
                try:
                    if isinstance(v, memoryview):
                        held = v.obj
                    else:
                        held = v.cell_contents  # type: ignore[attr-defined]
                except ValueError:
                    # Released memoryview or empty cell: only the holder remains.
                    continue
                stack.append(held)

            else:
                raise _unsupported(tp, kind)

        return total

    @staticmethod
    def _record_width(obj: object, visited: set[int]) -> int:
        # The object's own size carries its header, slot storage and padding;
        # the attribute table is part of the record, not a separate mapping.
        width = sys.getsizeof(obj)
        attrs = _instance_dict(obj)
        if attrs is not None and id(attrs) not in visited:
            visited.add(id(attrs))
            width += sys.getsizeof(attrs)
        return width

    @staticmethod
    def _record_fields(obj: object) -> list[object]:
        fields: list[object] = []
        for name in _slot_names(type(obj)):
            try:
                fields.append(getattr(obj, name))
            except AttributeError:
                continue
        attrs = _instance_dict(obj)
        if attrs is not None:
            fields.extend(attrs.values())
        return fields


def _instance_dict(obj: object) -> dict[str, object] | None:
    try:
        attrs = vars(obj)
    except TypeError:
        return None
    return attrs if isinstance(attrs, dict) else None


_DEFAULT_ESTIMATOR = SizeEstimator()


def default_estimator() -> SizeEstimator:
    return _DEFAULT_ESTIMATOR


def estimate_size(value: object) -> int:
    """Estimate the deep size of ``value`` with the default constants."""

    return _DEFAULT_ESTIMATOR.estimate_size(value)


def must_estimate_size(value: object) -> int:
    return _DEFAULT_ESTIMATOR.must_estimate_size(value)


def check_type(tp: object) -> Kind:
    return _DEFAULT_ESTIMATOR.check_type(tp)
