"""Frame filters: predicates deciding which stack frames are of interest.

A frame filter is any callable taking an :py:class:`Allocation` and one of
the :py:class:`StackFrame` objects in its stack, and returning whether that
frame should be considered. Filters are usually built from a small
expression language with :py:func:`framefilter`:

- An allocator name (``MALLOC``, ``PYMALLOC``, ``ANY``, ...) matches
  allocations made by that allocator or by any allocator of that family.
  ``NAME:n`` additionally requires the allocation to be ``n`` bytes long;
  ranges (``NAME:m:n``) or sets (``NAME:[a, b]``) select several sizes.
  A bare number, range or set selects sizes for any allocator.
- A string starting with ``@`` is matched against the package of the frame.
  The string ``"@"`` matches every package outside of the standard library.
- Any other string is matched against the file name of the frame, and a
  regular expression (``r"..."``) is searched for in the whole path.
  ``"file.py":n`` additionally requires the frame to be on line ``n``;
  ranges and sets can be used as for sizes.
- ``:name`` matches frames of the function ``name``.
- ``&&``, ``||`` and ``!`` (or ``and``, ``or`` and ``not``) combine filters.

Note that ``!F`` never matches frames from the interpreter itself or from
native libraries: it is defined as "an in-project frame that does not match
``F``". An allocation matches a filter when any of its frames does, so
``!"myfile.py"`` selects allocations with some in-project frame outside of
``myfile.py``, not allocations that never go through ``myfile.py``.

Examples::

    framefilter('!PYMALLOC && "@mypkg"')
    framefilter('"myfile.py":10:20')
    framefilter(':iterate && "@"')
"""
import os
import re
from typing import Any
from typing import Callable
from typing import Iterable
from typing import Optional

from memray import AllocatorType

from allocviewer._errors import FilterSyntaxError
from allocviewer._filter_syntax import And
from allocviewer._filter_syntax import Expression
from allocviewer._filter_syntax import Not
from allocviewer._filter_syntax import Numbers
from allocviewer._filter_syntax import Or
from allocviewer._filter_syntax import PatternTerm
from allocviewer._filter_syntax import Qualified
from allocviewer._filter_syntax import StringTerm
from allocviewer._filter_syntax import SymbolTerm
from allocviewer._filter_syntax import TypeTerm
from allocviewer._filter_syntax import parse
from allocviewer._records import ALLOCATOR_FAMILIES
from allocviewer._records import Allocation
from allocviewer._records import StackFrame
from allocviewer._sources import DEFAULT_LOCATOR
from allocviewer._sources import NATIVE_CODE
from allocviewer._sources import PYTHON_INTERNALS
from allocviewer._sources import SELF_PACKAGE
from allocviewer._sources import STDLIB
from allocviewer._sources import UNKNOWN
from allocviewer._sources import SourceLocator

Predicate = Callable[[Allocation, StackFrame], bool]

OUTSIDE_PROJECT = frozenset({UNKNOWN, PYTHON_INTERNALS, NATIVE_CODE})


def show_all(allocation: Allocation, frame: StackFrame) -> bool:
    """Match every frame. Stacks displayed with this filter are never truncated."""
    return True


def in_project(locator: SourceLocator) -> Predicate:
    """The default filter: frames outside of the interpreter and native code."""

    def predicate(allocation: Allocation, frame: StackFrame) -> bool:
        return locator.package(frame.file) not in OUTSIDE_PROJECT

    return predicate


def instrumentation(locator: SourceLocator) -> Predicate:
    """Match frames of the viewer itself, which end every tracked stack."""

    def predicate(allocation: Allocation, frame: StackFrame) -> bool:
        return locator.package(frame.file) == SELF_PACKAGE

    return predicate


def _package_filter(label: str, locator: SourceLocator) -> Predicate:
    if label == "@":
        excluded = OUTSIDE_PROJECT | {STDLIB}

        def any_package(allocation: Allocation, frame: StackFrame) -> bool:
            return locator.package(frame.file) not in excluded

        return any_package

    def package(allocation: Allocation, frame: StackFrame) -> bool:
        return locator.package(frame.file) == label

    return package


def _file_filter(name: str) -> Predicate:
    def file_name(allocation: Allocation, frame: StackFrame) -> bool:
        return os.path.basename(frame.file) == name

    return file_name


def _pattern_filter(pattern: "re.Pattern[str]") -> Predicate:
    def file_pattern(allocation: Allocation, frame: StackFrame) -> bool:
        return pattern.search(frame.file) is not None

    return file_pattern


def _function_filter(name: str) -> Predicate:
    def function(allocation: Allocation, frame: StackFrame) -> bool:
        return frame.function == name

    return function


def _type_filter(name: str, locator: SourceLocator) -> Predicate:
    allocators = ALLOCATOR_FAMILIES[name]
    default = in_project(locator)

    def allocation_type(allocation: Allocation, frame: StackFrame) -> bool:
        return default(allocation, frame) and allocation.allocator in allocators

    return allocation_type


def _compile_term(term: Expression, locator: SourceLocator) -> Predicate:
    if isinstance(term, StringTerm):
        if term.value.startswith("@"):
            return _package_filter(term.value, locator)
        return _file_filter(term.value)
    if isinstance(term, PatternTerm):
        return _pattern_filter(re.compile(term.pattern))
    if isinstance(term, SymbolTerm):
        return _function_filter(term.name)
    if isinstance(term, TypeTerm):
        return _type_filter(term.name, locator)
    raise TypeError(f"not a filter term: {term!r}")


def _compile_qualified(expression: Qualified, locator: SourceLocator) -> Predicate:
    base = _compile_term(expression.term, locator)
    numbers = expression.numbers

    if isinstance(expression.term, TypeTerm):

        def sized(allocation: Allocation, frame: StackFrame) -> bool:
            return base(allocation, frame) and allocation.size in numbers

        return sized

    def lines(allocation: Allocation, frame: StackFrame) -> bool:
        return base(allocation, frame) and frame.lineno in numbers

    return lines


def _all_of(predicates: Iterable[Predicate]) -> Predicate:
    predicates = tuple(predicates)

    def conjunction(allocation: Allocation, frame: StackFrame) -> bool:
        return all(predicate(allocation, frame) for predicate in predicates)

    return conjunction


def _any_of(predicates: Iterable[Predicate]) -> Predicate:
    predicates = tuple(predicates)

    def disjunction(allocation: Allocation, frame: StackFrame) -> bool:
        return any(predicate(allocation, frame) for predicate in predicates)

    return disjunction


def _negation(operand: Predicate, locator: SourceLocator) -> Predicate:
    default = in_project(locator)

    def negation(allocation: Allocation, frame: StackFrame) -> bool:
        return default(allocation, frame) and not operand(allocation, frame)

    return negation


def compile_expression(
    expression: Expression, locator: Optional[SourceLocator] = None
) -> Predicate:
    """Turn a parsed filter expression into a predicate."""
    locator = locator or DEFAULT_LOCATOR
    if isinstance(expression, And):
        return _all_of(compile_expression(op, locator) for op in expression.operands)
    if isinstance(expression, Or):
        return _any_of(compile_expression(op, locator) for op in expression.operands)
    if isinstance(expression, Not):
        return _negation(compile_expression(expression.operand, locator), locator)
    if isinstance(expression, Qualified):
        return _compile_qualified(expression, locator)
    return _compile_term(expression, locator)


def _literal_expression(value: Any) -> Expression:
    if isinstance(value, AllocatorType):
        return TypeTerm(value.name)
    numbers: Numbers
    if isinstance(value, bool):
        raise TypeError(f"cannot build a frame filter from {value!r}")
    if isinstance(value, int):
        numbers = frozenset({value})
    elif isinstance(value, range):
        numbers = value
    elif isinstance(value, (set, frozenset, list, tuple)) and all(
        isinstance(item, int) for item in value
    ):
        numbers = frozenset(value)
    else:
        raise TypeError(f"cannot build a frame filter from {value!r}")
    return Qualified(TypeTerm("ANY"), numbers)


def framefilter(
    expression: Any = None, *, locator: Optional[SourceLocator] = None
) -> Predicate:
    """Build a frame filter.

    ``expression`` is either a filter expression (see the module
    documentation), ``None`` for the default filter, a callable that is
    already a frame filter, or one of the literal values an expression can
    contain: an :py:class:`AllocatorType`, a compiled regular expression or
    allocation sizes.

    Raises :py:class:`FilterSyntaxError` if the expression is malformed.
    """
    locator = locator or DEFAULT_LOCATOR
    if expression is None:
        return in_project(locator)
    if isinstance(expression, str):
        if not expression.strip():
            return in_project(locator)
        return compile_expression(parse(expression), locator)
    if isinstance(expression, re.Pattern):
        return _pattern_filter(expression)
    if callable(expression) and not isinstance(expression, AllocatorType):
        return expression  # type: ignore[no-any-return]
    return compile_expression(_literal_expression(expression), locator)


__all__ = [
    "FilterSyntaxError",
    "Predicate",
    "compile_expression",
    "framefilter",
    "in_project",
    "instrumentation",
    "show_all",
]
