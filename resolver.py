"""
Field resolution over an ordered chain of extraction strategies.

Each strategy either finds a value or misses. A selector that matches nothing,
an invalid selector and a failed DOM round trip are all misses; they are
logged at debug level and the next strategy is tried. The first strategy with
a usable value wins and the rest are never run.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar, Union

from browser import PageElement, PageSession
from logging_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

Value = Union[str, List[str], int]


# --- Strategies ---

class Strategy(ABC):
    @abstractmethod
    async def read(self, session: PageSession) -> Optional[Value]:
        ...


@dataclass(frozen=True)
class Text(Strategy):
    """Text content of the first element matching `selector`."""

    selector: str

    async def read(self, session: PageSession) -> Optional[Value]:
        return await session.query_text(self.selector)


@dataclass(frozen=True)
class Attr(Strategy):
    """One attribute of the first element matching `selector`."""

    selector: str
    name: str

    async def read(self, session: PageSession) -> Optional[Value]:
        return await session.query_attribute(self.selector, self.name)


@dataclass(frozen=True)
class Html(Strategy):
    """Outer HTML of the first element matching `selector`."""

    selector: str

    async def read(self, session: PageSession) -> Optional[Value]:
        return await session.query_html(self.selector)


@dataclass(frozen=True)
class Meta(Strategy):
    """`content` of a meta tag, looked up by `name` or `property`."""

    key: str
    by: str = "name"

    async def read(self, session: PageSession) -> Optional[Value]:
        return await session.query_attribute(f'meta[{self.by}="{self.key}"]', "content")


@dataclass(frozen=True)
class Texts(Strategy):
    """Text of every element matching `selector`."""

    selector: str

    async def read(self, session: PageSession) -> Optional[Value]:
        return [await element.text() for element in await session.query_all(self.selector)]


@dataclass(frozen=True)
class Attrs(Strategy):
    """For every element matching `selector`, the first non-empty of `names`."""

    selector: str
    names: Tuple[str, ...] = ("src",)

    async def read(self, session: PageSession) -> Optional[Value]:
        values = []
        for element in await session.query_all(self.selector):
            values.append(await first_attribute(element, self.names) or "")
        return values


@dataclass(frozen=True)
class Count(Strategy):
    """Number of elements matching `selector`; zero is a miss."""

    selector: str

    async def read(self, session: PageSession) -> Optional[Value]:
        count = len(await session.query_all(self.selector))
        return count or None


@dataclass(frozen=True)
class PageTitle(Strategy):
    async def read(self, session: PageSession) -> Optional[Value]:
        return await session.title()


# --- Results ---

@dataclass(frozen=True)
class Found:
    value: Any


class _Miss:
    def __repr__(self) -> str:
        return "NotFound"


NotFound = _Miss()

Attempt = Union[Found, _Miss]


@dataclass(frozen=True)
class FieldSpec:
    """
    Ordered strategies for one logical field.

    `min_length` rejects string values that are not strictly longer than it.
    `parse` turns an accepted string into the field's type; returning None
    counts as a miss. `many` fields resolve to a non-empty list of strings.
    `fallback` runs after the chain without the length check.
    """

    strategies: Tuple[Strategy, ...]
    many: bool = False
    min_length: int = 0
    exclude: Tuple[str, ...] = ()
    parse: Optional[Callable[[str], Any]] = None
    fallback: Optional[Strategy] = None


def _accept(raw: Optional[Value], spec: FieldSpec, *, check_length: bool = True) -> Attempt:
    if raw is None:
        return NotFound
    if isinstance(raw, int):
        return Found(raw)

    if spec.many:
        items = raw if isinstance(raw, list) else [raw]
        values = [
            item.strip()
            for item in items
            if item and item.strip() and not any(pattern in item for pattern in spec.exclude)
        ]
        return Found(values) if values else NotFound

    if isinstance(raw, list):
        raw = raw[0] if raw else ""
    value = raw.strip()
    if not value:
        return NotFound
    if check_length and len(value) <= spec.min_length:
        return NotFound
    if spec.parse is not None:
        parsed = spec.parse(value)
        return Found(parsed) if parsed is not None else NotFound
    return Found(value)


async def attempt(session: PageSession, strategy: Strategy, spec: FieldSpec, *, check_length: bool = True) -> Attempt:
    try:
        raw = await strategy.read(session)
    except Exception as exc:
        log_event(logger, logging.DEBUG, "field_strategy_failed", strategy=repr(strategy), error=str(exc))
        return NotFound
    return _accept(raw, spec, check_length=check_length)


async def resolve_field(session: PageSession, spec: FieldSpec, default: Any = None) -> Any:
    """Value of the first strategy that finds one, else `default`."""
    for strategy in spec.strategies:
        result = await attempt(session, strategy, spec)
        if isinstance(result, Found):
            return result.value

    if spec.fallback is not None:
        result = await attempt(session, spec.fallback, spec, check_length=False)
        if isinstance(result, Found):
            return result.value
    return default


# --- Container chains ---

@dataclass(frozen=True)
class ContainerSpec:
    """The first container selector present on the page wins; items are matched inside it only."""

    containers: Tuple[str, ...]
    items: str


async def first_container(session: PageSession, selectors: Sequence[str]) -> Optional[PageElement]:
    for selector in selectors:
        try:
            element = await session.query(selector)
        except Exception as exc:
            log_event(logger, logging.DEBUG, "container_lookup_failed", selector=selector, error=str(exc))
            continue
        if element is not None:
            return element
    return None


async def resolve_items(
    session: PageSession,
    spec: ContainerSpec,
    map_item: Callable[[PageElement], Awaitable[Optional[T]]],
) -> List[T]:
    container = await first_container(session, spec.containers)
    if container is None:
        return []

    try:
        elements = await container.query_all(spec.items)
    except Exception as exc:
        log_event(logger, logging.DEBUG, "container_items_failed", items=spec.items, error=str(exc))
        return []

    results: List[T] = []
    for element in elements:
        try:
            mapped = await map_item(element)
        except Exception as exc:
            log_event(logger, logging.DEBUG, "item_mapping_failed", items=spec.items, error=str(exc))
            continue
        if mapped is not None:
            results.append(mapped)
    return results


# --- Element helpers ---

async def first_attribute(element: PageElement, names: Sequence[str]) -> Optional[str]:
    for name in names:
        value = await element.attribute(name)
        if value:
            return value
    return None


async def child_text(element: PageElement, selector: str) -> str:
    child = await element.query(selector)
    return await child.text() if child is not None else ""


# --- Typed post-processing ---

LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))")
FIRST_INT = re.compile(r"\d+")
CURRENCY_SYMBOL = re.compile(r"[£$€¥]")


def parse_leading_float(text: str) -> Optional[float]:
    match = LEADING_FLOAT.match(text)
    return float(match.group(1)) if match else None


def parse_first_int(text: str) -> Optional[int]:
    match = FIRST_INT.search(text)
    return int(match.group(0)) if match else None


def currency_symbol(price: str) -> Optional[str]:
    match = CURRENCY_SYMBOL.search(price)
    return match.group(0) if match else None
