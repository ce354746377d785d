"""
Multi-item and computed fields used by the content profiles.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from browser import PageElement, PageSession
from logging_utils import log_event
from models import CodeBlock, Heading, Link, ProductReview, ProductSpecification, ProductVariant, RelatedProduct
from resolver import (
    ContainerSpec,
    child_text,
    first_attribute,
    first_container,
    parse_leading_float,
    resolve_items,
)

logger = logging.getLogger(__name__)

LEVEL_CLASS = re.compile(r"level-(\d+)")
LANGUAGE_CLASS = re.compile(r"^(?:language|lang)-(.+)$")
MAX_TOC_DEPTH = 5

VARIANTS = ContainerSpec(
    containers=(".product-variants", ".product-options", ".swatch", ".selector-wrapper"),
    items=".option-value, option, .swatch-element",
)
SPECIFICATION_ROWS = ContainerSpec(
    containers=(".product-specs", ".specifications", ".tech-specs", ".product-attributes"),
    items="tr, .spec-row",
)
SPECIFICATION_LISTS = ContainerSpec(
    containers=(".product-specs dl", ".specifications dl", ".tech-specs dl"),
    items="dt, dd",
)
REVIEWS = ContainerSpec(
    containers=(".product-reviews", ".reviews", "#reviews", ".review-list"),
    items=".review, .review-item",
)
RELATED_PRODUCTS = ContainerSpec(
    containers=(".related-products", ".product-recommendations", ".similar-products", "#related-products"),
    items=".product, .product-item",
)
TABLE_OF_CONTENTS = ContainerSpec(
    containers=(".table-of-contents", ".toc", "nav.toc", ".documentation-toc", ".sidebar-menu"),
    items="a",
)
CODE_BLOCK_SELECTORS = ("pre code", "pre.code", ".code-block", ".highlight")
HEADING_SELECTOR = "h1, h2, h3, h4, h5, h6"

AVAILABLE_MARKERS = (".in-stock", '[itemprop="availability"][content="InStock"]', ".product-available")
UNAVAILABLE_MARKERS = (".out-of-stock", '[itemprop="availability"][content="OutOfStock"]', ".product-unavailable")


async def _classes(element: PageElement) -> List[str]:
    return (await element.attribute("class") or "").split()


def _absolute(href: str, base_url: str) -> str:
    return href if href.startswith("http") else urljoin(base_url, href)


# --- E-commerce ---

async def extract_availability(session: PageSession) -> bool:
    if await first_container(session, AVAILABLE_MARKERS) is not None:
        return True
    if await first_container(session, UNAVAILABLE_MARKERS) is not None:
        return False

    try:
        meta = await session.query_attribute('meta[property="product:availability"]', "content")
    except Exception as exc:
        log_event(logger, logging.DEBUG, "availability_meta_failed", error=str(exc))
        meta = None
    if meta:
        return "instock" in meta.lower()
    # Unknown availability is reported as available.
    return True


async def extract_variants(session: PageSession) -> Optional[List[ProductVariant]]:
    container = await first_container(session, VARIANTS.containers)
    if container is None:
        return None

    name = await child_text(container, ".option-name, .option-title, label")
    if not name:
        return None

    async def to_variant(element: PageElement) -> Optional[ProductVariant]:
        value = await element.text()
        classes = await _classes(element)
        disabled = await element.attribute("disabled")
        price = await child_text(element, ".price, .money")
        return ProductVariant(
            name=name,
            value=value,
            price=price or None,
            available="soldout" not in classes and disabled is None,
        )

    variants = await resolve_items(session, VARIANTS, to_variant)
    return variants or None


async def extract_specifications(session: PageSession) -> Optional[List[ProductSpecification]]:
    async def from_row(row: PageElement) -> Optional[ProductSpecification]:
        name = await child_text(row, "th, .spec-name, .name")
        value = await child_text(row, "td, .spec-value, .value")
        if name and value:
            return ProductSpecification(name=name, value=value)
        return None

    specifications = await resolve_items(session, SPECIFICATION_ROWS, from_row)
    if specifications:
        return specifications

    container = await first_container(session, SPECIFICATION_LISTS.containers)
    if container is None:
        return None

    elements = await container.query_all(SPECIFICATION_LISTS.items)
    pairs: List[ProductSpecification] = []
    for term, definition in zip(elements[::2], elements[1::2]):
        if await term.tag_name() != "dt" or await definition.tag_name() != "dd":
            continue
        name, value = await term.text(), await definition.text()
        if name and value:
            pairs.append(ProductSpecification(name=name, value=value))
    return pairs or None


async def _review_rating(review: PageElement) -> float:
    rating_element = await review.query('.review-rating, .rating, [itemprop="ratingValue"]')
    if rating_element is None:
        return 0
    rating = parse_leading_float(await rating_element.text())
    if rating is not None:
        return rating
    stars = await rating_element.query_all(".star.filled, .star.active, .fa-star")
    return len(stars)


async def extract_reviews(session: PageSession) -> Optional[List[ProductReview]]:
    async def to_review(review: PageElement) -> Optional[ProductReview]:
        content = await child_text(review, '.review-content, .content, [itemprop="reviewBody"]')
        rating = await _review_rating(review)
        if not content or rating <= 0:
            return None
        return ProductReview(
            author=await child_text(review, '.review-author, .author, [itemprop="author"]') or None,
            rating=rating,
            date=await child_text(review, '.review-date, .date, [itemprop="datePublished"]') or None,
            title=await child_text(review, '.review-title, .title, [itemprop="name"]') or None,
            content=content,
        )

    reviews = await resolve_items(session, REVIEWS, to_review)
    return reviews or None


async def extract_related_products(session: PageSession, page_url: str) -> Optional[List[RelatedProduct]]:
    async def to_product(product: PageElement) -> Optional[RelatedProduct]:
        link = await product.query("a.product-title, a.product-name, a.product-link, a")
        if link is None:
            return None
        title = await link.text()
        href = await link.attribute("href") or ""
        if not title or not href:
            return None

        image = await product.query("img")
        image_url = await first_attribute(image, ("src", "data-src")) if image is not None else None
        return RelatedProduct(
            title=title,
            url=_absolute(href, page_url),
            price=await child_text(product, ".price, .product-price, .money") or None,
            imageUrl=image_url,
        )

    products = await resolve_items(session, RELATED_PRODUCTS, to_product)
    return products or None


# --- Technical documentation ---

async def _toc_level(link: PageElement) -> int:
    parent = await link.parent()
    if parent is None:
        return 1

    for class_name in await _classes(parent):
        match = LEVEL_CLASS.search(class_name)
        if match:
            return int(match.group(1))

    depth = 0
    ancestor: Optional[PageElement] = parent
    while ancestor is not None and depth < MAX_TOC_DEPTH:
        if await ancestor.tag_name() in ("ul", "ol"):
            depth += 1
        ancestor = await ancestor.parent()
    return max(1, depth)


async def extract_headings(session: PageSession) -> Optional[List[Heading]]:
    headings: List[Heading] = []
    try:
        elements = await session.query_all(HEADING_SELECTOR)
        for element in elements:
            text = await element.text()
            if not text:
                continue
            tag = await element.tag_name()
            headings.append(Heading(level=int(tag[1:]), text=text, id=await element.attribute("id") or None))
    except Exception as exc:
        log_event(logger, logging.DEBUG, "headings_failed", error=str(exc))
        return None
    return headings or None


async def extract_table_of_contents(session: PageSession) -> Optional[List[Heading]]:
    async def to_entry(link: PageElement) -> Optional[Heading]:
        text = await link.text()
        if not text:
            return None
        href = await link.attribute("href") or ""
        return Heading(
            level=await _toc_level(link),
            text=text,
            id=href[1:] if href.startswith("#") and len(href) > 1 else None,
        )

    entries = await resolve_items(session, TABLE_OF_CONTENTS, to_entry)
    if entries:
        return entries
    # No usable TOC container: the page's headings stand in for it.
    return await extract_headings(session)


async def extract_code_blocks(session: PageSession) -> Optional[List[CodeBlock]]:
    for selector in CODE_BLOCK_SELECTORS:
        try:
            elements = await session.query_all(selector)
            blocks = []
            for element in elements:
                code = await element.text()
                if not code:
                    continue
                language = None
                for class_name in await _classes(element):
                    match = LANGUAGE_CLASS.match(class_name)
                    if match:
                        language = match.group(1)
                        break
                blocks.append(CodeBlock(language=language, code=code))
        except Exception as exc:
            log_event(logger, logging.DEBUG, "code_blocks_failed", selector=selector, error=str(exc))
            continue
        if blocks:
            return blocks
    return None


async def extract_links(session: PageSession, page_url: str) -> Optional[List[Link]]:
    base_url = session.url or page_url
    page_host = urlparse(base_url).hostname
    links: List[Link] = []
    try:
        for element in await session.query_all("a[href]"):
            text = await element.text()
            href = await element.attribute("href") or ""
            if not text or not href:
                continue

            url = href
            if not href.startswith(("http", "mailto:", "#")):
                url = urljoin(base_url, href)
            is_external = url.startswith("http") and urlparse(url).hostname != page_host
            links.append(Link(text=text, url=url, isExternal=is_external))
    except Exception as exc:
        log_event(logger, logging.DEBUG, "links_failed", error=str(exc))
        return None
    return links or None
