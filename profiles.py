"""
Content-type profiles: which fields to resolve for each kind of page.

Selector order is priority order. Semantic markup and microdata come before
site-specific classes, and meta tags close each chain.
"""

from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

import extractors
from browser import PageSession
from markdown_converter import DEFAULT_RULES, RuleSet
from models import ContentType, EcommerceResult, NewsResult, ScrapeOptions, ScraperResult, TechDocsResult
from resolver import (
    Attr,
    Attrs,
    Count,
    FieldSpec,
    Html,
    Meta,
    PageTitle,
    Text,
    Texts,
    currency_symbol,
    parse_first_int,
    parse_leading_float,
    resolve_field,
)

# Main content shorter than this is treated as a stray match.
MIN_CONTENT_LENGTH = 100


@dataclass
class ExtractionContext:
    session: PageSession
    page_url: str
    options: ScrapeOptions
    fields: Dict[str, Any]


@dataclass(frozen=True)
class ProfileField:
    """
    One output field. Either `spec` is resolved or `compute` is awaited.
    When `option` names a disabled option flag the field is left unset.
    """

    name: str
    spec: Optional[FieldSpec] = None
    compute: Optional[Callable[[ExtractionContext], Awaitable[Any]]] = None
    option: Optional[str] = None
    default: Any = None


@dataclass(frozen=True)
class ContentProfile:
    content_type: ContentType
    result_model: Type[ScraperResult]
    title: FieldSpec
    content: FieldSpec
    html: FieldSpec
    fields: Tuple[ProfileField, ...]
    metadata: Callable[[Dict[str, Any]], Dict[str, Any]]
    markdown_rules: RuleSet = DEFAULT_RULES
    # RuleSet attribute -> option flag that overrides it
    rule_options: Tuple[Tuple[str, str], ...] = ()


def _texts(*selectors: str) -> Tuple[Text, ...]:
    return tuple(Text(selector) for selector in selectors)


def _html(*selectors: str) -> Tuple[Html, ...]:
    return tuple(Html(selector) for selector in selectors)


def _pick(*keys: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    def metadata(fields: Dict[str, Any]) -> Dict[str, Any]:
        return {key: fields.get(key) for key in keys}

    return metadata


# --- News ---

ARTICLE_BODY = (
    "article",
    ".article-content",
    ".post-content",
    ".entry-content",
    '[itemprop="articleBody"]',
    "main",
    ".content",
)

ARTICLE_DATE = (
    '[itemprop="datePublished"]',
    "time",
    ".published-date",
    ".post-date",
    ".article-date",
    ".date",
)

NEWS = ContentProfile(
    content_type=ContentType.NEWS,
    result_model=NewsResult,
    title=FieldSpec(
        strategies=_texts(
            "h1",
            "article h1",
            ".article-title",
            ".post-title",
            ".entry-title",
            '[itemprop="headline"]',
            "header h1",
            "main h1",
        ),
        fallback=PageTitle(),
    ),
    content=FieldSpec(
        strategies=_texts(*ARTICLE_BODY),
        min_length=MIN_CONTENT_LENGTH,
        fallback=Text("body"),
    ),
    html=FieldSpec(
        strategies=_html(*ARTICLE_BODY),
        min_length=MIN_CONTENT_LENGTH,
        fallback=Html("body"),
    ),
    fields=(
        ProfileField(
            "authors",
            FieldSpec(
                strategies=(
                    Texts('[rel="author"]'),
                    Texts(".author"),
                    Texts(".byline"),
                    Texts('[itemprop="author"]'),
                    Texts(".article-author"),
                    Texts(".post-author"),
                    Meta("author"),
                ),
                many=True,
            ),
            option="extractAuthors",
            default=[],
        ),
        ProfileField(
            "publishedDate",
            FieldSpec(
                strategies=tuple(
                    strategy
                    for selector in ARTICLE_DATE
                    for strategy in (Attr(selector, "datetime"), Text(selector))
                )
                + (Meta("article:published_time", by="property"),),
            ),
            option="extractPublishedDate",
        ),
        ProfileField(
            "imageUrls",
            FieldSpec(
                strategies=(
                    Attrs("article img"),
                    Attrs(".article-content img"),
                    Attrs(".post-content img"),
                    Attrs(".entry-content img"),
                    Attrs('[itemprop="articleBody"] img'),
                    Attrs("main img"),
                    Meta("og:image", by="property"),
                ),
                many=True,
                exclude=("data:image",),
            ),
            option="extractImages",
        ),
        ProfileField(
            "category",
            FieldSpec(
                strategies=_texts(".category", '[itemprop="articleSection"]', ".article-category", ".post-category")
                + (Meta("article:section", by="property"),),
            ),
        ),
        ProfileField(
            "summary",
            FieldSpec(
                strategies=_texts(".summary", ".article-summary", ".post-summary", ".excerpt", ".description")
                + (Meta("description"),),
            ),
        ),
        ProfileField(
            "commentCount",
            FieldSpec(
                strategies=_texts(".comment-count", ".comments-count", ".comment-number")
                + (Count(".comment, .comments > li"),),
                parse=parse_first_int,
            ),
            option="extractComments",
        ),
    ),
    metadata=_pick("authors", "publishedDate", "category", "commentCount"),
    markdown_rules=RuleSet(preserve_image_size=False),
)


# --- E-commerce ---

PRODUCT_DESCRIPTION = (
    ".product-description",
    ".description",
    '[itemprop="description"]',
    "#productDescription",
    ".product__description",
    ".product-single__description",
)

PRODUCT_CURRENCY_META = FieldSpec(strategies=(Meta("product:price:currency", by="property"),))


async def _currency(context: ExtractionContext) -> Optional[str]:
    currency = await resolve_field(context.session, PRODUCT_CURRENCY_META)
    if currency:
        return currency
    return currency_symbol(context.fields.get("price") or "")


async def _availability(context: ExtractionContext) -> bool:
    return await extractors.extract_availability(context.session)


async def _variants(context: ExtractionContext):
    return await extractors.extract_variants(context.session)


async def _specifications(context: ExtractionContext):
    return await extractors.extract_specifications(context.session)


async def _reviews(context: ExtractionContext):
    return await extractors.extract_reviews(context.session)


async def _related_products(context: ExtractionContext):
    return await extractors.extract_related_products(context.session, context.page_url)


ECOMMERCE = ContentProfile(
    content_type=ContentType.ECOMMERCE,
    result_model=EcommerceResult,
    title=FieldSpec(
        strategies=_texts(
            "h1",
            ".product-title",
            ".product-name",
            '[itemprop="name"]',
            "#productTitle",
            ".product-single__title",
        ),
        fallback=PageTitle(),
    ),
    content=FieldSpec(strategies=_texts(*PRODUCT_DESCRIPTION) + (Meta("description"),)),
    html=FieldSpec(strategies=_html(*PRODUCT_DESCRIPTION)),
    fields=(
        ProfileField(
            "price",
            FieldSpec(
                strategies=_texts(
                    '[itemprop="price"]',
                    ".price",
                    ".product-price",
                    "#priceblock_ourprice",
                    ".price__current",
                    ".product-single__price",
                    ".current-price",
                    ".sale-price",
                )
                + (Meta("product:price:amount", by="property"),),
            ),
            default="N/A",
        ),
        ProfileField("currency", compute=_currency),
        ProfileField("availability", compute=_availability, default=True),
        ProfileField(
            "brand",
            FieldSpec(
                strategies=_texts('[itemprop="brand"]', ".brand", ".product-brand", ".product-meta__vendor")
                + (Meta("product:brand", by="property"),),
            ),
        ),
        ProfileField(
            "sku",
            FieldSpec(
                strategies=_texts('[itemprop="sku"]', ".sku", ".product-sku", "#product-sku")
                + (Meta("product:retailer_item_id", by="property"),),
            ),
        ),
        ProfileField(
            "imageUrls",
            FieldSpec(
                strategies=(
                    Attrs(".product-image img", ("src", "data-src")),
                    Attrs(".product-gallery img", ("src", "data-src")),
                    Attrs('[itemprop="image"]', ("src", "data-src")),
                    Attrs(".product__photo img", ("src", "data-src")),
                    Attrs(".product-single__photo", ("src", "data-src")),
                    Meta("og:image", by="property"),
                ),
                many=True,
                exclude=("data:image",),
            ),
            default=[],
        ),
        ProfileField(
            "rating",
            FieldSpec(
                strategies=_texts('[itemprop="ratingValue"]', ".rating", ".product-rating", ".star-rating"),
                parse=parse_leading_float,
            ),
        ),
        ProfileField(
            "reviewCount",
            FieldSpec(
                strategies=_texts('[itemprop="reviewCount"]', ".review-count", ".rating-count"),
                parse=parse_first_int,
            ),
        ),
        ProfileField("variants", compute=_variants, option="extractVariants"),
        ProfileField("specifications", compute=_specifications, option="extractSpecifications"),
        ProfileField("reviews", compute=_reviews, option="extractReviews"),
        ProfileField("relatedProducts", compute=_related_products, option="extractRelatedProducts"),
    ),
    metadata=_pick("price", "currency", "availability", "brand", "sku", "rating", "reviewCount"),
)


# --- Technical documentation ---

DOCUMENTATION_BODY = (
    ".documentation-content",
    ".doc-content",
    ".content",
    "article",
    "main",
    ".markdown-body",
)


async def _table_of_contents(context: ExtractionContext):
    return await extractors.extract_table_of_contents(context.session)


async def _code_blocks(context: ExtractionContext):
    return await extractors.extract_code_blocks(context.session)


async def _headings(context: ExtractionContext):
    return await extractors.extract_headings(context.session)


async def _links(context: ExtractionContext):
    return await extractors.extract_links(context.session, context.page_url)


def _techdocs_metadata(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "headingCount": len(fields.get("headings") or []),
        "codeBlockCount": len(fields.get("codeBlocks") or []),
        "linkCount": len(fields.get("links") or []),
    }


TECHDOCS = ContentProfile(
    content_type=ContentType.TECHDOCS,
    result_model=TechDocsResult,
    title=FieldSpec(
        strategies=_texts(
            "h1",
            ".documentation-title",
            ".doc-title",
            ".page-title",
            "header h1",
            "main h1",
            ".content h1",
        ),
        fallback=PageTitle(),
    ),
    content=FieldSpec(
        strategies=_texts(*DOCUMENTATION_BODY),
        min_length=MIN_CONTENT_LENGTH,
        fallback=Text("body"),
    ),
    html=FieldSpec(
        strategies=_html(*DOCUMENTATION_BODY),
        min_length=MIN_CONTENT_LENGTH,
        fallback=Html("body"),
    ),
    fields=(
        ProfileField("tableOfContents", compute=_table_of_contents, option="extractTableOfContents"),
        ProfileField("codeBlocks", compute=_code_blocks, option="extractCodeBlocks"),
        ProfileField("headings", compute=_headings, option="extractHeadings"),
        ProfileField("links", compute=_links, option="extractLinks"),
    ),
    metadata=_techdocs_metadata,
    rule_options=(("preserve_code_formatting", "preserveCodeFormatting"),),
)

# Generic pages share the documentation profile; their option set turns the
# structural extras off.
GENERIC = replace(TECHDOCS, content_type=ContentType.GENERIC)

PROFILES: Dict[ContentType, ContentProfile] = {
    profile.content_type: profile for profile in (NEWS, ECOMMERCE, TECHDOCS, GENERIC)
}
