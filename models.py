from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

# --- Request Models ---

class ContentType(str, Enum):
    NEWS = "news"
    ECOMMERCE = "ecommerce"
    TECHDOCS = "techdocs"
    GENERIC = "generic"

WaitUntil = Literal["load", "domcontentloaded", "networkidle0", "networkidle2"]

class ProxyConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    username: Optional[str] = None
    password: Optional[str] = None

class ScrapeOptions(BaseModel):
    # Keys a content type does not know are dropped.
    model_config = ConfigDict(frozen=True, extra="ignore")

    timeout: Optional[int] = Field(default=None, gt=0)  # ms, settings default when absent
    waitUntil: WaitUntil = "networkidle2"
    cacheEnabled: bool = True
    cacheTtl: Optional[int] = Field(default=None, gt=0)  # seconds
    rateLimit: bool = True
    maxRetries: int = Field(default=3, ge=0, le=10)
    proxy: Optional[ProxyConfig] = None
    userAgent: Optional[str] = None

# Options that shape how a page is fetched, not what is extracted from it.
TRANSPORT_OPTIONS = frozenset(ScrapeOptions.model_fields)

class NewsOptions(ScrapeOptions):
    extractComments: bool = False
    extractImages: bool = True
    extractAuthors: bool = True
    extractPublishedDate: bool = True

class EcommerceOptions(ScrapeOptions):
    extractReviews: bool = False
    extractVariants: bool = True
    extractRelatedProducts: bool = False
    extractSpecifications: bool = True

class TechDocsOptions(ScrapeOptions):
    extractTableOfContents: bool = True
    extractCodeBlocks: bool = True
    extractHeadings: bool = True
    extractLinks: bool = True
    preserveCodeFormatting: bool = True

OPTION_MODELS: Dict[ContentType, Type[ScrapeOptions]] = {
    ContentType.NEWS: NewsOptions,
    ContentType.ECOMMERCE: EcommerceOptions,
    ContentType.TECHDOCS: TechDocsOptions,
    ContentType.GENERIC: TechDocsOptions,
}

GENERIC_OVERRIDES = {
    "extractTableOfContents": False,
    "extractCodeBlocks": False,
    "extractHeadings": False,
    "extractLinks": False,
}

def build_options(content_type: ContentType, raw: Optional[Dict[str, Any]] = None) -> ScrapeOptions:
    """Merge caller options over the content type's defaults."""
    merged = dict(raw or {})
    if content_type is ContentType.GENERIC:
        merged.update(GENERIC_OVERRIDES)
    return OPTION_MODELS[content_type].model_validate(merged)

class ScrapeRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    contentType: ContentType
    options: ScrapeOptions

    def cache_params(self) -> Dict[str, Any]:
        params = self.options.model_dump(exclude=set(TRANSPORT_OPTIONS))
        params["contentType"] = self.contentType.value
        return params

class ScrapeBody(BaseModel):
    url: str
    options: Dict[str, Any] = Field(default_factory=dict)

# --- Result Models ---

class ScraperResult(BaseModel):
    url: str
    title: str = ""
    content: str = ""
    html: Optional[str] = None
    markdown: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int

class NewsResult(ScraperResult):
    authors: List[str] = []
    publishedDate: Optional[str] = None
    category: Optional[str] = None
    summary: Optional[str] = None
    imageUrls: Optional[List[str]] = None
    commentCount: Optional[int] = None

class ProductVariant(BaseModel):
    name: str
    value: str
    price: Optional[str] = None
    available: bool = True

class ProductReview(BaseModel):
    author: Optional[str] = None
    rating: float
    date: Optional[str] = None
    title: Optional[str] = None
    content: str

class ProductSpecification(BaseModel):
    name: str
    value: str

class RelatedProduct(BaseModel):
    title: str
    url: str
    price: Optional[str] = None
    imageUrl: Optional[str] = None

class EcommerceResult(ScraperResult):
    price: str = "N/A"
    currency: Optional[str] = None
    availability: bool = True
    brand: Optional[str] = None
    sku: Optional[str] = None
    rating: Optional[float] = None
    reviewCount: Optional[int] = None
    imageUrls: List[str] = []
    variants: Optional[List[ProductVariant]] = None
    specifications: Optional[List[ProductSpecification]] = None
    reviews: Optional[List[ProductReview]] = None
    relatedProducts: Optional[List[RelatedProduct]] = None

class Heading(BaseModel):
    level: int
    text: str
    id: Optional[str] = None

class CodeBlock(BaseModel):
    language: Optional[str] = None
    code: str

class Link(BaseModel):
    text: str
    url: str
    isExternal: bool

class TechDocsResult(ScraperResult):
    tableOfContents: Optional[List[Heading]] = None
    codeBlocks: Optional[List[CodeBlock]] = None
    headings: Optional[List[Heading]] = None
    links: Optional[List[Link]] = None

# --- Response Models ---

class ScrapeResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
    timestamp: int
    processingTime: int
    cached: bool = False

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    timestamp: int
    processingTime: Optional[int] = None
    type: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
