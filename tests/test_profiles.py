from __future__ import annotations

import pytest

from browser import HtmlSession
from conftest import DOCS_HTML, DOCS_URL, NEWS_HTML, NEWS_URL, PRODUCT_HTML, PRODUCT_URL
from models import ContentType
from profiles import PROFILES
from scraper import extract_result
from settings import Settings
from validation import build_request


async def scrape_page(html: str, url: str, content_type: str, options=None):
    request = build_request(url, content_type, options or {}, Settings())
    session = HtmlSession.from_html(html, url)
    return await extract_result(session, PROFILES[request.contentType], request)


class TestNews:
    @pytest.mark.asyncio
    async def test_article_fields(self):
        result = await scrape_page(NEWS_HTML, NEWS_URL, "news")

        assert result.url == NEWS_URL
        assert result.title == "Rivers Rise Across the Valley"
        assert "three rivers past flood stage" in result.content
        assert result.html.startswith("<article>")
        assert result.authors == ["Ana Ruiz", "Ben Cole"]
        assert result.publishedDate == "2024-03-01T10:00:00Z"
        assert result.category == "Weather"
        assert result.summary == "Flood warnings across the valley."
        assert result.imageUrls == ["/img/river.jpg"]
        assert result.commentCount is None
        assert result.metadata["authors"] == ["Ana Ruiz", "Ben Cole"]
        assert result.metadata["category"] == "Weather"

    @pytest.mark.asyncio
    async def test_markdown_drops_image_size(self):
        result = await scrape_page(NEWS_HTML, NEWS_URL, "news")
        assert "# Rivers Rise Across the Valley" in result.markdown
        assert "![River](/img/river.jpg)" in result.markdown
        assert "=640x480" not in result.markdown

    @pytest.mark.asyncio
    async def test_optional_fields_follow_options(self):
        result = await scrape_page(
            NEWS_HTML,
            NEWS_URL,
            "news",
            {"extractComments": True, "extractAuthors": False, "extractImages": False},
        )
        assert result.commentCount == 12
        assert result.authors == []
        assert result.imageUrls is None

    @pytest.mark.asyncio
    async def test_sparse_page_falls_back_to_title_and_body(self):
        html = "<html><head><title>Short Page</title></head><body><p>Just a line.</p></body></html>"
        result = await scrape_page(html, NEWS_URL, "news")
        assert result.title == "Short Page"
        assert result.content == "Just a line."
        assert result.authors == []
        assert result.publishedDate is None

    @pytest.mark.asyncio
    async def test_short_article_is_not_main_content(self):
        html = "<body><article>Too short.</article><p>Rest of the page.</p></body>"
        result = await scrape_page(html, NEWS_URL, "news")
        assert "Rest of the page." in result.content


class TestEcommerce:
    @pytest.mark.asyncio
    async def test_product_fields(self):
        result = await scrape_page(PRODUCT_HTML, PRODUCT_URL, "ecommerce")

        assert result.title == "Trail Runner 2"
        assert result.content == "Lightweight trail shoe with a rock plate."
        assert result.price == "$89.99"
        assert result.currency == "USD"
        assert result.availability is True
        assert result.brand == "Peakline"
        assert result.sku == "TR-002"
        assert result.rating == 4.5
        assert result.reviewCount == 128
        assert result.imageUrls == ["/img/shoe-1.jpg", "/img/shoe-2.jpg"]
        assert result.markdown == "Lightweight trail shoe with a rock plate."
        assert result.metadata["price"] == "$89.99"
        assert result.metadata["sku"] == "TR-002"

    @pytest.mark.asyncio
    async def test_variants_and_specifications(self):
        result = await scrape_page(PRODUCT_HTML, PRODUCT_URL, "ecommerce")

        assert [(v.name, v.value, v.available) for v in result.variants] == [
            ("Size", "42", True),
            ("Size", "43", False),
        ]
        assert [(s.name, s.value) for s in result.specifications] == [("Weight", "280 g"), ("Drop", "6 mm")]
        assert result.reviews is None
        assert result.relatedProducts is None

    @pytest.mark.asyncio
    async def test_reviews_and_related_products_when_enabled(self):
        result = await scrape_page(
            PRODUCT_HTML,
            PRODUCT_URL,
            "ecommerce",
            {"extractReviews": True, "extractRelatedProducts": True},
        )

        assert len(result.reviews) == 1
        review = result.reviews[0]
        assert (review.author, review.rating, review.content) == ("Kim", 5.0, "Great grip on wet rock.")

        assert len(result.relatedProducts) == 1
        related = result.relatedProducts[0]
        assert related.title == "Road Runner"
        assert related.url == "https://shop.example.com/p/road-runner"
        assert related.price == "$79.00"
        assert related.imageUrl == "/img/road.jpg"

    @pytest.mark.asyncio
    async def test_bare_product_page_defaults(self):
        html = "<html><head><title>Mystery Item</title></head><body><p>$12 only</p></body></html>"
        result = await scrape_page(html, PRODUCT_URL, "ecommerce")

        assert result.title == "Mystery Item"
        assert result.price == "N/A"
        assert result.currency is None
        assert result.availability is True
        assert result.imageUrls == []
        assert result.variants is None
        assert result.specifications is None

    @pytest.mark.asyncio
    async def test_currency_from_price_symbol(self):
        html = '<body><h1>Kettle</h1><span class="price">€45.00</span></body>'
        result = await scrape_page(html, PRODUCT_URL, "ecommerce")
        assert result.price == "€45.00"
        assert result.currency == "€"

    @pytest.mark.asyncio
    async def test_specifications_from_definition_list(self):
        html = """
        <body><h1>Lamp</h1>
          <div class="specifications"><dl>
            <dt>Height</dt><dd>40 cm</dd>
            <dt>Bulb</dt><dd>E27</dd>
          </dl></div>
        </body>
        """
        result = await scrape_page(html, PRODUCT_URL, "ecommerce")
        assert [(s.name, s.value) for s in result.specifications] == [("Height", "40 cm"), ("Bulb", "E27")]


class TestTechDocs:
    @pytest.mark.asyncio
    async def test_documentation_fields(self):
        result = await scrape_page(DOCS_HTML, DOCS_URL, "techdocs")

        assert result.title == "Install"
        assert "installing the client library" in result.content
        assert [(h.level, h.text, h.id) for h in result.tableOfContents] == [
            (1, "Install", "install"),
            (2, "With pip", "pip"),
            (3, "Usage", "usage"),
        ]
        assert [(c.language, c.code) for c in result.codeBlocks] == [("bash", "pip install client")]
        assert [(h.level, h.text) for h in result.headings] == [(1, "Install"), (2, "With pip"), (2, "Usage")]
        assert result.metadata == {"headingCount": 3, "codeBlockCount": 1, "linkCount": 5}

    @pytest.mark.asyncio
    async def test_links_are_absolute_and_classified(self):
        result = await scrape_page(DOCS_HTML, DOCS_URL, "techdocs")
        links = {link.text: link for link in result.links}

        assert links["API reference"].url == "https://docs.example.com/docs/api"
        assert links["API reference"].isExternal is False
        assert links["source"].url == "https://github.com/example/client"
        assert links["source"].isExternal is True
        assert links["With pip"].url == "#pip"
        assert links["With pip"].isExternal is False

    @pytest.mark.asyncio
    async def test_markdown_keeps_code_and_tables(self):
        result = await scrape_page(DOCS_HTML, DOCS_URL, "techdocs")
        assert "```bash\npip install client\n```" in result.markdown
        assert "| Flag | Meaning |\n| --- | --- |\n| -v | verbose |" in result.markdown

    @pytest.mark.asyncio
    async def test_code_formatting_can_be_turned_off(self):
        result = await scrape_page(DOCS_HTML, DOCS_URL, "techdocs", {"preserveCodeFormatting": False})
        assert "```" not in result.markdown

    @pytest.mark.asyncio
    async def test_table_of_contents_falls_back_to_headings(self):
        html = "<body><main><h1 id='a'>Alpha</h1><h3>Gamma</h3></main></body>"
        result = await scrape_page(html, DOCS_URL, "techdocs")
        assert [(h.level, h.text, h.id) for h in result.tableOfContents] == [(1, "Alpha", "a"), (3, "Gamma", None)]

    @pytest.mark.asyncio
    async def test_generic_skips_structural_extras(self):
        result = await scrape_page(DOCS_HTML, DOCS_URL, "generic")

        assert result.title == "Install"
        assert result.tableOfContents is None
        assert result.codeBlocks is None
        assert result.headings is None
        assert result.links is None
        assert result.metadata == {"headingCount": 0, "codeBlockCount": 0, "linkCount": 0}
        assert "```bash" in result.markdown


def test_every_content_type_has_a_profile():
    assert set(PROFILES) == set(ContentType)
