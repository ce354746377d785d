from __future__ import annotations

import pytest

from errors import InvalidRequestError
from models import ContentType, EcommerceOptions, TechDocsOptions
from settings import Settings
from validation import build_request, extract_domain, validate_content_type, validate_url


def test_extract_domain():
    assert extract_domain("https://www.example.com/a/b?c=1") == "www.example.com"
    assert extract_domain("http://EXAMPLE.com:8080/") == "example.com"
    assert extract_domain("not a url") == "not a url"


class TestValidateUrl:
    def test_accepts_http_and_https(self):
        settings = Settings()
        validate_url("https://example.com/page", settings)
        validate_url("http://example.com/page", settings)

    @pytest.mark.parametrize("url", ["example.com/page", "/relative/path", "https://", "not a url"])
    def test_rejects_urls_without_scheme_or_host(self, url):
        with pytest.raises(InvalidRequestError):
            validate_url(url, Settings())

    def test_rejects_other_protocols(self):
        with pytest.raises(InvalidRequestError, match="Protocol"):
            validate_url("ftp://example.com/file", Settings())

    def test_require_https(self):
        settings = Settings(require_https=True)
        validate_url("https://example.com", settings)
        with pytest.raises(InvalidRequestError, match="HTTPS"):
            validate_url("http://example.com", settings)

    def test_allowed_domains_match_subdomains(self):
        settings = Settings(allowed_domains=["example.com"])
        validate_url("https://docs.example.com/guide", settings)
        with pytest.raises(InvalidRequestError, match="not allowed"):
            validate_url("https://other.org", settings)

    def test_blocked_domains(self):
        settings = Settings(blocked_domains=["tracker.net"])
        validate_url("https://example.com", settings)
        with pytest.raises(InvalidRequestError, match="blocked"):
            validate_url("https://ads.tracker.net/pixel", settings)


def test_validate_content_type():
    assert validate_content_type("news") is ContentType.NEWS
    with pytest.raises(InvalidRequestError) as excinfo:
        validate_content_type("video")
    assert "news, ecommerce, techdocs, generic" in excinfo.value.message


class TestBuildRequest:
    def test_applies_content_type_defaults(self):
        request = build_request("https://shop.example.com/p/1", "ecommerce", {"extractReviews": True}, Settings())
        assert isinstance(request.options, EcommerceOptions)
        assert request.options.extractReviews is True
        assert request.options.extractVariants is True
        assert request.options.maxRetries == 3

    def test_generic_turns_structural_extras_off(self):
        request = build_request("https://example.com", "generic", {"extractLinks": True}, Settings())
        assert isinstance(request.options, TechDocsOptions)
        assert request.options.extractLinks is False
        assert request.options.extractHeadings is False
        assert request.options.preserveCodeFormatting is True

    @pytest.mark.parametrize("options", [{"colour": "blue"}, {"extractLinks": True}])
    def test_ignores_options_unknown_to_the_content_type(self, options):
        request = build_request("https://example.com", "news", options, Settings())
        assert request.options == build_request("https://example.com", "news", {}, Settings()).options
        assert set(options) & set(request.cache_params()) == set()

    @pytest.mark.parametrize(
        "options",
        [{"maxRetries": "lots"}, {"timeout": -5}, {"waitUntil": "whenever"}, {"cacheEnabled": "sometimes"}],
    )
    def test_rejects_badly_typed_options(self, options):
        with pytest.raises(InvalidRequestError, match="Invalid options"):
            build_request("https://example.com", "news", options, Settings())

    def test_rejects_timeout_above_maximum(self):
        with pytest.raises(InvalidRequestError, match="exceeds maximum"):
            build_request("https://example.com", "news", {"timeout": 120000}, Settings(max_timeout_ms=60000))

    @pytest.mark.parametrize("url", ["", None, 42])
    def test_rejects_missing_url(self, url):
        with pytest.raises(InvalidRequestError, match="URL"):
            build_request(url, "news", {}, Settings())

    def test_cache_params_exclude_transport_options(self):
        request = build_request(
            "https://example.com",
            "news",
            {"timeout": 5000, "userAgent": "bot", "extractComments": True},
            Settings(),
        )
        params = request.cache_params()
        assert params["contentType"] == "news"
        assert params["extractComments"] is True
        assert "timeout" not in params
        assert "userAgent" not in params
