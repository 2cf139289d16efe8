"""Tests for Set-Cookie rewriting."""

from sameorigin.core.proxy.cookie_rewriter import rewrite_set_cookie, rewrite_set_cookies


class TestStripDomainPolicy:
    def test_domain_removed_existing_path_kept(self):
        result = rewrite_set_cookie("SESSION=abc; Domain=.upstream.example; Path=/app; HttpOnly")

        assert result == "SESSION=abc; Path=/app; HttpOnly"

    def test_path_added_when_missing(self):
        result = rewrite_set_cookie("a=1; domain=upstream.example")

        assert result == "a=1; Path=/"

    def test_expiry_attributes_preserved(self):
        line = "id=x; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Max-Age=3600; Domain=upstream.example"

        result = rewrite_set_cookie(line)

        assert result == "id=x; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Max-Age=3600; Path=/"

    def test_value_with_equals_signs(self):
        assert rewrite_set_cookie("token=abc==; Path=/") == "token=abc==; Path=/"

    def test_upstream_samesite_untouched(self):
        result = rewrite_set_cookie("a=1; SameSite=Lax; Secure")

        assert result == "a=1; SameSite=Lax; Secure; Path=/"


class TestStrictPolicy:
    def test_forces_secure_httponly_samesite_none(self):
        result = rewrite_set_cookie("a=1; Domain=upstream.example; SameSite=Lax; Secure", policy="strict")

        assert result == "a=1; Path=/; Secure; HttpOnly; SameSite=None"

    def test_keeps_other_attributes(self):
        result = rewrite_set_cookie("a=1; Path=/x; Max-Age=10; httponly", policy="strict")

        assert result == "a=1; Path=/x; Max-Age=10; Secure; HttpOnly; SameSite=None"


def test_lines_rewritten_independently():
    lines = [
        "a=1; Domain=upstream.example",
        "b=2; Expires=Thu, 01 Jan 2027 00:00:00 GMT; Domain=upstream.example; Path=/b",
    ]

    result = rewrite_set_cookies(lines)

    assert result == [
        "a=1; Path=/",
        "b=2; Expires=Thu, 01 Jan 2027 00:00:00 GMT; Path=/b",
    ]
    assert all("domain" not in line.lower() for line in result)
