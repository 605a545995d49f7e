"""
Unit tests for target validation, DNS resolution and output sanitization
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import dns.resolver

from titanscan.errors import TargetResolutionError, TargetValidationError
from titanscan.security import (
    extract_domain,
    resolve_target,
    sanitize_output,
    validate_target,
    validate_uuid,
)


class TestValidateTarget:

    @pytest.mark.parametrize("target", [
        "https://example.com",
        "http://scanme.nmap.org/",
        "https://sub.example.co.uk:8443/path",
        "https://8.8.8.8",
        "https://example.com/search?a=1&b=2",
        "https://example.com/wiki/Scanner_(software)",
    ])
    def test_accepts_public_urls(self, target):
        assert validate_target(target) == target

    def test_strips_whitespace(self):
        assert validate_target("  https://example.com  ") == "https://example.com"

    @pytest.mark.parametrize("target", [None, "", "   ", 42])
    def test_missing_target(self, target):
        with pytest.raises(TargetValidationError, match="required"):
            validate_target(target)

    @pytest.mark.parametrize("target", [
        "example.com",
        "ftp://example.com",
        "https://",
        "https://not_a_host",
        "https://example.com:99999",
    ])
    def test_rejects_malformed_urls(self, target):
        with pytest.raises(TargetValidationError, match="Invalid URL format"):
            validate_target(target)

    @pytest.mark.parametrize("target", [
        "http://localhost",
        "http://127.0.0.1",
        "http://192.168.1.10",
        "http://10.0.0.5",
        "http://172.16.4.2",
        "http://169.254.169.254",
        "http://printer.local",
    ])
    def test_blocks_private_networks(self, target):
        with pytest.raises(TargetValidationError, match="local or private"):
            validate_target(target)

    @pytest.mark.parametrize("target", [
        "https://example.com;rm -rf /",
        "https://example.com|nc",
        "https://example.com/$(whoami)",
        "https://example.com/`id`",
    ])
    def test_blocks_shell_metacharacters(self, target):
        with pytest.raises(TargetValidationError, match="command injection"):
            validate_target(target)


class TestExtractDomain:

    def test_hostname_only(self):
        assert extract_domain("https://Example.com:8443/a?b=1") == "example.com"


class TestResolveTarget:

    @pytest.mark.asyncio
    async def test_ip_literal_is_returned_without_lookup(self):
        assert await resolve_target("https://8.8.8.8") == "8.8.8.8"

    @pytest.mark.asyncio
    async def test_resolves_first_a_record(self):
        record = MagicMock()
        record.to_text.return_value = "93.184.216.34"
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value=[record])

        with patch("dns.asyncresolver.Resolver", return_value=resolver):
            assert await resolve_target("https://example.com") == "93.184.216.34"
        resolver.resolve.assert_awaited_once_with("example.com", "A")

    @pytest.mark.asyncio
    async def test_resolution_failure(self):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=dns.resolver.NXDOMAIN())

        with patch("dns.asyncresolver.Resolver", return_value=resolver):
            with pytest.raises(TargetResolutionError, match="Could not resolve"):
                await resolve_target("https://missing.example.com")

    @pytest.mark.asyncio
    async def test_rebinding_to_private_address_is_blocked(self):
        record = MagicMock()
        record.to_text.return_value = "10.1.2.3"
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value=[record])

        with patch("dns.asyncresolver.Resolver", return_value=resolver):
            with pytest.raises(TargetResolutionError, match="SSRF"):
                await resolve_target("https://internal.example.com")


class TestSanitizeOutput:

    def test_escapes_markup(self):
        assert sanitize_output("<script>alert(1)</script>") == "&lt;script&gt;alert(1)&lt;/script&gt;"

    def test_plain_text_unchanged(self):
        text = "80/tcp open http nginx 1.18.0"
        assert sanitize_output(text) == text

    def test_none_becomes_empty(self):
        assert sanitize_output(None) == ""


class TestValidateUuid:

    def test_valid(self):
        value = "123e4567-e89b-12d3-a456-426614174000"
        assert validate_uuid(value) == value

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid scan_id format"):
            validate_uuid("not-a-uuid", "scan_id")
