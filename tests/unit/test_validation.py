"""Unit tests for the validation module and single-rule candidate checks."""

import pytest

from realmctl.core.exceptions import (
    InvalidAddressError,
    InvalidPortError,
    ValidationError,
)
from realmctl.core.validation import (
    is_loose_ip_address,
    parse_port,
    validate_remote_host,
    validate_url,
)
from realmctl.services.rules import ForwardingRule, validate_candidate


class TestParsePort:
    """Tests for parsing ports typed by the user."""

    def test_valid(self):
        assert parse_port("1") == 1
        assert parse_port("65535") == 65535
        assert parse_port("0080") == 80

    def test_rejects_non_digits(self):
        """Anything but ASCII digits is rejected before range checks."""
        for value in ("", "abc", "80a", "-1", "8 0", "1.5", "８０"):
            with pytest.raises(InvalidPortError):
                parse_port(value)

    def test_rejects_out_of_range(self):
        for value in ("0", "65536", "99999"):
            with pytest.raises(InvalidPortError) as exc:
                parse_port(value, "local port")
            assert "local port" in str(exc.value)

    def test_rejects_very_long_digit_strings(self):
        """Thousands of digits are rejected without converting them."""
        with pytest.raises(InvalidPortError) as exc:
            parse_port("9" * 5000, "local port")
        assert "local port" in str(exc.value)
        assert len(str(exc.value)) < 100

    def test_leading_zeros_do_not_count(self):
        assert parse_port("0" * 20 + "443") == 443

    def test_is_a_validation_error(self):
        """InvalidPortError carries the validation exit code."""
        with pytest.raises(ValidationError) as exc:
            parse_port("0")
        assert exc.value.exit_code == 3


class TestLooseAddress:
    """Tests for the syntactic IPv4/IPv6 filter."""

    def test_ipv4_shapes(self):
        assert is_loose_ip_address("10.0.0.5")
        assert is_loose_ip_address("255.255.255.255")
        # Shape only, no octet range check
        assert is_loose_ip_address("999.1.1.1")

    def test_ipv6_shapes(self):
        assert is_loose_ip_address("::1")
        assert is_loose_ip_address("2001:db8::1")
        assert is_loose_ip_address("fe80::1")
        # Hex letters alone pass the IPv6 filter
        assert is_loose_ip_address("abc")

    def test_rejects_other_text(self):
        for value in ("", "example.com", "10.0.0", "[::1]", "hello", "10.0.0.5 "):
            assert not is_loose_ip_address(value)


class TestValidateRemoteHost:
    """Tests for remote host validation."""

    def test_valid(self):
        assert validate_remote_host("10.0.0.5") == "10.0.0.5"

    def test_invalid(self):
        with pytest.raises(InvalidAddressError) as exc:
            validate_remote_host("example.com")
        assert "Invalid IP address" in str(exc.value)

    def test_empty(self):
        with pytest.raises(InvalidAddressError):
            validate_remote_host("")

    def test_custom_validator(self):
        """A stricter or looser check can be swapped in."""
        assert validate_remote_host("example.com", lambda value: True) == "example.com"
        with pytest.raises(InvalidAddressError):
            validate_remote_host("10.0.0.5", lambda value: False)


class TestValidateUrl:
    """Tests for panel URL validation."""

    def test_valid(self):
        assert validate_url("https://panel.example.com:8081") == "https://panel.example.com:8081"

    def test_strips_trailing_slash(self):
        assert validate_url(" http://127.0.0.1:8081/ ") == "http://127.0.0.1:8081"

    def test_rejects_other_schemes(self):
        with pytest.raises(ValidationError) as exc:
            validate_url("ftp://panel.example.com")
        assert "http or https" in str(exc.value)

    def test_rejects_missing_host(self):
        with pytest.raises(ValidationError):
            validate_url("http://")


class TestValidateCandidate:
    """Tests for field-by-field rule validation."""

    def test_builds_wildcard_rule(self):
        rule = validate_candidate("8080", "10.0.0.5", "80")
        assert rule == ForwardingRule(listen="0.0.0.0:8080", remote="10.0.0.5:80")

    def test_trims_fields(self):
        rule = validate_candidate(" 8080 ", " 2001:db8::1 ", " 443\n")
        assert rule.listen == "0.0.0.0:8080"
        assert rule.remote == "2001:db8::1:443"

    def test_bad_local_port(self):
        with pytest.raises(InvalidPortError) as exc:
            validate_candidate("0", "10.0.0.5", "80")
        assert "local port" in str(exc.value)

    def test_bad_remote_port(self):
        with pytest.raises(InvalidPortError) as exc:
            validate_candidate("8080", "10.0.0.5", "70000")
        assert "remote port" in str(exc.value)

    def test_bad_host(self):
        with pytest.raises(InvalidAddressError):
            validate_candidate("8080", "not-an-ip", "80")

    def test_ports_checked_before_host(self):
        """Port errors win over address errors."""
        with pytest.raises(InvalidPortError):
            validate_candidate("x", "not-an-ip", "80")

    def test_injected_validator(self):
        rule = validate_candidate("8080", "db.internal", "5432", address_validator=lambda value: True)
        assert rule.remote == "db.internal:5432"
