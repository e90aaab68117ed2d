"""
Unit tests for code generation and email domain rules.
"""

import pytest

from emailgate.modules.verification.otp import (
    extract_domain,
    generate_otp,
    is_domain_allowed,
    normalize_code,
)


class TestGenerateOtp:
    def test_six_digits(self):
        for _ in range(200):
            code = generate_otp()
            assert len(code) == 6
            assert code.isdigit()

    def test_leading_zeros_are_kept(self, mocker):
        mocker.patch("emailgate.modules.verification.otp.secrets.randbelow", return_value=42)

        assert generate_otp() == "000042"

    def test_draws_from_full_range(self, mocker):
        randbelow = mocker.patch(
            "emailgate.modules.verification.otp.secrets.randbelow", return_value=999999
        )

        assert generate_otp() == "999999"
        randbelow.assert_called_once_with(1_000_000)


class TestExtractDomain:
    @pytest.mark.parametrize(
        "email, expected",
        [
            ("alice@uni.edu", "uni.edu"),
            ("  alice@uni.edu ", "uni.edu"),
            ("a@b@uni.edu", "uni.edu"),
            ("Alice@Uni.EDU", "Uni.EDU"),
        ],
    )
    def test_text_after_last_at(self, email, expected):
        assert extract_domain(email) == expected

    @pytest.mark.parametrize("email", ["nobody", "alice@", ""])
    def test_missing_domain(self, email):
        assert extract_domain(email) is None


class TestIsDomainAllowed:
    def test_exact_match(self):
        assert is_domain_allowed("uni.edu", ["uni.edu", "college.org"]) is True

    def test_subdomain_is_not_allowed(self):
        assert is_domain_allowed("mail.uni.edu", ["uni.edu"]) is False

    def test_match_is_case_sensitive(self):
        assert is_domain_allowed("UNI.EDU", ["uni.edu"]) is False

    def test_empty_allow_list(self):
        assert is_domain_allowed("uni.edu", []) is False

    def test_missing_domain(self):
        assert is_domain_allowed(None, ["uni.edu"]) is False


def test_normalize_code_strips_whitespace():
    assert normalize_code("  123456\n") == "123456"
