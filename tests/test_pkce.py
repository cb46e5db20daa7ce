# Tests for PKCE helpers.
# Created: 2026-02-20

import base64
import hashlib

from pocketmcp.oauth2.pkce import generate_code_verifier, s256_challenge, verify_pkce


class TestPKCE:
    def test_challenge_matches_rfc7636_appendix_b(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert s256_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_is_unpadded_base64url(self):
        verifier = generate_code_verifier()
        challenge = s256_challenge(verifier)
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
            .rstrip(b"=")
            .decode()
        )
        assert challenge == expected
        assert "=" not in challenge

    def test_default_verifier_length(self):
        assert len(generate_code_verifier()) == 43

    def test_verifiers_are_random(self):
        assert generate_code_verifier() != generate_code_verifier()

    def test_verify_accepts_matching_pair(self):
        verifier = generate_code_verifier()
        assert verify_pkce(verifier, s256_challenge(verifier)) is True

    def test_any_single_character_mutation_fails(self):
        verifier = generate_code_verifier()
        challenge = s256_challenge(verifier)
        for i, ch in enumerate(verifier):
            replacement = "A" if ch != "A" else "B"
            mutated = verifier[:i] + replacement + verifier[i + 1 :]
            assert verify_pkce(mutated, challenge) is False

    def test_empty_values_fail(self):
        assert verify_pkce("", s256_challenge("x")) is False
        assert verify_pkce("x", "") is False

    def test_non_ascii_verifier_fails(self):
        assert verify_pkce("café", s256_challenge("cafe")) is False
