"""Unit tests for takeover offer reply classification."""

import pytest

from src.takeover.approval import (
    APPROVAL_KEYWORDS,
    DENIAL_KEYWORDS,
    ApprovalDecision,
    classify,
    is_approval,
    is_denial,
)


class TestClassify:
    """Test classify() over approve / deny / unclear replies."""

    @pytest.mark.parametrize("text", [
        "yes take over",
        "Yes",
        "  YEAH  ",
        "sure go ahead",
        "ok",
        "please do it",
        "take over pls",
    ])
    def test_approve(self, text):
        assert classify(text) is ApprovalDecision.APPROVE

    @pytest.mark.parametrize("text", [
        "nah not now",
        "no",
        "NOPE",
        "don't",
        "cancel that",
        "never mind",
        "stop",
        "maybe later",
    ])
    def test_deny(self, text):
        assert classify(text) is ApprovalDecision.DENY

    @pytest.mark.parametrize("text", ["", "   ", "hmm", "what?", "🤔"])
    def test_unclear(self, text):
        assert classify(text) is ApprovalDecision.UNCLEAR

    @pytest.mark.parametrize("text", [
        "yes... actually no",
        "ok stop",
        "sure, but not now",
        "yeah nah",
    ])
    def test_denial_wins_over_approval(self, text):
        assert is_approval(text)
        assert is_denial(text)
        assert classify(text) is ApprovalDecision.DENY

    def test_none_is_unclear(self):
        assert classify(None) is ApprovalDecision.UNCLEAR

    def test_keyword_sets_are_disjoint(self):
        assert not set(APPROVAL_KEYWORDS) & set(DENIAL_KEYWORDS)

    @pytest.mark.parametrize("text", [
        "yes do it now",
        "go ahead, you know what to say",
        "sure, anyone could",
    ])
    def test_short_denial_keywords_match_inside_words(self, text):
        # Substring matching errs toward leaving the conversation alone
        assert classify(text) is ApprovalDecision.DENY
