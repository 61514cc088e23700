"""
Tests for the document lifecycle rules.

Verifies:
- Status rank never decreases through advance()
- Operations outside their rank window raise and report the current status
- NEEDS_REVIEW blocks advancing until an explicit, data-backed release
"""

import pytest

from docpost_kernel.domain.lifecycle import (
    DOCUMENT_LIFECYCLE,
    STATUS_RANK,
    DocumentStatus,
    advance,
    rank,
    release_target,
    require_rank,
    supported_status,
)
from docpost_kernel.exceptions import DocumentInReviewError, InvalidTransitionError

S = DocumentStatus
RANKED = [S.RECEIVED, S.CLASSIFIED, S.PARSED, S.READY, S.ROUTED, S.POSTED]


class TestRanks:

    def test_order(self):
        assert [rank(s) for s in RANKED] == [0, 1, 2, 3, 4, 5]
        assert rank(S.NEEDS_REVIEW) is None

    def test_every_forward_edge_has_an_action(self):
        actions = [DOCUMENT_LIFECYCLE.action_for(s) for s in RANKED[1:]]

        assert actions == ["attach_files", "normalize", "build_proposal", "route", "post"]


class TestAdvance:

    @pytest.mark.parametrize("current", RANKED)
    @pytest.mark.parametrize("target", RANKED)
    def test_never_lowers_rank(self, current, target):
        """advance() returns max(current, target)."""
        result = advance("doc", current, target)

        assert STATUS_RANK[result] == max(STATUS_RANK[current], STATUS_RANK[target])

    def test_accepts_string_values(self):
        assert advance("doc", "CLASSIFIED", "PARSED") == S.PARSED

    def test_review_blocks_advance(self):
        with pytest.raises(DocumentInReviewError):
            advance("doc", S.NEEDS_REVIEW, S.READY)

    def test_review_is_not_an_advance_target(self):
        with pytest.raises(InvalidTransitionError):
            advance("doc", S.READY, S.NEEDS_REVIEW)


class TestRequireRank:

    def test_inside_window(self):
        assert require_rank("doc", S.READY, minimum=S.PARSED, maximum=S.READY, action="x") == S.READY

    def test_below_window(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            require_rank("doc", S.CLASSIFIED, minimum=S.PARSED, maximum=S.READY, action="build_proposal")
        assert exc_info.value.current == "CLASSIFIED"

    def test_above_window(self):
        """An operation that would lower the rank is refused."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            require_rank("doc", S.POSTED, minimum=S.RECEIVED, maximum=S.PARSED, action="normalize")
        assert "lower" in exc_info.value.reason

    def test_in_review(self):
        with pytest.raises(DocumentInReviewError):
            require_rank("doc", S.NEEDS_REVIEW, minimum=S.RECEIVED, maximum=S.POSTED, action="x")


class TestRelease:

    def test_release_to_supported_rank(self):
        assert release_target("doc", S.NEEDS_REVIEW, S.PARSED, supported=S.READY) == S.PARSED

    def test_release_above_supported_rank(self):
        with pytest.raises(InvalidTransitionError):
            release_target("doc", S.NEEDS_REVIEW, S.ROUTED, supported=S.READY)

    def test_posted_document_only_returns_to_posted(self):
        assert release_target("doc", S.NEEDS_REVIEW, S.POSTED, supported=S.POSTED) == S.POSTED
        with pytest.raises(InvalidTransitionError):
            release_target("doc", S.NEEDS_REVIEW, S.READY, supported=S.POSTED)

    def test_not_in_review(self):
        with pytest.raises(InvalidTransitionError):
            release_target("doc", S.READY, S.READY, supported=S.READY)

    @pytest.mark.parametrize(
        "flags,expected",
        [
            ({}, S.RECEIVED),
            ({"has_files": True}, S.CLASSIFIED),
            ({"has_files": True, "has_extraction": True}, S.PARSED),
            ({"has_extraction": True, "has_proposal": True}, S.READY),
            ({"has_proposal": True, "is_routed": True}, S.ROUTED),
            ({"has_journal": True}, S.POSTED),
        ],
    )
    def test_supported_status(self, flags, expected):
        kwargs = dict(
            has_files=False, has_extraction=False, has_proposal=False, is_routed=False, has_journal=False
        )
        kwargs.update(flags)

        assert supported_status(**kwargs) == expected
