"""Tests for the assertion layer and the error hierarchy."""

from __future__ import annotations

import pytest

from vizcheck.errors import (
    AppApiError,
    AssertionMismatch,
    ElementNotFound,
    HarnessError,
    RetryExhausted,
    SetupFailure,
    render_diff,
)
from vizcheck.harness.assertions import (
    assert_contains,
    assert_equal,
    assert_true,
    first_difference,
    matches,
    normalize,
)


class TestNormalize:

    def test_lists_become_tuples(self):
        assert normalize([1, [2, 3]]) == (1, (2, 3))

    def test_scalars_untouched(self):
        assert normalize('200') == '200'
        assert normalize(None) is None

    def test_list_matches_tuple_fixture(self):
        assert matches([['2015-09-20 00:00', '37']], (('2015-09-20 00:00', '37'),))


class TestFirstDifference:

    def test_equal_sequences(self):
        assert first_difference([1, 2, 3], (1, 2, 3)) is None

    def test_differing_item(self):
        assert first_difference([1, 9, 3], [1, 2, 3]) == 1

    def test_shorter_observed(self):
        assert first_difference([1, 2], [1, 2, 3]) == 2

    def test_scalars(self):
        assert first_difference('a', 'b') == 0
        assert first_difference('a', 'a') is None


class TestAssertEqual:

    def test_passes_on_deep_equality(self):
        assert_equal(['200', '404', '503'], ('200', '404', '503'))

    def test_order_matters(self):
        with pytest.raises(AssertionMismatch):
            assert_equal(['404', '200'], ['200', '404'])

    def test_mismatch_carries_both_values(self):
        with pytest.raises(AssertionMismatch) as exc_info:
            assert_equal([37, 202], [37, 202, 740], label='bar chart data')
        exc = exc_info.value
        assert exc.observed == [37, 202]
        assert exc.expected == [37, 202, 740]
        assert exc.label == 'bar chart data'
        assert 'first difference at index 2' in exc.detail
        assert 'observed length 2, expected length 3' in exc.detail

    def test_message_includes_diff(self):
        with pytest.raises(AssertionMismatch) as exc_info:
            assert_equal(['200', '404'], ['200', '503'])
        message = str(exc_info.value)
        assert '--- observed' in message
        assert '+++ expected' in message

    def test_is_an_assertion_error(self):
        with pytest.raises(AssertionError):
            assert_equal(1, 2)


class TestAssertContains:

    def test_fragment_found(self):
        assert_contains('Visualize / Visualization VerticalBarChart',
                        'Visualization VerticalBarChart')

    def test_fragment_missing(self):
        with pytest.raises(AssertionMismatch) as exc_info:
            assert_contains('Create', 'Visualization VerticalBarChart', label='title')
        assert 'to be contained in' in exc_info.value.detail

    def test_none_observed(self):
        with pytest.raises(AssertionMismatch):
            assert_contains(None, 'x')


class TestAssertTrue:

    def test_true(self):
        assert_true(True)

    @pytest.mark.parametrize('value', [False, 1, 'true', None])
    def test_only_true_passes(self, value):
        with pytest.raises(AssertionMismatch):
            assert_true(value)


class TestErrorHierarchy:

    @pytest.mark.parametrize('exc', [
        ElementNotFound('[data-test-subj="x"]'),
        SetupFailure('click go', RuntimeError('boom')),
        AssertionMismatch(1, 2),
        RetryExhausted(3),
        AppApiError(500, 'down'),
    ])
    def test_all_derive_from_harness_error(self, exc):
        assert isinstance(exc, HarnessError)

    def test_setup_failure_message(self):
        exc = SetupFailure('click go', ElementNotFound('[data-test-subj="go"]'))
        assert str(exc) == (
            "Setup step 'click go' failed: ElementNotFound: "
            'Element not found: [data-test-subj="go"]'
        )
        assert exc.step_name == 'click go'
        assert isinstance(exc.cause, ElementNotFound)

    def test_retry_exhausted_reason(self):
        exc = RetryExhausted(4, last_observed=[1], reason='timeout 2.0s')
        assert str(exc) == (
            'Retry budget exhausted after 4 attempt(s) (timeout 2.0s)\n'
            'last observed: [1]'
        )

    def test_app_api_error_message(self):
        exc = AppApiError(404, 'Saved object not found')
        assert exc.status_code == 404
        assert str(exc) == 'App API error 404: Saved object not found'

    def test_render_diff_empty_for_equal(self):
        assert render_diff([1, 2], [1, 2]) == ''
