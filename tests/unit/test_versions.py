"""Tests for Version and Constraint value types."""

from __future__ import annotations

import pytest

from cudalis.models.versions import (
    Component,
    Constraint,
    ConstraintKind,
    InvalidVersionError,
    Version,
    cuda_sort_key,
    format_cuda,
)


class TestVersionParse:
    def test_parse_partial(self):
        assert Version.parse("11.0").release == (11, 0)

    def test_parse_drops_local_label(self):
        assert Version.parse("1.7.1+cu110") == Version.parse("1.7.1")

    def test_parse_is_idempotent_on_version(self):
        v = Version.parse("3.8")
        assert Version.parse(v) is v

    @pytest.mark.parametrize("text", ["", "abc", "1.0rc1", "2.0.post1", "1.0.dev3", "1!2.0"])
    def test_parse_rejects(self, text: str):
        with pytest.raises(InvalidVersionError):
            Version.parse(text)

    def test_major_minor(self):
        v = Version.parse("12")
        assert v.major == 12
        assert v.minor == 0


class TestVersionOrdering:
    def test_numeric_not_lexicographic(self):
        assert Version.parse("3.10") > Version.parse("3.9")

    def test_less_specific_sorts_first(self):
        assert Version.parse("11") < Version.parse("11.0") < Version.parse("11.0.0")

    def test_total_order_on_mixed_lengths(self):
        versions = [Version.parse(t) for t in ["11.1", "11", "10.2.89", "11.0.3"]]
        assert [str(v) for v in sorted(versions)] == ["10.2.89", "11", "11.0.3", "11.1"]

    def test_equal_and_hash(self):
        assert Version.parse("1.7.1") == Version((1, 7, 1))
        assert len({Version.parse("1.7.1"), Version((1, 7, 1))}) == 1


class TestVersionSatisfies:
    def test_partial_covers_patch(self):
        assert Version.parse("11.0.3").satisfies(Version.parse("11.0"))
        assert Version.parse("11.0").satisfies(Version.parse("11.0.3"))

    def test_different_minor(self):
        assert not Version.parse("11.1").satisfies(Version.parse("11.0"))

    def test_full_release_is_not_a_range(self):
        assert not Version.parse("1.7.1.9").satisfies(Version.parse("1.7.1"))
        assert not Version.parse("1.7.1").satisfies(Version.parse("1.7.1.9"))
        assert Version.parse("1.7.1").satisfies(Version.parse("1.7.1"))

    def test_narrow_picks_more_specific(self):
        assert str(Version.parse("3.8").narrow(Version.parse("3.8.5"))) == "3.8.5"
        assert str(Version.parse("3.8.5").narrow(Version.parse("3.8"))) == "3.8.5"

    def test_narrow_rejects_disjoint(self):
        with pytest.raises(InvalidVersionError):
            Version.parse("3.8").narrow(Version.parse("3.9"))


class TestCudaHelpers:
    def test_cpu_sorts_below_any_cuda(self):
        assert cuda_sort_key(None) < cuda_sort_key(Version.parse("9.2"))

    def test_format(self):
        assert format_cuda(None) == "cpu"
        assert format_cuda(Version.parse("11.8")) == "cu11.8"


class TestConstraintParse:
    def test_none_and_blank_are_unspecified(self):
        assert Constraint.parse(None, Component.PYTHON).kind is ConstraintKind.UNSPECIFIED
        assert Constraint.parse("  ", Component.TORCH).kind is ConstraintKind.UNSPECIFIED

    def test_latest(self):
        assert Constraint.parse("LATEST", Component.TORCH) == Constraint.latest()

    def test_cpu_for_cuda(self):
        constraint = Constraint.parse("cpu", Component.CUDA)
        assert constraint.is_exact
        assert constraint.version is None
        assert constraint.describe() == "cpu"

    def test_cpu_rejected_for_python(self):
        with pytest.raises(InvalidVersionError):
            Constraint.parse("none", Component.PYTHON)

    def test_exact(self):
        constraint = Constraint.parse("1.7.1", Component.TORCH)
        assert constraint == Constraint.exact("1.7.1")
        assert constraint.describe() == "1.7.1"

    def test_invalid_exact(self):
        with pytest.raises(InvalidVersionError):
            Constraint.parse("one.two", Component.TORCH)

    def test_constraints_are_frozen(self):
        constraint = Constraint.latest()
        with pytest.raises(Exception):
            constraint.kind = ConstraintKind.EXACT
