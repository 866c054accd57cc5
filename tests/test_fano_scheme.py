"""Tests for validation, the generic plane, plane-coefficient elimination and Fano schemes."""

import logging
import warnings

import numpy
import pytest
import sympy
from sympy import QQ

import fano_scheme
from algebra_backend import Ideal, PolynomialRing
from fano_scheme import (
    AmbientTypeError,
    DimensionMismatchError,
    FanoConfig,
    FiniteBaseFieldWarning,
    FiniteFieldError,
    NotProjectiveError,
    PlaneDimensionError,
    build_generic_plane,
    eliminate_plane_variables,
    fano_scheme_in_ambient,
    plucker_ambient,
    plucker_subsets,
    point_variable_index,
    pull_back_and_reduce,
    validate_ambient_dimension,
)
from projective_schemes import AffineSpace, ProjectiveSpace, Scheme


def _ambient(dim, field=QQ, prefix="p"):
    return ProjectiveSpace(field, dim, tuple(f"{prefix}_{i}" for i in range(dim + 1)))


@pytest.fixture
def P2():
    return ProjectiveSpace(QQ, 2, ("x", "y", "z"))


@pytest.fixture
def P3():
    return ProjectiveSpace(QQ, 3, ("x", "y", "z", "w"))


def _forbid_algebra(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("generic plane built before validation finished")

    monkeypatch.setattr(fano_scheme, "build_generic_plane", boom)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_non_projective_input_rejected_before_algebra(monkeypatch):
    _forbid_algebra(monkeypatch)
    A = AffineSpace(QQ, 3)
    X = Scheme(A, sympy.Symbol("x_1") ** 2 - 1)
    with pytest.raises(NotProjectiveError) as exc:
        fano_scheme_in_ambient(X, 1, _ambient(5))
    assert exc.value.scheme is X
    with pytest.raises(NotProjectiveError):
        fano_scheme.fano_scheme(X, 1)


def test_ambient_must_be_projective_space(monkeypatch, P3):
    _forbid_algebra(monkeypatch)
    bad = AffineSpace(QQ, 5)
    with pytest.raises(AmbientTypeError) as exc:
        fano_scheme_in_ambient(P3, 1, bad)
    assert exc.value.ambient is bad
    with pytest.raises(AmbientTypeError):
        fano_scheme_in_ambient(P3, 1, Scheme(_ambient(5), []))


def test_ambient_over_other_field_rejected(monkeypatch, P3):
    _forbid_algebra(monkeypatch)
    with pytest.raises(AmbientTypeError):
        fano_scheme_in_ambient(P3, 1, _ambient(5, field=sympy.GF(5)))


def test_mis_sized_ambient_raises_without_algebra(monkeypatch, P3):
    _forbid_algebra(monkeypatch)
    with pytest.raises(DimensionMismatchError) as exc:
        fano_scheme_in_ambient(P3, 1, _ambient(4))
    assert exc.value.actual == 4
    assert exc.value.expected == 5
    assert "4" in str(exc.value)


def test_validate_ambient_dimension_accepts_binomial():
    validate_ambient_dimension(4, 1, _ambient(5))
    validate_ambient_dimension(5, 2, _ambient(9))
    with pytest.raises(DimensionMismatchError):
        validate_ambient_dimension(5, 2, _ambient(10))


@pytest.mark.parametrize("k", [-1, 4, True, 1.0])
def test_plane_dimension_out_of_range(monkeypatch, P3, k):
    _forbid_algebra(monkeypatch)
    with pytest.raises(PlaneDimensionError):
        fano_scheme.fano_scheme(P3, k)


@pytest.mark.parametrize("k", [numpy.int64(0), sympy.Integer(0)])
def test_plane_dimension_accepts_integral_types(P2, k):
    F = fano_scheme.fano_scheme(P2, k)
    assert F.ambient.dimension == 2
    assert F.defining_ideal().is_zero()


def test_oversized_plane_reported_before_ambient_size(monkeypatch, P3):
    _forbid_algebra(monkeypatch)
    with pytest.raises(PlaneDimensionError) as exc:
        fano_scheme_in_ambient(P3, 4, _ambient(1))
    assert exc.value.k == 4


def test_finite_field_policy_error(monkeypatch):
    _forbid_algebra(monkeypatch)
    P = ProjectiveSpace(sympy.GF(5), 1)
    with pytest.raises(FiniteFieldError):
        fano_scheme.fano_scheme(P, 0, config=FanoConfig(finite_field_policy="error"))


def test_finite_field_policy_warn():
    P = ProjectiveSpace(sympy.GF(5), 1)
    with pytest.warns(FiniteBaseFieldWarning):
        F = fano_scheme.fano_scheme(P, 0)
    assert F.defining_ideal().is_zero()


def test_finite_field_policy_allow():
    P = ProjectiveSpace(sympy.GF(5), 1)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        fano_scheme.fano_scheme(P, 0, config=FanoConfig(finite_field_policy="allow"))


# ---------------------------------------------------------------------------
# Generic plane
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("n,k", [(3, 0), (4, 1), (5, 2)])
def test_point_variable_index_is_a_bijection(n, k):
    idx = [point_variable_index(j, i, n, k) for j in range(k + 1) for i in range(n)]
    assert sorted(idx) == list(range(k + 1, (k + 1) * (n + 1)))


def test_generic_plane_layout(P3):
    R = P3.coordinate_ring
    plane = build_generic_plane(R, 1)
    S = plane.ring
    assert S.rank == 2 * 5
    assert S.names[:2] == ("s_1", "s_2")
    assert S.names[2:6] == ("p_1_1", "p_1_2", "p_1_3", "p_1_4")
    assert plane.plane_variables == (S.gen(0), S.gen(1))
    assert len(plane.points) == 2
    assert plane.points[1].coordinates[2] == S.gen(point_variable_index(1, 2, 4, 1))
    s1, s2 = sympy.symbols("s_1 s_2")
    p11, p21 = sympy.symbols("p_1_1 p_2_1")
    assert plane.linear_forms[0] == S(s1 * p11 + s2 * p21)


def test_generic_point_map_sends_coordinates_to_linear_forms(P3):
    R = P3.coordinate_ring
    plane = build_generic_plane(R, 1)
    for g, form in zip(R.gens, plane.linear_forms):
        assert plane.generic_point_map(g) == form


# ---------------------------------------------------------------------------
# Pullback and reduction
# ---------------------------------------------------------------------------


def test_eliminate_plane_variables_collects_coefficients(P2):
    plane = build_generic_plane(P2.coordinate_ring, 1)
    S = plane.ring
    f = plane.linear_forms[0] * plane.linear_forms[1]
    coeffs = eliminate_plane_variables([f], plane.plane_variables)
    p11, p12, p21, p22 = sympy.symbols("p_1_1 p_1_2 p_2_1 p_2_2")
    expected = {S(p21 * p22), S(p11 * p22 + p21 * p12), S(p11 * p12)}
    assert set(coeffs) == expected


def test_eliminate_plane_variables_drops_zero_and_duplicates(P2):
    plane = build_generic_plane(P2.coordinate_ring, 0)
    S = plane.ring
    s1 = plane.plane_variables[0]
    p = S.gen(1)
    coeffs = eliminate_plane_variables([s1 * p, p, S.zero], plane.plane_variables)
    assert coeffs == [p]


def test_whole_space_reduces_to_plane_variables(P3):
    plane = build_generic_plane(P3.coordinate_ring, 1)
    inc = pull_back_and_reduce(P3.defining_ideal(), plane)
    assert inc.coefficients == ()
    assert inc.extension.is_zero()
    assert inc.ideal == Ideal(plane.ring, list(plane.plane_variables))


def test_conic_points_reduce_to_conic(P2):
    x, y, z = P2.coordinate_ring.symbols
    X = Scheme(P2, x * y - z**2)
    plane = build_generic_plane(P2.coordinate_ring, 0)
    inc = pull_back_and_reduce(X.defining_ideal(), plane)
    p1, p2, p3 = sympy.symbols("p_1_1 p_1_2 p_1_3")
    assert Ideal(plane.ring, inc.coefficients) == Ideal(plane.ring, [p1 * p2 - p3**2])
    assert inc.ideal.contains(plane.plane_variables[0])


# ---------------------------------------------------------------------------
# Fano schemes
# ---------------------------------------------------------------------------


def test_plucker_subsets_order():
    assert plucker_subsets(4, 2) == [(0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)]
    assert plucker_subsets(3, 1) == [(0,), (1,), (2,)]


def test_plucker_ambient_dimension():
    A = plucker_ambient(QQ, 4, 1)
    assert A.dimension == 5
    assert A.names == tuple(f"p_{i}" for i in range(6))


def test_points_on_conic_is_the_conic(P2):
    x, y, z = P2.coordinate_ring.symbols
    X = Scheme(P2, x * y - z**2)
    A = _ambient(2)
    F = fano_scheme_in_ambient(X, 0, A)
    assert F.ambient is A
    p0, p1, p2 = A.coordinate_ring.symbols
    assert F.defining_ideal() == Ideal(A.coordinate_ring, [p0 * p1 - p2**2])


def test_lines_in_a_line_of_the_plane(P2):
    x, y, z = P2.coordinate_ring.symbols
    F = fano_scheme.fano_scheme(Scheme(P2, x), 1)
    p0, p1, p2 = F.coordinate_ring.symbols
    assert F.defining_ideal() == Ideal(F.coordinate_ring, [p0, p1])
    assert F.contains_point(fano_scheme.plucker_coordinates([[0, 1, 0], [0, 0, 1]]))
    assert (F.dimension(), F.degree()) == (0, 1)


def test_lines_in_a_plane_of_p3(P3):
    x, y, z, w = P3.coordinate_ring.symbols
    A = _ambient(5)
    F = fano_scheme_in_ambient(Scheme(P3, w), 1, A)
    p = A.coordinate_ring.symbols
    assert F.defining_ideal() == Ideal(A.coordinate_ring, [p[2], p[4], p[5]])


def test_auto_ambient_matches_manual_ambient(P3):
    x, y, z, w = P3.coordinate_ring.symbols
    X = Scheme(P3, w)
    auto = fano_scheme.fano_scheme(X, 1)
    manual = fano_scheme_in_ambient(X, 1, _ambient(5))
    assert auto.ambient == manual.ambient
    assert auto.defining_ideal() == manual.defining_ideal()


def test_plucker_prefix_from_config(P2):
    F = fano_scheme.fano_scheme(P2, 0, config=FanoConfig(plucker_prefix="q"))
    assert F.ambient.names == ("q_0", "q_1", "q_2")


@pytest.mark.slow
def test_no_lines_on_a_smooth_conic(P2):
    x, y, z = P2.coordinate_ring.symbols
    F = fano_scheme.fano_scheme(Scheme(P2, x * y - z**2), 1)
    assert F.dimension() == -1


def test_summary_logged(caplog, P2):
    caplog.set_level(logging.INFO, logger="fano_scheme")
    fano_scheme.fano_scheme(P2, 0)
    assert any("F_0" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_config_rejects_unknown_values():
    with pytest.raises(ValueError):
        FanoConfig(groebner_method="magic")
    with pytest.raises(ValueError):
        FanoConfig(finite_field_policy="ignore")
    with pytest.raises(ValueError):
        FanoConfig(plucker_prefix="1p")


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("FANO_GROEBNER_METHOD", "F5B")
    monkeypatch.setenv("FANO_FINITE_FIELD_POLICY", "error")
    monkeypatch.setenv("FANO_PLUCKER_PREFIX", "q")
    cfg = FanoConfig.from_env()
    assert cfg == FanoConfig(groebner_method="f5b", finite_field_policy="error", plucker_prefix="q")
    assert cfg.engine.groebner_method == "f5b"


def test_config_from_env_overrides_win(monkeypatch):
    monkeypatch.setenv("FANO_GROEBNER_METHOD", "f5b")
    assert FanoConfig.from_env(groebner_method="buchberger").groebner_method == "buchberger"
    assert FanoConfig.from_env(groebner_method=None).groebner_method == "f5b"


def test_config_from_env_defaults(monkeypatch):
    for name in ("FANO_GROEBNER_METHOD", "FANO_FINITE_FIELD_POLICY", "FANO_PLUCKER_PREFIX"):
        monkeypatch.delenv(name, raising=False)
    assert FanoConfig.from_env() == FanoConfig()


def test_config_from_env_invalid(monkeypatch):
    monkeypatch.setenv("FANO_FINITE_FIELD_POLICY", "sometimes")
    with pytest.raises(ValueError):
        FanoConfig.from_env()
