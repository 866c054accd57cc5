#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fano schemes of k-planes on embedded projective varieties.

Let X ⊂ P^r be a projective scheme with homogeneous coordinate ring
R = K[x_1..x_n] (n = r + 1). The Fano scheme F_k(X) parametrizes the
k-planes contained in X; it is a subscheme of the Grassmannian G(k, r),
embedded by Plücker coordinates in a projective space of dimension
C(n, k+1) - 1.

Pipeline (one linear pass, nothing cached between calls):
  1) validate the input before any ring is built
  2) parametrize a generic k-plane: ring S with plane coefficients
     s_1..s_{k+1} and a (k+1) x n grid of point coordinates p_{j,i};
     F : R -> S sends x_i to sum_j s_j * p_{j,i}
  3) extend I(X) along F, then strip the s_j coefficient-wise: a polynomial
     vanishes for every value of s_j iff each of its coefficients in s_j
     does (valid over an infinite field)
  4) map Plücker coordinates to the maximal minors of the point matrix over
     S / J2 and take the kernel of that map

Red-lines respected:
  - Validation failures are raised before any algebra runs.
  - No recovery: errors from the algebra backend propagate unchanged.
  - Plücker ordering is fixed: ascending lexicographic (k+1)-subsets of the
    0-based coordinate indices, so G(1,3) is cut out by
    p_2*p_3 - p_1*p_4 + p_0*p_5.
"""

from __future__ import annotations

import argparse
import itertools
import logging
import math
import operator
import os
import time
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import sympy
from sympy import Poly
from sympy.parsing.sympy_parser import convert_xor, parse_expr, standard_transformations

from algebra_backend import (
    GROEBNER_METHODS,
    EngineConfig,
    Ideal,
    Matrix,
    PolynomialRing,
    QuotientRing,
    RingHomomorphism,
    coefficients,
    kernel,
)
from projective_schemes import ProjectiveSpace, Scheme

_logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class FanoSchemeError(RuntimeError):
    """Hard failure while setting up a Fano scheme computation."""


class NotProjectiveError(FanoSchemeError):
    def __init__(self, scheme: Any):
        self.scheme = scheme
        super().__init__(f"The scheme X must be projective: {scheme!r}")


class NotProjectiveSpaceError(FanoSchemeError):
    def __init__(self, space: Any):
        self.space = space
        super().__init__(f"expected a ProjectiveSpace, got {type(space).__name__}: {space!r}")


class AmbientTypeError(FanoSchemeError):
    def __init__(self, ambient: Any, reason: str = "must be a projective space"):
        self.ambient = ambient
        super().__init__(f"The Grassmannian ambient space {reason}: {ambient!r}")


class DimensionMismatchError(FanoSchemeError):
    def __init__(self, actual: int, expected: int):
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"The dimension of the Grassmannian ambient space is incorrect: {actual} (expected {expected})"
        )


class PlaneDimensionError(FanoSchemeError):
    def __init__(self, k: Any, r: int):
        self.k = k
        self.r = r
        super().__init__(f"plane dimension k must be an int with 0 <= k <= {r}, got {k!r}")


class FiniteFieldError(FanoSchemeError):
    def __init__(self, field: Any):
        self.field = field
        super().__init__(
            f"coefficient-wise elimination of plane coefficients assumes an infinite base field, got {field}"
        )


class FiniteBaseFieldWarning(UserWarning):
    """Computation over a finite field; the result is not guaranteed."""


# =============================================================================
# Configuration
# =============================================================================

FINITE_FIELD_POLICIES: Tuple[str, ...] = ("warn", "error", "allow")


def _env_strict_enum(name: str, *, allowed: Tuple[str, ...], default: str) -> str:
    """
    Read an env var as an enum-like string with strict validation.

    Invalid values raise; there is no silent downgrade to the default.
    """
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return str(default)
    val = str(raw).strip().lower()
    if val not in allowed:
        raise ValueError(f"{name} must be one of {list(allowed)}, got {raw!r}")
    return val


def _env_identifier(name: str, *, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return str(default)
    val = str(raw).strip()
    if not val.isidentifier():
        raise ValueError(f"{name} must be a valid identifier, got {raw!r}")
    return val


@dataclass(frozen=True)
class FanoConfig:
    """
    Settings for one Fano scheme computation.

    - groebner_method: sympy Groebner algorithm, ``buchberger`` or ``f5b``
    - finite_field_policy: what to do over a finite base field
      (``warn`` / ``error`` / ``allow``)
    - plucker_prefix: variable prefix of synthesized Plücker ambients
    """

    groebner_method: str = "buchberger"
    finite_field_policy: str = "warn"
    plucker_prefix: str = "p"

    def __post_init__(self) -> None:
        if self.groebner_method not in GROEBNER_METHODS:
            raise ValueError(f"groebner_method must be one of {list(GROEBNER_METHODS)}, got {self.groebner_method!r}")
        if self.finite_field_policy not in FINITE_FIELD_POLICIES:
            raise ValueError(
                f"finite_field_policy must be one of {list(FINITE_FIELD_POLICIES)}, got {self.finite_field_policy!r}"
            )
        if not str(self.plucker_prefix).isidentifier():
            raise ValueError(f"plucker_prefix must be a valid identifier, got {self.plucker_prefix!r}")

    @property
    def engine(self) -> EngineConfig:
        return EngineConfig(groebner_method=self.groebner_method)

    @classmethod
    def from_env(cls, **overrides: Any) -> "FanoConfig":
        """
        Defaults from FANO_GROEBNER_METHOD, FANO_FINITE_FIELD_POLICY and
        FANO_PLUCKER_PREFIX; explicit non-None keyword overrides win.
        """
        values: Dict[str, Any] = {
            "groebner_method": _env_strict_enum("FANO_GROEBNER_METHOD", allowed=GROEBNER_METHODS, default="buchberger"),
            "finite_field_policy": _env_strict_enum(
                "FANO_FINITE_FIELD_POLICY", allowed=FINITE_FIELD_POLICIES, default="warn"
            ),
            "plucker_prefix": _env_identifier("FANO_PLUCKER_PREFIX", default="p"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# =============================================================================
# Input validation
# =============================================================================


def validate_projective(X: Any) -> None:
    if not getattr(X, "is_projective", False):
        raise NotProjectiveError(X)


def validate_plane_dimension(k: Any, r: int) -> int:
    """
    Normalize ``k`` to an ``int`` with ``0 <= k <= r``.

    Any integral type is accepted (``numpy.int64``, ``sympy.Integer``); bools
    are not. This runs before the ambient checks, so ``k > r`` raises
    ``PlaneDimensionError`` even when an explicit ambient of the wrong size is
    also given, where a binomial-count check alone would report a dimension
    mismatch against ``C(r+1, k+1) - 1 = -1``.
    """
    if isinstance(k, bool):
        raise PlaneDimensionError(k, r)
    try:
        value = operator.index(k)
    except TypeError:
        raise PlaneDimensionError(k, r) from None
    if not 0 <= value <= r:
        raise PlaneDimensionError(k, r)
    return value


def validate_ambient_type(grass_ambient: Any, field: Any = None) -> None:
    if not isinstance(grass_ambient, ProjectiveSpace):
        raise AmbientTypeError(grass_ambient)
    if field is not None and grass_ambient.field != field:
        raise AmbientTypeError(grass_ambient, reason=f"must be defined over {field}")


def validate_ambient_dimension(n: int, k: int, grass_ambient: ProjectiveSpace) -> None:
    N = grass_ambient.dimension
    expected = math.comb(n, k + 1) - 1
    if N != expected:
        raise DimensionMismatchError(N, expected)


def check_base_field(field: Any, config: FanoConfig) -> None:
    """Flag finite base fields, where step 3 of the pipeline is unproven."""
    if not getattr(field, "is_FiniteField", False) or config.finite_field_policy == "allow":
        return
    if config.finite_field_policy == "error":
        raise FiniteFieldError(field)
    msg = f"Fano scheme over finite field {field}: plane-coefficient elimination assumes an infinite field"
    _logger.warning(msg)
    warnings.warn(msg, FiniteBaseFieldWarning, stacklevel=3)


# =============================================================================
# Generic k-plane
# =============================================================================


def point_variable_index(j: int, i: int, n: int, k: int) -> int:
    """
    Position in S of coordinate ``i`` of spanning point ``j`` (both 0-based).

    Positions ``0..k`` hold the plane coefficients; point ``j`` occupies the
    contiguous block ``k+1 + j*n .. k+1 + j*n + n-1``.
    """
    return k + 1 + j * n + i


@dataclass(frozen=True)
class PlanePoint:
    """One spanning point of the generic plane and the coefficient scaling it."""

    scale: Poly
    coordinates: Tuple[Poly, ...]


@dataclass(frozen=True)
class GenericPlane:
    """
    A variable k-plane: k+1 symbolic points in the ambient space of R, and
    the map F : R -> S sending x_i to sum_j s_j * p_{j,i}.
    """

    k: int
    source: PolynomialRing
    ring: PolynomialRing
    points: Tuple[PlanePoint, ...]
    linear_forms: Tuple[Poly, ...]
    generic_point_map: RingHomomorphism

    @property
    def n(self) -> int:
        return self.source.rank

    @property
    def plane_variables(self) -> Tuple[Poly, ...]:
        return tuple(p.scale for p in self.points)

    def point_matrix(self, quotient: QuotientRing) -> Matrix:
        """The (k+1) x n matrix of point coordinates, read into ``quotient``."""
        rows = [
            [self.ring.gen(point_variable_index(j, i, self.n, self.k)) for i in range(self.n)]
            for j in range(self.k + 1)
        ]
        return Matrix(quotient, rows)


def build_generic_plane(R: PolynomialRing, k: int) -> GenericPlane:
    n = R.rank
    names: List[str] = [""] * ((k + 1) * (n + 1))
    for j in range(k + 1):
        names[j] = f"s_{j + 1}"
        for i in range(n):
            names[point_variable_index(j, i, n, k)] = f"p_{j + 1}_{i + 1}"
    S = PolynomialRing(R.field, tuple(names))

    points = tuple(
        PlanePoint(
            scale=S.gen(j),
            coordinates=tuple(S.gen(point_variable_index(j, i, n, k)) for i in range(n)),
        )
        for j in range(k + 1)
    )
    linear_forms = tuple(
        sum((pt.scale * pt.coordinates[i] for pt in points), S.zero) for i in range(n)
    )
    F = RingHomomorphism(R, S, linear_forms)
    _logger.debug("generic %d-plane: |S| = %d variables over %s", k, S.rank, R.field)
    return GenericPlane(k=k, source=R, ring=S, points=points, linear_forms=linear_forms, generic_point_map=F)


# =============================================================================
# Pullback and elimination of plane coefficients
# =============================================================================


@dataclass(frozen=True)
class PlaneIncidence:
    """
    - extension: J, the extension of I(X) along the generic point map
    - coefficients: polynomials in the p_{j,i} only, all nonzero
    - ideal: J2 = (coefficients) + (s_1..s_{k+1})
    """

    extension: Ideal
    coefficients: Tuple[Poly, ...]
    ideal: Ideal


def eliminate_plane_variables(generators: Iterable[Poly], plane_variables: Sequence[Poly]) -> List[Poly]:
    working = list(generators)
    for var in plane_variables:
        working = [c for f in working for c in coefficients(f, var) if not c.is_zero]
    return list(dict.fromkeys(working))


def pull_back_and_reduce(
    ideal: Ideal, plane: GenericPlane, config: Optional[EngineConfig] = None
) -> PlaneIncidence:
    J = plane.generic_point_map.extend(ideal)
    basis = J.groebner_basis()
    coeffs = eliminate_plane_variables(basis, plane.plane_variables)
    J2 = Ideal(plane.ring, coeffs + list(plane.plane_variables), config=config or ideal.config)
    _logger.debug(
        "pullback: |basis(J)| = %d, %d coefficient equations after eliminating %d plane variables",
        len(basis), len(coeffs), len(plane.plane_variables),
    )
    return PlaneIncidence(extension=J, coefficients=tuple(coeffs), ideal=J2)


# =============================================================================
# Plücker embedding
# =============================================================================


def plucker_subsets(n: int, m: int) -> List[Tuple[int, ...]]:
    """Column subsets indexing Plücker coordinates, in variable order."""
    return list(itertools.combinations(range(n), m))


def plucker_coordinates(points: Sequence[Sequence[Any]]) -> List[sympy.Expr]:
    """
    Plücker coordinates of the plane spanned by explicit ``points`` (k+1
    rows of n homogeneous coordinates), in the same order as the Plücker
    ambient's variables.
    """
    rows = sympy.Matrix([list(p) for p in points])
    m, n = rows.shape
    return [sympy.expand(rows.extract(list(range(m)), list(cols)).det()) for cols in plucker_subsets(n, m)]


def plucker_ambient(field: Any, n: int, k: int, prefix: str = "p") -> ProjectiveSpace:
    """P^(C(n, k+1) - 1) with variables ``prefix_0 .. prefix_N``."""
    N = math.comb(n, k + 1) - 1
    return ProjectiveSpace(field, N, tuple(f"{prefix}_{i}" for i in range(N + 1)))


def embed_in_grassmannian(
    plane: GenericPlane,
    incidence: PlaneIncidence,
    grass_ambient: ProjectiveSpace,
    config: Optional[EngineConfig] = None,
) -> Scheme:
    S2 = QuotientRing(plane.ring, incidence.ideal)
    M2 = plane.point_matrix(S2)
    minors = M2.minors(plane.k + 1)
    gr = RingHomomorphism(grass_ambient.coordinate_ring, S2, minors)
    return Scheme(grass_ambient, kernel(gr, config=config))


# =============================================================================
# Entry points
# =============================================================================


def fano_scheme_in_ambient(
    X: Any, k: int, grass_ambient: Any, *, config: Optional[FanoConfig] = None
) -> Scheme:
    """
    F_k(X) as a subscheme of ``grass_ambient``, which must be a projective
    space of dimension C(r+1, k+1) - 1 over the base field of X.
    """
    config = config or FanoConfig()
    t0 = time.perf_counter()

    validate_projective(X)
    R = X.ambient_space.coordinate_ring
    n = R.rank
    k = validate_plane_dimension(k, n - 1)
    validate_ambient_type(grass_ambient, R.field)
    validate_ambient_dimension(n, k, grass_ambient)
    check_base_field(R.field, config)

    engine = config.engine
    plane = build_generic_plane(R, k)
    incidence = pull_back_and_reduce(X.defining_ideal(engine), plane, config=engine)
    fano = embed_in_grassmannian(plane, incidence, grass_ambient, config=engine)

    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    _logger.info(
        "F_%d of a scheme in P^%d: %d equations in P^%d (%.1f ms)",
        k, n - 1, len(fano.equations), grass_ambient.dimension, elapsed_ms,
    )
    return fano


def fano_scheme(X: Any, k: int, *, config: Optional[FanoConfig] = None) -> Scheme:
    """F_k(X) in a synthesized Plücker space of dimension C(r+1, k+1) - 1."""
    config = config or FanoConfig()
    validate_projective(X)
    R = X.ambient_space.coordinate_ring
    k = validate_plane_dimension(k, R.rank - 1)
    grass_ambient = plucker_ambient(R.field, R.rank, k, prefix=config.plucker_prefix)
    return fano_scheme_in_ambient(X, k, grass_ambient, config=config)


def grassmannian(k: int, n: int, grass_ambient: Any, *, config: Optional[FanoConfig] = None) -> Scheme:
    """G(k, n) as F_k(P^n), inside ``grass_ambient`` of dimension C(n+1, k+1) - 1."""
    validate_ambient_type(grass_ambient)
    P = ProjectiveSpace(grass_ambient.field, n)
    return fano_scheme_in_ambient(P, k, grass_ambient, config=config)


def _require_projective_space(P: Any) -> None:
    if not isinstance(P, ProjectiveSpace):
        raise NotProjectiveSpaceError(P)


def grassmannian_of(k: int, P: ProjectiveSpace, *, config: Optional[FanoConfig] = None) -> Scheme:
    _require_projective_space(P)
    return fano_scheme(P, k, config=config)


def grassmannian_of_in_ambient(
    k: int, P: ProjectiveSpace, grass_ambient: Any, *, config: Optional[FanoConfig] = None
) -> Scheme:
    _require_projective_space(P)
    return fano_scheme_in_ambient(P, k, grass_ambient, config=config)


# =============================================================================
# Self-test and CLI
# =============================================================================


def _self_test() -> Dict[str, Any]:
    """
    Deterministic checks on small inputs:
      - G(1,3) is the Plücker quadric p_2*p_3 - p_1*p_4 + p_0*p_5
      - F_0 of a conic is the conic itself
    """
    results: Dict[str, Any] = {"ok": True, "tests": []}

    def record(name: str, passed: bool, detail: str = "") -> None:
        results["tests"].append({"name": name, "passed": passed, "detail": detail})
        if not passed:
            results["ok"] = False
            _logger.error("SELF-TEST FAILED: %s - %s", name, detail)

    try:
        A = ProjectiveSpace(sympy.QQ, 5, tuple(f"p_{i}" for i in range(6)))
        G = grassmannian(1, 3, A)
        p = sympy.symbols("p_0:6")
        expected = Ideal(A.coordinate_ring, [p[2] * p[3] - p[1] * p[4] + p[0] * p[5]])
        assert G.defining_ideal() == expected, f"got {G.equations}"
        record("plucker_quadric_G13", True)
    except Exception as e:
        record("plucker_quadric_G13", False, str(e))

    try:
        P = ProjectiveSpace(sympy.QQ, 2)
        x0, x1, x2 = P.coordinate_ring.symbols
        F0 = fano_scheme(Scheme(P, x0 * x1 - x2 ** 2), 0)
        p0, p1, p2 = F0.coordinate_ring.symbols
        expected = Ideal(F0.coordinate_ring, [p0 * p1 - p2 ** 2])
        assert F0.defining_ideal() == expected, f"got {F0.equations}"
        record("points_on_conic", True)
    except Exception as e:
        record("points_on_conic", False, str(e))

    if not results["ok"]:
        raise RuntimeError("fano_scheme self-test failed; deployment must abort")
    return results


def _parse_field(characteristic: int):
    if characteristic == 0:
        return sympy.QQ
    if characteristic < 0 or not sympy.isprime(characteristic):
        raise ValueError(f"--characteristic must be 0 or a prime, got {characteristic}")
    return sympy.GF(characteristic)


def _parse_equations(texts: Sequence[str], names: Sequence[str]) -> List[sympy.Expr]:
    local = {name: sympy.Symbol(name) for name in names}
    transformations = standard_transformations + (convert_xor,)
    out = []
    for text in texts:
        expr = parse_expr(text, local_dict=local, transformations=transformations)
        stray = {str(s) for s in expr.free_symbols} - set(names)
        if stray:
            raise ValueError(f"equation {text!r} uses unknown variables {sorted(stray)}")
        out.append(expr)
    return out


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fano scheme of k-planes on a projective variety (Plücker coordinates)")
    parser.add_argument("--variables", default="x,y,z,w", help="comma-separated coordinates of P^r (default: x,y,z,w)")
    parser.add_argument("--equation", action="append", default=[], help="defining equation of X (repeatable)")
    parser.add_argument("-k", "--plane-dim", type=int, help="dimension k of the planes")
    parser.add_argument("--ambient-dim", type=int, help="explicit Plücker ambient dimension (default: C(r+1,k+1)-1)")
    parser.add_argument("--characteristic", type=int, default=0, help="0 for QQ, or a prime p for GF(p)")
    parser.add_argument("--grassmannian", action="store_true", help="compute G(k, r) and ignore --equation")
    parser.add_argument("--method", choices=GROEBNER_METHODS, help="Groebner algorithm (default: FANO_GROEBNER_METHOD or buchberger)")
    parser.add_argument("--invariants", action="store_true", help="also print dimension and degree")
    parser.add_argument("--self-test", action="store_true", help="run the built-in self-test and exit")
    parser.add_argument("--quiet", action="store_true", help="suppress logs")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.self_test:
        try:
            out = _self_test()
        except RuntimeError as ex:
            print(f"[FATAL] {ex}")
            return 1
        print(f"[SELF-TEST] ok={int(out['ok'])} tests={len(out['tests'])}")
        return 0

    try:
        if args.plane_dim is None:
            raise ValueError("-k/--plane-dim is required")
        config = FanoConfig.from_env(groebner_method=args.method)
        field = _parse_field(args.characteristic)
        names = tuple(v.strip() for v in args.variables.split(",") if v.strip())
        P = ProjectiveSpace(field, len(names) - 1, names)

        ambient = None
        if args.ambient_dim is not None:
            if args.ambient_dim < 0:
                raise ValueError(f"--ambient-dim must be non-negative, got {args.ambient_dim}")
            ambient = ProjectiveSpace(
                field, args.ambient_dim, tuple(f"{config.plucker_prefix}_{i}" for i in range(args.ambient_dim + 1))
            )

        if args.grassmannian:
            if ambient is None:
                result = grassmannian_of(args.plane_dim, P, config=config)
            else:
                result = grassmannian_of_in_ambient(args.plane_dim, P, ambient, config=config)
        else:
            X = Scheme(P, _parse_equations(args.equation, names)) if args.equation else P
            if ambient is None:
                result = fano_scheme(X, args.plane_dim, config=config)
            else:
                result = fano_scheme_in_ambient(X, args.plane_dim, ambient, config=config)

        for eq in result.equations or [0]:
            print(eq)
        if args.invariants:
            print(f"[INVARIANTS] dimension={result.dimension()} degree={result.degree()}")
        return 0
    except (FanoSchemeError, ValueError) as ex:
        print(f"[FATAL] {ex}")
        return 1


__all__ = [
    "FanoSchemeError",
    "NotProjectiveError",
    "NotProjectiveSpaceError",
    "AmbientTypeError",
    "DimensionMismatchError",
    "PlaneDimensionError",
    "FiniteFieldError",
    "FiniteBaseFieldWarning",
    "FanoConfig",
    "validate_projective",
    "validate_plane_dimension",
    "validate_ambient_type",
    "validate_ambient_dimension",
    "check_base_field",
    "point_variable_index",
    "PlanePoint",
    "GenericPlane",
    "build_generic_plane",
    "PlaneIncidence",
    "eliminate_plane_variables",
    "pull_back_and_reduce",
    "plucker_subsets",
    "plucker_coordinates",
    "plucker_ambient",
    "embed_in_grassmannian",
    "fano_scheme_in_ambient",
    "fano_scheme",
    "grassmannian",
    "grassmannian_of",
    "grassmannian_of_in_ambient",
]


if __name__ == "__main__":
    raise SystemExit(main())
