"""Commutative-algebra backend for Fano scheme computations.

The goal of this module is to expose a minimal, deterministic API for the
subset of computer-algebra operations the Fano scheme pipeline relies on:
polynomial rings over a field, ideals with Groebner-backed membership,
ring homomorphisms and extension ideals, coefficient extraction, quotient
rings, matrix minors and homomorphism kernels (elimination ideals).

Every object is an explicit value: there is no ambient "current ring".
Groebner bases are delegated to ``sympy``; matrices are ``numpy`` object
arrays holding ring elements. Failures raised by sympy (coercion errors,
resource exhaustion) propagate unchanged.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as _np
import sympy
from sympy import Dummy, Poly, groebner

_logger = logging.getLogger(__name__)

GROEBNER_METHODS: Tuple[str, ...] = ("buchberger", "f5b")

# Groebner bases of ideals are computed in graded reverse lexicographic
# order; elimination uses pure lex with the eliminated variables first.
IDEAL_ORDER = "grevlex"
ELIMINATION_ORDER = "lex"


class AlgebraBackendError(RuntimeError):
    """Invalid use of the algebra backend (mismatched rings, bad arity)."""


@dataclass(frozen=True)
class EngineConfig:
    """Groebner engine settings shared by every ideal built from one call."""

    groebner_method: str = "buchberger"

    def __post_init__(self) -> None:
        if self.groebner_method not in GROEBNER_METHODS:
            raise AlgebraBackendError(
                f"groebner_method must be one of {list(GROEBNER_METHODS)}, got {self.groebner_method!r}"
            )


_DEFAULT_ENGINE = EngineConfig()


# ---------------------------------------------------------------------------
# Polynomial rings
# ---------------------------------------------------------------------------


def _require_field(domain) -> None:
    if not getattr(domain, "is_Field", False):
        raise AlgebraBackendError(f"base ring must be a field, got {domain!r}")


@dataclass(frozen=True)
class PolynomialRing:
    """
    Polynomial ring ``field[names...]``.

    ``field`` is a sympy domain (``QQ``, ``GF(p)``, ``QQ.algebraic_field(...)``).
    Two rings are equal exactly when field and variable names agree.
    """

    field: object
    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        _require_field(self.field)
        if len(self.names) == 0:
            raise AlgebraBackendError("a polynomial ring needs at least one variable")
        if len(set(self.names)) != len(self.names):
            raise AlgebraBackendError(f"variable names must be distinct, got {self.names}")
        object.__setattr__(self, "names", tuple(str(n) for n in self.names))

    @property
    def rank(self) -> int:
        return len(self.names)

    @property
    def symbols(self) -> Tuple[sympy.Symbol, ...]:
        return tuple(sympy.Symbol(n) for n in self.names)

    @property
    def gens(self) -> Tuple[Poly, ...]:
        return tuple(self(s) for s in self.symbols)

    def gen(self, i: int) -> Poly:
        """The ``i``-th variable, 0-based."""
        if not 0 <= i < self.rank:
            raise AlgebraBackendError(f"variable index {i} out of range [0, {self.rank})")
        return self(self.symbols[i])

    @property
    def zero(self) -> Poly:
        return self(0)

    @property
    def one(self) -> Poly:
        return self(1)

    def __call__(self, value) -> Poly:
        if isinstance(value, Poly):
            if value.gens == self.symbols and value.domain == self.field:
                return value
            value = value.as_expr()
        return Poly(value, *self.symbols, domain=self.field)

    def __repr__(self) -> str:
        return f"PolynomialRing({self.field}, {list(self.names)})"


# ---------------------------------------------------------------------------
# Ideals
# ---------------------------------------------------------------------------


class Ideal:
    """
    Ideal of a :class:`PolynomialRing` given by generators.

    Membership, normal forms and equality go through the reduced Groebner
    basis, computed on first use and kept on this instance only.
    """

    def __init__(self, ring: PolynomialRing, generators: Iterable, config: Optional[EngineConfig] = None):
        self.ring = ring
        self.config = config or _DEFAULT_ENGINE
        self.generators: List[Poly] = [g for g in (ring(x) for x in generators) if not g.is_zero]
        self._groebner = None

    def _basis_object(self):
        if self._groebner is None and self.generators:
            self._groebner = groebner(
                [g.as_expr() for g in self.generators],
                *self.ring.symbols,
                order=IDEAL_ORDER,
                method=self.config.groebner_method,
                domain=self.ring.field,
            )
        return self._groebner

    def groebner_basis(self) -> List[Poly]:
        """Reduced Groebner basis (grevlex), monic; empty for the zero ideal."""
        G = self._basis_object()
        if G is None:
            return []
        return [self.ring(e).monic() for e in G.exprs]

    def reduce(self, f) -> Poly:
        """Normal form of ``f`` modulo the ideal."""
        f = self.ring(f)
        G = self._basis_object()
        if G is None or f.is_zero:
            return f
        _, remainder = G.reduce(f.as_expr())
        return self.ring(remainder)

    def contains(self, f) -> bool:
        return self.reduce(f).is_zero

    def __contains__(self, f) -> bool:
        return self.contains(f)

    def is_zero(self) -> bool:
        return not self.generators

    def is_homogeneous(self) -> bool:
        return all(g.is_homogeneous for g in self.generators)

    def intersection(self, other: "Ideal") -> "Ideal":
        """``I ∩ J`` as the elimination of ``t`` from ``t*I + (1 - t)*J``."""
        if other.ring != self.ring:
            raise AlgebraBackendError("intersection requires ideals of the same ring")
        if self.is_zero() or other.is_zero():
            return Ideal(self.ring, [], config=self.config)
        t = Dummy("t")
        polys = [t * g.as_expr() for g in self.generators]
        polys += [(1 - t) * g.as_expr() for g in other.generators]
        G = groebner(
            polys,
            t,
            *self.ring.symbols,
            order=ELIMINATION_ORDER,
            method=self.config.groebner_method,
            domain=self.ring.field,
        )
        kept = [e for e in G.exprs if t not in e.free_symbols]
        return Ideal(self.ring, kept, config=self.config)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Ideal):
            return NotImplemented
        if other.ring != self.ring:
            return False
        mine = sorted(str(g.as_expr()) for g in self.groebner_basis())
        theirs = sorted(str(g.as_expr()) for g in other.groebner_basis())
        return mine == theirs

    __hash__ = None

    def __repr__(self) -> str:
        gens = ", ".join(str(g.as_expr()) for g in self.generators)
        return f"Ideal<{self.ring!r} | {gens}>"


def coefficients(f: Poly, var: Poly) -> List[Poly]:
    """
    Coefficients of ``f`` viewed as a polynomial in the variable ``var``.

    Entry ``d`` is the coefficient of ``var**d``, as a polynomial in the other
    variables of the same ring; zero coefficients are kept so the list has
    length ``deg_var(f) + 1``.
    """
    if not var.is_monomial or var.total_degree() != 1 or var.LC() != 1:
        raise AlgebraBackendError(f"expected a ring variable, got {var.as_expr()}")
    idx = var.monoms()[0].index(1)
    buckets: Dict[int, Dict[Tuple[int, ...], object]] = {}
    for monom, coeff in f.terms():
        e = monom[idx]
        stripped = monom[:idx] + (0,) + monom[idx + 1:]
        buckets.setdefault(e, {})[stripped] = coeff
    top = max(buckets) if buckets else 0
    out: List[Poly] = []
    for d in range(top + 1):
        terms = buckets.get(d)
        if terms:
            out.append(Poly.from_dict(terms, *f.gens, domain=f.domain))
        else:
            out.append(Poly(0, *f.gens, domain=f.domain))
    return out


# ---------------------------------------------------------------------------
# Quotient rings and homomorphisms
# ---------------------------------------------------------------------------


class QuotientRing:
    """``ring / ideal``; elements are represented by their normal forms."""

    def __init__(self, ring: PolynomialRing, ideal: Ideal):
        if ideal.ring != ring:
            raise AlgebraBackendError("quotient ideal must belong to the given ring")
        self.ring = ring
        self.ideal = ideal

    @property
    def field(self):
        return self.ring.field

    @property
    def gens(self) -> Tuple[Poly, ...]:
        return tuple(self(g) for g in self.ring.gens)

    def __call__(self, value) -> Poly:
        return self.ideal.reduce(self.ring(value))

    def __repr__(self) -> str:
        return f"QuotientRing({self.ring!r} / {len(self.ideal.generators)} relations)"


RingLike = Union[PolynomialRing, QuotientRing]


def _base_ring(ring: RingLike) -> PolynomialRing:
    return ring.ring if isinstance(ring, QuotientRing) else ring


class RingHomomorphism:
    """
    Homomorphism ``domain -> codomain`` given by the images of the domain's
    variables, in order.
    """

    def __init__(self, domain: PolynomialRing, codomain: RingLike, images: Sequence):
        images = list(images)
        if len(images) != domain.rank:
            raise AlgebraBackendError(
                f"homomorphism needs {domain.rank} images, got {len(images)}"
            )
        if _base_ring(codomain).field != domain.field:
            raise AlgebraBackendError("domain and codomain must share the base field")
        self.domain = domain
        self.codomain = codomain
        self.images: List[Poly] = [codomain(img) for img in images]

    def __call__(self, f) -> Poly:
        f = self.domain(f)
        target = _base_ring(self.codomain)
        result = target.zero
        for monom, coeff in f.terms():
            term = target.one
            for img, e in zip(self.images, monom):
                if e:
                    term = term * img ** e
            result = result + term.mul_ground(coeff)
        return self.codomain(result)

    def extend(self, ideal: Ideal) -> Ideal:
        """Extension ideal: the ideal generated by the image of ``ideal``."""
        if ideal.ring != self.domain:
            raise AlgebraBackendError("ideal does not belong to the homomorphism's domain")
        target = _base_ring(self.codomain)
        gens = [self(g) for g in ideal.generators]
        if isinstance(self.codomain, QuotientRing):
            gens += self.codomain.ideal.generators
        return Ideal(target, gens, config=ideal.config)

    def __repr__(self) -> str:
        return f"RingHomomorphism({self.domain!r} -> {self.codomain!r})"


def kernel(hom: RingHomomorphism, config: Optional[EngineConfig] = None) -> Ideal:
    """
    Kernel of ``hom: K[y] -> K[x]/Q`` (elimination ideal).

    A lex Groebner basis of ``Q + (t_i - h_i)`` is computed with the ``x``
    variables ordered before fresh symbols ``t_i``; the elements free of
    ``x`` generate the kernel. Variables that ``Q`` kills outright are
    dropped beforehand.
    """
    config = config or _DEFAULT_ENGINE
    source = hom.domain
    codomain = hom.codomain
    target = _base_ring(codomain)

    relations: List[Poly] = []
    if isinstance(codomain, QuotientRing):
        relations = codomain.ideal.groebner_basis()
    # Reduced basis: a generator equal to a variable means the variable is zero
    # and occurs in no other basis element nor in any normal form.
    killed = [g for g in relations if g.total_degree() == 1 and g.is_monomial]
    relations = [g for g in relations if not (g.total_degree() == 1 and g.is_monomial)]
    images = [codomain(img) for img in hom.images]

    used = set()
    for p in relations + images:
        used |= p.free_symbols
    elim_vars = [s for s in target.symbols if s in used]
    t_vars = [Dummy(f"t{i}") for i in range(source.rank)]
    system = [g.as_expr() for g in relations]
    system += [t - img.as_expr() for t, img in zip(t_vars, images)]
    _logger.debug(
        "kernel: %d killed variables, %d relations, eliminating %d of %d variables",
        len(killed), len(relations), len(elim_vars), target.rank,
    )

    G = groebner(
        system,
        *elim_vars,
        *t_vars,
        order=ELIMINATION_ORDER,
        method=config.groebner_method,
        domain=target.field,
    )
    t_set = set(t_vars)
    back = dict(zip(t_vars, source.symbols))
    kept = [e.xreplace(back) for e in G.exprs if e.free_symbols <= t_set]
    _logger.debug("kernel: lex basis size %d, %d elements survive elimination", len(G.exprs), len(kept))
    return Ideal(source, kept, config=config)


# ---------------------------------------------------------------------------
# Matrices over a ring
# ---------------------------------------------------------------------------


class Matrix:
    """Dense matrix of ring elements stored as a numpy object array."""

    def __init__(self, ring: RingLike, data):
        self.ring = ring
        rows = [[ring(x) for x in row] for row in data]
        if rows and any(len(r) != len(rows[0]) for r in rows):
            raise AlgebraBackendError("matrix rows must have equal length")
        self.data = _np.empty((len(rows), len(rows[0]) if rows else 0), dtype=object)
        for i, row in enumerate(rows):
            for j, x in enumerate(row):
                self.data[i, j] = x

    def nrows(self) -> int:
        return self.data.shape[0]

    def ncols(self) -> int:
        return self.data.shape[1]

    def __getitem__(self, key):
        return self.data[key]

    def submatrix(self, rows: Sequence[int], cols: Sequence[int]) -> "Matrix":
        return Matrix(self.ring, self.data[_np.ix_(list(rows), list(cols))].tolist())

    def det(self) -> Poly:
        if self.nrows() != self.ncols():
            raise AlgebraBackendError(f"determinant of a non-square {self.nrows()}x{self.ncols()} matrix")
        if self.nrows() == 0:
            return self.ring(1)
        exprs = sympy.Matrix([[x.as_expr() for x in row] for row in self.data.tolist()])
        return self.ring(sympy.expand(exprs.det(method="berkowitz")))

    def minors(self, m: int) -> List[Poly]:
        """
        All ``m x m`` minors, ordered by ascending lexicographic row subsets
        and, within each, ascending lexicographic column subsets.
        """
        if not 0 <= m <= min(self.nrows(), self.ncols()):
            raise AlgebraBackendError(f"minor size {m} invalid for {self.nrows()}x{self.ncols()} matrix")
        out: List[Poly] = []
        for rows in itertools.combinations(range(self.nrows()), m):
            for cols in itertools.combinations(range(self.ncols()), m):
                out.append(self.submatrix(rows, cols).det())
        return out

    def __repr__(self) -> str:
        return f"Matrix({self.nrows()}x{self.ncols()} over {self.ring!r})"


__all__ = [
    "AlgebraBackendError",
    "EngineConfig",
    "GROEBNER_METHODS",
    "PolynomialRing",
    "Ideal",
    "coefficients",
    "QuotientRing",
    "RingHomomorphism",
    "kernel",
    "Matrix",
]
