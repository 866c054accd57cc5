"""
Projective spaces, affine spaces and schemes embedded in them.

A scheme is a pair (ambient space, defining ideal). Spaces double as the
scheme they define (zero ideal), so any of them can be handed to the Fano
scheme pipeline as the input variety.

Numerical invariants (dimension, degree) come from the Hilbert series of the
leading-term ideal of a grevlex Groebner basis, which has the same Hilbert
function as the ideal itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from algebra_backend import EngineConfig, Ideal, PolynomialRing

_logger = logging.getLogger(__name__)


def _default_names(dimension: int, prefix: str) -> Tuple[str, ...]:
    return tuple(f"{prefix}_{i}" for i in range(dimension + 1))


@dataclass(frozen=True)
class ProjectiveSpace:
    """
    Projective space ``P^dimension`` over ``field``.

    The homogeneous coordinate ring has ``dimension + 1`` variables, named
    ``x_0 .. x_r`` unless ``names`` is given.
    """

    field: object
    dimension: int
    names: Optional[Tuple[str, ...]] = None

    is_projective = True

    def __post_init__(self) -> None:
        if not isinstance(self.dimension, int) or self.dimension < 0:
            raise ValueError(f"dimension must be a non-negative int, got {self.dimension!r}")
        names = _default_names(self.dimension, "x") if self.names is None else tuple(self.names)
        if len(names) != self.dimension + 1:
            raise ValueError(f"P^{self.dimension} needs {self.dimension + 1} variable names, got {len(names)}")
        object.__setattr__(self, "names", names)

    @property
    def coordinate_ring(self) -> PolynomialRing:
        return PolynomialRing(self.field, self.names)

    @property
    def base_field(self):
        return self.field

    @property
    def ambient_space(self) -> "ProjectiveSpace":
        return self

    def defining_ideal(self, config: Optional[EngineConfig] = None) -> Ideal:
        return Ideal(self.coordinate_ring, [], config=config)

    def __repr__(self) -> str:
        return f"Projective Space of dimension {self.dimension} over {self.field}, variables: {', '.join(self.names)}"


@dataclass(frozen=True)
class AffineSpace:
    """Affine space ``A^dimension``; coordinate ring has ``dimension`` variables."""

    field: object
    dimension: int
    names: Optional[Tuple[str, ...]] = None

    is_projective = False

    def __post_init__(self) -> None:
        if not isinstance(self.dimension, int) or self.dimension < 1:
            raise ValueError(f"dimension must be a positive int, got {self.dimension!r}")
        names = tuple(f"x_{i}" for i in range(1, self.dimension + 1)) if self.names is None else tuple(self.names)
        if len(names) != self.dimension:
            raise ValueError(f"A^{self.dimension} needs {self.dimension} variable names, got {len(names)}")
        object.__setattr__(self, "names", names)

    @property
    def coordinate_ring(self) -> PolynomialRing:
        return PolynomialRing(self.field, self.names)

    @property
    def base_field(self):
        return self.field

    @property
    def ambient_space(self) -> "AffineSpace":
        return self

    def defining_ideal(self, config: Optional[EngineConfig] = None) -> Ideal:
        return Ideal(self.coordinate_ring, [], config=config)

    def __repr__(self) -> str:
        return f"Affine Space of dimension {self.dimension} over {self.field}, variables: {', '.join(self.names)}"


class Scheme:
    """Closed subscheme of a projective or affine space."""

    def __init__(self, ambient, equations):
        self.ambient = ambient
        ring = ambient.coordinate_ring
        if isinstance(equations, Ideal):
            if equations.ring != ring:
                raise ValueError("defining ideal does not live in the ambient coordinate ring")
            ideal = equations
        else:
            if not isinstance(equations, (list, tuple)):
                equations = [equations]
            ideal = Ideal(ring, equations)
        if ambient.is_projective and not ideal.is_homogeneous():
            raise ValueError(f"equations of a projective scheme must be homogeneous: {ideal!r}")
        self._ideal = ideal

    @property
    def is_projective(self) -> bool:
        return self.ambient.is_projective

    @property
    def ambient_space(self):
        return self.ambient

    @property
    def coordinate_ring(self) -> PolynomialRing:
        return self.ambient.coordinate_ring

    @property
    def base_field(self):
        return self.ambient.base_field

    def defining_ideal(self, config: Optional[EngineConfig] = None) -> Ideal:
        if config is None or config == self._ideal.config:
            return self._ideal
        return Ideal(self._ideal.ring, self._ideal.generators, config=config)

    @property
    def equations(self) -> List:
        return [g.as_expr() for g in self._ideal.generators]

    def contains_point(self, coords: Sequence) -> bool:
        """True if every defining equation vanishes at ``coords``."""
        ring = self.coordinate_ring
        if len(coords) != ring.rank:
            raise ValueError(f"expected {ring.rank} coordinates, got {len(coords)}")
        subs = dict(zip(ring.symbols, coords))
        return all(g.as_expr().subs(subs) == 0 for g in self._ideal.generators)

    def dimension(self) -> int:
        """Dimension; ``-1`` for the empty scheme."""
        return _invariants(self)[0]

    def degree(self) -> int:
        """Degree of the top-dimensional part; ``0`` for the empty scheme."""
        return _invariants(self)[1]

    def __eq__(self, other) -> bool:
        if not isinstance(other, Scheme):
            return NotImplemented
        return self.ambient == other.ambient and self._ideal == other._ideal

    __hash__ = None

    def __repr__(self) -> str:
        eqs = "\n".join(f"    {e}" for e in self.equations) or "    0"
        return f"Scheme over {self.base_field} defined by\n{eqs}"


# ---------------------------------------------------------------------------
# Hilbert series of monomial ideals
# ---------------------------------------------------------------------------


def _divides(a: Tuple[int, ...], b: Tuple[int, ...]) -> bool:
    return all(x <= y for x, y in zip(a, b))


def _minimalize(monomials: Iterable[Tuple[int, ...]]) -> List[Tuple[int, ...]]:
    out: List[Tuple[int, ...]] = []
    for m in sorted(set(monomials), key=sum):
        if not any(_divides(g, m) for g in out):
            out.append(m)
    return out


def _sub_shifted(a: List[int], b: List[int], shift: int) -> List[int]:
    size = max(len(a), len(b) + shift)
    out = a + [0] * (size - len(a))
    for i, c in enumerate(b):
        out[i + shift] -= c
    return out


def hilbert_series_numerator(monomials: Iterable[Tuple[int, ...]]) -> List[int]:
    """
    Numerator ``N(t)`` of the Hilbert series ``N(t) / (1 - t)^n`` of
    ``K[x] / (monomials)``, as a coefficient list (index = power of ``t``).

    Uses ``N(I + (m)) = N(I) - t^deg(m) * N(I : m)``.
    """
    gens = _minimalize(monomials)
    if any(sum(m) == 0 for m in gens):
        return [0]
    if not gens:
        return [1]
    m = gens[-1]
    rest = gens[:-1]
    colon = [tuple(max(a - b, 0) for a, b in zip(g, m)) for g in rest]
    return _sub_shifted(
        hilbert_series_numerator(rest),
        hilbert_series_numerator(colon),
        sum(m),
    )


def dimension_and_degree(numerator: List[int], nvars: int, projective: bool = True) -> Tuple[int, int]:
    """
    Read (dimension, degree) off a Hilbert series numerator. Projective
    dimension is the Krull dimension minus one.
    """
    h = list(numerator)
    while h and h[-1] == 0:
        h.pop()
    if not h:
        return -1, 0
    poles = nvars
    while sum(h) == 0:
        # h(t) = (1 - t) q(t), q_i = h_0 + ... + h_i
        q: List[int] = []
        acc = 0
        for c in h[:-1]:
            acc += c
            q.append(acc)
        h = q
        poles -= 1
    krull = poles
    dim = krull - 1 if projective else krull
    if dim < 0:
        return -1, 0
    return dim, sum(h)


def _invariants(scheme: Scheme) -> Tuple[int, int]:
    ideal = scheme.defining_ideal()
    ring = ideal.ring
    lead = [g.monoms(order="grevlex")[0] for g in ideal.groebner_basis()]
    numerator = hilbert_series_numerator(lead)
    dim, deg = dimension_and_degree(numerator, ring.rank, projective=scheme.is_projective)
    _logger.debug("hilbert numerator %s over %d variables: dim=%d deg=%d", numerator, ring.rank, dim, deg)
    return dim, deg


__all__ = [
    "ProjectiveSpace",
    "AffineSpace",
    "Scheme",
    "hilbert_series_numerator",
    "dimension_and_degree",
]
