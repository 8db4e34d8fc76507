"""
Model Terms Module
==================

Explicit, enumerable term sets for linear models.

A term is a main effect (one variable) or an interaction (two or more
variables). A TermSet is the candidate universe of a full model together
with its requirement graph: every interaction requires the main effects of
its variables and any lower-order interaction over a subset of them that
is part of the universe.

Classes:
    - Term: Immutable main effect or interaction
    - TermSet: Ordered candidate universe with hierarchy checks
"""

import logging
from typing import Collection, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from patsy import ModelDesc, PatsyError

logger = logging.getLogger(__name__)

INTERACTION_SEP = ':'


class Term:
    """
    A single model term.

    Two terms are equal when they cover the same set of variables, so
    ``Wind:Temp`` and ``Temp:Wind`` are the same term. The label keeps
    the order in which the variables were given.
    """

    __slots__ = ('variables', '_key')

    def __init__(self, variables: Union[str, Sequence[str]]):
        if isinstance(variables, str):
            variables = [variables]

        cleaned: List[str] = []
        for name in variables:
            name = str(name).strip()
            if not name:
                raise ValueError("Term variables must be non-empty names")
            if name in cleaned:
                raise ValueError(f"Variable '{name}' repeated in term {variables}")
            cleaned.append(name)

        if not cleaned:
            raise ValueError("A term needs at least one variable")

        self.variables: Tuple[str, ...] = tuple(cleaned)
        self._key = frozenset(cleaned)

    @classmethod
    def parse(cls, text: str) -> 'Term':
        """Parse ``"Wind"`` or ``"Wind:Temp"``."""
        return cls(text.split(INTERACTION_SEP))

    @property
    def label(self) -> str:
        return INTERACTION_SEP.join(self.variables)

    @property
    def degree(self) -> int:
        return len(self.variables)

    @property
    def is_interaction(self) -> bool:
        return self.degree > 1

    def covers(self, other: 'Term') -> bool:
        """True if ``other`` is built from a strict subset of this term's variables."""
        return other._key < self._key

    def __eq__(self, other) -> bool:
        if not isinstance(other, Term):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __repr__(self) -> str:
        return f"Term({self.label!r})"

    def __str__(self) -> str:
        return self.label


TermLike = Union[Term, str, Sequence[str]]


def as_term(value: TermLike) -> Term:
    """Coerce a label, a variable list or a Term into a Term."""
    if isinstance(value, Term):
        return value
    if isinstance(value, str):
        return Term.parse(value)
    return Term(value)


def factor_code(name: str, categorical: bool = False) -> str:
    """Patsy code for one variable, e.g. ``Q('Solar.R')`` or ``C(Q('Month'))``."""
    code = f"Q({name!r})"
    return f"C({code})" if categorical else code


class TermSet:
    """
    Ordered candidate universe of model terms.

    The universe order is the tie-break order used everywhere: whenever two
    terms score the same, the one listed first wins.
    """

    def __init__(self, terms: Iterable[TermLike]):
        ordered: List[Term] = []
        for item in terms:
            term = as_term(item)
            if term in ordered:
                raise ValueError(f"Duplicate term in universe: {term.label}")
            ordered.append(term)

        self.terms: Tuple[Term, ...] = tuple(ordered)
        self._index: Dict[Term, int] = {term: i for i, term in enumerate(self.terms)}
        self._requirements: Dict[Term, Tuple[Term, ...]] = {}

        for term in self.terms:
            if not term.is_interaction:
                self._requirements[term] = ()
                continue

            missing = [v for v in term.variables if Term(v) not in self._index]
            if missing:
                raise ValueError(
                    f"Interaction {term.label} requires main effects {missing} "
                    f"which are not in the term set"
                )
            required = [t for t in self.terms if term.covers(t)]
            self._requirements[term] = tuple(required)

        logger.debug(
            "TermSet with %d terms (%d interactions)",
            len(self.terms), sum(t.is_interaction for t in self.terms)
        )

    @classmethod
    def from_predictors(
        cls,
        predictors: Sequence[str],
        interactions: Optional[Sequence[TermLike]] = None
    ) -> 'TermSet':
        """
        Build a universe of main effects followed by interaction terms.

        Args:
            predictors: Variable names used as main effects
            interactions: Interaction terms as ``"A:B"`` strings or name lists

        Returns:
            TermSet in the given order
        """
        terms: List[TermLike] = [Term(name) for name in predictors]
        for item in interactions or []:
            terms.append(as_term(item))
        return cls(terms)

    @classmethod
    def parse(cls, spec: str) -> 'TermSet':
        """
        Parse a right-hand side such as ``"Solar.R + Wind * Temp"``.

        Uses the patsy formula language: ``+`` separates terms, ``:`` builds
        an interaction, ``A * B`` expands to ``A + B + A:B`` and ``-`` drops
        a term. The intercept is implicit and never part of the universe.
        """
        try:
            desc = ModelDesc.from_formula(spec)
        except PatsyError as e:
            raise ValueError(f"Invalid term formula '{spec}': {e}") from e

        if desc.lhs_termlist:
            raise ValueError(f"Term formula '{spec}' must not name a response")

        terms = [
            Term([factor.code for factor in term.factors])
            for term in desc.rhs_termlist
            if term.factors
        ]
        return cls(terms)

    @property
    def variables(self) -> List[str]:
        """Distinct variable names in universe order."""
        seen: List[str] = []
        for term in self.terms:
            for name in term.variables:
                if name not in seen:
                    seen.append(name)
        return seen

    def index(self, term: TermLike) -> int:
        term = as_term(term)
        if term not in self._index:
            raise ValueError(f"Term {term.label} is not in the term set")
        return self._index[term]

    def order(self, terms: Iterable[TermLike]) -> List[Term]:
        """Return ``terms`` sorted by universe order."""
        return sorted((as_term(t) for t in terms), key=self.index)

    def requires(self, term: TermLike) -> Tuple[Term, ...]:
        """Terms that must be present whenever ``term`` is present."""
        term = as_term(term)
        self.index(term)
        return self._requirements[term]

    def required_by(self, term: TermLike, present: Iterable[TermLike]) -> List[Term]:
        """Terms in ``present`` that depend on ``term``."""
        term = as_term(term)
        return [p for p in map(as_term, present) if term in self._requirements.get(p, ())]

    def can_remove(self, term: TermLike, present: Sequence[TermLike]) -> bool:
        """A term can go when it is present and nothing present depends on it."""
        term = as_term(term)
        present = [as_term(p) for p in present]
        return term in present and not self.required_by(term, present)

    def can_add(self, term: TermLike, present: Sequence[TermLike]) -> bool:
        """A term can come in once everything it requires is already present."""
        term = as_term(term)
        present = [as_term(p) for p in present]
        if term in present:
            return False
        return all(req in present for req in self.requires(term))

    def is_hierarchical(self, present: Sequence[TermLike]) -> bool:
        present = [as_term(p) for p in present]
        return all(req in present for term in present for req in self.requires(term))

    def formula(self, response: str, present: Optional[Sequence[TermLike]] = None) -> str:
        """Render ``response ~ a + b + a:b`` (``~ 1`` for the intercept-only model)."""
        terms = self.terms if present is None else self.order(present)
        rhs = ' + '.join(t.label for t in terms) if terms else '1'
        return f"{response} ~ {rhs}"

    def design_formula(
        self,
        present: Optional[Sequence[TermLike]] = None,
        categorical: Collection[str] = ()
    ) -> str:
        """
        Render the patsy right-hand side for ``present``.

        Every variable is quoted with ``Q()`` so names such as ``Solar.R``
        survive; variables in ``categorical`` are wrapped in ``C()``.
        """
        terms = self.terms if present is None else self.order(present)
        if not terms:
            return '1'
        return ' + '.join(
            INTERACTION_SEP.join(factor_code(v, v in categorical) for v in term.variables)
            for term in terms
        )

    def __iter__(self) -> Iterator[Term]:
        return iter(self.terms)

    def __len__(self) -> int:
        return len(self.terms)

    def __contains__(self, item) -> bool:
        try:
            return as_term(item) in self._index
        except ValueError:
            return False

    def __repr__(self) -> str:
        return f"TermSet([{', '.join(t.label for t in self.terms)}])"
