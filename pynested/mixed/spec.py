"""
Model specification: the declarative description of one mixed model.

A ModelSpec names the response, the ordered fixed-effect terms (main
effects and interactions), the random-effect groupings and the estimation
criterion. It is an immutable value validated when it is constructed:
malformed terms are rejected here, not at fit time. Whether the named
fields exist is checked against a concrete table by validate_against().

Two ways to build one:

    spec = ModelSpec(
        response='length',
        fixed_terms=['origin', 'treatment', 'origin:treatment'],
        random_terms=['population', 'individual'],
        criterion='REML',
    )

    spec = ModelSpec.from_formula(
        'length ~ origin * treatment + (1 | population) + (1 | individual)'
    )
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Union

from pynested.core.exceptions import ValidationError

_NAME_RE = re.compile(r'^[A-Za-z_.][A-Za-z0-9_.]*$')
_BAR_RE = re.compile(r'\(([^()|]*)\|([^()|]*)\)')


class Criterion(str, Enum):
    """Estimation criterion.

    RESTRICTED (REML) integrates the fixed effects out before estimating
    variance components; its likelihoods are only comparable between
    models with identical fixed effects. FULL (ML) is the ordinary joint
    likelihood and is required whenever fixed effects differ.
    """
    RESTRICTED = 'REML'
    FULL = 'ML'

    @classmethod
    def parse(cls, value: 'Criterion | str') -> 'Criterion':
        if isinstance(value, Criterion):
            return value
        key = str(value).strip().upper()
        aliases = {
            'REML': cls.RESTRICTED, 'RESTRICTED': cls.RESTRICTED,
            'ML': cls.FULL, 'FULL': cls.FULL,
        }
        if key not in aliases:
            raise ValidationError(
                f"criterion must be 'REML'/'RESTRICTED' or 'ML'/'FULL', "
                f"got {value!r}"
            )
        return aliases[key]


def _check_name(name: str, what: str) -> str:
    if not isinstance(name, str):
        raise ValidationError(f"{what} must be a string, got {type(name).__name__}")
    name = name.strip()
    if not _NAME_RE.match(name):
        raise ValidationError(f"{what} {name!r} is not a valid field name")
    return name


@dataclass(frozen=True)
class FixedTerm:
    """One fixed-effect term: a main effect or an interaction.

    Attributes:
        factors: Field names in the term; one for a main effect, several
            for an interaction.
    """
    factors: tuple[str, ...]

    def __post_init__(self):
        if not self.factors:
            raise ValidationError("Fixed term has no fields")
        names = tuple(_check_name(f, 'Fixed term field') for f in self.factors)
        if len(set(names)) != len(names):
            raise ValidationError(
                f"Interaction {':'.join(names)!r} repeats a field"
            )
        object.__setattr__(self, 'factors', names)

    @classmethod
    def parse(cls, term: 'FixedTerm | str | Iterable[str]') -> 'FixedTerm':
        """Build from 'A', 'A:B', ('A', 'B') or an existing FixedTerm."""
        if isinstance(term, FixedTerm):
            return term
        if isinstance(term, str):
            if not term.strip():
                raise ValidationError("Empty fixed term")
            parts = term.split(':')
            if any(not p.strip() for p in parts):
                raise ValidationError(f"Malformed interaction term {term!r}")
            return cls(tuple(p.strip() for p in parts))
        return cls(tuple(term))

    @property
    def name(self) -> str:
        return ':'.join(self.factors)

    @property
    def order(self) -> int:
        return len(self.factors)

    @property
    def key(self) -> frozenset[str]:
        """Order-free identity ('A:B' is the same term as 'B:A')."""
        return frozenset(self.factors)

    def contains(self, other: 'FixedTerm') -> bool:
        """Whether this term is a higher-order relative of `other`.

        'A:B' contains 'A' and 'B'; a term does not contain itself.
        """
        return other.key < self.key

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class RandomTerm:
    """Random effects induced by one grouping field.

    Attributes:
        group: Grouping field; each of its levels gets a random intercept.
        slopes: Numeric fields with group-specific random slopes,
            correlated with the intercept.
    """
    group: str
    slopes: tuple[str, ...] = ()

    def __post_init__(self):
        group = _check_name(self.group, 'Random grouping')
        slopes = tuple(_check_name(s, 'Random slope') for s in self.slopes)
        if len(set(slopes)) != len(slopes):
            raise ValidationError(f"Random term for {group!r} repeats a slope")
        if group in slopes:
            raise ValidationError(
                f"Grouping {group!r} cannot also be its own random slope"
            )
        object.__setattr__(self, 'group', group)
        object.__setattr__(self, 'slopes', slopes)

    @classmethod
    def parse(cls, term: 'RandomTerm | str') -> 'RandomTerm':
        if isinstance(term, RandomTerm):
            return term
        return cls(term)

    @property
    def terms(self) -> tuple[str, ...]:
        """Per-group effect names, '1' being the intercept."""
        return ('1',) + self.slopes

    @property
    def name(self) -> str:
        return f"(1 | {self.group})" if not self.slopes else \
            f"(1 + {' + '.join(self.slopes)} | {self.group})"

    def __str__(self) -> str:
        return self.name


TermLike = Union[FixedTerm, str, Iterable[str]]


@dataclass(frozen=True)
class ModelSpec:
    """Immutable specification of a linear mixed model.

    Attributes:
        response: Numeric response field.
        fixed_terms: Ordered fixed-effect terms.
        random_terms: Random-effect groupings (may be empty, giving an
            ordinary regression).
        criterion: RESTRICTED (REML) or FULL (ML).
        intercept: Whether the fixed part has an intercept.

    Raises:
        ValidationError: On malformed or inconsistent terms.
    """
    response: str
    fixed_terms: tuple[FixedTerm, ...] = ()
    random_terms: tuple[RandomTerm, ...] = ()
    criterion: Criterion = Criterion.RESTRICTED
    intercept: bool = True

    def __post_init__(self):
        response = _check_name(self.response, 'Response')

        if isinstance(self.fixed_terms, (str, FixedTerm)):
            raise ValidationError(
                "fixed_terms must be a sequence of terms, not a single term"
            )
        fixed = tuple(FixedTerm.parse(t) for t in self.fixed_terms)
        seen = set()
        for term in fixed:
            if term.key in seen:
                raise ValidationError(f"Duplicate fixed term {term.name!r}")
            seen.add(term.key)

        if isinstance(self.random_terms, (str, RandomTerm)):
            raise ValidationError(
                "random_terms must be a sequence of groupings, not a single grouping"
            )
        random = tuple(RandomTerm.parse(t) for t in self.random_terms)
        groups = [r.group for r in random]
        if len(set(groups)) != len(groups):
            raise ValidationError(f"Duplicate random grouping in {groups}")

        if not fixed and not self.intercept:
            raise ValidationError("Model has no fixed effects (no terms, no intercept)")

        fixed_fields = {f for t in fixed for f in t.factors}
        if response in fixed_fields or response in groups:
            raise ValidationError(
                f"Response {response!r} is also used as a predictor or grouping"
            )
        for r in random:
            if response in r.slopes:
                raise ValidationError(
                    f"Response {response!r} is also used as a random slope"
                )
        clash = fixed_fields.intersection(groups)
        if clash:
            raise ValidationError(
                f"Field(s) {sorted(clash)} used both as fixed effect and "
                f"random grouping"
            )

        object.__setattr__(self, 'response', response)
        object.__setattr__(self, 'fixed_terms', fixed)
        object.__setattr__(self, 'random_terms', random)
        object.__setattr__(self, 'criterion', Criterion.parse(self.criterion))
        object.__setattr__(self, 'intercept', bool(self.intercept))

    # === Construction from formula ===

    @classmethod
    def from_formula(
        cls,
        formula: str,
        criterion: Criterion | str = Criterion.RESTRICTED,
    ) -> 'ModelSpec':
        """Parse an lme4-style formula into a ModelSpec.

        Supported: '+', ':' interactions, '*' crossing (A*B = A + B + A:B),
        '0' / '-1' to drop the intercept, random bars '(1 | g)' and
        '(1 + x | g)'. Nested bars ('a/b', 'a:b') are rejected; build a
        unique identifier column instead.

        Raises:
            ValidationError: If the formula is malformed.
        """
        if formula.count('~') != 1:
            raise ValidationError(f"Formula must contain exactly one '~': {formula!r}")
        lhs, rhs = formula.split('~')
        response = _check_name(lhs, 'Response')

        random = []
        for bar_lhs, bar_rhs in _BAR_RE.findall(rhs):
            random.append(_parse_bar(bar_lhs, bar_rhs))
        rest = _BAR_RE.sub('', rhs)
        if '|' in rest or '(' in rest or ')' in rest:
            raise ValidationError(f"Malformed random-effect term in {formula!r}")

        intercept = True
        terms: list[FixedTerm] = []
        pieces = rest.replace('-', '+-').split('+')
        for piece in (p.strip() for p in pieces):
            if not piece:
                continue
            if piece in ('0', '-1'):
                intercept = False
            elif piece == '1':
                intercept = True
            elif piece.startswith('-'):
                raise ValidationError(
                    f"Term removal {piece!r} is not supported in {formula!r}"
                )
            elif '*' in piece:
                terms.extend(_expand_crossing(piece))
            else:
                terms.append(FixedTerm.parse(piece))

        # Crossings overlap ('A*B + A'); keep first occurrence, order by degree
        unique: dict[frozenset, FixedTerm] = {}
        for term in terms:
            unique.setdefault(term.key, term)
        ordered = sorted(unique.values(), key=lambda t: t.order)

        return cls(
            response=response,
            fixed_terms=tuple(ordered),
            random_terms=tuple(random),
            criterion=criterion,
            intercept=intercept,
        )

    # === Derived views ===

    @property
    def random_groupings(self) -> tuple[str, ...]:
        return tuple(r.group for r in self.random_terms)

    @property
    def fixed_fields(self) -> tuple[str, ...]:
        """Distinct fields appearing in fixed terms, in order of appearance."""
        out: list[str] = []
        for term in self.fixed_terms:
            for f in term.factors:
                if f not in out:
                    out.append(f)
        return tuple(out)

    @property
    def fields(self) -> tuple[str, ...]:
        """Every table column the model reads."""
        out = [self.response, *self.fixed_fields, *self.random_groupings]
        for r in self.random_terms:
            out.extend(s for s in r.slopes if s not in out)
        return tuple(dict.fromkeys(out))

    @property
    def fixed_structure(self) -> tuple[bool, frozenset]:
        """Order-free identity of the fixed part."""
        return self.intercept, frozenset(t.key for t in self.fixed_terms)

    @property
    def random_structure(self) -> frozenset:
        """Order-free identity of the random part."""
        return frozenset((r.group, frozenset(r.slopes)) for r in self.random_terms)

    @property
    def formula(self) -> str:
        rhs = [t.name for t in self.fixed_terms]
        if not self.intercept:
            rhs.insert(0, '0')
        elif not rhs:
            rhs.append('1')
        rhs.extend(r.name for r in self.random_terms)
        return f"{self.response} ~ {' + '.join(rhs)}"

    @property
    def random_label(self) -> str:
        """Short label of the random structure, used in comparison tables."""
        if not self.random_terms:
            return '(no random effects)'
        return ' + '.join(r.name for r in self.random_terms)

    # === Derived specs (never mutate) ===

    def with_criterion(self, criterion: Criterion | str) -> 'ModelSpec':
        return dataclasses.replace(self, criterion=Criterion.parse(criterion))

    def with_random_terms(self, random_terms: Iterable[RandomTerm | str]) -> 'ModelSpec':
        return dataclasses.replace(self, random_terms=tuple(random_terms))

    def with_fixed_terms(
        self,
        fixed_terms: Iterable[TermLike],
        intercept: bool | None = None,
    ) -> 'ModelSpec':
        return dataclasses.replace(
            self,
            fixed_terms=tuple(fixed_terms),
            intercept=self.intercept if intercept is None else intercept,
        )

    def cell_means_spec(self, cell_field: str) -> 'ModelSpec':
        """Same random part and criterion, one mean per level of `cell_field`.

        `cell_field` is a column labelling the factor combination of each
        row; the result has no intercept, so every level gets its own
        coefficient.
        """
        return self.with_fixed_terms([FixedTerm((cell_field,))], intercept=False)

    # === Validation against data ===

    def validate_against(self, table) -> None:
        """Check every field exists with a usable type.

        Groupings may be numeric identifiers; they are always treated as
        labels.

        Raises:
            ValidationError: Unknown fields, categorical response or
                categorical random slope.
        """
        table.require(self.fields)
        if table.is_factor(self.response):
            raise ValidationError(
                f"Response {self.response!r} is categorical, expected numeric data"
            )
        for r in self.random_terms:
            for s in r.slopes:
                if table.is_factor(s):
                    raise ValidationError(
                        f"Random slope {s!r} is categorical, expected numeric data"
                    )

    def __str__(self) -> str:
        return f"{self.formula}  [{self.criterion.value}]"


def _parse_bar(bar_lhs: str, bar_rhs: str) -> RandomTerm:
    group = bar_rhs.strip()
    if '/' in group or ':' in group:
        raise ValidationError(
            f"Nested grouping {group!r} is not supported; add a column with "
            f"unique identifiers and use it as the grouping"
        )
    parts = [p.strip() for p in bar_lhs.replace('-', '+-').split('+')]
    parts = [p for p in parts if p]
    if not parts:
        raise ValidationError(f"Empty random term for grouping {group!r}")
    if '0' in parts or '-1' in parts:
        raise ValidationError(
            f"Random terms without intercept are not supported ({group!r})"
        )
    slopes = tuple(p for p in parts if p != '1')
    return RandomTerm(group, slopes)


def _expand_crossing(piece: str) -> list[FixedTerm]:
    """'A*B' -> A, B, A:B; each operand may itself be an interaction."""
    names = [p.strip() for p in piece.split('*')]
    if any(not n for n in names):
        raise ValidationError(f"Malformed crossing {piece!r}")
    operands = [FixedTerm.parse(n) for n in names]
    out = []
    for k in range(1, len(operands) + 1):
        for combo in combinations(operands, k):
            merged = dict.fromkeys(f for t in combo for f in t.factors)
            out.append(FixedTerm(tuple(merged)))
    return out
