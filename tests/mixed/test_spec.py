"""
Tests for ModelSpec: construction, validation and formula parsing.
"""

import pytest

from pynested import Criterion, FixedTerm, ModelSpec, RandomTerm, ValidationError


# ═══════════════════════════════════════════════════════════════════════
# Terms
# ═══════════════════════════════════════════════════════════════════════


class TestTerms:

    def test_fixed_term_parse(self):
        term = FixedTerm.parse('origin:treatment')
        assert term.factors == ('origin', 'treatment')
        assert term.order == 2
        assert term.name == 'origin:treatment'

    def test_interaction_order_free_identity(self):
        assert FixedTerm.parse('a:b').key == FixedTerm.parse('b:a').key

    def test_contains(self):
        ab = FixedTerm.parse('a:b')
        assert ab.contains(FixedTerm.parse('a'))
        assert not ab.contains(ab)
        assert not FixedTerm.parse('a').contains(ab)

    @pytest.mark.parametrize("bad", ['', 'a:', ':b', 'a::b', '1x', 'a b'])
    def test_malformed_fixed_term(self, bad):
        with pytest.raises(ValidationError):
            FixedTerm.parse(bad)

    def test_repeated_field_in_interaction(self):
        with pytest.raises(ValidationError, match="repeats"):
            FixedTerm.parse('a:a')

    def test_random_term(self):
        term = RandomTerm('individual', ('time',))
        assert term.terms == ('1', 'time')
        assert term.name == '(1 + time | individual)'
        assert RandomTerm('population').name == '(1 | population)'

    def test_random_slope_equal_to_group(self):
        with pytest.raises(ValidationError):
            RandomTerm('g', ('g',))


# ═══════════════════════════════════════════════════════════════════════
# ModelSpec
# ═══════════════════════════════════════════════════════════════════════


class TestModelSpec:

    def test_construction_normalizes(self):
        spec = ModelSpec(
            response='length',
            fixed_terms=['origin', 'treatment', 'origin:treatment'],
            random_terms=['population', 'individual'],
            criterion='ML',
        )
        assert spec.criterion is Criterion.FULL
        assert all(isinstance(t, FixedTerm) for t in spec.fixed_terms)
        assert spec.random_groupings == ('population', 'individual')
        assert spec.fixed_fields == ('origin', 'treatment')
        assert spec.fields == ('length', 'origin', 'treatment', 'population', 'individual')

    def test_criterion_aliases(self):
        assert Criterion.parse('restricted') is Criterion.RESTRICTED
        assert Criterion.parse('REML') is Criterion.RESTRICTED
        assert Criterion.parse('full') is Criterion.FULL
        with pytest.raises(ValidationError):
            Criterion.parse('OLS')

    def test_no_random_terms_allowed(self):
        spec = ModelSpec('length', fixed_terms=['origin'])
        assert spec.random_terms == ()
        assert spec.random_label == '(no random effects)'

    def test_duplicate_fixed_term(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            ModelSpec('y', fixed_terms=['a:b', 'b:a'])

    def test_duplicate_grouping(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            ModelSpec('y', random_terms=['g', 'g'])

    def test_response_as_predictor(self):
        with pytest.raises(ValidationError, match="Response"):
            ModelSpec('y', fixed_terms=['y'])

    def test_field_both_fixed_and_grouping(self):
        with pytest.raises(ValidationError, match="both"):
            ModelSpec('y', fixed_terms=['g'], random_terms=['g'])

    def test_empty_fixed_part(self):
        with pytest.raises(ValidationError, match="no fixed effects"):
            ModelSpec('y', intercept=False)

    def test_single_string_rejected(self):
        with pytest.raises(ValidationError, match="sequence"):
            ModelSpec('y', fixed_terms='origin')

    def test_frozen_and_derived(self):
        spec = ModelSpec('y', fixed_terms=['a'], random_terms=['g'])
        ml = spec.with_criterion('ML')
        assert spec.criterion is Criterion.RESTRICTED
        assert ml.criterion is Criterion.FULL
        assert ml.fixed_terms == spec.fixed_terms
        bare = spec.with_random_terms([])
        assert bare.random_terms == ()
        with pytest.raises(AttributeError):
            spec.response = 'z'

    def test_structure_identity_ignores_order(self):
        a = ModelSpec('y', fixed_terms=['a', 'b'], random_terms=['g', 'h'])
        b = ModelSpec('y', fixed_terms=['b', 'a'], random_terms=['h', 'g'])
        assert a.fixed_structure == b.fixed_structure
        assert a.random_structure == b.random_structure

    def test_cell_means_spec(self):
        spec = ModelSpec('y', fixed_terms=['a', 'b', 'a:b'], random_terms=['g'])
        cells = spec.cell_means_spec('_cell')
        assert not cells.intercept
        assert [t.name for t in cells.fixed_terms] == ['_cell']
        assert cells.random_terms == spec.random_terms


# ═══════════════════════════════════════════════════════════════════════
# Formula parsing
# ═══════════════════════════════════════════════════════════════════════


class TestFormula:

    def test_crossing_and_bars(self):
        spec = ModelSpec.from_formula(
            'length ~ origin * treatment + (1 | population) + (1 | individual)'
        )
        assert spec.response == 'length'
        assert [t.name for t in spec.fixed_terms] == ['origin', 'treatment', 'origin:treatment']
        assert spec.random_groupings == ('population', 'individual')
        assert spec.intercept

    def test_random_slope(self):
        spec = ModelSpec.from_formula('reaction ~ days + (1 + days | subject)')
        assert spec.random_terms == (RandomTerm('subject', ('days',)),)

    def test_no_intercept(self):
        assert not ModelSpec.from_formula('y ~ 0 + a').intercept
        assert not ModelSpec.from_formula('y ~ a - 1').intercept

    def test_criterion_passed(self):
        spec = ModelSpec.from_formula('y ~ a + (1 | g)', criterion='ML')
        assert spec.criterion is Criterion.FULL

    def test_formula_round_trip(self):
        spec = ModelSpec.from_formula('y ~ a * b + (1 | g)')
        assert ModelSpec.from_formula(spec.formula) == spec

    def test_intercept_only(self):
        spec = ModelSpec.from_formula('y ~ 1 + (1 | g)')
        assert spec.fixed_terms == ()
        assert spec.formula == 'y ~ 1 + (1 | g)'

    @pytest.mark.parametrize("bad", [
        'y a + b',
        'y ~ a ~ b',
        'y ~ a + (1 | population/individual)',
        'y ~ a + (0 + x | g)',
        'y ~ a + (1 | g',
        'y ~ a - b',
    ])
    def test_malformed(self, bad):
        with pytest.raises(ValidationError):
            ModelSpec.from_formula(bad)
