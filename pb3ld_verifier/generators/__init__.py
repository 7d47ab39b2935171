from .exhaustive import ExhaustiveSchemaGenerator, ExhaustiveTransactionGenerator
from .fuzzy import FuzzySchemaGenerator, FuzzyTransactionGenerator


GENERATORS = {
    'exhaustive': (ExhaustiveSchemaGenerator, ExhaustiveTransactionGenerator),
    'fuzzy': (FuzzySchemaGenerator, FuzzyTransactionGenerator),
}
