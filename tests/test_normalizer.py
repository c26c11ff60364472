import pytest

from malinali.languages import Language, UnknownLanguageError
from malinali.retrieval.normalizer import QueryNormalizer, match_terms, normalize


QUERIES = [
    "Running quickly through the forests",
    "Hello, world!",
    "generously generalizations",
    "Où est la bibliothèque ?",
    "notre maison",
    "a an of",
    "!!! ... ?",
    "Mi yiɗi ñaamde",
    "don't stop",
    "",
]


class TestEnglishBranch:

    def test_words_are_stemmed(self):
        assert normalize("running dogs", Language.ENGLISH) == "run dog"

    def test_punctuation_shell_is_kept(self):
        assert normalize("Hello, (Running)!", Language.ENGLISH) == "hello, (run)!"

    def test_short_words_only_lowercased(self):
        assert normalize("Is It OK", Language.ENGLISH) == "is it ok"

    def test_punctuation_only_tokens_unchanged(self):
        assert normalize("... !!", Language.ENGLISH) == "... !!"

    def test_whitespace_collapsed(self):
        assert normalize("  good \t morning \n", Language.ENGLISH) == "good morn"


class TestConservativeBranch:

    def test_french_is_only_lowercased(self):
        # English suffix rules would turn "notre" into "notr"
        assert normalize("Notre Maison", Language.FRENCH) == "notre maison"

    def test_fula_is_only_lowercased(self):
        assert normalize("Jam Waali", Language.FULA) == "jam waali"

    def test_branch_follows_declared_language(self):
        assert normalize("running", Language.ENGLISH) == "run"
        assert normalize("running", Language.FRENCH) == "running"
        assert normalize("running", Language.ENGLISH) == "run"

    def test_language_names_accepted(self):
        assert normalize("Running", "English") == "run"
        assert normalize("Running", "fr") == "running"

    def test_unknown_language_rejected(self):
        with pytest.raises(UnknownLanguageError):
            normalize("hello", "klingon")


@pytest.mark.parametrize("language", list(Language))
@pytest.mark.parametrize("query", QUERIES)
def test_normalize_is_idempotent(query, language):
    once = normalize(query, language)
    assert normalize(once, language) == once


def test_match_terms_extracts_word_runs():
    assert match_terms("hello, (run)! ...") == ["hello", "run"]
    assert match_terms("!!! ?") == []


def test_query_normalizer_binds_language():
    normalizer = QueryNormalizer("en")
    assert normalizer.language is Language.ENGLISH
    assert normalizer.tokens_for_match("Thanking you!") == ["thank", "you"]
