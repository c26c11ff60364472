import pytest

from malinali.languages import (
    Language,
    UnknownLanguageError,
    has_french_diacritics,
    is_consistent_with,
    looks_english,
    looks_french,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("en", Language.ENGLISH),
        ("English", Language.ENGLISH),
        (" FR ", Language.FRENCH),
        ("french", Language.FRENCH),
        ("ff", Language.FULA),
        ("Fula", Language.FULA),
        (Language.FULA, Language.FULA),
    ],
)
def test_parse_accepts_codes_and_names(value, expected):
    assert Language.parse(value) is expected


@pytest.mark.parametrize("value", ["", "   ", "de", "Klingon", None])
def test_parse_rejects_unknown(value):
    with pytest.raises(UnknownLanguageError):
        Language.parse(value)


def test_only_english_stems_aggressively():
    assert Language.ENGLISH.stems_aggressively
    assert not Language.FRENCH.stems_aggressively
    assert not Language.FULA.stems_aggressively


class TestHeuristics:

    def test_diacritics(self):
        assert has_french_diacritics("Ça va")
        assert has_french_diacritics("où")
        assert not has_french_diacritics("good morning")

    def test_english_rejects_french_diacritics(self):
        assert looks_english("thank you very much")
        assert not looks_english("merci beaucoup, à bientôt")

    def test_french_needs_diacritic_or_function_word(self):
        assert looks_french("la maison")
        assert looks_french("très bien")
        assert looks_french("Qui est là")
        assert not looks_french("good morning")

    def test_french_stop_words_match_whole_words_only(self):
        # "lesson" contains "les" but is not the word "les"
        assert not looks_french("lesson plan")

    def test_fula_accepts_everything(self):
        assert is_consistent_with("jam waali", Language.FULA)
        assert is_consistent_with("à la maison", Language.FULA)

    def test_dispatch_by_language(self):
        assert is_consistent_with("good morning", Language.ENGLISH)
        assert not is_consistent_with("good morning", Language.FRENCH)
        assert is_consistent_with("bonjour à tous", Language.FRENCH)
        assert not is_consistent_with("bonjour à tous", Language.ENGLISH)
