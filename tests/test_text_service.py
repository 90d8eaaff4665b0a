from supportdesk.services.text import contains_text, normalize_tags, slugify


def test_slugify_folds_accents_and_stamps() -> None:
    assert slugify("Réinitialiser  le mot de passe!", stamp=1700000000000) == "reinitialiser-le-mot-de-passe-1700000000000"
    assert slugify("???", stamp=1) == "article-1"


def test_normalize_tags_dedupes_case_insensitively() -> None:
    assert normalize_tags(["Billing", " billing ", "", "Two  Words"]) == ["billing", "two words"]
    assert normalize_tags(None) == []


def test_contains_text_ignores_case_and_accents() -> None:
    assert contains_text("facture", "Votre FACTURE mensuelle")
    assert contains_text("cafe", None, "Le Café")
    assert not contains_text("refund", "Billing cycles", None)
    assert contains_text("  ", "anything")
