from datetime import datetime, timezone

from newsdesk import slug


def test_generate_basic():
    assert slug.generate(" Hello, World! ") == "hello-world"


def test_generate_collapses_hyphens_and_trims():
    assert slug.generate("--Ghana -- votes   today--") == "ghana-votes-today"


def test_generate_drops_non_ascii_word_characters():
    assert slug.generate("Café Déjà vu") == "caf-dj-vu"


def test_generate_empty():
    assert slug.generate("") == ""
    assert slug.generate(None) == ""
    assert slug.generate("!!!") == ""


def test_suffixed_uses_last_six_millisecond_digits():
    now = datetime(2026, 3, 6, 9, 0, 0, 123000, tzinfo=timezone.utc)
    millis = str(int(now.timestamp() * 1000))
    assert slug.generate_suffixed("Budget Vote", now) == f"budget-vote-{millis[-6:]}"


def test_suffixed_empty_title():
    assert slug.generate_suffixed("???") == ""
