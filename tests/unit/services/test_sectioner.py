import hashlib

import pytest

from doclifecycle.services.sectioner import Sectioner


def test_blank_text_produces_no_sections() -> None:
    assert Sectioner().split("   \n\n  ") == []


def test_short_text_is_single_untitled_section() -> None:
    sections = Sectioner().split("Just a short note.")

    assert len(sections) == 1
    assert sections[0].section_index == 0
    assert sections[0].title is None
    assert sections[0].text == "Just a short note."
    assert sections[0].content_hash == hashlib.sha256(b"Just a short note.").hexdigest()


def test_headings_start_titled_sections() -> None:
    text = "Intro line.\n\n# Goals\nShip it.\n\n## Risks ##\nDelays."

    sections = Sectioner().split(text)

    assert [s.title for s in sections] == [None, "Goals", "Risks"]
    assert sections[1].text == "# Goals\nShip it."
    assert [s.section_index for s in sections] == [0, 1, 2]


def test_empty_preamble_is_skipped() -> None:
    sections = Sectioner().split("# Only heading\nBody")

    assert len(sections) == 1
    assert sections[0].title == "Only heading"


def test_long_body_packs_paragraphs() -> None:
    paragraphs = ["a" * 40, "b" * 40, "c" * 40]

    sections = Sectioner(max_section_chars=90).split("\n\n".join(paragraphs))

    assert [s.text for s in sections] == [f"{'a' * 40}\n\n{'b' * 40}", "c" * 40]
    assert all(len(s.text) <= 90 for s in sections)


def test_oversized_paragraph_is_hard_split() -> None:
    sections = Sectioner(max_section_chars=50).split("x" * 120)

    assert [len(s.text) for s in sections] == [50, 50, 20]


def test_sections_keep_heading_title_when_split() -> None:
    text = "# Long\n" + "\n\n".join(["word " * 10] * 4)

    sections = Sectioner(max_section_chars=60).split(text)

    assert len(sections) > 1
    assert all(s.title == "Long" for s in sections)


def test_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        Sectioner(max_section_chars=0)
