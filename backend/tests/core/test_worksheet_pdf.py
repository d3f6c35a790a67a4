"""Worksheet PDF — layout content, answer key placement and filenames."""

import io
from datetime import date

from pypdf import PdfReader

from tutorassist.core.worksheet_pdf import (
    WorksheetQuestion, answer_text, render_worksheet, safe_filename, step_text,
)


def _pages(data: bytes) -> list[str]:
    return [page.extract_text() or "" for page in PdfReader(io.BytesIO(data)).pages]


def _question(**overrides) -> WorksheetQuestion:
    values = {
        "prompt": "Solve \\(2x + 3 = 7\\)",
        "topic_name": "Linear Equations",
        "difficulty": 2,
        "answer": "2",
        "hints": ["Subtract 3 from both sides"],
        "solution_steps": ["2x = 4", "x = 2"],
    }
    values.update(overrides)
    return WorksheetQuestion(**values)


def test_questions_only_by_default():
    data = render_worksheet("Homework", [_question()], printed_on=date(2026, 3, 4))
    assert data.startswith(b"%PDF")
    pages = _pages(data)
    assert len(pages) == 1
    assert "Homework" in pages[0]
    assert "04/03/2026" in pages[0]
    assert "Solve 2x + 3 = 7" in pages[0]
    assert "Hints" not in pages[0]
    assert "Answer Key" not in pages[0]


def test_answer_key_starts_a_new_page():
    pages = _pages(render_worksheet(
        "Homework", [_question(), _question(prompt="Solve 5x = 10", answer="2")],
        include_answers=True, include_hints=True,
    ))
    assert len(pages) == 2
    assert "Subtract 3 from both sides" in pages[0]
    assert "Answer Key" in pages[1]
    assert "x = 2" in pages[1]


def test_long_worksheets_break_pages():
    questions = [_question(prompt=f"Question text {i} " * 30) for i in range(12)]
    assert len(_pages(render_worksheet("Long", questions))) > 1


def test_answer_text_shapes():
    assert answer_text({"value": "2", "latex": "\\(2\\)"}) == "2"
    assert answer_text({"value": 7}) == "7"
    assert answer_text({"choices": [{"text": "3"}, {"text": "5"}], "correct": 1}) == "B. 5"
    assert answer_text({}) is None


def test_step_text_joins_step_and_result():
    assert step_text({"step": "Divide", "latex": "\\(x = 4\\)"}) == "Divide: x = 4"
    assert step_text("x = 4") == "x = 4"


def test_safe_filename():
    assert safe_filename("Week 3: Algebra!") == "Week_3__Algebra_.pdf"
