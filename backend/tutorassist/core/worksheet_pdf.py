"""Worksheet PDF — renders questions (and optionally an answer key) to Letter-size PDF bytes.

Invariants:
    - Questions print in the order given, numbered from 1
    - LaTeX is flattened to plain text; there is no math typesetting
    - The answer key starts on a fresh page and follows question order
    - Hints print only when requested; solution steps only in the answer key
"""

import io
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from tutorassist.core.question_quality import strip_latex_to_plain_text

MARGIN = 50
LINE_HEIGHT = 14
QUESTION_SPACING = 30
QUESTION_MIN_SPACE = 100
ANSWER_MIN_SPACE = 80
IMMEDIATE_MAX_QUESTIONS = 20

DIFFICULTY_LABELS = {1: "EASY", 2: "EASY", 3: "MEDIUM", 4: "HARD", 5: "HARD"}
DIFFICULTY_COLORS = {
    "EASY": (0.2, 0.7, 0.3),
    "MEDIUM": (0.9, 0.7, 0.1),
    "HARD": (0.9, 0.3, 0.3),
}

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9]")


@dataclass
class WorksheetQuestion:
    prompt: str
    topic_name: str | None = None
    difficulty: int | None = None
    answer: str | None = None
    hints: list[str] = field(default_factory=list)
    solution_steps: list[str] = field(default_factory=list)


def safe_filename(title: str) -> str:
    return f"{_UNSAFE_FILENAME.sub('_', title or 'worksheet')}.pdf"


def answer_text(correct_answer: dict[str, Any] | None) -> str | None:
    answer = correct_answer or {}
    if answer.get("latex"):
        return strip_latex_to_plain_text(str(answer["latex"]))
    if answer.get("value") is not None:
        return str(answer["value"])
    choices = answer.get("choices")
    correct = answer.get("correct")
    if isinstance(choices, list) and isinstance(correct, int) and 0 <= correct < len(choices):
        choice = choices[correct]
        if isinstance(choice, dict):
            choice = choice.get("latex") or choice.get("text") or ""
        return f"{chr(ord('A') + correct)}. {strip_latex_to_plain_text(str(choice))}"
    return None


def step_text(step: Any) -> str:
    if isinstance(step, dict):
        parts = [step.get("step"), step.get("result") or step.get("latex")]
        return ": ".join(strip_latex_to_plain_text(str(p)) for p in parts if p)
    return strip_latex_to_plain_text(str(step))


class _Writer:
    """Top-down cursor over a canvas that breaks pages as it goes."""

    def __init__(self, title: str):
        self.buffer = io.BytesIO()
        self.width, self.height = LETTER
        self.canvas = canvas.Canvas(self.buffer, pagesize=LETTER)
        self.canvas.setTitle(title)
        self.y = self.height - MARGIN

    def new_page(self) -> None:
        self.canvas.showPage()
        self.y = self.height - MARGIN

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.new_page()

    def text(self, value: str, x: float, size: float, bold: bool = False, color=(0, 0, 0)) -> None:
        self.canvas.setFont("Helvetica-Bold" if bold else "Helvetica", size)
        self.canvas.setFillColorRGB(*color)
        self.canvas.drawString(x, self.y, value)

    def wrapped(self, value: str, x: float, size: float, bold: bool = False) -> None:
        font = "Helvetica-Bold" if bold else "Helvetica"
        for line in simpleSplit(value, font, size, self.width - MARGIN - x):
            self.ensure_space(LINE_HEIGHT)
            self.text(line, x, size, bold)
            self.y -= LINE_HEIGHT

    def finish(self) -> bytes:
        self.canvas.save()
        return self.buffer.getvalue()


def render_worksheet(
    title: str,
    questions: list[WorksheetQuestion],
    include_answers: bool = False,
    include_hints: bool = False,
    name_line: bool = True,
    printed_on: date | None = None,
) -> bytes:
    pdf = _Writer(title)

    pdf.text(title, MARGIN, 24, bold=True)
    pdf.y -= 40
    pdf.text((printed_on or date.today()).strftime("%d/%m/%Y"), MARGIN, 10, color=(0.4, 0.4, 0.4))
    pdf.y -= 30
    if name_line:
        pdf.text("Name: _______________________", MARGIN, 12)
        pdf.y -= 30

    for number, question in enumerate(questions, start=1):
        pdf.ensure_space(QUESTION_MIN_SPACE)
        pdf.text(f"Question {number}", MARGIN, 14, bold=True)
        pdf.text(f"[{question.topic_name or 'General'}]", MARGIN + 100, 10, color=(0.5, 0.5, 0.5))
        label = DIFFICULTY_LABELS.get(question.difficulty or 3, "MEDIUM")
        pdf.text(label, pdf.width - MARGIN - 50, 8, bold=True, color=DIFFICULTY_COLORS[label])
        pdf.y -= 20

        pdf.wrapped(strip_latex_to_plain_text(question.prompt), MARGIN, 11)

        if include_hints and question.hints:
            pdf.y -= 10
            pdf.text("Hints:", MARGIN + 20, 9, bold=True, color=(0.3, 0.3, 0.7))
            pdf.y -= 12
            for index, hint in enumerate(question.hints, start=1):
                pdf.wrapped(f"{index}. {strip_latex_to_plain_text(str(hint))}", MARGIN + 30, 9)

        pdf.y -= QUESTION_SPACING

    if include_answers:
        pdf.new_page()
        pdf.text("Answer Key", MARGIN, 20, bold=True)
        pdf.y -= 40
        for number, question in enumerate(questions, start=1):
            pdf.ensure_space(ANSWER_MIN_SPACE)
            pdf.text(f"{number}.", MARGIN, 12, bold=True)
            pdf.wrapped(question.answer or "No answer provided", MARGIN + 25, 11)
            if question.solution_steps:
                pdf.y -= 5
                pdf.text("Solution:", MARGIN + 25, 9, bold=True, color=(0.3, 0.5, 0.3))
                pdf.y -= 12
                for index, step in enumerate(question.solution_steps, start=1):
                    pdf.wrapped(f"{index}. {step}", MARGIN + 35, 9)
            pdf.y -= 20

    return pdf.finish()
