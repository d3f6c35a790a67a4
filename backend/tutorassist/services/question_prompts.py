"""Question Prompts — system prompts and user-message builders for content generation.

Invariants:
    - Every generation prompt demands \\( \\) / \\[ \\] delimiters and a "latex"
      field on answers, matching what core/question_quality.py validates
    - Builders are pure string functions (no IO)

Design Decisions:
    - Shared sections (LaTeX rules, answer formats) composed into the system
      prompt once at import time
"""

import json
from typing import Any

LATEX_RULES = r"""
## LaTeX formatting rules

- Use \( ... \) for inline math, e.g. "Solve \(2x + 5 = 13\)"
- Use \[ ... \] for display math
- Never use bare $ or $$ delimiters, and never write math without delimiters
- Fractions: \frac{a}{b}; roots: \sqrt{x} or \sqrt[n]{x}; exponents: x^{12}
- Multiplication: \times; division: \div; inequalities: \leq, \geq, \neq
- Use \text{} only for real words inside math
"""

ANSWER_FORMATS = r"""
## correctAnswer formats

- multiple_choice: {"choices": [{"text": "5", "latex": "\\(5\\)"}, ...], "correct": <zero-based index>}
- short_answer / expression: {"value": "2x + 3", "latex": "\\(2x + 3\\)", "alternates": ["3 + 2x"]}
- numeric: {"value": 42.5, "latex": "\\(42.5\\)", "tolerance": 0.1, "unit": "meters"}
- true_false: {"value": true, "latex": "\\(\\text{True}\\)"}
- fill_blank: {"blanks": [{"position": 1, "value": "4", "latex": "\\(4\\)", "alternates": []}]}
- matching: {"pairs": [{"left": "...", "right": "..."}], "correctMatches": [0, 1]}
- long_answer: {"value": "model answer", "latex": "...", "rubric": ["key point"]}

Always include the "latex" field (except multiple_choice, where each choice carries it).
"""

OUTPUT_SHAPE = r"""
## Output

Each question object has:
{
  "questionLatex": "question text with \\( \\) delimiters",
  "answerType": "short_answer" | "long_answer" | "numeric" | "expression" | "multiple_choice" | "true_false" | "fill_blank" | "matching",
  "correctAnswer": { ... },
  "difficulty": 1-5,
  "hints": ["progressive hint 1", "hint 2"],
  "solutionSteps": [{"step": "what to do", "latex": "\\(work\\)", "result": "\\(result\\)"}],
  "tags": ["algebra", "linear-equations"]
}

Quality: unambiguous wording, 2-3 progressive hints that do not give the answer away,
complete step-by-step solutions, and double-checked arithmetic.
Respond with JSON only.
"""

QUESTION_GENERATION_SYSTEM_PROMPT = (
    "You are an expert math tutor generating high-quality, pedagogically sound "
    "practice questions for a tutoring platform.\n"
    + LATEX_RULES + ANSWER_FORMATS + OUTPUT_SHAPE
)

MATERIAL_ANALYSIS_SYSTEM_PROMPT = """You are a math curriculum analyzer. Extract and categorize the mathematical content of the provided text.

Respond with JSON only:
{
  "topics": ["main topics covered"],
  "concepts": ["specific concepts taught"],
  "keyTerms": ["important mathematical terms"],
  "equations": ["key equations in LaTeX"],
  "summary": "brief summary of the content"
}"""

IMAGE_TRANSCRIPTION_PROMPT = (
    "Extract all mathematical content, equations, problems, and text from this image. "
    "Format equations in LaTeX."
)

_DIFFICULTY_RANGES = {"easy": "1-2", "medium": "3", "hard": "4-5"}

_VARIATION_INSTRUCTIONS = {
    "harder": "Make this variant MORE CHALLENGING: add complexity, extra steps, or trickier numbers.",
    "easier": "Make this variant EASIER: simpler numbers, fewer steps, more straightforward.",
    "similar": "Create a similar variant with different numbers or context at the same difficulty.",
}


def difficulty_instruction(difficulty: str) -> str:
    if difficulty == "mixed":
        return "Include a mix of difficulties (1-5 scale)."
    return f"All questions should be {_DIFFICULTY_RANGES.get(difficulty, '3')} difficulty."


def build_generation_message(
    topic_name: str,
    topic_description: str | None,
    count: int,
    difficulty: str,
    style: str | None = None,
    material_text: str | None = None,
    existing_prompts: list[str] | None = None,
) -> str:
    parts = [
        f'Generate {count} practice questions for the topic: "{topic_name}"',
        f"Topic description: {topic_description or 'N/A'}",
        difficulty_instruction(difficulty),
    ]
    if style:
        parts.append(f"Question style preference: {style}")
    if material_text:
        parts.append(f"Base questions on this source material:\n{material_text}")
    if existing_prompts:
        parts.append(
            "IMPORTANT: Avoid generating questions similar to these existing ones:\n"
            + "\n".join(existing_prompts[:10]),
        )
    parts.append(
        f'Return a JSON object with a "questions" array containing exactly {count} questions.',
    )
    return "\n\n".join(parts)


def build_variant_message(
    prompt: str,
    correct_answer: dict[str, Any],
    topic_name: str | None,
    current_difficulty: int,
    target_difficulty: int,
    variation_type: str,
) -> str:
    return "\n\n".join([
        "Generate a variant of this math question.",
        f"Original question: {prompt}\n"
        f"Original answer: {json.dumps(correct_answer, default=str)}\n"
        f"Topic: {topic_name or 'Math'}\n"
        f"Current difficulty: {current_difficulty}",
        _VARIATION_INSTRUCTIONS.get(variation_type, _VARIATION_INSTRUCTIONS["similar"]),
        f"Target difficulty: {target_difficulty}",
        "Create ONE new question that tests the same concept. "
        'Return JSON with a single "question" object (not a "questions" array).',
    ])


def build_flag_review_message(payloads: list[dict]) -> str:
    return (
        f"Please analyze these {len(payloads)} flags and provide a recommendation for each:\n\n"
        f"{json.dumps(payloads, indent=2, default=str)}\n\n"
        'Respond with {"reviews": [...]}, one entry per flag, in the same order.'
    )


ASSIGNMENT_GENERATION_SYSTEM_PROMPT = (
    "You are an expert educational assistant helping tutors build personalized "
    "assignments for students.\n"
    + LATEX_RULES + ANSWER_FORMATS
    + r"""
## Task

1. Work out what kind of assignment the tutor is asking for
2. Take the student's history and weak areas into account when provided
3. Select matching questions from the question bank by index
4. Write NEW questions only to fill gaps the bank cannot cover

For adaptive difficulty start easy and build up; for weak-area focus include remedial
questions on the struggled topics.

## Output

Respond with JSON only:
{
  "title": "descriptive title",
  "description": "what the assignment covers",
  "reasoning": "why these questions",
  "selectedQuestionIndices": [0, 3, 5],
  "newQuestions": [
    {"questionLatex": "...", "answerType": "...", "correctAnswer": {...}, "difficulty": 1-5,
     "topicName": "...", "hints": ["..."], "solutionSteps": [{"step": "...", "latex": "..."}]}
  ],
  "suggestedDueDays": 7,
  "estimatedMinutes": 30
}
"""
)

ASSIGNMENT_REFINE_SYSTEM_PROMPT = r"""You are an expert educational assistant helping tutors refine assignments.

You receive an assignment and the tutor's refinement instructions. You may remove,
reorder, modify or add questions.

Respond with JSON only:
{
  "title": "updated or unchanged title",
  "description": "updated or unchanged description",
  "questions": [
    {"id": "existing id, or omit for a new question",
     "promptText": "...", "promptLatex": "...", "difficulty": 1-5, "topicName": "...",
     "answerType": "...", "correctAnswer": {"value": "..."}, "hints": ["..."],
     "solutionSteps": [{"step": "...", "result": "..."}]}
  ],
  "suggestedDueDate": "YYYY-MM-DD",
  "estimatedMinutes": 30,
  "changesMade": "brief summary of the changes"
}

List EVERY question of the refined assignment. Keep an existing question unchanged by
giving only its id. Use \( \) delimiters for math in new or edited questions."""


def build_assignment_message(
    prompt: str,
    question_count: int,
    difficulty: str,
    include_markscheme: bool,
    include_solution_steps: bool,
    student_context: str,
    topic_names: list[str],
    bank: list[dict],
) -> str:
    return "\n\n".join([
        f'Tutor\'s request: "{prompt}"',
        f"Target question count: {question_count}\n"
        f"Difficulty setting: {difficulty}\n"
        f"Include solutions/markscheme: {'Yes' if include_markscheme else 'No'}\n"
        f"Include step-by-step: {'Yes' if include_solution_steps else 'No'}",
        student_context,
        f"Available topics: {', '.join(topic_names) or 'None'}",
        f"Question bank:\n{json.dumps(bank, indent=2, default=str)}",
        "Prefer existing questions when they match; only generate new ones to fill gaps.",
    ])


def build_refine_message(assignment: dict, current: list[dict], bank: list[dict], request: str) -> str:
    return "\n\n".join([
        f"Current assignment:\nTitle: {assignment.get('title')}\n"
        f"Description: {assignment.get('description')}\n"
        f"Due date: {assignment.get('suggestedDueDate')}\n"
        f"Estimated time: {assignment.get('estimatedMinutes')} minutes\n"
        f"Topics: {', '.join(assignment.get('topicsCovered') or [])}",
        f"Current questions:\n{json.dumps(current, indent=2, default=str)}",
        f"Additional questions available:\n{json.dumps(bank, indent=2, default=str)}",
        f'Tutor\'s refinement request: "{request}"',
    ])
