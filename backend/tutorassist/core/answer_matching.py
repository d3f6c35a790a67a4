"""Answer Matching — normalize and compare math answers typed in LaTeX, Unicode, or plain text.

Invariants:
    - normalize_math_answer is pure and idempotent on its own output
    - Comparisons never raise on malformed input; unparseable means "not equal"
    - Numeric tolerance is max(0.0001, |expected| * 0.0001) unless the caller supplies one
    - Comma-separated answers compare as sets ("x=2 or x=-2" == "-2, 2")

Design Decisions:
    - Ordered replacement tables (list of tuples), applied top to bottom: a command
      that shares a prefix with a shorter one is listed first (\\left before \\le)
    - _leading_float mimics lenient numeric prefix parsing ("3cm" -> 3.0) because
      student input routinely carries trailing units or symbols
    - Fraction parsing requires an explicit separator: "12" is twelve, never 1/2
"""

import math
import re

# ─── Replacement tables ──────────────────────────────────────────

_UNICODE_REPLACEMENTS: list[tuple[str, str]] = [
    ("×", "*"), ("·", "*"), ("÷", "/"),
    ("−", "-"), ("–", "-"), ("—", "-"),
    ("√", "sqrt"), ("∛", "cbrt"), ("π", "pi"), ("∞", "infinity"),
    ("≤", "<="), ("≥", ">="), ("≠", "!="), ("≈", "~="), ("±", "+-"),
    ("°", "deg"),
    ("²", "^2"), ("³", "^3"), ("⁴", "^4"), ("⁵", "^5"), ("⁶", "^6"),
    ("⁷", "^7"), ("⁸", "^8"), ("⁹", "^9"), ("⁰", "^0"),
    ("½", "(1/2)"), ("¼", "(1/4)"), ("¾", "(3/4)"), ("⅓", "(1/3)"),
    ("⅔", "(2/3)"), ("⅕", "(1/5)"), ("⅖", "(2/5)"), ("⅗", "(3/5)"),
    ("⅘", "(4/5)"), ("⅙", "(1/6)"), ("⅚", "(5/6)"), ("⅛", "(1/8)"),
    ("⅜", "(3/8)"), ("⅝", "(5/8)"), ("⅞", "(7/8)"),
    ("α", "alpha"), ("β", "beta"), ("γ", "gamma"), ("θ", "theta"),
    ("δ", "delta"), ("σ", "sigma"), ("∑", "sum"),
    ("λ", "lambda"), ("μ", "mu"), ("ω", "omega"),
]

# Input is lowercased before this table runs, so uppercase Greek (Δ, Σ) is
# already folded to δ / σ and handled above.
_LATEX_REPLACEMENTS: list[tuple[re.Pattern, str]] = [
    (re.compile(p), r) for p, r in [
        (r"\\times", "*"),
        (r"\\cdot", "*"),
        (r"\\div", "/"),
        (r"\\pm", "+-"),
        (r"\\mp", "-+"),
        (r"\\sqrt\[(\d+)\]\{([^}]*)\}", r"root(\1,\2)"),
        (r"\\sqrt\{([^}]*)\}", r"sqrt(\1)"),
        (r"\\sqrt", "sqrt"),
        (r"\\[dtc]?frac\{([^}]*)\}\{([^}]*)\}", r"(\1)/(\2)"),
        (r"\\left", ""),
        (r"\\right", ""),
        (r"\\pi", "pi"),
        (r"\\infty", "infinity"),
        (r"\\alpha", "alpha"),
        (r"\\beta", "beta"),
        (r"\\gamma", "gamma"),
        (r"\\theta", "theta"),
        (r"\\delta", "delta"),
        (r"\\sigma", "sigma"),
        (r"\\lambda", "lambda"),
        (r"\\mu", "mu"),
        (r"\\omega", "omega"),
        (r"\\arcsin", "arcsin"),
        (r"\\arccos", "arccos"),
        (r"\\arctan", "arctan"),
        (r"\\sin", "sin"),
        (r"\\cos", "cos"),
        (r"\\tan", "tan"),
        (r"\\sec", "sec"),
        (r"\\csc", "csc"),
        (r"\\cot", "cot"),
        (r"\\log", "log"),
        (r"\\ln", "ln"),
        (r"\\exp", "exp"),
        (r"\\leq?", "<="),
        (r"\\geq?", ">="),
        (r"\\neq?", "!="),
        (r"\\approx", "~="),
        (r"\\(?:text|mathrm|mathit|mathbf)\{([^}]*)\}", r"\1"),
        (r"\\circ", "deg"),
        (r"\^\{([^}]*)\}", r"^(\1)"),
        (r"_\{([^}]*)\}", r"_(\1)"),
        (r"\\[,:;! ]", ""),
    ]
]

_UNIT_SUFFIX = re.compile(
    r"\s*(square|cubic|sq|cu)?\s*(meters?|metres?|centimeters?|centimetres?|"
    r"kilometers?|kilometres?|cm|mm|km|m|feet|ft|inches?|in|yards?|yd|miles?|mi|"
    r"seconds?|sec|s|minutes?|min|hours?|hr|h|days?|d|years?|yr|kilograms?|kg|"
    r"grams?|g|pounds?|lb|ounces?|oz|liters?|litres?|l|milliliters?|millilitres?|"
    r"ml|gallons?|gal|degrees?|deg|radians?|rad)$",
    re.IGNORECASE,
)

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_FRACTION = re.compile(
    r"^\(?(-?\d+(?:\.\d+)?)\)?\s*[/:]\s*\(?(-?\d+(?:\.\d+)?)\)?$",
)
_PLUS_MINUS_NUMBER = re.compile(r"^\+?-?\s*(\d+\.?\d*)$")
_TWO_ELEMENT_LIST = re.compile(r"^\([^()]+,[^()]+\)$")

DEFAULT_NUMERIC_TOLERANCE = 0.01
_FRACTION_EPSILON = 0.0001


def _leading_float(value: str) -> float | None:
    """Parse the numeric prefix of a string ("3.5cm" -> 3.5). None if no prefix."""
    match = _LEADING_FLOAT.match(value)
    if not match:
        return None
    try:
        return float(match.group())
    except ValueError:
        return None


def _relative_tolerance(expected: float) -> float:
    return max(0.0001, abs(expected) * 0.0001)


def parse_fraction(value: str) -> float | None:
    """Parse "3/4", "(3)/(4)" or "3:4" into a float. None on zero denominator."""
    match = _FRACTION.match(value)
    if not match:
        return None
    numerator, denominator = float(match.group(1)), float(match.group(2))
    if denominator == 0:
        return None
    return numerator / denominator


def normalize_math_answer(answer: str) -> str:
    """Reduce a math answer to a canonical string for comparison."""
    if not answer or not isinstance(answer, str):
        return ""

    # "2 or -2" -> "2,-2" while the words are still space-delimited
    normalized = re.sub(r"\s+(?:and|or)\s+", ",", answer.strip().lower())
    normalized = re.sub(r"\s+", "", normalized)

    for symbol, replacement in _UNICODE_REPLACEMENTS:
        normalized = normalized.replace(symbol, replacement)
    for pattern, replacement in _LATEX_REPLACEMENTS:
        normalized = pattern.sub(replacement, normalized)

    # Delimiters, then stray backslashes and braces
    normalized = re.sub(r"\\\[|\\\]|\\\(|\\\)", "", normalized)
    normalized = normalized.replace("$", "")
    normalized = normalized.replace("\\", "")
    normalized = re.sub(r"[{}]", "", normalized)

    normalized = re.sub(r"\((\d+)\)", r"\1", normalized)
    normalized = re.sub(r"(\d)\*([a-z])", r"\1\2", normalized)
    normalized = re.sub(r"\b0+(\d)", r"\1", normalized)
    normalized = re.sub(r"\.0+$", "", normalized)

    without_units = _UNIT_SUFFIX.sub("", normalized)

    result = re.sub(r"x\s*=\s*", "", without_units)
    if _TWO_ELEMENT_LIST.match(result):
        result = result[1:-1]

    # "±2" -> "-2,2"
    if re.fullmatch(r"\+?-?[0-9.]+", re.sub(r"[+-]", "", result)):
        pm = _PLUS_MINUS_NUMBER.match(without_units)
        if pm and ("±" in answer or "+-" in answer):
            result = f"-{pm.group(1)},{pm.group(1)}"

    if "," in result:
        parts = [p.strip() for p in result.split(",") if p.strip()]
        if all(_leading_float(p) is not None for p in parts):
            parts.sort(key=lambda p: _leading_float(p))
        else:
            parts.sort()
        result = ",".join(parts)

    return result


def _numbers_close(actual: float | None, expected: float | None, tolerance: float) -> bool:
    if actual is None or expected is None:
        return False
    if math.isnan(actual) or math.isnan(expected):
        return False
    return abs(actual - expected) <= tolerance


def compare_math_answers(
    user_answer: str, correct_answer: str, alternates: list | None = None,
) -> bool:
    """True when the two answers are mathematically equivalent after normalization."""
    return match_math_answer(user_answer, correct_answer, alternates) != "none"


def match_math_answer(
    user_answer: str,
    correct_answer: str,
    alternates: list | None = None,
    tolerance: float | None = None,
) -> str:
    """Return how the answers matched: exact, normalized, numeric, alternate, fraction, or none."""
    norm_user = normalize_math_answer(user_answer)
    norm_correct = normalize_math_answer(correct_answer)
    if not norm_user or not norm_correct:
        return "none"

    if user_answer.strip() == correct_answer.strip():
        return "exact"
    if norm_user == norm_correct:
        return "normalized"

    user_num = _leading_float(norm_user)
    correct_num = _leading_float(norm_correct)
    if correct_num is not None:
        tol = tolerance if tolerance is not None else _relative_tolerance(correct_num)
        if _numbers_close(user_num, correct_num, tol):
            return "numeric"

    for alt in alternates or []:
        norm_alt = normalize_math_answer(str(alt))
        if norm_alt and norm_alt == norm_user:
            return "alternate"
        alt_num = _leading_float(norm_alt)
        if alt_num is not None and _numbers_close(
            user_num, alt_num, _relative_tolerance(alt_num),
        ):
            return "alternate"

    user_fraction = parse_fraction(norm_user)
    correct_fraction = parse_fraction(norm_correct)
    if user_fraction is not None and correct_fraction is not None:
        if abs(user_fraction - correct_fraction) < _FRACTION_EPSILON:
            return "fraction"
    if user_fraction is not None and correct_num is not None:
        if abs(user_fraction - correct_num) < _FRACTION_EPSILON:
            return "fraction"
    if user_num is not None and correct_fraction is not None:
        if abs(user_num - correct_fraction) < _FRACTION_EPSILON:
            return "fraction"

    return "none"


def compare_numeric_answers(
    user_answer: str, correct_answer: float,
    tolerance: float = DEFAULT_NUMERIC_TOLERANCE,
) -> bool:
    """Absolute-tolerance comparison for numeric answers."""
    user_num = _leading_float(normalize_math_answer(user_answer))
    if user_num is None:
        return False
    return abs(user_num - correct_answer) <= tolerance


def to_number(value) -> float | None:
    """Coerce a stored answer value (int, float, or numeric string) to float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return _leading_float(value)
    return None
