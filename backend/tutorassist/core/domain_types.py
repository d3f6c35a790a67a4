"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - WorkspaceId, UserId, QuestionId wrap UUIDs — never use bare UUID in domain logic
    - Difficulty is bounded 1–5
    - All valid states encoded as Enums — no raw string matching in routes or services

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders and compare equal to DB strings
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

WorkspaceId = NewType("WorkspaceId", UUID)
UserId = NewType("UserId", UUID)
QuestionId = NewType("QuestionId", UUID)
JobId = NewType("JobId", UUID)


# ─── Value Types ─────────────────────────────────────────────────

Difficulty = NewType("Difficulty", int)      # 1–5
EaseFactor = NewType("EaseFactor", float)    # >= 1.3

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


# ─── Enums ───────────────────────────────────────────────────────

class MemberRole(str, Enum):
    """Workspace membership roles."""
    PLATFORM_OWNER = "platform_owner"
    TUTOR = "tutor"
    STUDENT = "student"


class QuestionOrigin(str, Enum):
    MANUAL = "manual"
    AI_GENERATED = "ai_generated"
    IMPORTED = "imported"
    VARIANT = "variant"


class QuestionStatus(str, Enum):
    ACTIVE = "active"
    NEEDS_REVIEW = "needs_review"
    ARCHIVED = "archived"
    DRAFT = "draft"


class AnswerType(str, Enum):
    """How a question's answer is captured and graded."""
    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_ANSWER = "short_answer"
    LONG_ANSWER = "long_answer"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    MATCHING = "matching"
    NUMERIC = "numeric"
    EXPRESSION = "expression"


class AssignmentStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class FlagType(str, Enum):
    """Reasons a student can flag a question."""
    INCORRECT_ANSWER = "incorrect_answer"
    UNCLEAR = "unclear"
    TYPO = "typo"
    TOO_HARD = "too_hard"
    CLAIM_CORRECT = "claim_correct"
    MISSING_CONTENT = "missing_content"
    MULTIPLE_VALID = "multiple_valid"
    OTHER = "other"


class FlagStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    FIXED = "fixed"
    DISMISSED = "dismissed"
    ACCEPTED = "accepted"


class SessionStatus(str, Enum):
    """Tutoring session lifecycle — maps to tutoring_sessions.status."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class JobType(str, Enum):
    EXTRACT_MATERIAL = "EXTRACT_MATERIAL"
    GENERATE_QUESTIONS = "GENERATE_QUESTIONS"
    GENERATE_QUESTIONS_BATCH = "GENERATE_QUESTIONS_BATCH"
    GENERATE_PDF = "GENERATE_PDF"
    REGEN_VARIANT = "REGEN_VARIANT"
    DAILY_SPACED_REP_REFRESH = "DAILY_SPACED_REP_REFRESH"
    PROCESS_BATCH_RESULT = "PROCESS_BATCH_RESULT"
    GENERATE_EMBEDDINGS = "GENERATE_EMBEDDINGS"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    BATCH_PENDING = "batch_pending"


class MaterialType(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    TEXT = "text"


class ExtractionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StorageFolder(str, Enum):
    MATERIALS = "materials"
    EXPORTS = "exports"
    AVATARS = "avatars"


# Named difficulty levels accepted by the question API
DIFFICULTY_NAMES: dict[str, int] = {
    "easy": 1,
    "medium-easy": 2,
    "medium": 3,
    "medium-hard": 4,
    "hard": 5,
}
