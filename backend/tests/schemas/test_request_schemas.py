"""Request schema validation — difficulty names, stripping validators and bounds.

Invariants:
    - Named difficulty levels map to 1..5; unknown names fall back to 3
    - Out-of-range numeric difficulty is rejected
    - Required names and titles are stripped and may not be blank
    - Emails are normalized to lower case before validation
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from tutorassist.schemas.auth import LoginRequest, SignupRequest
from tutorassist.schemas.practice import AssignmentCreate, AttemptCreate
from tutorassist.schemas.question import (
    GenerateQuestionsRequest, QuestionCreate, TopicCreate, VariantRequest, parse_difficulty,
)
from tutorassist.schemas.student import StudentCreate, StudentSelfUpdate
from tutorassist.schemas.tutoring_session import SessionCreate


# --- difficulty ----------------------------------------------------------------------

@pytest.mark.parametrize("value,expected", [
    ("easy", 1),
    ("Medium-Easy", 2),
    (" medium ", 3),
    ("hard", 5),
    ("4", 4),
    (2, 2),
    ("legendary", 3),
    (True, 3),
    (None, 3),
])
def test_parse_difficulty(value, expected):
    assert parse_difficulty(value) == expected


def test_question_difficulty_name_is_normalized():
    q = QuestionCreate(prompt_text="  Solve 2x = 4  ", difficulty="medium-hard")
    assert q.difficulty == 4
    assert q.prompt_text == "Solve 2x = 4"


@pytest.mark.parametrize("difficulty", [0, 6, "9"])
def test_question_difficulty_out_of_range(difficulty):
    with pytest.raises(ValidationError):
        QuestionCreate(prompt_text="Solve 2x = 4", difficulty=difficulty)


def test_blank_prompt_is_rejected():
    with pytest.raises(ValidationError):
        QuestionCreate(prompt_text="   ")


def test_unknown_answer_type_is_rejected():
    with pytest.raises(ValidationError):
        QuestionCreate(prompt_text="Solve 2x = 4", answer_type="essay")


# --- generation requests -------------------------------------------------------------

def test_generate_defaults():
    req = GenerateQuestionsRequest(topic_id=uuid4())
    assert req.count == 5
    assert req.difficulty == "mixed"
    assert req.material_id is None


@pytest.mark.parametrize("count", [0, 21])
def test_generate_count_bounds(count):
    with pytest.raises(ValidationError):
        GenerateQuestionsRequest(topic_id=uuid4(), count=count)


def test_variant_type_is_constrained():
    assert VariantRequest().variation_type == "similar"
    with pytest.raises(ValidationError):
        VariantRequest(variation_type="weirder")


# --- names and titles ----------------------------------------------------------------

def test_topic_name_is_stripped():
    assert TopicCreate(name="  Fractions ").name == "Fractions"
    with pytest.raises(ValidationError):
        TopicCreate(name="  ")


def test_student_name_required_on_create_optional_on_self_update():
    with pytest.raises(ValidationError):
        StudentCreate(name=" ")
    assert StudentSelfUpdate().name is None
    assert StudentSelfUpdate(name=" Sam ").name == "Sam"


def test_assignment_title_and_default_status():
    a = AssignmentCreate(title="  Homework 1 ")
    assert a.title == "Homework 1"
    assert a.status.value == "active"
    assert a.question_ids == []


# --- auth ----------------------------------------------------------------------------

def test_email_is_lowercased():
    req = SignupRequest(email="  Terry@Example.COM ", password="correct-horse-battery")
    assert req.email == "terry@example.com"


def test_invalid_email_is_rejected():
    with pytest.raises(ValidationError):
        LoginRequest(email="not-an-email", password="x")


# --- attempts and sessions -----------------------------------------------------------

def test_attempt_answer_accepts_several_shapes():
    qid = uuid4()
    assert AttemptCreate(question_id=qid, answer="x = 2").answer == "x = 2"
    assert AttemptCreate(question_id=qid, answer=2).answer == 2
    assert AttemptCreate(question_id=qid, answer=[0, 2]).answer == [0, 2]
    with pytest.raises(ValidationError):
        AttemptCreate(question_id=qid, answer="2", time_spent_seconds=-1)


def test_session_duration_bounds():
    start = datetime(2030, 5, 4, 15, 0, tzinfo=timezone.utc)
    assert SessionCreate(title="Review", starts_at=start, duration_minutes=45).sync_calendar is True
    with pytest.raises(ValidationError):
        SessionCreate(title="Review", starts_at=start, duration_minutes=2)
