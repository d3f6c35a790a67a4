"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Workspace is the tenant root; every other entity except User and
      OAuthConnection is scoped by workspace_id

Design Decisions:
    - One file per aggregate for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references and Base.metadata sees every table before create_all / autogenerate
"""

from tutorassist.models.user import User  # noqa: F401
from tutorassist.models.workspace import Workspace, WorkspaceMember  # noqa: F401
from tutorassist.models.student_profile import StudentProfile  # noqa: F401
from tutorassist.models.invite import WorkspaceInvite  # noqa: F401
from tutorassist.models.topic import Topic  # noqa: F401
from tutorassist.models.source_material import SourceMaterial  # noqa: F401
from tutorassist.models.question import Question, QuestionEmbedding  # noqa: F401
from tutorassist.models.assignment import Assignment, AssignmentItem  # noqa: F401
from tutorassist.models.attempt import Attempt, SpacedRepetition  # noqa: F401
from tutorassist.models.flag import QuestionFlag  # noqa: F401
from tutorassist.models.tutoring_session import TutoringSession  # noqa: F401
from tutorassist.models.oauth_connection import OAuthConnection  # noqa: F401
from tutorassist.models.job import Job  # noqa: F401
from tutorassist.models.ai_usage import AIUsageLog  # noqa: F401
from tutorassist.models.pdf_export import PdfExport  # noqa: F401
