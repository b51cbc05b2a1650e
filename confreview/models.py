from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


PAPER_SUBMITTED = "submitted"
PAPER_UNDER_REVIEW = "under_review"


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class MemberRole(str, Enum):
    CHAIR = "CHAIR"
    REVIEWER = "REVIEWER"
    AUTHOR = "AUTHOR"
    META_REVIEWER = "META_REVIEWER"


class BidValue(str, Enum):
    YES = "YES"
    MAYBE = "MAYBE"
    NO = "NO"
    CONFLICT = "CONFLICT"


class ReviewStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"


REVIEWER_ROLES = (MemberRole.REVIEWER, MemberRole.CHAIR)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def full_name(self) -> str:
        return "{} {}".format(self.first_name, self.last_name).strip()

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.full_name,
        }


class Conference(Base):
    __tablename__ = "conferences"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Track(Base):
    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    conference_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conferences.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class ConferenceMember(Base):
    __tablename__ = "conference_members"
    __table_args__ = (UniqueConstraint("conference_id", "user_id", "role"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    conference_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conferences.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[MemberRole] = mapped_column(SqlEnum(MemberRole), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped[User] = relationship()


class Paper(Base):
    __tablename__ = "papers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    conference_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conferences.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    track_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("tracks.id", ondelete="SET NULL"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(40), nullable=False, default=PAPER_SUBMITTED)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    authors: Mapped[list[PaperAuthor]] = relationship(
        order_by="PaperAuthor.order", cascade="all, delete-orphan"
    )

    @property
    def author_ids(self) -> set[str]:
        return {a.user_id for a in self.authors}


class PaperAuthor(Base):
    __tablename__ = "paper_authors"

    paper_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("papers.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    order: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)


class ReviewerBid(Base):
    __tablename__ = "reviewer_bids"
    __table_args__ = (UniqueConstraint("paper_id", "reviewer_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    paper_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("papers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    bid: Mapped[BidValue] = mapped_column(SqlEnum(BidValue), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "paperId": self.paper_id,
            "reviewerId": self.reviewer_id,
            "bid": self.bid.value,
            "updatedAt": _isoformat(self.updated_at),
        }


class ReviewerConflict(Base):
    __tablename__ = "reviewer_conflicts"
    __table_args__ = (UniqueConstraint("paper_id", "user_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    paper_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("papers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped[User] = relationship()

    def to_dict(self):
        return {
            "id": self.id,
            "paperId": self.paper_id,
            "userId": self.user_id,
            "createdAt": _isoformat(self.created_at),
        }


class ReviewAssignment(Base):
    __tablename__ = "review_assignments"
    __table_args__ = (UniqueConstraint("paper_id", "reviewer_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    paper_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("papers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ReviewStatus] = mapped_column(
        SqlEnum(ReviewStatus), nullable=False, default=ReviewStatus.NOT_STARTED
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    paper: Mapped[Paper] = relationship()
    reviewer: Mapped[User] = relationship()
    review: Mapped[Review | None] = relationship(
        back_populates="assignment", uselist=False, cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "paperId": self.paper_id,
            "reviewerId": self.reviewer_id,
            "status": self.status.value,
            "dueDate": _isoformat(self.due_date),
            "createdAt": _isoformat(self.created_at),
        }


class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    assignment_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("review_assignments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    strengths: Mapped[str | None] = mapped_column(Text, nullable=True)
    weaknesses: Mapped[str | None] = mapped_column(Text, nullable=True)
    comments_to_author: Mapped[str | None] = mapped_column(Text, nullable=True)
    comments_to_chair: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    assignment: Mapped[ReviewAssignment] = relationship(back_populates="review")

    def to_dict(self):
        return {
            "id": self.id,
            "assignmentId": self.assignment_id,
            "score": self.score,
            "confidence": self.confidence,
            "summary": self.summary,
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "commentsToAuthor": self.comments_to_author,
            "commentsToChair": self.comments_to_chair,
            "submittedAt": _isoformat(self.submitted_at),
        }


class Decision(Base):
    __tablename__ = "decisions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    paper_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("papers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    decision: Mapped[str] = mapped_column(String(40), nullable=False)
    decided_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


def _isoformat(value):
    return value.isoformat() if value is not None else None
