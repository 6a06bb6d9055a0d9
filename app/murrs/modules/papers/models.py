from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.murrs.models import Base


class Paper(Base):
    __tablename__ = "papers"
    __table_args__ = (
        Index("ix_papers_status", "status"),
        Index("ix_papers_submitter_id", "submitter_id"),
        Index("ix_papers_supervisor_id", "supervisor_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)

    # See modules.papers.workflow for the lifecycle.
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")

    discipline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    university: Mapped[str | None] = mapped_column(String(255), nullable=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    document_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    license: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Stored file (one per paper; resubmission replaces it)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)

    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    citations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)

    review_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitter_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    supervisor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    authors: Mapped[list["PaperAuthor"]] = relationship(
        "PaperAuthor",
        back_populates="paper",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PaperAuthor.author_order",
    )
    tag_rows: Mapped[list["PaperTag"]] = relationship(
        "PaperTag",
        back_populates="paper",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PaperTag.id",
    )
    reviews: Mapped[list["PaperReview"]] = relationship(
        "PaperReview",
        back_populates="paper",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PaperReview.id",
    )

    @property
    def tags(self) -> list[str]:
        return [t.tag for t in self.tag_rows]


class PaperAuthor(Base):
    __tablename__ = "paper_authors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    paper_id: Mapped[int] = mapped_column(ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    affiliation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    author_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    paper: Mapped[Paper] = relationship("Paper", back_populates="authors", lazy="selectin")


class PaperTag(Base):
    __tablename__ = "paper_tags"
    __table_args__ = (
        UniqueConstraint("paper_id", "tag", name="uq_paper_tag"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    paper_id: Mapped[int] = mapped_column(ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)
    tag: Mapped[str] = mapped_column(String(128), nullable=False)

    paper: Mapped[Paper] = relationship("Paper", back_populates="tag_rows", lazy="selectin")


class PaperReview(Base):
    """
    One reviewer decision on one stage. Append-only; the paper row carries the resulting status.
    """

    __tablename__ = "paper_reviews"
    __table_args__ = (
        Index("ix_paper_reviews_reviewer_id", "reviewer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    paper_id: Mapped[int] = mapped_column(ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)
    reviewer_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewer_role: Mapped[str] = mapped_column(String(32), nullable=False)

    stage: Mapped[str] = mapped_column(String(32), nullable=False)  # status when decided
    decision: Mapped[str] = mapped_column(String(16), nullable=False)  # approve | revision | reject
    resulting_status: Mapped[str] = mapped_column(String(32), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    paper: Mapped[Paper] = relationship("Paper", back_populates="reviews", lazy="selectin")
