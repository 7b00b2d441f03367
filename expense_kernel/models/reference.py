"""
Module: expense_kernel.models.reference
Responsibility: ORM persistence for administrable reference data --
    categories (with their subcategories), projects and sites.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Reference ids are opaque strings (``cat-1``, ``proj-3``) chosen by
      the administrator or the seed file; they are the keys stored on
      expenses.
    - auto_approve_amount is non-negative (DB check constraint).
    - Deleting a category deletes its subcategories (ORM cascade and
      ``ON DELETE CASCADE``).

Failure modes:
    - IntegrityError on a negative threshold or a duplicate id.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import TrackedBase, new_reference_id
from expense_kernel.db.types import Money, Name

if TYPE_CHECKING:
    from expense_kernel.domain.dtos import Category, Project, Site, Subcategory


class CategoryModel(TrackedBase):
    """Expense category with its attachment and auto-approval policy."""

    __tablename__ = "categories"

    __table_args__ = (
        CheckConstraint(
            "auto_approve_amount >= 0",
            name="ck_categories_threshold_non_negative",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=new_reference_id,
    )
    name: Mapped[Name] = mapped_column(nullable=False)
    attachment_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    auto_approve_amount: Mapped[Money] = mapped_column(
        nullable=False, default=Decimal("0"),
    )

    subcategories: Mapped[list["SubcategoryModel"]] = relationship(
        "SubcategoryModel",
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SubcategoryModel.name",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Category {self.id} {self.name!r}>"

    def to_dto(self) -> Category:
        from expense_kernel.domain.dtos import Category as CategoryDTO

        return CategoryDTO(
            id=self.id,
            name=self.name,
            attachment_required=self.attachment_required,
            auto_approve_amount=self.auto_approve_amount,
            subcategories=tuple(s.to_dto() for s in self.subcategories),
        )


class SubcategoryModel(TrackedBase):
    """Subcategory owned by exactly one category."""

    __tablename__ = "subcategories"

    __table_args__ = (
        Index("idx_subcategories_category", "category_id"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=new_reference_id,
    )
    category_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[Name] = mapped_column(nullable=False)
    attachment_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    category: Mapped[CategoryModel] = relationship(
        "CategoryModel", back_populates="subcategories",
    )

    def __repr__(self) -> str:
        return f"<Subcategory {self.id} {self.name!r} of {self.category_id}>"

    def to_dto(self) -> Subcategory:
        from expense_kernel.domain.dtos import Subcategory as SubcategoryDTO

        return SubcategoryDTO(
            id=self.id,
            category_id=self.category_id,
            name=self.name,
            attachment_required=self.attachment_required,
        )


class ProjectModel(TrackedBase):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=new_reference_id,
    )
    name: Mapped[Name] = mapped_column(nullable=False)

    def to_dto(self) -> Project:
        from expense_kernel.domain.dtos import Project as ProjectDTO

        return ProjectDTO(id=self.id, name=self.name)


class SiteModel(TrackedBase):
    __tablename__ = "sites"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=new_reference_id,
    )
    name: Mapped[Name] = mapped_column(nullable=False)

    def to_dto(self) -> Site:
        from expense_kernel.domain.dtos import Site as SiteDTO

        return SiteDTO(id=self.id, name=self.name)
