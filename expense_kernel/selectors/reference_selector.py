"""
Module: expense_kernel.selectors.reference_selector
Responsibility: Read side for reference data (categories, projects, sites)
    and the user mirror.
"""

from __future__ import annotations

from sqlalchemy import select

from expense_kernel.domain.actors import Role
from expense_kernel.domain.dtos import Category, Project, Site, User
from expense_kernel.exceptions import (
    CategoryNotFoundError,
    ReferenceNotFoundError,
    UserNotFoundError,
)
from expense_kernel.models.reference import CategoryModel, ProjectModel, SiteModel
from expense_kernel.models.user import UserModel
from expense_kernel.selectors.base import BaseSelector


class ReferenceDataSelector(BaseSelector[CategoryModel]):
    """Read-only queries over reference data, ordered by id."""

    def list_categories(self) -> list[Category]:
        rows = self.session.scalars(select(CategoryModel).order_by(CategoryModel.id))
        return [row.to_dto() for row in rows]

    def get_category(self, category_id: str) -> Category:
        row = self.session.get(CategoryModel, category_id)
        if row is None:
            raise CategoryNotFoundError(category_id)
        return row.to_dto()

    def find_category(self, category_id: str) -> Category | None:
        """Category resolver for ExpenseService: None when unknown."""
        row = self.session.get(CategoryModel, category_id)
        return row.to_dto() if row is not None else None

    def list_projects(self) -> list[Project]:
        rows = self.session.scalars(select(ProjectModel).order_by(ProjectModel.id))
        return [row.to_dto() for row in rows]

    def get_project(self, project_id: str) -> Project:
        row = self.session.get(ProjectModel, project_id)
        if row is None:
            raise ReferenceNotFoundError("Project", project_id)
        return row.to_dto()

    def list_sites(self) -> list[Site]:
        rows = self.session.scalars(select(SiteModel).order_by(SiteModel.id))
        return [row.to_dto() for row in rows]

    def get_site(self, site_id: str) -> Site:
        row = self.session.get(SiteModel, site_id)
        if row is None:
            raise ReferenceNotFoundError("Site", site_id)
        return row.to_dto()

    def list_users(self, role: Role | None = None) -> list[User]:
        stmt = select(UserModel).order_by(UserModel.id)
        if role is not None:
            stmt = stmt.where(UserModel.role == role.value)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def get_user(self, user_id: str) -> User:
        row = self.session.get(UserModel, user_id)
        if row is None:
            raise UserNotFoundError(user_id)
        return row.to_dto()
