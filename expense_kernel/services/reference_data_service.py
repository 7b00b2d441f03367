"""
ReferenceDataService -- administration of categories, projects, sites and
users.

Responsibility:
    Create/update/delete reference data on behalf of an administrator and
    record each change in the audit log.  Also loads the seed data of an
    ``ExpenseConfig``.

Invariants enforced:
    - Every administrative change writes exactly one audit entry; a failed
      audit append aborts the operation (AuditAppendError propagates).
    - Deleting a category deletes its subcategories.  Expenses keep their
      stored reference ids.
    - auto_approve_amount is never negative.

Failure modes:
    - ValidationError on a blank name, negative threshold, duplicate id or
      duplicate username.
    - CategoryNotFoundError / ReferenceNotFoundError / UserNotFoundError.
    - AuditAppendError.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_kernel.db.types import to_money
from expense_kernel.domain.actors import Actor, Role
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.dtos import Category, Project, Site, Subcategory, User
from expense_kernel.exceptions import (
    CategoryNotFoundError,
    ReferenceNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_log import AuditAction
from expense_kernel.models.reference import (
    CategoryModel,
    ProjectModel,
    SiteModel,
    SubcategoryModel,
)
from expense_kernel.models.user import UserModel
from expense_kernel.services.audit_ledger import AuditLedger
from expense_kernel.services.base import BaseService

if TYPE_CHECKING:
    from expense_config.schema import ExpenseConfig

logger = get_logger("services.reference_data")


def _require_name(name: str | None, field: str = "name") -> str:
    if name is None or not name.strip():
        raise ValidationError(field, "must not be blank")
    return name.strip()


def _threshold(value: Any) -> Decimal:
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError("auto_approve_amount", f"not a number: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError("auto_approve_amount", "must be zero or positive")
    return amount


class ReferenceDataService(BaseService[CategoryModel]):
    """
    Audited administration of reference data.

    Contract:
        Flushes, never commits.  Returns frozen DTOs.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock if clock is not None else SystemClock()
        self._audit = AuditLedger(session, self._clock)

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_new_id(self, model_cls: type, entity_id: str | None, label: str) -> None:
        if entity_id is not None and self.session.get(model_cls, entity_id) is not None:
            raise ValidationError("id", f"{label} '{entity_id}' already exists")

    def _category(self, category_id: str) -> CategoryModel:
        model = self.session.get(CategoryModel, category_id)
        if model is None:
            raise CategoryNotFoundError(category_id)
        return model

    def _subcategory(self, subcategory_id: str) -> SubcategoryModel:
        model = self.session.get(SubcategoryModel, subcategory_id)
        if model is None:
            raise CategoryNotFoundError(subcategory_id, kind="Subcategory")
        return model

    def _record(self, actor: Actor, action: AuditAction, details: str, **payload: Any) -> None:
        self._audit.append(actor, action, details, payload=payload)
        logger.info(
            "reference_data_changed",
            extra={"action": action.value, "details": details},
        )

    # =========================================================================
    # Categories
    # =========================================================================

    def create_category(
        self,
        actor: Actor,
        name: str,
        attachment_required: bool = False,
        auto_approve_amount: Any = 0,
        category_id: str | None = None,
    ) -> Category:
        name = _require_name(name)
        self._check_new_id(CategoryModel, category_id, "Category")
        model = CategoryModel(
            name=name,
            attachment_required=attachment_required,
            auto_approve_amount=_threshold(auto_approve_amount),
            created_by_id=actor.id,
        )
        if category_id is not None:
            model.id = category_id
        self.session.add(model)
        self.session.flush()
        self._record(
            actor, AuditAction.CATEGORY_CREATED,
            f"Created category '{name}'", category_id=model.id,
        )
        return model.to_dto()

    def update_category(
        self,
        actor: Actor,
        category_id: str,
        name: str | None = None,
        attachment_required: bool | None = None,
        auto_approve_amount: Any = None,
    ) -> Category:
        model = self._category(category_id)
        if name is not None:
            model.name = _require_name(name)
        if attachment_required is not None:
            model.attachment_required = attachment_required
        if auto_approve_amount is not None:
            model.auto_approve_amount = _threshold(auto_approve_amount)
        model.updated_by_id = actor.id
        self.session.flush()
        self._record(
            actor, AuditAction.CATEGORY_UPDATED,
            f"Updated category '{model.name}'", category_id=model.id,
        )
        return model.to_dto()

    def delete_category(self, actor: Actor, category_id: str) -> None:
        """Delete a category and all of its subcategories."""
        model = self._category(category_id)
        name = model.name
        subcategory_count = len(model.subcategories)
        self.session.delete(model)
        self.session.flush()
        self._record(
            actor, AuditAction.CATEGORY_DELETED,
            f"Deleted category '{name}'",
            category_id=category_id, subcategories_deleted=subcategory_count,
        )

    # =========================================================================
    # Subcategories
    # =========================================================================

    def create_subcategory(
        self,
        actor: Actor,
        category_id: str,
        name: str,
        attachment_required: bool = False,
        subcategory_id: str | None = None,
    ) -> Subcategory:
        category = self._category(category_id)
        name = _require_name(name)
        self._check_new_id(SubcategoryModel, subcategory_id, "Subcategory")
        model = SubcategoryModel(
            name=name,
            attachment_required=attachment_required,
            created_by_id=actor.id,
        )
        if subcategory_id is not None:
            model.id = subcategory_id
        category.subcategories.append(model)
        self.session.flush()
        self._record(
            actor, AuditAction.SUBCATEGORY_CREATED,
            f"Created subcategory '{name}' in '{category.name}'",
            category_id=category.id, subcategory_id=model.id,
        )
        return model.to_dto()

    def update_subcategory(
        self,
        actor: Actor,
        subcategory_id: str,
        name: str | None = None,
        attachment_required: bool | None = None,
    ) -> Subcategory:
        model = self._subcategory(subcategory_id)
        if name is not None:
            model.name = _require_name(name)
        if attachment_required is not None:
            model.attachment_required = attachment_required
        model.updated_by_id = actor.id
        self.session.flush()
        self._record(
            actor, AuditAction.SUBCATEGORY_UPDATED,
            f"Updated subcategory '{model.name}'", subcategory_id=model.id,
        )
        return model.to_dto()

    def delete_subcategory(self, actor: Actor, subcategory_id: str) -> None:
        model = self._subcategory(subcategory_id)
        name = model.name
        model.category.subcategories.remove(model)
        self.session.flush()
        self._record(
            actor, AuditAction.SUBCATEGORY_DELETED,
            f"Deleted subcategory '{name}'", subcategory_id=subcategory_id,
        )

    # =========================================================================
    # Projects and sites
    # =========================================================================

    def create_project(self, actor: Actor, name: str, project_id: str | None = None) -> Project:
        name = _require_name(name)
        self._check_new_id(ProjectModel, project_id, "Project")
        model = ProjectModel(name=name, created_by_id=actor.id)
        if project_id is not None:
            model.id = project_id
        self.session.add(model)
        self.session.flush()
        self._record(
            actor, AuditAction.PROJECT_CREATED,
            f"Created project '{name}'", project_id=model.id,
        )
        return model.to_dto()

    def update_project(self, actor: Actor, project_id: str, name: str) -> Project:
        model = self.session.get(ProjectModel, project_id)
        if model is None:
            raise ReferenceNotFoundError("Project", project_id)
        model.name = _require_name(name)
        model.updated_by_id = actor.id
        self.session.flush()
        self._record(
            actor, AuditAction.PROJECT_UPDATED,
            f"Updated project '{model.name}'", project_id=model.id,
        )
        return model.to_dto()

    def delete_project(self, actor: Actor, project_id: str) -> None:
        model = self.session.get(ProjectModel, project_id)
        if model is None:
            raise ReferenceNotFoundError("Project", project_id)
        name = model.name
        self.session.delete(model)
        self.session.flush()
        self._record(
            actor, AuditAction.PROJECT_DELETED,
            f"Deleted project '{name}'", project_id=project_id,
        )

    def create_site(self, actor: Actor, name: str, site_id: str | None = None) -> Site:
        name = _require_name(name)
        self._check_new_id(SiteModel, site_id, "Site")
        model = SiteModel(name=name, created_by_id=actor.id)
        if site_id is not None:
            model.id = site_id
        self.session.add(model)
        self.session.flush()
        self._record(
            actor, AuditAction.SITE_CREATED,
            f"Created site '{name}'", site_id=model.id,
        )
        return model.to_dto()

    def update_site(self, actor: Actor, site_id: str, name: str) -> Site:
        model = self.session.get(SiteModel, site_id)
        if model is None:
            raise ReferenceNotFoundError("Site", site_id)
        model.name = _require_name(name)
        model.updated_by_id = actor.id
        self.session.flush()
        self._record(
            actor, AuditAction.SITE_UPDATED,
            f"Updated site '{model.name}'", site_id=model.id,
        )
        return model.to_dto()

    def delete_site(self, actor: Actor, site_id: str) -> None:
        model = self.session.get(SiteModel, site_id)
        if model is None:
            raise ReferenceNotFoundError("Site", site_id)
        name = model.name
        self.session.delete(model)
        self.session.flush()
        self._record(
            actor, AuditAction.SITE_DELETED,
            f"Deleted site '{name}'", site_id=site_id,
        )

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(
        self,
        actor: Actor,
        username: str,
        name: str,
        email: str,
        role: Role | str,
        user_id: str | None = None,
    ) -> User:
        username = _require_name(username, "username")
        role = Role(role)
        if role == Role.SYSTEM:
            raise ValidationError("role", "the system role cannot be assigned")
        self._check_new_id(UserModel, user_id, "User")
        taken = self.session.scalar(
            select(UserModel.id).where(UserModel.username == username)
        )
        if taken is not None:
            raise ValidationError("username", f"'{username}' is already taken")
        model = UserModel(
            username=username,
            name=_require_name(name),
            email=email.strip(),
            role=role.value,
            created_by_id=actor.id,
        )
        if user_id is not None:
            model.id = user_id
        self.session.add(model)
        self.session.flush()
        self._record(
            actor, AuditAction.USER_CREATED,
            f"Created user '{username}' ({role.value})", user_id=model.id,
        )
        return model.to_dto()

    def update_user(
        self,
        actor: Actor,
        user_id: str,
        name: str | None = None,
        email: str | None = None,
        role: Role | str | None = None,
    ) -> User:
        model = self.session.get(UserModel, user_id)
        if model is None:
            raise UserNotFoundError(user_id)
        if name is not None:
            model.name = _require_name(name)
        if email is not None:
            model.email = email.strip()
        if role is not None:
            role = Role(role)
            if role == Role.SYSTEM:
                raise ValidationError("role", "the system role cannot be assigned")
            model.role = role.value
        model.updated_by_id = actor.id
        self.session.flush()
        self._record(
            actor, AuditAction.USER_UPDATED,
            f"Updated user '{model.username}'", user_id=model.id,
        )
        return model.to_dto()

    def delete_user(self, actor: Actor, user_id: str) -> None:
        model = self.session.get(UserModel, user_id)
        if model is None:
            raise UserNotFoundError(user_id)
        username = model.username
        self.session.delete(model)
        self.session.flush()
        self._record(
            actor, AuditAction.USER_DELETED,
            f"Deleted user '{username}'", user_id=user_id,
        )

    # =========================================================================
    # Seeding
    # =========================================================================

    def seed(self, config: ExpenseConfig, actor: Actor) -> int:
        """
        Insert the config's seed data that is not already present.

        Existing rows (matched by id) are left untouched, so seeding is
        idempotent.  Writes one audit entry when anything was inserted.

        Returns:
            Number of rows inserted.
        """
        inserted = 0
        for seed in config.seed.categories:
            if self.session.get(CategoryModel, seed.id) is not None:
                continue
            category = CategoryModel(
                id=seed.id,
                name=seed.name,
                attachment_required=seed.attachment_required,
                auto_approve_amount=seed.auto_approve_amount,
                created_by_id=actor.id,
            )
            for sub in seed.subcategories:
                category.subcategories.append(SubcategoryModel(
                    id=sub.id,
                    name=sub.name,
                    attachment_required=sub.attachment_required,
                    created_by_id=actor.id,
                ))
                inserted += 1
            self.session.add(category)
            inserted += 1
        for seed in config.seed.projects:
            if self.session.get(ProjectModel, seed.id) is None:
                self.session.add(ProjectModel(id=seed.id, name=seed.name, created_by_id=actor.id))
                inserted += 1
        for seed in config.seed.sites:
            if self.session.get(SiteModel, seed.id) is None:
                self.session.add(SiteModel(id=seed.id, name=seed.name, created_by_id=actor.id))
                inserted += 1
        for seed in config.seed.users:
            if self.session.get(UserModel, seed.id) is None:
                self.session.add(UserModel(
                    id=seed.id,
                    username=seed.username,
                    name=seed.name,
                    email=seed.email,
                    role=seed.role.value,
                    created_by_id=actor.id,
                ))
                inserted += 1
        self.session.flush()

        if inserted:
            self._record(
                actor, AuditAction.REFERENCE_DATA_SEEDED,
                f"Seeded {inserted} reference record(s) from config "
                f"'{config.name}'",
                config_checksum=config.checksum,
            )
        return inserted
