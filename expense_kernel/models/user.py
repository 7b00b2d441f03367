"""
Module: expense_kernel.models.user
Responsibility: Local mirror of identity-provider users.  The kernel uses
    it to route notifications (all verifiers, all approvers) and to carry
    the user list through backups.  Authentication is not handled here.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TrackedBase, new_reference_id
from expense_kernel.db.types import Name, ShortCode

if TYPE_CHECKING:
    from expense_kernel.domain.dtos import User


class UserModel(TrackedBase):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'requestor', 'verifier', 'approver')",
            name="ck_users_valid_role",
        ),
        Index("idx_users_role", "role"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=new_reference_id,
    )
    username: Mapped[ShortCode] = mapped_column(nullable=False, unique=True)
    name: Mapped[Name] = mapped_column(nullable=False)
    email: Mapped[Name] = mapped_column(nullable=False)
    role: Mapped[ShortCode] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.username} role={self.role}>"

    def to_dto(self) -> User:
        from expense_kernel.domain.actors import Role
        from expense_kernel.domain.dtos import User as UserDTO

        return UserDTO(
            id=self.id,
            username=self.username,
            name=self.name,
            email=self.email,
            role=Role(self.role),
        )
