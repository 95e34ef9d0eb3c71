import enum

from sqlalchemy import Boolean, Integer, String, LargeBinary, ForeignKey, DateTime, Enum, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .db import Base

class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"

class Status(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SUSPENDED = "SUSPENDED"

class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(Enum(Role), default=Role.USER, nullable=False)
    status: Mapped[Status] = mapped_column(Enum(Status), default=Status.PENDING, nullable=False)
    force_password_change: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())

    credentials = relationship(
        "Credential", back_populates="user", cascade="all, delete-orphan", order_by="Credential.id"
    )

    def summary(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "role": self.role.value,
            "status": self.status.value,
        }

class Credential(Base):
    __tablename__ = "credentials"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    credential_id: Mapped[bytes] = mapped_column(LargeBinary, unique=True, nullable=False)
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # CBOR-encoded COSE key
    sign_count: Mapped[int] = mapped_column(Integer, default=0)
    aaguid: Mapped[str] = mapped_column(String(64), nullable=True)
    device_type: Mapped[str] = mapped_column(String(32), default="singleDevice")
    backed_up: Mapped[bool] = mapped_column(Boolean, default=False)
    transports: Mapped[str] = mapped_column(String(255), nullable=True)  # comma-separated
    name: Mapped[str] = mapped_column(String(100), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
    last_used_at: Mapped[DateTime] = mapped_column(DateTime, nullable=True)

    user = relationship("User", back_populates="credentials")

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "deviceType": self.device_type,
            "backedUp": self.backed_up,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
        }
