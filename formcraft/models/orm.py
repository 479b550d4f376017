import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Text, Boolean, ForeignKey, JSON, Integer, DateTime, Index, func

class Base(DeclarativeBase): pass

def new_id() -> str:
    return str(uuid.uuid4())

class Form(Base):
    __tablename__ = "forms"
    __table_args__ = (
        Index("idx_forms_user", "user_id"),
        Index("idx_forms_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    form_data: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

class FormResponse(Base):
    __tablename__ = "form_responses"
    __table_args__ = (
        Index("idx_fr_form", "form_id"),
        Index("idx_fr_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    form_id: Mapped[str] = mapped_column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    response_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

class UserAnalytics(Base):
    __tablename__ = "user_analytics"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    total_forms: Mapped[int] = mapped_column(Integer, default=0)
    total_responses: Mapped[int] = mapped_column(Integer, default=0)
    total_views: Mapped[int] = mapped_column(Integer, default=0)
    last_activity: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

class FormFile(Base):
    __tablename__ = "form_files"
    __table_args__ = (
        Index("idx_ff_form", "form_id"),
        Index("idx_ff_response", "response_id"),
        Index("idx_ff_field", "field_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    form_id: Mapped[str] = mapped_column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    response_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("form_responses.id", ondelete="CASCADE"), nullable=True
    )
    field_id: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
