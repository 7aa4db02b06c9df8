from sqlalchemy import String, Integer, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

DOCUMENT_TYPES = ("license", "certificate", "id_card", "other")

class GuideDocument(Base):
    __tablename__ = "guide_documents"
    __table_args__ = (
        UniqueConstraint("guide_id", "document_type", name="uq_guide_document_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    guide_id: Mapped[str] = mapped_column(String(36), ForeignKey("guides.id"), index=True)
    document_type: Mapped[str] = mapped_column(String(20))  # license, certificate, id_card, other

    storage_path: Mapped[str] = mapped_column(String(512))  # object key in the document bucket
    file_name: Mapped[str] = mapped_column(String(255), default="")
    mime_type: Mapped[str] = mapped_column(String(64), default="application/pdf")
    file_size: Mapped[int] = mapped_column(Integer, default=0)

    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
