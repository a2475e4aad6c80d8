# backend/app/models/user_credential.py
"""
ORM model for third-party API credentials.

Security: the secret payload only ever exists here as the vault
envelope (base64 of nonce | tag | ciphertext). Decrypted values are
never written back.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from backend.app.db.base import Base


class UserCredential(Base):
    __tablename__ = "user_api_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "service", name="uq_user_api_credentials_user_service"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # igdb / steam / retroachievements / rawg
    service = Column(String(32), nullable=False)

    # twitch_oauth / steam_openid / api_key
    credential_type = Column(String(32), nullable=False)

    # --- SECRET DATA (encrypted envelope) ---
    encrypted_credentials = Column(Text, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    has_valid_token = Column(Boolean, nullable=False, default=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_validated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
