"""
Integration credential store.

One encrypted credential set per (user, integration type). Saving is an
upsert on that pair; reading decrypts and checks completeness for the type.
"""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ValidationError
from core.security import decrypt_credentials, encrypt_credentials
from db.models import Integration
from integrations.base import IntegrationType, get_client_class, missing_credentials

logger = structlog.get_logger()


async def get_integration(db: AsyncSession, user_id: str, integration_type: IntegrationType) -> Integration | None:
    result = await db.execute(
        select(Integration).where(
            Integration.user_id == user_id,
            Integration.integration_type == integration_type.value,
        )
    )
    return result.scalar_one_or_none()


async def save_credentials(
    db: AsyncSession,
    user_id: str,
    integration_type: IntegrationType,
    credentials: dict[str, Any],
) -> Integration:
    """Create or replace the credential set for (user, type). Commits."""
    required = get_client_class(integration_type).required_credentials
    missing = missing_credentials(required, credentials)
    if missing:
        raise ValidationError(
            f"Missing required credential fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    integration = await get_integration(db, user_id, integration_type)
    if integration is None:
        integration = Integration(user_id=user_id, integration_type=integration_type.value)
        db.add(integration)
    integration.credentials_encrypted = encrypt_credentials(credentials)
    await db.commit()
    await db.refresh(integration)

    logger.info("integrations.credentials_saved", user_id=user_id, integration_type=integration_type.value)
    return integration


async def load_credentials(db: AsyncSession, user_id: str, integration_type: IntegrationType) -> dict[str, Any]:
    """
    Decrypted credentials for (user, type).

    Raises:
        ValidationError: not configured, or stored payload unreadable.
    """
    display_name = get_client_class(integration_type).display_name
    integration = await get_integration(db, user_id, integration_type)
    if integration is None:
        raise ValidationError(
            f"{display_name} integration not configured. Please add your {display_name} credentials in Settings."
        )
    credentials = decrypt_credentials(integration.credentials_encrypted)
    if credentials is None:
        logger.warning("integrations.credentials_unreadable", user_id=user_id, integration_type=integration_type.value)
        raise ValidationError(f"Incomplete {display_name} credentials. Please check your settings.")
    return credentials
