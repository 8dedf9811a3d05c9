"""Resolve and decrypt a merchant's Shopify credentials.

Lookup picks the newest installed, non-uninstalled connection, preferring
workspace scope over the individual owner when both are given. Credentials
live in memory for one execution batch only.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from src.db.models import ShopConnection
from src.errors import CredentialsMissingError, DecryptionFailedError
from src.services.credential_encryption import decrypt_token, load_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShopCredentials:
    """Decrypted shop credentials. The token is excluded from repr."""

    shop_domain: str
    access_token: str = field(repr=False)


def normalize_shop_domain(domain: str) -> str:
    """Strip scheme, path and trailing slash; lower-case the host."""
    value = (domain or "").strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    return value.split("/", 1)[0]


def _latest_connection(
    db: Session, *, owner_user_id: str | None = None, workspace_id: str | None = None
) -> ShopConnection | None:
    query = db.query(ShopConnection).filter(
        ShopConnection.platform == "shopify",
        ShopConnection.uninstalled_at.is_(None),
    )
    if workspace_id:
        query = query.filter(ShopConnection.workspace_id == workspace_id)
    else:
        query = query.filter(ShopConnection.owner_user_id == owner_user_id)
    return query.order_by(ShopConnection.created_at.desc()).first()


def resolve_shop_credentials(
    db: Session,
    user_id: str,
    workspace_id: str | None = None,
    key: bytes | None = None,
) -> ShopCredentials:
    """Look up and decrypt the active Shopify connection for a merchant.

    Args:
        db: Database session.
        user_id: Owner user id, used when no workspace connection exists.
        workspace_id: Optional workspace scope, checked first.
        key: Encryption key override. Defaults to the configured key.

    Returns:
        ShopCredentials with the decrypted access token.

    Raises:
        CredentialsMissingError: No usable connection row exists.
        DecryptionFailedError: The key is missing or wrong, or the stored
            ciphertext is malformed.
    """
    row = None
    if workspace_id:
        row = _latest_connection(db, workspace_id=workspace_id)
    if row is None:
        row = _latest_connection(db, owner_user_id=user_id)

    if row is None or not row.shop_domain:
        raise CredentialsMissingError()
    if not row.access_token_encrypted:
        raise CredentialsMissingError("Shopify connection has no access token.")

    if key is None:
        try:
            key = load_key()
        except ValueError as e:
            raise DecryptionFailedError(str(e)) from e

    token = decrypt_token(row.access_token_encrypted, key)
    logger.debug(
        "Resolved Shopify credentials for user=%s workspace=%s shop=%s",
        user_id, workspace_id, row.shop_domain,
    )
    return ShopCredentials(
        shop_domain=normalize_shop_domain(row.shop_domain),
        access_token=token,
    )
