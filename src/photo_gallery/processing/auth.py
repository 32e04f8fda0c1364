"""Request authorization: resolve a bearer token to a principal."""

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple, Union

from photo_gallery.errors import (
    AccessDeniedError,
    AuthRequiredError,
    CollectionNotFoundError,
    InvalidTokenError,
    PhotoNotFoundError,
)
from photo_gallery.processing.models import Collection, Photo

if TYPE_CHECKING:
    from photo_gallery.processing.record_store import GalleryStore

logger = logging.getLogger(__name__)

ENV_API_TOKENS = "PHOTO_GALLERY_TOKENS"

ROLE_PHOTOGRAPHER = "photographer"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller identity."""
    user_id: str
    role: str = ROLE_PHOTOGRAPHER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def parse_tokens(value: str) -> Dict[str, Tuple[str, str]]:
    """Parse ``token=user[:role],...`` into ``{token: (user, role)}``."""
    tokens: Dict[str, Tuple[str, str]] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, sep, identity = entry.partition("=")
        if not sep or not token.strip() or not identity.strip():
            logger.warning(f"Ignoring malformed token entry: {entry.split('=')[0][:4]}...")
            continue
        user_id, _, role = identity.strip().partition(":")
        tokens[token.strip()] = (user_id, role or ROLE_PHOTOGRAPHER)
    return tokens


class TokenAuthorizer:
    """Static token table standing in for the platform's session layer."""

    def __init__(self, tokens: Optional[Mapping[str, Union[str, Tuple[str, str]]]] = None):
        self._tokens: Dict[str, Principal] = {}
        for token, identity in (tokens or {}).items():
            if isinstance(identity, str):
                identity = (identity, ROLE_PHOTOGRAPHER)
            self._tokens[token] = Principal(*identity)

    @classmethod
    def from_env(cls) -> "TokenAuthorizer":
        return cls(parse_tokens(os.environ.get(ENV_API_TOKENS, "")))

    def __len__(self) -> int:
        return len(self._tokens)

    def authorize(self, token: Optional[str]) -> Principal:
        """Resolve ``token`` or raise.

        Raises:
            AuthRequiredError: If no token was supplied
            InvalidTokenError: If the token is unknown
        """
        if not token:
            raise AuthRequiredError("Authentication required")
        principal = self._tokens.get(token)
        if principal is None:
            raise InvalidTokenError("Invalid token")
        return principal


def check_owner(principal: Principal, collection: Collection) -> None:
    """Raise ``AccessDeniedError`` unless the principal may modify the collection."""
    if principal.is_admin or collection.owner_id == principal.user_id:
        return
    logger.warning(f"User {principal.user_id} denied access to collection {collection.id}")
    raise AccessDeniedError("Access denied")


def load_owned_collection(store: "GalleryStore", principal: Principal, collection_id: str) -> Collection:
    collection = store.get_collection(collection_id)
    if collection is None:
        raise CollectionNotFoundError("Collection not found")
    check_owner(principal, collection)
    return collection


def load_owned_photo(store: "GalleryStore", principal: Principal, photo_id: str) -> Tuple[Photo, Collection]:
    """Fetch a photo and its collection, enforcing ownership.

    Raises:
        PhotoNotFoundError: If the photo does not exist
        CollectionNotFoundError: If its collection is gone
        AccessDeniedError: If the principal does not own the collection
    """
    photo = store.get_photo(photo_id)
    if photo is None:
        raise PhotoNotFoundError("Photo not found")
    return photo, load_owned_collection(store, principal, photo.collection_id)
