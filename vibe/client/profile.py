import logging
from dataclasses import dataclass
from typing import Optional

from ..db.base import ProfileStore
from ..schemas import ProfileSettings, UserProfile, utc_now_iso
from .errors import handle_error

logger = logging.getLogger(__name__)


@dataclass
class Identity:
    """What the identity provider tells us about a signed-in user."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class ProfileService:
    def __init__(self, store: Optional[ProfileStore], notify=None):
        self.store = store
        self.notify = notify
        self.settings = ProfileSettings()

    async def load(self, identity: Identity) -> ProfileSettings:
        """Return stored settings, creating a default profile on first sign-in.

        Store failures fall back to default settings.
        """
        if self.store is None:
            self.settings = ProfileSettings()
            return self.settings
        try:
            profile = await self.store.get_profile(identity.uid)
            if profile is None:
                profile = UserProfile(
                    email=identity.email,
                    name=identity.display_name,
                    profile_picture=identity.photo_url,
                )
                await self.store.save_profile(identity.uid, profile)
                logger.info("Created profile for %s", identity.uid)
            self.settings = profile.settings
        except Exception as e:
            handle_error(e, "Loading user profile")
            self.settings = ProfileSettings()
        return self.settings

    async def update_settings(self, uid: str, settings: ProfileSettings) -> bool:
        if self.store is None:
            return False
        try:
            await self.store.update_settings(uid, settings, utc_now_iso())
        except Exception as e:
            handle_error(e, "Updating profile settings", self.notify)
            return False
        self.settings = settings
        if self.notify:
            self.notify("success", "Settings updated successfully")
        return True

    def sign_out(self) -> None:
        self.settings = ProfileSettings()
