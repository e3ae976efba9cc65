"""ProfileService: CRUD over the profile store plus URL-binding lookup."""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from fieldwise.ai.vector_index import VectorIndex
from fieldwise.core.exceptions import ProfileNotFoundError
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.core.protocols import IProfileStore
from fieldwise.matching.classifier import extract_domain
from fieldwise.models.profile import BindingType, Profile, URLBinding

logger = get_logger(__name__)


def binding_matches(binding: URLBinding, url: str) -> bool:
    if binding.type == BindingType.EXACT:
        return url == binding.pattern
    if binding.type == BindingType.DOMAIN:
        host = extract_domain(url)
        pattern = binding.pattern.lower()
        return host == pattern or host.endswith(f".{pattern}")
    try:
        return re.search(binding.pattern, url) is not None
    except re.error:
        log_with_context(logger, logging.WARNING, "Invalid URL binding regex", pattern=binding.pattern)
        return False


class ProfileService:
    def __init__(self, store: IProfileStore, index: VectorIndex | None = None) -> None:
        self._store = store
        self._index = index

    def get(self, profile_id: str) -> Profile | None:
        return self._store.get(profile_id)

    def require(self, profile_id: str) -> Profile:
        profile = self._store.get(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    def list_all(self) -> list[Profile]:
        return self._store.list_all()

    def create(self, name: str, **fields: Any) -> Profile:
        profile = Profile(name=name, **fields)
        self._store.put(profile)
        log_with_context(logger, logging.INFO, "Profile created", profile_id=profile.id)
        return profile

    def save(self, profile: Profile) -> Profile:
        """Persist ``profile`` as the next version."""
        profile.version += 1
        profile.updated_at = time.time()
        self._store.put(profile)
        return profile

    def update(self, profile_id: str, **changes: Any) -> Profile:
        profile = self.require(profile_id)
        updated = profile.model_validate({**profile.model_dump(), **changes, "id": profile.id})
        return self.save(updated)

    def delete(self, profile_id: str) -> None:
        self._store.delete(profile_id)
        if self._index is not None:
            self._index.delete_by_profile(profile_id)
        log_with_context(logger, logging.INFO, "Profile deleted", profile_id=profile_id)

    def find_for_url(self, url: str) -> Profile | None:
        """Highest-priority profile bound to ``url``."""
        best: tuple[int, Profile] | None = None
        for profile in self._store.list_all():
            for binding in profile.url_bindings:
                if binding_matches(binding, url) and (best is None or binding.priority > best[0]):
                    best = (binding.priority, profile)
        return best[1] if best else None
