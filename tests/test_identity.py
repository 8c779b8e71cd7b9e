from __future__ import annotations

import asyncio
import os
import time

from core.config import IdentityConfig
from core.identity import IdentityResolver, display_name_for
from core.models import SenderProfile


class FakeProfiles:
    def __init__(self, profile=None, profile_error=None, avatar_bytes=None, avatar_error=None) -> None:
        self._profile = profile
        self._profile_error = profile_error
        self._avatar_bytes = avatar_bytes
        self._avatar_error = avatar_error
        self.avatar_calls = 0

    async def get_profile(self, sender_ref, user_id):
        if self._profile_error:
            raise self._profile_error
        return self._profile

    async def download_avatar(self, sender_ref, user_id, dest_path):
        self.avatar_calls += 1
        if self._avatar_error:
            raise self._avatar_error
        if self._avatar_bytes is None:
            return None
        with open(dest_path, "wb") as handle:
            handle.write(self._avatar_bytes)
        return dest_path


def _config(tmp_path, **overrides) -> IdentityConfig:
    default = tmp_path / "default.png"
    default.write_bytes(b"default-avatar")
    values = dict(avatar_dir=str(tmp_path / "avatars"), default_avatar=str(default))
    values.update(overrides)
    return IdentityConfig(**values)


ADA = SenderProfile(user_id=42, first_name="Ada", last_name="Lovelace", username="ada")


def _age(path, days: float) -> None:
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


def test_profile_with_fresh_avatar(tmp_path) -> None:
    config = _config(tmp_path)
    resolver = IdentityResolver(FakeProfiles(profile=ADA, avatar_bytes=b"fresh"), config)

    identity = asyncio.run(resolver.resolve(object(), 42))

    assert identity.display_name == "Ada Lovelace"
    assert identity.handle == "ada"
    assert identity.avatar_location == os.path.join(config.avatar_dir, "42.jpg")
    with open(identity.avatar_location, "rb") as handle:
        assert handle.read() == b"fresh"


def test_failed_avatar_uses_cached_copy(tmp_path) -> None:
    config = _config(tmp_path)
    os.makedirs(config.avatar_dir)
    cached = os.path.join(config.avatar_dir, "42.jpg")
    with open(cached, "wb") as handle:
        handle.write(b"cached")
    _age(cached, days=2)
    profiles = FakeProfiles(profile=ADA, avatar_error=TimeoutError())
    resolver = IdentityResolver(profiles, config)

    identity = asyncio.run(resolver.resolve(None, 42))

    assert identity.avatar_location == cached
    assert profiles.avatar_calls == 1


def test_failed_avatar_without_cache_uses_default(tmp_path) -> None:
    config = _config(tmp_path)
    resolver = IdentityResolver(FakeProfiles(profile=ADA, avatar_error=ConnectionError()), config)

    identity = asyncio.run(resolver.resolve(None, 42))

    assert identity.display_name == "Ada Lovelace"
    assert identity.avatar_location == config.default_avatar


def test_user_without_photo_gets_default(tmp_path) -> None:
    config = _config(tmp_path)
    resolver = IdentityResolver(FakeProfiles(profile=ADA, avatar_bytes=None), config)

    identity = asyncio.run(resolver.resolve(None, 42))

    assert identity.avatar_location == config.default_avatar


def test_unresolvable_sender_gets_synthetic_identity(tmp_path) -> None:
    config = _config(tmp_path)
    resolver = IdentityResolver(FakeProfiles(profile_error=ValueError("gone")), config)

    identity = asyncio.run(resolver.resolve(None, 77))

    assert identity.display_name == "user_77"
    assert identity.handle == "user_77"
    assert identity.avatar_location == os.path.join(config.avatar_dir, "77.jpg")
    with open(identity.avatar_location, "rb") as handle:
        assert handle.read() == b"default-avatar"


def test_missing_sender_id_is_unknown_user(tmp_path) -> None:
    config = _config(tmp_path)
    resolver = IdentityResolver(FakeProfiles(profile_error=LookupError()), config)

    identity = asyncio.run(resolver.resolve(None, None))

    assert identity.display_name == "Unknown User"
    assert identity.avatar_location == config.default_avatar


def test_hosted_avatars_are_exposed_as_urls(tmp_path) -> None:
    config = _config(tmp_path, avatar_base_url="https://cdn.example.com/avatars/")
    resolver = IdentityResolver(FakeProfiles(profile=ADA, avatar_bytes=b"fresh"), config)

    identity = asyncio.run(resolver.resolve(None, 42))

    assert identity.avatar_location == "https://cdn.example.com/avatars/42.jpg"


def test_display_name_prefers_names_then_title() -> None:
    assert display_name_for(SenderProfile(user_id=1, first_name="Ada")) == "Ada"
    assert display_name_for(SenderProfile(user_id=1, title="News Channel")) == "News Channel"
    assert display_name_for(SenderProfile(user_id=1, username="ada")) is None


def test_username_used_when_no_display_name(tmp_path) -> None:
    config = _config(tmp_path)
    profile = SenderProfile(user_id=5, username="nameless")
    resolver = IdentityResolver(FakeProfiles(profile=profile), config)

    identity = asyncio.run(resolver.resolve(None, 5))

    assert identity.display_name == "nameless"


def test_repeat_senders_reuse_the_cached_avatar(tmp_path) -> None:
    config = _config(tmp_path)
    profiles = FakeProfiles(profile=ADA, avatar_bytes=b"fresh")
    resolver = IdentityResolver(profiles, config)

    for _ in range(3):
        identity = asyncio.run(resolver.resolve(None, 42))

    assert profiles.avatar_calls == 1
    assert identity.avatar_location == os.path.join(config.avatar_dir, "42.jpg")


def test_expired_avatar_is_downloaded_again(tmp_path) -> None:
    config = _config(tmp_path, avatar_cache_ttl_seconds=3600)
    os.makedirs(config.avatar_dir)
    cached = os.path.join(config.avatar_dir, "42.jpg")
    with open(cached, "wb") as handle:
        handle.write(b"old")
    _age(cached, days=1)
    profiles = FakeProfiles(profile=ADA, avatar_bytes=b"new")
    resolver = IdentityResolver(profiles, config)

    identity = asyncio.run(resolver.resolve(None, 42))

    assert profiles.avatar_calls == 1
    with open(identity.avatar_location, "rb") as handle:
        assert handle.read() == b"new"


def test_zero_ttl_keeps_cached_avatar_forever(tmp_path) -> None:
    config = _config(tmp_path, avatar_cache_ttl_seconds=0)
    os.makedirs(config.avatar_dir)
    cached = os.path.join(config.avatar_dir, "42.jpg")
    with open(cached, "wb") as handle:
        handle.write(b"old")
    _age(cached, days=365)
    profiles = FakeProfiles(profile=ADA, avatar_bytes=b"new")

    identity = asyncio.run(IdentityResolver(profiles, config).resolve(None, 42))

    assert identity.avatar_location == cached
    assert profiles.avatar_calls == 0
