"""
tests/test_startup — Startup Validation
========================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default; ``config.yaml`` loading fills in defaults.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from aethex.api.deps import _load_jwt_secret, admin_actor_id
from aethex.config import DEFAULT_VERIFY_URL, load_config


class TestJWTSecretValidation:
    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                _load_jwt_secret()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="not set"):
                _load_jwt_secret()

    @pytest.mark.parametrize("secret", ["aethex-dev-secret-change-me", "change-me"])
    def test_rejects_known_weak_default(self, secret):
        with patch.dict(os.environ, {"JWT_SECRET": secret}):
            with pytest.raises(RuntimeError, match="known weak default"):
                _load_jwt_secret()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                _load_jwt_secret()

    def test_accepts_strong_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "a" * 64}):
            assert _load_jwt_secret() == "a" * 64


@pytest.mark.parametrize("sub,expected", [("12345", 12345), ("user-abc", 0), ("", 0)])
def test_admin_actor_id(sub, expected):
    assert admin_actor_id({"sub": sub}) == expected


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("community_name: AeThex\nbot_prefix: '!'\n", encoding="utf-8")

        cfg = load_config(path)

        assert cfg.community_name == "AeThex"
        assert cfg.verify_url == DEFAULT_VERIFY_URL
        assert cfg.verification_ttl_minutes == 15
        assert cfg.provider_timeout_seconds == 10.0
        assert cfg.family_match_by_name is True

    def test_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "community_name: AeThex\n"
            "bot_prefix: '!'\n"
            "verify_url: https://staging.aethex.dev/discord-verify/\n"
            "verification_ttl_minutes: 5\n"
            "family_match_by_name: false\n",
            encoding="utf-8",
        )

        cfg = load_config(path)

        assert cfg.verify_url == "https://staging.aethex.dev/discord-verify"
        assert cfg.verification_ttl_minutes == 5
        assert cfg.family_match_by_name is False

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("bot_prefix: '!'\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_config(path)
