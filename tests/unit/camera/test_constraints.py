"""Tests for per-platform capture constraint profiles."""

import pytest

from motion_input.camera.constraints import (
    FACING_ENVIRONMENT,
    FACING_USER,
    KICK_CONSTRAINTS,
    ConstraintSet,
    IdealRange,
    build_constraint_profiles,
    render_retry_count,
)
from motion_input.core.platform_info import CapturePlatform, CapturePlatformProfile


@pytest.mark.parametrize("platform", list(CapturePlatform))
def test_profiles_never_empty_and_user_facing(platform):
    profiles = build_constraint_profiles(CapturePlatformProfile(platform))
    assert profiles
    assert all(profile.facing_mode == FACING_USER for profile in profiles)


def test_ios_prefers_high_resolution_first():
    profiles = build_constraint_profiles(CapturePlatformProfile(CapturePlatform.IOS))
    assert len(profiles) == 3
    assert profiles[0].width == IdealRange(960, 1280)
    assert profiles[0].height == IdealRange(540, 720)
    assert profiles[0].frame_rate == IdealRange(24, 30)
    assert profiles[2].frame_rate is None


def test_android_ends_with_facing_only_profile():
    profiles = build_constraint_profiles(CapturePlatformProfile(CapturePlatform.ANDROID))
    assert profiles[-1] == ConstraintSet()
    assert profiles[0].width == IdealRange(640, 1280)


def test_harmony_uses_android_profiles():
    harmony = build_constraint_profiles(CapturePlatformProfile(CapturePlatform.HARMONY))
    android = build_constraint_profiles(CapturePlatformProfile(CapturePlatform.ANDROID))
    assert harmony == android


def test_desktop_profiles():
    profiles = build_constraint_profiles(CapturePlatformProfile(CapturePlatform.DESKTOP))
    assert [p.width.ideal for p in profiles] == [1280, 960]
    assert profiles[0].frame_rate == IdealRange(30, 30)


def test_returned_list_is_a_copy():
    profile = CapturePlatformProfile(CapturePlatform.DESKTOP)
    build_constraint_profiles(profile).clear()
    assert build_constraint_profiles(profile)


def test_render_retry_count():
    assert render_retry_count(CapturePlatformProfile(CapturePlatform.IOS)) == 3
    assert render_retry_count(CapturePlatformProfile(CapturePlatform.ANDROID)) == 1
    assert render_retry_count(CapturePlatformProfile(CapturePlatform.DESKTOP)) == 1


def test_constraint_dict_shape():
    data = ConstraintSet(width=IdealRange(640, 1280), frame_rate=IdealRange(24)).to_dict()
    assert data == {
        "facingMode": {"ideal": "user"},
        "width": {"ideal": 640, "max": 1280},
        "frameRate": {"ideal": 24},
    }


def test_kick_constraints_face_away_at_low_resolution():
    assert KICK_CONSTRAINTS.facing_mode == FACING_ENVIRONMENT
    assert KICK_CONSTRAINTS.width == IdealRange(320, 640)
    assert KICK_CONSTRAINTS.height == IdealRange(240, 480)
    assert KICK_CONSTRAINTS.frame_rate == IdealRange(20, 30)
