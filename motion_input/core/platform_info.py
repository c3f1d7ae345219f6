"""
Capture platform detection.

Resolves the platform profile that decides camera constraint ordering and the
render-retry budget. A profile is derived once per camera session manager,
either from a client user-agent string (when frames come from a browser or a
mobile shell) or from the interpreter's own platform.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from motion_input.core.logging_utils import get_module_logger

logger = get_module_logger("PlatformInfo")


class CapturePlatform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    HARMONY = "harmony"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CapturePlatformProfile:
    """Immutable platform information for one capture session.

    Attributes:
        platform: Platform family used to pick constraint profiles.
        is_tablet: True for tablets (iPad, Android tablets).
        is_mobile: True for any phone or tablet class device.
    """

    platform: CapturePlatform
    is_tablet: bool = False
    is_mobile: bool = False

    @property
    def is_ios(self) -> bool:
        return self.platform is CapturePlatform.IOS

    def __str__(self) -> str:
        kind = "tablet" if self.is_tablet else ("mobile" if self.is_mobile else "fixed")
        return f"{self.platform.value} ({kind})"


_IOS_RE = re.compile(r"iPhone|iPad|iPod", re.IGNORECASE)
_MAC_RE = re.compile(r"Macintosh", re.IGNORECASE)
_HARMONY_RE = re.compile(r"HarmonyOS|OpenHarmony|OHOS|HMOS|ArkWeb", re.IGNORECASE)
_ANDROID_RE = re.compile(r"Android", re.IGNORECASE)
_TABLET_RE = re.compile(r"iPad|Tablet", re.IGNORECASE)
_MOBILE_RE = re.compile(r"Mobile", re.IGNORECASE)


def profile_from_user_agent(user_agent: str, *, touch_capable: bool = False) -> CapturePlatformProfile:
    """Classify a browser user agent.

    ``touch_capable`` distinguishes iPadOS (which reports a Macintosh user
    agent) from a real desktop Mac.
    """
    is_touch_mac = bool(_MAC_RE.search(user_agent)) and touch_capable
    is_ios = bool(_IOS_RE.search(user_agent)) or is_touch_mac
    is_harmony = bool(_HARMONY_RE.search(user_agent))
    is_android = bool(_ANDROID_RE.search(user_agent)) and not is_harmony
    is_tablet = bool(_TABLET_RE.search(user_agent)) or (is_touch_mac and not _MOBILE_RE.search(user_agent))
    is_mobile = is_ios or is_android or is_harmony or bool(_MOBILE_RE.search(user_agent))

    if is_ios:
        return CapturePlatformProfile(CapturePlatform.IOS, is_tablet=is_tablet, is_mobile=True)
    if is_harmony:
        return CapturePlatformProfile(CapturePlatform.HARMONY, is_tablet=is_tablet, is_mobile=True)
    if is_android:
        return CapturePlatformProfile(CapturePlatform.ANDROID, is_tablet=is_tablet, is_mobile=True)
    if not is_mobile:
        return CapturePlatformProfile(CapturePlatform.DESKTOP)
    return CapturePlatformProfile(CapturePlatform.UNKNOWN, is_tablet=is_tablet, is_mobile=is_mobile)


def profile_from_sys_platform(sys_platform: Optional[str] = None) -> CapturePlatformProfile:
    """Classify the running interpreter (``ios``/``android`` builds exist since 3.13)."""
    name = sys_platform or sys.platform
    if name == "ios":
        return CapturePlatformProfile(CapturePlatform.IOS, is_mobile=True)
    if name == "android":
        return CapturePlatformProfile(CapturePlatform.ANDROID, is_mobile=True)
    if name.startswith(("linux", "darwin", "win32", "cygwin", "freebsd")):
        return CapturePlatformProfile(CapturePlatform.DESKTOP)
    return CapturePlatformProfile(CapturePlatform.UNKNOWN)


def detect_platform_profile(
    user_agent: Optional[str] = None,
    *,
    touch_capable: bool = False,
) -> CapturePlatformProfile:
    """Detect the capture platform profile.

    This performs the actual detection; callers keep the result for the
    lifetime of their session.
    """
    if user_agent:
        profile = profile_from_user_agent(user_agent, touch_capable=touch_capable)
        source = "user-agent"
    else:
        profile = profile_from_sys_platform()
        source = "interpreter"

    logger.info("Capture platform detected: %s", profile, fields={"source": source})
    return profile


__all__ = [
    "CapturePlatform",
    "CapturePlatformProfile",
    "detect_platform_profile",
    "profile_from_sys_platform",
    "profile_from_user_agent",
]
