"""Override control application service.

Reads and flips the operational feature flags. Every operation works on a
snapshot taken once per request.
"""

import re
from collections.abc import Callable
from datetime import datetime

import structlog

from filemarket.domain import FeatureFlags, NotFoundError, OverrideControl, ValidationError, utc_now
from filemarket.infrastructure.repositories import OverrideRepository

logger = structlog.get_logger()

FEATURE_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,99}$")


class OverrideService:
    """Application service for override controls."""

    def __init__(
        self,
        overrides: OverrideRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.overrides = overrides
        self.clock = clock

    async def current_flags(self) -> FeatureFlags:
        return await self.overrides.snapshot()

    async def list_controls(self) -> list[OverrideControl]:
        return await self.overrides.list_all()

    async def set_control(
        self,
        feature_key: str,
        enabled: bool,
        actor: str | None,
        description: str | None = None,
    ) -> OverrideControl:
        """Enable or disable an existing override control.

        Raises:
            ValidationError: If the key is malformed.
            NotFoundError: If no control with that key exists.
        """
        if not FEATURE_KEY_PATTERN.match(feature_key):
            raise ValidationError(
                "Feature key must be lower_snake_case",
                details={"feature_key": feature_key},
            )
        if await self.overrides.get(feature_key) is None:
            raise NotFoundError(
                f"Unknown override control: {feature_key}",
                details={"feature_key": feature_key},
            )

        control = await self.overrides.set(
            feature_key,
            enabled,
            updated_by=actor,
            description=description,
            now=self.clock(),
        )
        logger.info(
            "Override control updated",
            feature_key=feature_key,
            enabled=enabled,
            updated_by=actor,
        )
        return control
