"""Shared API dependency providers."""

from __future__ import annotations

from procon.core.instance_manager import InstanceManager
from procon.settings import RuntimeSettings


def get_settings() -> RuntimeSettings:
    return RuntimeSettings.from_env()


def get_instance_manager() -> InstanceManager:
    return InstanceManager(get_settings())
