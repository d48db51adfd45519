"""Directory search and pagination engine for a crew marketplace."""

from crew_directory.engine import DirectoryEngine
from crew_directory.errors import DirectoryError, FetchError, MutationError
from crew_directory.membership import MembershipCoordinator
from crew_directory.models import (
    DirectoryConfig,
    Entity,
    SectionDefinition,
    SectionItem,
)
from crew_directory.services.interfaces import AppServices, build_default_app_services

__all__ = [
    "AppServices",
    "DirectoryConfig",
    "DirectoryEngine",
    "DirectoryError",
    "Entity",
    "FetchError",
    "MembershipCoordinator",
    "MutationError",
    "SectionDefinition",
    "SectionItem",
    "build_default_app_services",
]
