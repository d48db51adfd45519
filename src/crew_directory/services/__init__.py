"""Backend service layer for the directory engine."""

from crew_directory.services.directory_api_service import (
    DirectoryQuery,
    add_team_member,
    fetch_directory_page,
    fetch_roles,
    fetch_team_members,
    remove_team_member,
)

__all__ = [
    "DirectoryQuery",
    "add_team_member",
    "fetch_directory_page",
    "fetch_roles",
    "fetch_team_members",
    "remove_team_member",
]
