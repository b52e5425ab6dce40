"""
Repository credential lookup.
"""

import json
import logging
import os
from typing import Dict, Optional, Protocol

from engine.src.config import get_settings
from engine.src.errors import AuthLookupMiss

logger = logging.getLogger(__name__)

class RepoAuth(Protocol):
    def get(self, repo_full_name: str) -> Optional[str]:
        """Return the bearer token for `owner/repo`, raising AuthLookupMiss if none is stored."""
        ...

class StaticRepoAuth:
    """In-memory credentials, keyed by `owner/repo`."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self._tokens = dict(tokens or {})

    def get(self, repo_full_name: str) -> Optional[str]:
        if repo_full_name not in self._tokens:
            raise AuthLookupMiss(repo_full_name)
        return self._tokens[repo_full_name] or None

class FileRepoAuth:
    """
    Credentials stored as one JSON file per repository:
    `<directory>/<owner>_<repo>.json` with a `github_token` field.
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory or get_settings().auth_data_dir

    def path_for(self, repo_full_name: str) -> str:
        auth_id = repo_full_name.replace("/", "_")
        return os.path.join(self.directory, f"{auth_id}.json")

    def get(self, repo_full_name: str) -> Optional[str]:
        filename = self.path_for(repo_full_name)

        try:
            with open(filename, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise AuthLookupMiss(repo_full_name)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable auth data for {repo_full_name}: {e}")
            raise AuthLookupMiss(repo_full_name) from e

        return data.get("github_token") or None
