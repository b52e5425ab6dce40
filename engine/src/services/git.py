"""
Source acquisition: prepare a working tree at the requested revision.
"""

import logging
import os
import re
import shutil
import subprocess
from typing import List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from engine.src.config import get_settings
from engine.src.errors import (
    AuthLookupMiss,
    CheckoutFailed,
    CloneFailed,
    GitQueryError,
    UnsupportedRefKind,
)
from engine.src.services.repo_auth import RepoAuth

logger = logging.getLogger(__name__)
settings = get_settings()

_REPO_PATH = re.compile(r"[:/]([^/:]+)/([^/]+?)(?:\.git)?/?$")

def _git(
    args: List[str],
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run a git command, capturing text output. Never raises on exit status."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        timeout=timeout or settings.git_timeout,
    )
    # Remote messages are not guaranteed to be UTF-8
    return subprocess.CompletedProcess(
        result.args,
        result.returncode,
        _decode(result.stdout),
        _decode(result.stderr),
    )

def _decode(data) -> str:
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data or ""

def resolve_branch(ref: str, default_branch: Optional[str] = None) -> str:
    """
    Get branch from ref (refs/heads/feature/x -> feature/x).
    Tag refs are rejected; anything else falls back to the default branch.
    """
    default_branch = default_branch or settings.default_branch
    parts = ref.split("/")

    if len(parts) > 2 and parts[0] == "refs" and parts[1] == "heads":
        branch = "/".join(p for p in parts[2:] if p)
        if branch:
            return branch

    if len(parts) > 2 and parts[0] == "refs" and parts[1] == "tags":
        logger.info(f"Ignoring tag ref for cloning: {ref}")
        raise UnsupportedRefKind(ref)

    logger.warning(
        f"Could not extract branch name from ref '{ref}', defaulting to '{default_branch}'"
    )
    return default_branch

def repo_full_name_from_url(clone_url: str) -> str:
    """https://github.com/owner/repo.git -> owner/repo"""
    match = _REPO_PATH.search(clone_url)
    if not match:
        return ""
    return f"{match.group(1)}/{match.group(2)}"

def authenticated_clone_url(clone_url: str, token: Optional[str]) -> str:
    """Embed a bearer token into an HTTPS clone URL."""
    if not token:
        return clone_url

    parts = urlsplit(clone_url)
    if parts.scheme != "https":
        logger.warning(f"Not embedding credentials into non-HTTPS URL {clone_url}")
        return clone_url

    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit(parts._replace(netloc=f"oauth2:{token}@{host}"))

def redact_url(clone_url: str) -> str:
    parts = urlsplit(clone_url)
    if "@" not in parts.netloc:
        return clone_url
    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit(parts._replace(netloc=f"***@{host}"))

def lookup_token(auth: Optional[RepoAuth], repo_full_name: str) -> Optional[str]:
    """Look up a clone token. A missing record only costs access to private repos."""
    if auth is None or not repo_full_name:
        return None

    try:
        token = auth.get(repo_full_name)
    except AuthLookupMiss as e:
        logger.warning(f"{e}. Cloning might fail for private repos.")
        return None

    if token:
        logger.info(f"Using stored GitHub token for cloning {repo_full_name}")
    return token

def remove_working_tree(repo_path: str):
    if os.path.exists(repo_path):
        logger.info(f"Removing existing working tree {repo_path}")
        shutil.rmtree(repo_path)

def clone_repository(
    clone_url: str,
    branch: str,
    repo_path: str,
    timeout: Optional[float] = None,
) -> str:
    """
    Full single-branch clone of `branch` into `repo_path`.
    Returns the combined clone output.
    """
    safe_url = redact_url(clone_url)
    timeout = timeout or settings.clone_timeout
    logger.info(f"Cloning {safe_url} (branch: {branch}) into {repo_path}")

    try:
        result = _git(
            ["clone", "--single-branch", "--branch", branch, clone_url, repo_path],
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise CloneFailed(safe_url, f"Repository clone timed out after {timeout}s")
    except OSError as e:
        raise CloneFailed(safe_url, str(e))

    output = _scrub(result.stdout + result.stderr, clone_url, safe_url)
    if result.returncode != 0:
        logger.error(f"git clone error (exit={result.returncode}): {output}")
        raise CloneFailed(safe_url, output)

    logger.debug(f"git clone output: {output}")
    return output

def checkout_commit(repo_path: str, commit_sha: str):
    _checkout(repo_path, commit_sha)

def checkout_branch(repo_path: str, branch: str):
    _checkout(repo_path, branch)

def _checkout(repo_path: str, ref: str):
    logger.info(f"Checking out '{ref}' in {repo_path}")
    try:
        result = _git(["checkout", ref], cwd=repo_path)
    except (subprocess.TimeoutExpired, OSError) as e:
        raise CheckoutFailed(ref, str(e))

    if result.returncode != 0:
        raise CheckoutFailed(ref, result.stderr)

def _query(repo_path: str, args: List[str]) -> str:
    try:
        result = _git(args, cwd=repo_path)
    except (subprocess.TimeoutExpired, OSError) as e:
        raise GitQueryError(args, str(e))

    if result.returncode != 0:
        raise GitQueryError(args, result.stderr)
    return result.stdout.strip()

def get_current_commit(repo_path: str) -> str:
    return _query(repo_path, ["rev-parse", "HEAD"])

def get_current_branch(repo_path: str) -> str:
    args = ["rev-parse", "--abbrev-ref", "HEAD"]
    branch = _query(repo_path, args)
    if branch == "HEAD":
        raise GitQueryError(args, "HEAD is detached")
    return branch

def get_commit_details(repo_path: str, commit_sha: str) -> Tuple[str, str]:
    """Returns (author, message) for a commit."""
    output = _query(repo_path, ["log", "-1", "--format=%an%n%B", commit_sha])
    author, _, message = output.partition("\n")
    return author, message.strip()

def acquire_source(
    clone_url: str,
    ref: str,
    repo_path: str,
    commit_sha: Optional[str] = None,
    auth: Optional[RepoAuth] = None,
    default_branch: Optional[str] = None,
) -> str:
    """
    Replace the working tree at `repo_path` with a clone of `ref`,
    optionally pinned to `commit_sha`. Returns the working tree path.
    """
    branch = resolve_branch(ref, default_branch)

    token = lookup_token(auth, repo_full_name_from_url(clone_url))
    url = authenticated_clone_url(clone_url, token)

    remove_working_tree(repo_path)
    clone_repository(url, branch, repo_path)

    if commit_sha:
        checkout_commit(repo_path, commit_sha)
    else:
        try:
            current = get_current_branch(repo_path)
        except GitQueryError as e:
            logger.warning(f"Could not read checked out branch: {e}")
            current = None

        if current != branch:
            checkout_branch(repo_path, branch)

    return repo_path

def _scrub(output: str, clone_url: str, safe_url: str) -> str:
    if clone_url != safe_url:
        output = output.replace(clone_url, safe_url)
    return output
