import subprocess
from pathlib import Path
from typing import Final

_GITHUB_HOST: Final = "github.com"


def _git(args: list[str], cwd: None | Path) -> None | str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        return None
    if result.returncode != 0:
        return None
    output = result.stdout.strip()
    return output if output else None


def parse_github_remote(url: str) -> None | str:
    # Handles https://github.com/owner/repo.git and git@github.com:owner/repo.git
    pos = url.find(_GITHUB_HOST)
    if pos < 0:
        return None
    path = url[pos + len(_GITHUB_HOST) :].lstrip(":/").removesuffix(".git")
    match path.split("/"):
        case [owner, repo] if owner and repo:
            return f"{owner}/{repo}"
        case _:
            return None


def default_repository_from_git(cwd: None | Path = None) -> None | str:
    url = _git(["config", "--get", "remote.origin.url"], cwd)
    return parse_github_remote(url) if url is not None else None


def default_ref_from_git(cwd: None | Path = None) -> None | str:
    branch = _git(["symbolic-ref", "--short", "HEAD"], cwd)
    if branch is not None:
        return branch
    # Detached HEAD
    return _git(["rev-parse", "HEAD"], cwd)
