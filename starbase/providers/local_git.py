"""Local git provider: repositories on disk driven through git plumbing."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import tempfile
from pathlib import Path, PurePosixPath

from starbase.providers.base import (
    FileEntry,
    PullRequest,
    PullResult,
    PushRequest,
    RemoteBranch,
    RemoteCommit,
    TreeEntry,
    matches_any,
)
from starbase.providers.errors import ProviderError, ProviderNetworkError, ProviderNotFoundError
from starbase.services.datetime_service import parse_datetime

logger = logging.getLogger(__name__)

_ZERO_SHA = "0" * 40
_AUTHOR_NAME = "Starbase"
_AUTHOR_EMAIL = "starbase@localhost"


class LocalGitClient:
    """Provider client for bare or non-bare repositories under ``base_dir``.

    ``repo`` names are paths relative to ``base_dir``. No worktree is touched:
    commits are assembled in a throwaway index, so pushing to a checked-out
    branch leaves that checkout's files alone.
    """

    type = "local"

    def __init__(self, base_dir: Path, *, timeout: float = 30.0) -> None:
        self.base_dir = Path(base_dir)
        self.timeout = timeout

    def _git(
        self,
        *args: str,
        cwd: Path | None = None,
        input_text: str | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command, translating failures into provider errors."""
        cmd = ["git"]
        if cwd is not None:
            cmd += ["-C", str(cwd)]
        cmd += list(args)
        try:
            raw = subprocess.run(
                cmd,
                input=input_text.encode("utf-8") if input_text is not None else None,
                capture_output=True,
                env=env,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProviderNetworkError(f"git {args[0]} timed out after {self.timeout}s") from exc
        except FileNotFoundError as exc:
            raise ProviderError("git executable not found") from exc
        # Bytes mode keeps CRLF line endings in blob contents intact.
        result = subprocess.CompletedProcess(
            raw.args,
            raw.returncode,
            raw.stdout.decode("utf-8", errors="replace"),
            raw.stderr.decode("utf-8", errors="replace"),
        )
        if check and result.returncode != 0:
            stderr = result.stderr.strip() if result.stderr else "no stderr"
            logger.error("git %s failed (exit %d): %s", args[0], result.returncode, stderr)
            raise ProviderError(f"git {args[0]} failed: {stderr}")
        return result

    @staticmethod
    def _relative(repo: str) -> PurePosixPath:
        relative = PurePosixPath(repo.strip("/"))
        if not repo.strip("/") or ".." in relative.parts:
            raise ValueError(f"Invalid repository name: {repo!r}")
        return relative

    def _repo_path(self, repo: str) -> Path:
        relative = self._relative(repo)
        path = self.base_dir / relative
        if not path.is_dir():
            bare = self.base_dir / f"{relative}.git"
            if bare.is_dir():
                return bare
            raise ProviderNotFoundError(f"Repository not found: {repo}")
        return path

    def _resolve_branch(self, path: Path, branch: str) -> str | None:
        result = self._git(
            "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}^{{commit}}",
            cwd=path,
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def _commit_info(self, path: Path, sha: str) -> RemoteCommit:
        out = self._git("show", "-s", "--format=%H%x00%an%x00%cI%x00%B", sha, cwd=path).stdout
        full_sha, author, date, message = out.split("\x00", 3)
        message = message.rstrip("\n")
        return RemoteCommit(sha=full_sha, message=message, author=author, date=parse_datetime(date))

    def _blobs(self, path: Path, sha: str) -> list[tuple[str, str]]:
        """(path, blob sha) of every file reachable from ``sha``."""
        out = self._git("ls-tree", "-r", "-z", sha, cwd=path).stdout
        blobs: list[tuple[str, str]] = []
        for record in out.split("\x00"):
            if not record:
                continue
            meta, file_path = record.split("\t", 1)
            _mode, obj_type, obj_sha = meta.split()
            if obj_type == "blob":
                blobs.append((file_path, obj_sha))
        return blobs

    def create_repository(self, repo: str, *, default_branch: str = "main") -> Path:
        """Initialize an empty bare repository under ``base_dir``."""
        path = self.base_dir / self._relative(repo)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._git("init", "--bare", f"--initial-branch={default_branch}", str(path))
        logger.info("Created local repository %s", path)
        return path

    def _get_branches(self, repo: str) -> list[RemoteBranch]:
        path = self._repo_path(repo)
        head = self._git("symbolic-ref", "--short", "HEAD", cwd=path, check=False).stdout.strip()
        out = self._git(
            "for-each-ref", "--format=%(refname:short)%00%(objectname)", "refs/heads", cwd=path
        ).stdout
        branches: list[RemoteBranch] = []
        for line in out.splitlines():
            if not line:
                continue
            name, sha = line.split("\x00")
            branches.append(RemoteBranch(name=name, sha=sha, is_default=name == head))
        return branches

    def _get_tree(self, repo: str, branch: str) -> list[TreeEntry]:
        path = self._repo_path(repo)
        sha = self._resolve_branch(path, branch)
        if sha is None:
            return []
        return [TreeEntry(path=p, type="blob", sha=s) for p, s in self._blobs(path, sha)]

    def _push_files(self, request: PushRequest) -> RemoteCommit:
        path = self._repo_path(request.repo)
        parent = self._resolve_branch(path, request.branch)
        if parent is None and not request.create_branch:
            raise ProviderNotFoundError(
                f"Branch {request.branch} not found in {request.repo}"
            )

        with tempfile.TemporaryDirectory(prefix="starbase-index-") as tmp:
            env = {
                **os.environ,
                "GIT_INDEX_FILE": str(Path(tmp) / "index"),
                "GIT_AUTHOR_NAME": _AUTHOR_NAME,
                "GIT_AUTHOR_EMAIL": _AUTHOR_EMAIL,
                "GIT_COMMITTER_NAME": _AUTHOR_NAME,
                "GIT_COMMITTER_EMAIL": _AUTHOR_EMAIL,
            }
            if parent is not None:
                self._git("read-tree", parent, cwd=path, env=env)
            for entry in request.files:
                blob = self._git(
                    "hash-object", "-w", "--stdin", cwd=path, input_text=entry.content, env=env
                ).stdout.strip()
                self._git(
                    "update-index", "--add", "--cacheinfo", f"100644,{blob},{entry.path}",
                    cwd=path,
                    env=env,
                )
            if request.deletions:
                # Mode 0 removes an index entry without consulting a work tree.
                removals = "".join(f"0 {_ZERO_SHA}\t{deleted}\n" for deleted in request.deletions)
                self._git("update-index", "--index-info", cwd=path, input_text=removals, env=env)
            tree = self._git("write-tree", cwd=path, env=env).stdout.strip()

            commit_args = ["commit-tree", tree, "-m", request.message]
            if parent is not None:
                commit_args += ["-p", parent]
            new_sha = self._git(*commit_args, cwd=path, env=env).stdout.strip()

        # Compare-and-swap so a concurrent writer is not silently overwritten.
        self._git(
            "update-ref", f"refs/heads/{request.branch}", new_sha, parent or _ZERO_SHA, cwd=path
        )
        logger.info(
            "Pushed %d file(s) and %d deletion(s) to %s@%s as %s",
            len(request.files),
            len(request.deletions),
            request.repo,
            request.branch,
            new_sha,
        )
        return self._commit_info(path, new_sha)

    def _pull_files(self, request: PullRequest) -> PullResult:
        path = self._repo_path(request.repo)
        sha = self._resolve_branch(path, request.branch)
        if sha is None:
            raise ProviderNotFoundError(f"Branch {request.branch} not found in {request.repo}")
        files = [
            FileEntry(
                path=file_path,
                content=self._git("cat-file", "blob", blob, cwd=path).stdout,
            )
            for file_path, blob in self._blobs(path, sha)
            if matches_any(file_path, request.patterns)
        ]
        return PullResult(files=files, commit=self._commit_info(path, sha))

    async def get_branches(self, repo: str) -> list[RemoteBranch]:
        return await asyncio.to_thread(self._get_branches, repo)

    async def get_tree(self, repo: str, branch: str) -> list[TreeEntry]:
        return await asyncio.to_thread(self._get_tree, repo, branch)

    async def push_files(self, request: PushRequest) -> RemoteCommit:
        return await asyncio.to_thread(self._push_files, request)

    async def pull_files(self, request: PullRequest) -> PullResult:
        return await asyncio.to_thread(self._pull_files, request)

    async def close(self) -> None:
        return None
