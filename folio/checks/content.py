"""Lint the example projects embedded in the content tree.

Every directory below content/ that holds a manifest (Cargo.toml by default)
is linted in place. All projects are linted even after a failure; the
overall result is derived from the returned list of per-project results.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from pydantic import BaseModel, Field

from ..config import LINT_CLEAN_DIRS, LINT_COMMAND, LINT_MANIFEST

logger = logging.getLogger(__name__)


class ProjectResult(BaseModel):
    path: str
    passed: bool
    returncode: int
    output: str = ""


class LintReport(BaseModel):
    results: list[ProjectResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[ProjectResult]:
        return [r for r in self.results if not r.passed]

    @property
    def passed(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


def find_projects(
    content_dir: Path, manifest: str = LINT_MANIFEST, skip_dirs: list[str] | None = None
) -> list[Path]:
    """Directories under `content_dir` containing `manifest`, sorted.

    Manifests inside build output or hidden directories are ignored.
    """
    skip = set(skip_dirs if skip_dirs is not None else LINT_CLEAN_DIRS)
    projects = []
    for file in content_dir.rglob(manifest):
        rel = file.parent.relative_to(content_dir)
        if any(part in skip or part.startswith(".") for part in rel.parts):
            continue
        if file.is_file():
            projects.append(file.parent)
    return sorted(projects)


def lint_project(path: Path, command: list[str] | None = None) -> ProjectResult:
    """Run the lint command inside one project directory."""
    cmd = list(command or LINT_COMMAND)
    logger.debug("Linting %s: %s", path, " ".join(cmd))
    try:
        proc = subprocess.run(cmd, cwd=path, capture_output=True, text=True)
    except FileNotFoundError:
        return ProjectResult(path=str(path), passed=False, returncode=127, output=f"{cmd[0]}: command not found")
    except OSError as e:
        return ProjectResult(path=str(path), passed=False, returncode=126, output=f"{cmd[0]}: {e}")
    output = (proc.stdout + proc.stderr).strip()
    return ProjectResult(path=str(path), passed=proc.returncode == 0, returncode=proc.returncode, output=output)


def check_content(
    content_dir: Path,
    command: list[str] | None = None,
    manifest: str = LINT_MANIFEST,
    skip_dirs: list[str] | None = None,
    verbose: bool = False,
) -> LintReport:
    """Lint every project under `content_dir` and print one line per project.

    Args:
        content_dir: Content root to search
        command: Lint command (argv), run with cwd set to each project
        manifest: File name that marks a project
        skip_dirs: Build directory names to ignore while searching
        verbose: Also print the output of failing lint runs

    Returns:
        LintReport with one result per project, in path order
    """
    report = LintReport()
    projects = find_projects(content_dir, manifest, skip_dirs)
    if not projects:
        logger.info("No %s found under %s", manifest, content_dir)

    for project in projects:
        result = lint_project(project, command)
        report.results.append(result)
        shown = _display_path(project, content_dir)
        if result.passed:
            print(f"✓ Project in {shown} passed")
        else:
            print(f"✗ Project in {shown} failed")
            if verbose and result.output:
                print(result.output)

    print()
    if report.passed:
        print("All projects passed checks!")
    else:
        print("Some projects failed checks.")
    return report


def clean_content(content_dir: Path, clean_dirs: list[str] | None = None, manifest: str = LINT_MANIFEST) -> list[Path]:
    """Delete build directories of every project under `content_dir`.

    Returns:
        Removed directories
    """
    removed = []
    for project in find_projects(content_dir, manifest, clean_dirs):
        for name in clean_dirs if clean_dirs is not None else LINT_CLEAN_DIRS:
            target = project / name
            if target.is_dir():
                shutil.rmtree(target)
                removed.append(target)
                logger.info("Removed %s", target)
    return removed


def _display_path(project: Path, content_dir: Path) -> str:
    # Matches the "content/blog/post/example" form `find content` prints.
    try:
        rel = project.relative_to(content_dir.parent)
    except ValueError:
        return str(project)
    return rel.as_posix()
