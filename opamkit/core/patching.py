"""
Apply unified-diff patches with the system ``patch`` tool.
"""

import logging
import shutil
import subprocess
from pathlib import Path

from opamkit.core.exceptions import PatchApplyError

logger = logging.getLogger(__name__)


def apply_patch(patch_file: Path, cwd: Path, strip: int = 1) -> None:
    """
    Apply ``patch_file`` inside ``cwd`` (``patch -p<strip>``).

    Args:
        patch_file: Patch to apply, absolute or relative to cwd
        cwd: Directory the patch paths are relative to
        strip: Number of leading path components to strip from patch paths

    Raises:
        PatchApplyError: If the patch tool is missing or the patch does not apply
    """
    patch_exe = shutil.which("patch")
    if not patch_exe:
        raise PatchApplyError(
            "The 'patch' tool is required to apply package patches but was not found."
        )

    cmd = [patch_exe, f"-p{strip}", "--batch", "-i", str(patch_file)]
    logger.debug(f"Running {' '.join(cmd)} in {cwd}")

    try:
        subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        raise PatchApplyError(
            f"Failed to apply patch {Path(patch_file).name}: {e.stdout}{e.stderr}"
        ) from e
