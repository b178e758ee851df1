"""
Unpacks a verified download into a staging directory.
"""
import shutil
import tarfile
import zipfile
from pathlib import Path

from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.errors import StagingError

logger = get_logger(__name__)


def stage_artifact(artifact: Path, staging_dir: Path, filename: str) -> Path:
    """
    Unpacks `artifact` into `staging_dir` and returns the source root.

    tar and zip archives are extracted; when the archive holds a single
    top-level directory, that directory is the source root. Anything else is
    copied in as `filename`.

    Raises:
        StagingError: the archive is corrupt or has members escaping
            `staging_dir`.
    """
    staging_dir.mkdir(parents=True, exist_ok=True)

    try:
        if tarfile.is_tarfile(artifact):
            with tarfile.open(artifact) as tar:
                tar.extractall(staging_dir, filter="data")
            logger.debug("Extracted tar archive", artifact=str(artifact), into=str(staging_dir))
        elif zipfile.is_zipfile(artifact):
            with zipfile.ZipFile(artifact) as archive:
                archive.extractall(staging_dir)
            logger.debug("Extracted zip archive", artifact=str(artifact), into=str(staging_dir))
        else:
            target = staging_dir / filename
            shutil.copy2(artifact, target)
            logger.debug("Staged plain artifact", artifact=str(artifact), target=str(target))
            return staging_dir
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise StagingError(f"Could not unpack {artifact.name}: {e}") from e

    entries = list(staging_dir.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return staging_dir
