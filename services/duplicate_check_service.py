# services/duplicate_check_service.py
# Version 01.00.00.00 dated 20251018
# Name + size duplicate detection against an import destination

import os
import stat
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DuplicateCandidate:
    """A source file to check: path plus size in bytes"""
    path: str
    size: int


CandidateLike = Union[DuplicateCandidate, Tuple[str, int]]


class DuplicateCheckService:
    """
    Flags source files that appear to already exist in a destination folder.

    A candidate is "existing" when the destination's top level holds an entry
    with exactly the same name and exactly the same size. File contents are
    never read, so two different files sharing name and size look identical
    and a renamed copy is not detected.
    """

    def check_existing(self,
                       candidates: Sequence[CandidateLike],
                       destination_dir: str) -> List[bool]:
        """
        Check candidates against a destination.

        Args:
            candidates: (path, size) pairs or DuplicateCandidate objects
            destination_dir: Folder to compare against (top level only)

        Returns:
            One boolean per candidate, same order
        """
        listing = self._list_destination(destination_dir)
        results = []
        for candidate in candidates:
            path, size = self._unpack(candidate)
            name = os.path.basename(path)
            results.append(name in listing and listing[name] == size)

        logger.debug(f"Duplicate check: {sum(results)}/{len(results)} already in {destination_dir}")
        return results

    @staticmethod
    def _unpack(candidate: CandidateLike) -> Tuple[str, int]:
        if isinstance(candidate, DuplicateCandidate):
            return candidate.path, candidate.size
        path, size = candidate
        return str(path), int(size)

    @staticmethod
    def _list_destination(destination_dir: str) -> Dict[str, int]:
        """Name -> size of regular files at the destination's top level."""
        listing: Dict[str, int] = {}
        if not destination_dir or not os.path.isdir(destination_dir):
            # Nothing can exist in a folder that is not there yet
            return listing
        try:
            with os.scandir(destination_dir) as it:
                for entry in it:
                    try:
                        if entry.is_file(follow_symlinks=True):
                            listing[entry.name] = entry.stat(follow_symlinks=True).st_size
                    except OSError:
                        continue
        except OSError as e:
            logger.warning(f"Cannot list destination {destination_dir}: {e}")
        return listing


def file_matches(destination_dir: str, name: str, size: int) -> Optional[bool]:
    """
    Compare one name against the destination, as check_existing() would.

    Returns:
        None if no entry with that name exists, True if a regular file with
        the same size is there, False if the name is taken by anything else
    """
    target = os.path.join(destination_dir, name)
    try:
        st = os.stat(target)
    except FileNotFoundError:
        return None
    return stat.S_ISREG(st.st_mode) and st.st_size == size
