"""
Directory and console renditions of a certificate store.
"""
import logging
import os
import sys
from pathlib import Path
from typing import List, TextIO

from ..models.hierarchy import DEFAULT_HIERARCHY, Hierarchy
from ..models.store import CertificateStore

logger = logging.getLogger(__name__)

KEY_FILE_MODE = 0o600
CERT_FILE_MODE = 0o644


def is_key_slot(slot: str) -> bool:
    return slot.endswith("-key.pem")


def write_store(store: CertificateStore, directory: str) -> List[str]:
    """
    Write every filled slot to ``directory``, one file per slot.

    Private keys are only readable by the owner.

    Returns:
        Paths of the written files in slot order
    """
    base = Path(directory)
    base.mkdir(parents=True, exist_ok=True)

    written = []
    for slot in store.slot_names():
        contents = store.get(slot)
        if not contents:
            continue
        path = base / slot
        mode = KEY_FILE_MODE if is_key_slot(slot) else CERT_FILE_MODE
        # create with the final mode so keys are never world readable
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "w") as f:
            f.write(contents)
        os.chmod(path, mode)
        written.append(str(path))

    logger.info(f"Wrote {len(written)} certificate files to {base}")
    return written


def read_store(directory: str, hierarchy: Hierarchy = DEFAULT_HIERARCHY) -> CertificateStore:
    """Read a store written by ``write_store``; missing files become empty slots."""
    base = Path(directory)
    if not base.is_dir():
        raise FileNotFoundError(f"Certificate directory not found: {directory}")

    data = {}
    for slot in hierarchy.slot_names():
        path = base / slot
        if path.is_file():
            data[slot] = path.read_text()
    return CertificateStore(hierarchy=hierarchy, data=data)


def print_store(store: CertificateStore, out: TextIO = None) -> None:
    """Print each filled slot name followed by its contents."""
    out = out or sys.stdout
    for slot in store.slot_names():
        contents = store.get(slot)
        if not contents:
            continue
        print(slot, file=out)
        print(contents, file=out)
