from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

REPO_DOTENV = Path(__file__).resolve().parent.parent / ".env"


def load(extra: Optional[Path] = None) -> List[Path]:
    """
    Populate os.environ from .env files without clobbering real variables.

    Order: `extra` (if given), the nearest .env above the working directory,
    then the repo root. Earlier files win because nothing is overridden.
    Returns the files that were read.
    """
    candidates: List[Path] = []
    if extra is not None:
        candidates.append(Path(extra))
    found = find_dotenv(usecwd=True)
    if found:
        candidates.append(Path(found))
    candidates.append(REPO_DOTENV)

    loaded: List[Path] = []
    for path in candidates:
        if path in loaded or not path.is_file():
            continue
        load_dotenv(path, override=False)
        loaded.append(path)
    return loaded


# OPENAI_API_KEY and the bidtracker tunables are read right after import.
load()
