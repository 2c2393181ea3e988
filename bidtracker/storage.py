from __future__ import annotations

from pathlib import Path
from typing import Optional

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
RESUMES_DIR = DATA_DIR / "auto_generated_resumes"


def ensure_data_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    RESUMES_DIR.mkdir(parents=True, exist_ok=True)


def resume_path(file_name: str) -> Path:
    """Path for a generated resume; rejects names that would leave RESUMES_DIR."""
    if not file_name or Path(file_name).name != file_name:
        raise ValueError(f"invalid resume file name: {file_name!r}")
    return RESUMES_DIR / file_name


def save_resume_pdf(file_name: str, pdf_bytes: bytes) -> Path:
    ensure_data_dirs()
    target_path = resume_path(file_name)
    target_path.write_bytes(pdf_bytes)
    return target_path


def load_resume_pdf(file_name: str) -> Optional[bytes]:
    path = resume_path(file_name)
    if not path.exists():
        return None
    return path.read_bytes()


def delete_resume_pdf(file_name: str) -> bool:
    """Remove a generated resume; a file that is already gone is not an error."""
    if not file_name:
        return False
    path = resume_path(file_name)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
